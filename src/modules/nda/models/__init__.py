from .nda_version import NdaVersion

__all__ = ['NdaVersion']
