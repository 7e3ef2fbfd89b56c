import os
from typing import Optional

from core.config import settings
from modules.readers.services.pin import validate_pin

ORIGINAL_DIR = "original"
FINAL_NDA_DIR = "final-nda"
SIGNED_NDA_DIR = "signed-nda"
SIGNATURES_DIR = "signatures"


class NdaStorage:
    """
    Layout of the central repository:

        original/     NDA templates
        final-nda/    NDA_<pin>.pdf, generated and unsigned
        signed-nda/   NDA_<pin>_Preview.pdf and NDA_<pin>_Signed.pdf
        signatures/   readerSignature_<pin>.png and the counter-signature asset
    """

    def __init__(self, root: Optional[str] = None, counter_signature_filename: Optional[str] = None):
        self.root = root or settings.CENTRAL_REPOSITORY_DIR
        self.counter_signature_filename = counter_signature_filename or settings.COUNTER_SIGNATURE_FILENAME

    def _path(self, directory: str, filename: str) -> str:
        return os.path.join(self.root, directory, filename)

    def ensure_layout(self) -> None:
        for directory in (ORIGINAL_DIR, FINAL_NDA_DIR, SIGNED_NDA_DIR, SIGNATURES_DIR):
            os.makedirs(os.path.join(self.root, directory), exist_ok=True)

    def template_path(self, template: str) -> str:
        """Templates are stored by path; relative ones live in original/"""
        if os.path.isabs(template):
            return template
        return self._path(ORIGINAL_DIR, os.path.basename(template))

    def generated_path(self, reader_pin: str) -> str:
        return self._path(FINAL_NDA_DIR, f"NDA_{validate_pin(reader_pin)}.pdf")

    def preview_path(self, reader_pin: str) -> str:
        return self._path(SIGNED_NDA_DIR, f"NDA_{validate_pin(reader_pin)}_Preview.pdf")

    def signed_path(self, reader_pin: str) -> str:
        return self._path(SIGNED_NDA_DIR, f"NDA_{validate_pin(reader_pin)}_Signed.pdf")

    def signature_image_path(self, reader_pin: str) -> str:
        return self._path(SIGNATURES_DIR, f"readerSignature_{validate_pin(reader_pin)}.png")

    def counter_signature_path(self) -> str:
        return self._path(SIGNATURES_DIR, self.counter_signature_filename)

    @staticmethod
    def read(path: str) -> bytes:
        with open(path, "rb") as f:
            return f.read()

    @staticmethod
    def write(path: str, data: bytes) -> str:
        os.makedirs(os.path.dirname(path), exist_ok=True)
        tmp_path = f"{path}.tmp"
        with open(tmp_path, "wb") as f:
            f.write(data)
        os.replace(tmp_path, path)
        return path

    @staticmethod
    def exists(path: Optional[str]) -> bool:
        return bool(path) and os.path.isfile(path)
