from .admin_schemas import (
    ReaderCreate, ReaderAdminView, ReaderCreatedResponse, ReaderListResponse,
    AccessStatusUpdate, AssignmentCreate, AssignmentAdminView, CorrectionsReview,
    PaymentStatusUpdate, NdaVersionCreate, NdaVersionView
)

__all__ = [
    'ReaderCreate', 'ReaderAdminView', 'ReaderCreatedResponse', 'ReaderListResponse',
    'AccessStatusUpdate', 'AssignmentCreate', 'AssignmentAdminView', 'CorrectionsReview',
    'PaymentStatusUpdate', 'NdaVersionCreate', 'NdaVersionView'
]
