from .reader_schemas import (
    ReaderSummary, AssignmentView, NdaStatus, ModalState, DashboardResponse,
    NdaVersionInfo, SaveCorrectionsRequest, SubmitCorrectionsRequest,
    CorrectionsResponse, PaymentRow, PaymentStatusResponse, GenerateNdaResponse
)

__all__ = [
    'ReaderSummary', 'AssignmentView', 'NdaStatus', 'ModalState', 'DashboardResponse',
    'NdaVersionInfo', 'SaveCorrectionsRequest', 'SubmitCorrectionsRequest',
    'CorrectionsResponse', 'PaymentRow', 'PaymentStatusResponse', 'GenerateNdaResponse'
]
