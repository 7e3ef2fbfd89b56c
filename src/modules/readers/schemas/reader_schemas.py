from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from modules.readers.models.assignment import AssignmentStatus, PaymentStatus
from modules.readers.models.reader import PortalAccessStatus, ReaderType


class ReaderSummary(BaseModel):
    reader_pin: str
    reader_name: str
    email: str
    reader_type: ReaderType
    specialization: Optional[str] = None
    portal_access_status: PortalAccessStatus
    compliance_submitted: bool
    nda_signed: bool
    nda_signed_at: Optional[datetime] = None
    total_assignments_completed: int
    average_turnaround_hours: Optional[float] = None
    total_earnings: float

    class Config:
        from_attributes = True


class AssignmentView(BaseModel):
    """What a reader may see of an assignment; no internal case reference"""
    id: int
    assignment_number: int
    reader_type: ReaderType
    report_assigned_at: datetime
    deadline: datetime
    assignment_status: AssignmentStatus
    corrections_content: Optional[str] = None
    corrections_updated_at: Optional[datetime] = None
    corrections_submitted: bool
    corrections_submitted_at: Optional[datetime] = None
    corrections_notes: Optional[str] = None
    cm_feedback: Optional[str] = None
    has_report: bool = False

    class Config:
        from_attributes = True


class NdaStatus(BaseModel):
    signed: bool
    signed_at: Optional[datetime] = None
    version_number: Optional[str] = None


class ModalState(BaseModel):
    show_modal: Optional[str] = None
    step: Optional[int] = None
    error: Optional[str] = None


class DashboardResponse(BaseModel):
    success: bool = True
    reader: ReaderSummary
    assignments: List[AssignmentView]
    nda: NdaStatus
    modal: ModalState


class NdaVersionInfo(BaseModel):
    version_number: str
    effective_date: date
    counter_signature_required: bool

    class Config:
        from_attributes = True


class SaveCorrectionsRequest(BaseModel):
    assignment_id: int
    corrections_content: str


class SubmitCorrectionsRequest(BaseModel):
    assignment_id: int
    corrections_notes: Optional[str] = None
    corrections_file_path: Optional[str] = None


class CorrectionsResponse(BaseModel):
    success: bool = True
    message: str
    assignment: AssignmentView


class PaymentRow(BaseModel):
    id: int
    assignment_number: int
    corrections_submitted_at: Optional[datetime] = None
    turnaround_hours: Optional[float] = None
    payment_status: PaymentStatus
    payment_amount: Optional[float] = None
    payment_reference: Optional[str] = None
    payment_processed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class PaymentStatusResponse(BaseModel):
    success: bool = True
    reader_pin: str
    reader_name: str
    total_earnings: float
    payments: List[PaymentRow] = Field(default_factory=list)


class GenerateNdaResponse(BaseModel):
    success: bool = True
    message: str
    pdf_path: str
