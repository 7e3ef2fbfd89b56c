from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field

from modules.readers.models.assignment import AssignmentStatus, PaymentStatus
from modules.readers.models.reader import PortalAccessStatus, ReaderType


class ReaderCreate(BaseModel):
    reader_name: str = Field(..., min_length=2, max_length=255)
    email: EmailStr
    phone: Optional[str] = None
    reader_type: ReaderType
    specialization: Optional[str] = None
    registration_body: Optional[str] = None
    registration_number: Optional[str] = None
    payment_rate: Optional[Decimal] = None


class ReaderAdminView(BaseModel):
    id: int
    reader_pin: str
    reader_name: str
    email: str
    phone: Optional[str] = None
    reader_type: ReaderType
    specialization: Optional[str] = None
    registration_body: Optional[str] = None
    registration_number: Optional[str] = None
    payment_rate: Optional[float] = None
    portal_access_status: PortalAccessStatus
    compliance_submitted: bool
    compliance_submitted_at: Optional[datetime] = None
    nda_signed: bool
    nda_signed_at: Optional[datetime] = None
    nda_hash: Optional[str] = None
    total_assignments_completed: int
    average_turnaround_hours: Optional[float] = None
    total_earnings: float
    created_at: Optional[datetime] = None
    created_by: str
    last_login: Optional[datetime] = None

    class Config:
        from_attributes = True


class ReaderCreatedResponse(BaseModel):
    success: bool = True
    reader: ReaderAdminView
    invitation_sent: bool


class ReaderListResponse(BaseModel):
    readers: List[ReaderAdminView]
    total: int


class AccessStatusUpdate(BaseModel):
    status: PortalAccessStatus
    reason: Optional[str] = None


class AssignmentCreate(BaseModel):
    reader_pin: str
    internal_case_pin: Optional[str] = None
    internal_case_description: Optional[str] = None
    report_pdf_path: Optional[str] = None
    deadline: Optional[datetime] = None
    payment_amount: Optional[Decimal] = None


class AssignmentAdminView(BaseModel):
    """Full assignment, internal case reference included"""
    id: int
    assignment_number: int
    reader_pin: str
    reader_type: ReaderType
    internal_case_pin: Optional[str] = None
    internal_case_description: Optional[str] = None
    report_pdf_path: Optional[str] = None
    report_assigned_at: datetime
    deadline: datetime
    assignment_status: AssignmentStatus
    corrections_submitted: bool
    corrections_submitted_at: Optional[datetime] = None
    turnaround_hours: Optional[float] = None
    corrections_reviewed_by_cm: bool
    corrections_approved: bool
    cm_feedback: Optional[str] = None
    payment_status: PaymentStatus
    payment_approved: bool
    payment_amount: Optional[float] = None
    payment_method: Optional[str] = None
    payment_reference: Optional[str] = None
    payment_processed_at: Optional[datetime] = None
    assigned_by: str

    class Config:
        from_attributes = True


class CorrectionsReview(BaseModel):
    approved: bool
    feedback: Optional[str] = None


class PaymentStatusUpdate(BaseModel):
    status: PaymentStatus
    payment_reference: Optional[str] = None
    payment_method: Optional[str] = None
    payment_amount: Optional[Decimal] = None


class NdaVersionCreate(BaseModel):
    version_number: str = Field(..., min_length=1, max_length=20)
    nda_template_path: str
    effective_date: date
    reader_signature_field: Optional[str] = None
    counter_signature_field: Optional[str] = None
    counter_signature_required: bool = True


class NdaVersionView(BaseModel):
    id: int
    version_number: str
    nda_template_path: str
    effective_date: date
    is_current: bool
    reader_signature_field: str
    counter_signature_field: str
    counter_signature_required: bool
    created_by: str

    class Config:
        from_attributes = True
