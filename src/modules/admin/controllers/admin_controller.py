from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from database import get_db
from modules.admin.schemas.admin_schemas import (
    AccessStatusUpdate, AssignmentAdminView, AssignmentCreate, CorrectionsReview,
    NdaVersionCreate, NdaVersionView, PaymentStatusUpdate, ReaderAdminView,
    ReaderCreate, ReaderCreatedResponse, ReaderListResponse
)
from modules.admin.services.admin_service import AdminService
from modules.auth.dependencies import require_admin
from modules.notifications.services.email_service import EmailService, get_email_service
from modules.notifications.services.templates import ReaderInvitationEmail
from modules.readers.models.reader import PortalAccessStatus
from modules.readers.repositories.reader_repository import ReaderRepository
from modules.readers.services.assignment_service import AssignmentService

router = APIRouter(prefix="/api/admin", tags=["admin"])


def admin_name(claims: dict) -> str:
    return claims.get("email") or claims.get("sub") or "admin"


@router.post("/readers", response_model=ReaderCreatedResponse, status_code=201)
async def create_reader(
    data: ReaderCreate,
    db: Session = Depends(get_db),
    admin: dict = Depends(require_admin),
    email_service: EmailService = Depends(get_email_service),
):
    """Create a reader with a fresh PIN and email the invitation"""
    reader = AdminService.create_reader(db, data, admin_name(admin))
    template = ReaderInvitationEmail(reader.reader_name, reader.reader_pin)
    sent = await email_service.send_email(reader.email, template.subject, template.html)
    return ReaderCreatedResponse(reader=ReaderAdminView.model_validate(reader), invitation_sent=sent)


@router.get("/readers", response_model=ReaderListResponse)
def list_readers(
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    status: Optional[PortalAccessStatus] = Query(None),
    db: Session = Depends(get_db),
    admin: dict = Depends(require_admin),
):
    repository = ReaderRepository(db)
    return ReaderListResponse(
        readers=repository.list(status=status, skip=skip, limit=limit),
        total=repository.count(status=status),
    )


@router.get("/readers/{reader_pin}", response_model=ReaderAdminView)
def get_reader(reader_pin: str, db: Session = Depends(get_db), admin: dict = Depends(require_admin)):
    return AdminService.get_reader(db, reader_pin)


@router.put("/readers/{reader_pin}/status", response_model=ReaderAdminView)
def change_reader_status(
    reader_pin: str,
    data: AccessStatusUpdate,
    db: Session = Depends(get_db),
    admin: dict = Depends(require_admin),
):
    return AdminService.change_access_status(db, reader_pin, data.status, admin_name(admin), data.reason)


@router.post("/readers/{reader_pin}/compliance", response_model=ReaderAdminView)
def mark_compliance(reader_pin: str, db: Session = Depends(get_db), admin: dict = Depends(require_admin)):
    return AdminService.mark_compliance_submitted(db, reader_pin, admin_name(admin))


@router.post("/assignments", response_model=AssignmentAdminView, status_code=201)
def create_assignment(
    data: AssignmentCreate,
    db: Session = Depends(get_db),
    admin: dict = Depends(require_admin),
):
    return AssignmentService.create(
        db,
        data.reader_pin,
        admin_name(admin),
        internal_case_pin=data.internal_case_pin,
        internal_case_description=data.internal_case_description,
        report_pdf_path=data.report_pdf_path,
        deadline=data.deadline,
        payment_amount=data.payment_amount,
    )


@router.post("/assignments/{assignment_id}/review", response_model=AssignmentAdminView)
def review_corrections(
    assignment_id: int,
    data: CorrectionsReview,
    db: Session = Depends(get_db),
    admin: dict = Depends(require_admin),
):
    return AssignmentService.review_corrections(db, assignment_id, admin_name(admin), data.approved, data.feedback)


@router.put("/assignments/{assignment_id}/payment", response_model=AssignmentAdminView)
def change_payment_status(
    assignment_id: int,
    data: PaymentStatusUpdate,
    db: Session = Depends(get_db),
    admin: dict = Depends(require_admin),
):
    return AssignmentService.change_payment_status(
        db,
        assignment_id,
        data.status,
        admin_name(admin),
        reference=data.payment_reference,
        method=data.payment_method,
        amount=data.payment_amount,
    )


@router.post("/nda-versions", response_model=NdaVersionView, status_code=201)
def publish_nda_version(
    data: NdaVersionCreate,
    db: Session = Depends(get_db),
    admin: dict = Depends(require_admin),
):
    return AdminService.publish_nda_version(db, data, admin_name(admin))
