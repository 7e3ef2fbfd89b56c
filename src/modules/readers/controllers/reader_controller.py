from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import FileResponse
from sqlalchemy.orm import Session

from core.exceptions import NdaVersionNotFoundError
from database import get_db
from modules.auth.controllers.auth_controller import client_ip
from modules.auth.dependencies import get_compliant_reader
from modules.nda.dependencies import get_nda_workflow
from modules.nda.repositories.nda_version_repository import NdaVersionRepository
from modules.nda.services.nda_workflow import NdaWorkflow
from modules.readers.models.reader import Reader
from modules.readers.repositories.assignment_repository import AssignmentRepository
from modules.readers.schemas.reader_schemas import (
    AssignmentView, CorrectionsResponse, DashboardResponse, GenerateNdaResponse,
    NdaVersionInfo, PaymentStatusResponse, SaveCorrectionsRequest, SubmitCorrectionsRequest
)
from modules.readers.services.assignment_service import AssignmentService
from modules.readers.services.reader_service import ReaderService

router = APIRouter(tags=["readers"])


@router.get("/readersDashboard", response_model=DashboardResponse)
def readers_dashboard(
    showModal: Optional[str] = Query(None),
    step: Optional[int] = Query(None, ge=1, le=4),
    error: Optional[str] = Query(None),
    reader: Reader = Depends(get_compliant_reader),
    db: Session = Depends(get_db),
):
    """Dashboard data; the NDA modal state is echoed back from the query string"""
    return ReaderService.dashboard(db, reader, show_modal=showModal, step=step, error=error)


@router.get("/api/readers/nda/current", response_model=NdaVersionInfo)
def current_nda_version(
    reader: Reader = Depends(get_compliant_reader),
    db: Session = Depends(get_db),
):
    version = NdaVersionRepository(db).find_current()
    if version is None:
        raise NdaVersionNotFoundError()
    return version


@router.post("/api/readers/generate-nda", response_model=GenerateNdaResponse)
async def generate_nda(
    reader: Reader = Depends(get_compliant_reader),
    workflow: NdaWorkflow = Depends(get_nda_workflow),
):
    path = await workflow.generate_nda(reader)
    return GenerateNdaResponse(message="NDA generated", pdf_path=path)


@router.get("/api/readers/assignments", response_model=list[AssignmentView])
def list_assignments(
    reader: Reader = Depends(get_compliant_reader),
    db: Session = Depends(get_db),
):
    return AssignmentRepository(db).find_active_by_reader(reader.reader_pin)


@router.get("/api/readers/assignments/{assignment_id}", response_model=AssignmentView)
def get_assignment(
    assignment_id: int,
    reader: Reader = Depends(get_compliant_reader),
    db: Session = Depends(get_db),
):
    return AssignmentService.get_viewable(db, reader, assignment_id)


@router.get("/api/readers/assignments/{assignment_id}/report")
def view_report(
    assignment_id: int,
    reader: Reader = Depends(get_compliant_reader),
    db: Session = Depends(get_db),
):
    """Redacted report, shown inline in the viewer"""
    path = AssignmentService.report_path(db, reader, assignment_id)
    return FileResponse(
        path,
        media_type="application/pdf",
        filename=f"Assignment_{assignment_id}.pdf",
        content_disposition_type="inline",
    )


@router.post("/api/readers/save-corrections", response_model=CorrectionsResponse)
def save_corrections(
    payload: SaveCorrectionsRequest,
    reader: Reader = Depends(get_compliant_reader),
    db: Session = Depends(get_db),
):
    assignment = AssignmentService.save_corrections(db, reader, payload.assignment_id, payload.corrections_content)
    return CorrectionsResponse(message="Corrections saved", assignment=AssignmentView.model_validate(assignment))


@router.post("/api/readers/submit-corrections", response_model=CorrectionsResponse)
def submit_corrections(
    payload: SubmitCorrectionsRequest,
    request: Request,
    reader: Reader = Depends(get_compliant_reader),
    db: Session = Depends(get_db),
):
    assignment = AssignmentService.submit_corrections(
        db, reader, payload.assignment_id,
        notes=payload.corrections_notes,
        file_path=payload.corrections_file_path,
        ip_address=client_ip(request),
    )
    return CorrectionsResponse(message="Corrections submitted", assignment=AssignmentView.model_validate(assignment))


@router.get("/api/readers/payment-status", response_model=PaymentStatusResponse)
def payment_status(
    reader: Reader = Depends(get_compliant_reader),
    db: Session = Depends(get_db),
):
    return ReaderService.payment_status(db, reader)
