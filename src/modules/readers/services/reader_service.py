from typing import Optional

from sqlalchemy.orm import Session

from modules.nda.repositories.nda_version_repository import NdaVersionRepository
from modules.readers.models.reader import Reader
from modules.readers.repositories.assignment_repository import AssignmentRepository
from modules.readers.schemas.reader_schemas import (
    AssignmentView, DashboardResponse, ModalState, NdaStatus, PaymentRow,
    PaymentStatusResponse, ReaderSummary
)


class ReaderService:

    @staticmethod
    def dashboard(
        db: Session,
        reader: Reader,
        show_modal: Optional[str] = None,
        step: Optional[int] = None,
        error: Optional[str] = None,
    ) -> DashboardResponse:
        """Reader summary, open assignments by deadline and NDA state"""
        assignments = AssignmentRepository(db).find_active_by_reader(reader.reader_pin)

        version = reader.nda_version if reader.nda_signed else NdaVersionRepository(db).find_current()
        nda = NdaStatus(
            signed=reader.nda_signed,
            signed_at=reader.nda_signed_at,
            version_number=version.version_number if version else None,
        )
        return DashboardResponse(
            reader=ReaderSummary.model_validate(reader),
            assignments=[AssignmentView.model_validate(a) for a in assignments],
            nda=nda,
            modal=ModalState(show_modal=show_modal, step=step, error=error),
        )

    @staticmethod
    def payment_status(db: Session, reader: Reader) -> PaymentStatusResponse:
        completed = AssignmentRepository(db).find_completed_by_reader(reader.reader_pin)
        return PaymentStatusResponse(
            reader_pin=reader.reader_pin,
            reader_name=reader.reader_name,
            total_earnings=float(reader.total_earnings or 0),
            payments=[PaymentRow.model_validate(a) for a in completed],
        )
