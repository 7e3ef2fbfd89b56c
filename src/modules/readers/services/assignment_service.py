import logging
import os
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from sqlalchemy.orm import Session

from core.exceptions import (
    AssignmentLockedError,
    AssignmentNotFoundError,
    AuthorizationError,
    InvalidPaymentTransitionError,
    InvalidReviewStateError,
    ReaderNotFoundError,
    ResourceNotFoundError,
    ValidationError,
)
from modules.readers.models.assignment import Assignment, AssignmentStatus, PaymentStatus
from modules.readers.models.reader import Reader
from modules.readers.repositories.activity_log_repository import ActivityLogRepository
from modules.readers.repositories.assignment_repository import AssignmentRepository
from modules.readers.repositories.reader_repository import ReaderRepository

logger = logging.getLogger(__name__)

# Allowed payment moves; paid is final
PAYMENT_TRANSITIONS = {
    PaymentStatus.PENDING: {PaymentStatus.APPROVED, PaymentStatus.ON_HOLD},
    PaymentStatus.APPROVED: {PaymentStatus.PROCESSING, PaymentStatus.ON_HOLD},
    PaymentStatus.PROCESSING: {PaymentStatus.PAID, PaymentStatus.ON_HOLD},
    PaymentStatus.ON_HOLD: {PaymentStatus.PENDING, PaymentStatus.APPROVED},
    PaymentStatus.PAID: set(),
}

# Review is closed once payment has moved on
REVIEWABLE_PAYMENT_STATES = {PaymentStatus.PENDING, PaymentStatus.ON_HOLD}

TWO_PLACES = Decimal("0.01")


def _hours_between(start: datetime, end: datetime) -> Decimal:
    seconds = Decimal(str((end - start).total_seconds()))
    return (seconds / Decimal(3600)).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


class AssignmentService:

    # ------------------------------------------------------------------
    # Reader side
    # ------------------------------------------------------------------
    @staticmethod
    def get_for_reader(db: Session, reader: Reader, assignment_id: int) -> Assignment:
        assignment = AssignmentRepository(db).find_for_reader(assignment_id, reader.reader_pin)
        if assignment is None:
            raise AssignmentNotFoundError(assignment_id)
        return assignment

    @staticmethod
    def get_viewable(db: Session, reader: Reader, assignment_id: int) -> Assignment:
        """Completed and cancelled assignments are closed to the reader"""
        assignment = AssignmentService.get_for_reader(db, reader, assignment_id)
        if assignment.assignment_status in (AssignmentStatus.COMPLETED, AssignmentStatus.CANCELLED):
            raise AuthorizationError("This assignment is no longer accessible")
        return assignment

    @staticmethod
    def report_path(db: Session, reader: Reader, assignment_id: int) -> str:
        assignment = AssignmentService.get_viewable(db, reader, assignment_id)
        if not assignment.report_pdf_path or not os.path.isfile(assignment.report_pdf_path):
            raise ResourceNotFoundError("Report", assignment_id, message="Report not available")
        return assignment.report_pdf_path

    @staticmethod
    def save_corrections(db: Session, reader: Reader, assignment_id: int, content: str) -> Assignment:
        assignment = AssignmentService.get_for_reader(db, reader, assignment_id)
        if assignment.is_locked:
            raise AssignmentLockedError(assignment_id)

        assignment.corrections_content = content
        assignment.corrections_updated_at = datetime.utcnow()
        if assignment.assignment_status == AssignmentStatus.PENDING:
            assignment.assignment_status = AssignmentStatus.IN_PROGRESS
        return AssignmentRepository(db).save(assignment)

    @staticmethod
    def submit_corrections(
        db: Session,
        reader: Reader,
        assignment_id: int,
        notes: Optional[str] = None,
        file_path: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> Assignment:
        """Complete the assignment and update the reader's lifetime counters"""
        repository = AssignmentRepository(db)
        assignment = AssignmentService.get_for_reader(db, reader, assignment_id)
        if assignment.is_locked:
            raise AssignmentLockedError(assignment_id)
        if not (assignment.corrections_content or file_path):
            raise ValidationError("Corrections are empty", field="corrections_content")

        now = datetime.utcnow()
        assignment.corrections_submitted = True
        assignment.corrections_submitted_at = now
        assignment.corrections_notes = notes
        if file_path:
            assignment.corrections_file_path = file_path
        assignment.turnaround_hours = _hours_between(assignment.report_assigned_at, now)
        assignment.assignment_status = AssignmentStatus.COMPLETED
        db.flush()

        turnarounds = repository.submitted_turnarounds(reader.reader_pin)
        reader.total_assignments_completed = (reader.total_assignments_completed or 0) + 1
        if turnarounds:
            average = Decimal(str(sum(turnarounds) / len(turnarounds)))
            reader.average_turnaround_hours = average.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)
        db.commit()
        db.refresh(assignment)

        ActivityLogRepository(db).add(
            reader.reader_pin, "correctionsSubmitted",
            f"Corrections submitted for assignment #{assignment.assignment_number}",
            ip_address=ip_address, performed_by=reader.reader_pin, related_assignment_id=assignment.id,
        )
        logger.info("Reader %s submitted assignment #%s (%s h)",
                    reader.reader_pin, assignment.assignment_number, assignment.turnaround_hours)
        return assignment

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------
    @staticmethod
    def create(
        db: Session,
        reader_pin: str,
        assigned_by: str,
        internal_case_pin: Optional[str] = None,
        internal_case_description: Optional[str] = None,
        report_pdf_path: Optional[str] = None,
        deadline: Optional[datetime] = None,
        payment_amount: Optional[Decimal] = None,
    ) -> Assignment:
        reader = ReaderRepository(db).find_by_pin(reader_pin)
        if reader is None:
            raise ReaderNotFoundError(reader_pin)

        repository = AssignmentRepository(db)
        assignment = Assignment(
            assignment_number=repository.next_assignment_number(),
            reader_pin=reader.reader_pin,
            reader_type=reader.reader_type,
            internal_case_pin=internal_case_pin,
            internal_case_description=internal_case_description,
            report_pdf_path=report_pdf_path,
            report_assigned_at=datetime.utcnow(),
            deadline=deadline,
            payment_amount=payment_amount if payment_amount is not None else reader.payment_rate,
            assigned_by=assigned_by,
        )
        assignment = repository.save(assignment)

        ActivityLogRepository(db).add(
            reader.reader_pin, "assignmentCreated",
            f"Assignment #{assignment.assignment_number} assigned",
            performed_by=assigned_by, related_assignment_id=assignment.id,
        )
        return assignment

    @staticmethod
    def get(db: Session, assignment_id: int) -> Assignment:
        assignment = AssignmentRepository(db).find_by_id(assignment_id)
        if assignment is None:
            raise AssignmentNotFoundError(assignment_id)
        return assignment

    @staticmethod
    def review_corrections(
        db: Session,
        assignment_id: int,
        reviewer: str,
        approved: bool,
        feedback: Optional[str] = None,
    ) -> Assignment:
        assignment = AssignmentService.get(db, assignment_id)
        if not assignment.corrections_submitted:
            raise InvalidReviewStateError("Corrections have not been submitted yet")
        if assignment.payment_status not in REVIEWABLE_PAYMENT_STATES:
            raise InvalidReviewStateError(
                f"Payment is already {assignment.payment_status.value}; corrections can no longer be reviewed"
            )

        assignment.corrections_reviewed_by_cm = True
        assignment.corrections_reviewed_at = datetime.utcnow()
        assignment.corrections_reviewed_by = reviewer
        assignment.corrections_approved = approved
        assignment.cm_feedback = feedback
        assignment = AssignmentRepository(db).save(assignment)

        ActivityLogRepository(db).add(
            assignment.reader_pin, "correctionsReviewed",
            f"Corrections {'approved' if approved else 'returned'} for assignment #{assignment.assignment_number}",
            performed_by=reviewer, related_assignment_id=assignment.id,
        )
        return assignment

    @staticmethod
    def change_payment_status(
        db: Session,
        assignment_id: int,
        new_status: PaymentStatus,
        actor: str,
        reference: Optional[str] = None,
        method: Optional[str] = None,
        amount: Optional[Decimal] = None,
    ) -> Assignment:
        assignment = AssignmentService.get(db, assignment_id)
        current = assignment.payment_status

        if new_status not in PAYMENT_TRANSITIONS[current]:
            raise InvalidPaymentTransitionError(current.value, new_status.value)

        # Validate before touching the row
        effective_amount = amount if amount is not None else assignment.payment_amount
        if new_status == PaymentStatus.APPROVED and not assignment.corrections_approved:
            raise InvalidPaymentTransitionError(current.value, new_status.value, "corrections have not been approved")
        if new_status == PaymentStatus.PAID:
            if not reference:
                raise InvalidPaymentTransitionError(current.value, new_status.value, "a payment reference is required")
            if effective_amount is None:
                raise InvalidPaymentTransitionError(current.value, new_status.value, "no payment amount set")

        now = datetime.utcnow()
        assignment.payment_amount = effective_amount

        if new_status == PaymentStatus.APPROVED:
            assignment.payment_approved = True
            assignment.payment_approved_by = actor
            assignment.payment_approved_at = now

        elif new_status == PaymentStatus.PAID:
            assignment.payment_reference = reference
            assignment.payment_processed_at = now
            reader = assignment.reader
            reader.total_earnings = (reader.total_earnings or Decimal("0")) + Decimal(assignment.payment_amount)

        elif new_status == PaymentStatus.PENDING:
            assignment.payment_approved = False
            assignment.payment_approved_by = None
            assignment.payment_approved_at = None

        if method:
            assignment.payment_method = method
        assignment.payment_status = new_status
        assignment = AssignmentRepository(db).save(assignment)

        ActivityLogRepository(db).add(
            assignment.reader_pin, "paymentStatusChanged",
            f"Payment for assignment #{assignment.assignment_number}: {current.value} -> {new_status.value}",
            performed_by=actor, related_assignment_id=assignment.id,
        )
        logger.info("Payment for assignment %s moved %s -> %s by %s",
                    assignment.id, current.value, new_status.value, actor)
        return assignment
