from sqlalchemy import Column, Integer, String, Enum, DateTime, Boolean, Numeric, Text, ForeignKey, event
from sqlalchemy.orm import relationship
from enum import Enum as PyEnum
from datetime import datetime, timedelta
from database import Base
from modules.readers.models.reader import ReaderType

DEFAULT_TURNAROUND = timedelta(hours=24)


class AssignmentStatus(PyEnum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class PaymentStatus(PyEnum):
    PENDING = "pending"
    APPROVED = "approved"
    PROCESSING = "processing"
    PAID = "paid"
    ON_HOLD = "on_hold"


def _values(enum_cls):
    return [m.value for m in enum_cls]


class Assignment(Base):
    __tablename__ = 'reader_assignments'

    id = Column(Integer, primary_key=True)
    assignment_number = Column(Integer, unique=True, nullable=False, index=True)

    reader_pin = Column(String(20), ForeignKey('readers.reader_pin', ondelete="CASCADE"), nullable=False, index=True)
    reader_type = Column(Enum(ReaderType, values_callable=_values), nullable=False)

    # Internal case tracking, never shown to the reader
    internal_case_pin = Column(String(20), index=True)
    internal_case_description = Column(Text)

    report_pdf_path = Column(String(500))
    report_assigned_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    deadline = Column(DateTime, nullable=False, index=True)
    assignment_status = Column(
        Enum(AssignmentStatus, values_callable=_values),
        nullable=False,
        default=AssignmentStatus.PENDING,
    )

    # Reader submission
    corrections_content = Column(Text)
    corrections_updated_at = Column(DateTime)
    corrections_submitted = Column(Boolean, default=False, nullable=False)
    corrections_submitted_at = Column(DateTime)
    corrections_file_path = Column(String(500))
    corrections_notes = Column(Text)
    turnaround_hours = Column(Numeric(7, 2))

    # Case manager review
    corrections_reviewed_by_cm = Column(Boolean, default=False, nullable=False)
    corrections_reviewed_at = Column(DateTime)
    corrections_reviewed_by = Column(String(255))
    corrections_approved = Column(Boolean, default=False, nullable=False)
    cm_feedback = Column(Text)

    # Payment workflow
    payment_approved = Column(Boolean, default=False, nullable=False)
    payment_approved_by = Column(String(255))
    payment_approved_at = Column(DateTime)
    payment_status = Column(
        Enum(PaymentStatus, values_callable=_values),
        nullable=False,
        default=PaymentStatus.PENDING,
    )
    payment_amount = Column(Numeric(10, 2))
    payment_method = Column(String(50))
    payment_reference = Column(String(100))
    payment_processed_at = Column(DateTime)

    assigned_by = Column(String(255), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    reader = relationship("Reader", back_populates="assignments")

    @property
    def is_locked(self) -> bool:
        return self.corrections_submitted or self.assignment_status in (
            AssignmentStatus.COMPLETED,
            AssignmentStatus.CANCELLED,
        )

    @property
    def has_report(self) -> bool:
        return bool(self.report_pdf_path)


@event.listens_for(Assignment, "before_insert")
def set_assignment_deadline(mapper, connection, target):
    """Deadline defaults to 24 hours after assignment"""
    if target.report_assigned_at is None:
        target.report_assigned_at = datetime.utcnow()
    if target.deadline is None:
        target.deadline = target.report_assigned_at + DEFAULT_TURNAROUND
