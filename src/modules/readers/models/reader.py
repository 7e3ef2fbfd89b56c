from sqlalchemy import Column, Integer, String, Enum, DateTime, Boolean, Numeric, Text, ForeignKey
from sqlalchemy.orm import relationship, validates
from enum import Enum as PyEnum
from datetime import datetime
from decimal import Decimal
from database import Base
from modules.nda.models.nda_version import NdaVersion


class ReaderType(PyEnum):
    FIRST_READER = "first_reader"
    SECOND_READER = "second_reader"


class PortalAccessStatus(PyEnum):
    PENDING = "pending"
    ACTIVE = "active"
    ON_HOLD = "on_hold"
    SUSPENDED = "suspended"


class Reader(Base):
    __tablename__ = 'readers'

    id = Column(Integer, primary_key=True)
    reader_pin = Column(String(20), unique=True, nullable=False, index=True)

    reader_name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, nullable=False, index=True)
    phone = Column(String(50))

    reader_type = Column(Enum(ReaderType, values_callable=lambda e: [m.value for m in e]), nullable=False)
    specialization = Column(String(255))
    registration_body = Column(String(50))
    registration_number = Column(String(50))

    payment_rate = Column(Numeric(10, 2), default=Decimal("50.00"))

    # Authentication
    password_hash = Column(Text)
    password_setup_completed = Column(Boolean, default=False)
    jwt_session_token = Column(Text)

    # 2FA (code is stored hashed)
    email_verification_code = Column(Text)
    email_verification_code_expires_at = Column(DateTime)
    email_verification_code_attempts = Column(Integer, default=0, nullable=False)

    # NDA
    nda_signed = Column(Boolean, default=False, nullable=False)
    nda_signed_at = Column(DateTime)
    nda_pdf_path = Column(String(500))
    nda_hash = Column(String(64))
    nda_hash_timestamp = Column(DateTime)
    nda_version_id = Column(Integer, ForeignKey('reader_nda_versions.id'), nullable=True)
    # Version the unsigned final-nda artifact was generated from
    nda_generated_version_id = Column(Integer, ForeignKey('reader_nda_versions.id'), nullable=True)

    portal_access_status = Column(
        Enum(PortalAccessStatus, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=PortalAccessStatus.PENDING,
    )

    # HR compliance gate
    compliance_submitted = Column(Boolean, default=False, nullable=False)
    compliance_submitted_at = Column(DateTime)

    # Lifetime counters
    total_assignments_completed = Column(Integer, default=0, nullable=False)
    average_turnaround_hours = Column(Numeric(7, 2))
    total_earnings = Column(Numeric(10, 2), default=Decimal("0.00"), nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)
    created_by = Column(String(255), nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    last_login = Column(DateTime)
    last_login_ip = Column(String(50))

    assignments = relationship(
        "Assignment",
        back_populates="reader",
        cascade="all, delete-orphan",
        order_by="Assignment.deadline",
    )
    nda_version = relationship(NdaVersion, foreign_keys=[nda_version_id])

    @validates("nda_signed")
    def _validate_nda_signed(self, key, value):
        # Signed readers always carry their artifact, hash and timestamp
        if value and not (self.nda_signed_at and self.nda_pdf_path and self.nda_hash):
            raise ValueError("NDA can only be marked signed once timestamp, path and hash are set")
        return value

    @property
    def can_request_login(self) -> bool:
        return self.portal_access_status in (PortalAccessStatus.ACTIVE, PortalAccessStatus.PENDING)
