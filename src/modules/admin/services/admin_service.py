import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from core.exceptions import ReaderNotFoundError, ValidationError
from modules.admin.schemas.admin_schemas import NdaVersionCreate, ReaderCreate
from modules.nda.models.nda_version import (
    DEFAULT_COUNTER_SIGNATURE_FIELD,
    DEFAULT_READER_SIGNATURE_FIELD,
    NdaVersion,
)
from modules.nda.repositories.nda_version_repository import NdaVersionRepository
from modules.readers.models.reader import PortalAccessStatus, Reader
from modules.readers.repositories.activity_log_repository import ActivityLogRepository
from modules.readers.repositories.reader_repository import ReaderRepository
from modules.readers.services.pin import generate_pin

logger = logging.getLogger(__name__)

DEFAULT_PAYMENT_RATE = Decimal("50.00")


class AdminService:

    @staticmethod
    def create_reader(db: Session, data: ReaderCreate, created_by: str) -> Reader:
        repository = ReaderRepository(db)
        if repository.find_by_email(data.email):
            raise ValidationError("Email is already registered", field="email")

        reader = Reader(
            reader_pin=generate_pin(data.reader_name, repository.pin_exists),
            reader_name=data.reader_name.strip(),
            email=data.email.lower(),
            phone=data.phone,
            reader_type=data.reader_type,
            specialization=data.specialization,
            registration_body=data.registration_body,
            registration_number=data.registration_number,
            payment_rate=data.payment_rate if data.payment_rate is not None else DEFAULT_PAYMENT_RATE,
            portal_access_status=PortalAccessStatus.PENDING,
            created_by=created_by,
        )
        reader = repository.save(reader)

        ActivityLogRepository(db).add(
            reader.reader_pin, "readerCreated", f"Reader invited as {reader.reader_type.value}",
            performed_by=created_by,
        )
        logger.info("Reader %s created by %s", reader.reader_pin, created_by)
        return reader

    @staticmethod
    def get_reader(db: Session, reader_pin: str) -> Reader:
        reader = ReaderRepository(db).find_by_pin(reader_pin)
        if reader is None:
            raise ReaderNotFoundError(reader_pin)
        return reader

    @staticmethod
    def change_access_status(
        db: Session,
        reader_pin: str,
        status: PortalAccessStatus,
        changed_by: str,
        reason: Optional[str] = None,
    ) -> Reader:
        """Soft lifecycle; readers are never deleted"""
        reader = AdminService.get_reader(db, reader_pin)
        previous = reader.portal_access_status
        reader.portal_access_status = status
        ReaderRepository(db).save(reader)

        description = f"Portal access {previous.value} -> {status.value}"
        if reason:
            description = f"{description}: {reason}"
        ActivityLogRepository(db).add(reader.reader_pin, "accessStatusChanged", description, performed_by=changed_by)
        return reader

    @staticmethod
    def mark_compliance_submitted(db: Session, reader_pin: str, changed_by: str) -> Reader:
        reader = AdminService.get_reader(db, reader_pin)
        if not reader.compliance_submitted:
            reader.compliance_submitted = True
            reader.compliance_submitted_at = datetime.utcnow()
            ReaderRepository(db).save(reader)
            ActivityLogRepository(db).add(
                reader.reader_pin, "complianceSubmitted", "HR compliance recorded", performed_by=changed_by,
            )
        return reader

    @staticmethod
    def publish_nda_version(db: Session, data: NdaVersionCreate, created_by: str) -> NdaVersion:
        repository = NdaVersionRepository(db)
        if repository.find_by_number(data.version_number):
            raise ValidationError(f"NDA version {data.version_number} already exists", field="version_number")

        version = NdaVersion(
            version_number=data.version_number,
            nda_template_path=data.nda_template_path,
            effective_date=data.effective_date,
            reader_signature_field=data.reader_signature_field or DEFAULT_READER_SIGNATURE_FIELD,
            counter_signature_field=data.counter_signature_field or DEFAULT_COUNTER_SIGNATURE_FIELD,
            counter_signature_required=data.counter_signature_required,
            created_by=created_by,
        )
        version = repository.publish(version)
        logger.info("NDA version %s published by %s", version.version_number, created_by)
        return version
