from sqlalchemy import Column, Integer, String, Date, DateTime, Boolean, Index, text
from datetime import datetime
from database import Base

DEFAULT_READER_SIGNATURE_FIELD = "ReadersSignature"
DEFAULT_COUNTER_SIGNATURE_FIELD = "LizsSignature"


class NdaVersion(Base):
    __tablename__ = 'reader_nda_versions'
    __table_args__ = (
        # Only one current version allowed
        Index(
            'ix_nda_current_version',
            'is_current',
            unique=True,
            postgresql_where=text('is_current'),
            sqlite_where=text('is_current = 1'),
        ),
    )

    id = Column(Integer, primary_key=True)
    version_number = Column(String(20), unique=True, nullable=False)
    nda_template_path = Column(String(500), nullable=False)
    effective_date = Column(Date, nullable=False)
    is_current = Column(Boolean, default=False, nullable=False)

    # Signature layout of this template
    reader_signature_field = Column(String(100), nullable=False, default=DEFAULT_READER_SIGNATURE_FIELD)
    counter_signature_field = Column(String(100), nullable=False, default=DEFAULT_COUNTER_SIGNATURE_FIELD)
    counter_signature_required = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    created_by = Column(String(255), nullable=False)
