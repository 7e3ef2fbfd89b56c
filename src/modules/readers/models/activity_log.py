from sqlalchemy import Column, Integer, String, DateTime, Text, ForeignKey
from datetime import datetime
from database import Base


class ActivityLogEntry(Base):
    """GDPR audit trail; rows are written once and never updated"""

    __tablename__ = 'reader_activity_log'

    id = Column(Integer, primary_key=True)
    reader_pin = Column(String(20), ForeignKey('readers.reader_pin', ondelete="CASCADE"), nullable=False, index=True)
    activity_type = Column(String(100), nullable=False, index=True)
    activity_description = Column(Text)
    ip_address = Column(String(50))
    user_agent = Column(Text)
    performed_by = Column(String(255))
    related_assignment_id = Column(Integer, ForeignKey('reader_assignments.id', ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
