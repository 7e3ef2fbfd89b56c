from typing import List, Optional
from sqlalchemy.orm import Session

from modules.readers.models.activity_log import ActivityLogEntry


class ActivityLogRepository:
    """Append-only access to the audit trail"""

    def __init__(self, db_session: Session):
        self.db = db_session

    def add(
        self,
        reader_pin: str,
        activity_type: str,
        description: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        performed_by: Optional[str] = None,
        related_assignment_id: Optional[int] = None,
        commit: bool = True,
    ) -> ActivityLogEntry:
        """With `commit=False` the entry joins the caller's transaction"""
        entry = ActivityLogEntry(
            reader_pin=reader_pin,
            activity_type=activity_type,
            activity_description=description,
            ip_address=ip_address,
            user_agent=user_agent,
            performed_by=performed_by,
            related_assignment_id=related_assignment_id,
        )
        self.db.add(entry)
        if commit:
            self.db.commit()
            self.db.refresh(entry)
        return entry

    def find_by_reader(self, reader_pin: str, activity_type: Optional[str] = None) -> List[ActivityLogEntry]:
        query = self.db.query(ActivityLogEntry).filter(ActivityLogEntry.reader_pin == reader_pin)
        if activity_type:
            query = query.filter(ActivityLogEntry.activity_type == activity_type)
        return query.order_by(ActivityLogEntry.created_at.desc(), ActivityLogEntry.id.desc()).all()
