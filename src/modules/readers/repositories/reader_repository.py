from typing import List, Optional
from sqlalchemy import func
from sqlalchemy.orm import Session

from modules.readers.models.reader import Reader, PortalAccessStatus


class ReaderRepository:
    def __init__(self, db_session: Session):
        self.db = db_session

    def save(self, reader: Reader) -> Reader:
        self.db.add(reader)
        self.db.commit()
        self.db.refresh(reader)
        return reader

    def find_by_pin(self, reader_pin: str) -> Optional[Reader]:
        return self.db.query(Reader).filter(Reader.reader_pin == reader_pin).first()

    def find_by_pin_and_email(self, reader_pin: str, email: str) -> Optional[Reader]:
        return (
            self.db.query(Reader)
            .filter(Reader.reader_pin == reader_pin, func.lower(Reader.email) == email.lower())
            .first()
        )

    def find_by_email(self, email: str) -> Optional[Reader]:
        return self.db.query(Reader).filter(func.lower(Reader.email) == email.lower()).first()

    def pin_exists(self, reader_pin: str) -> bool:
        return self.db.query(Reader.id).filter(Reader.reader_pin == reader_pin).first() is not None

    def list(
        self,
        status: Optional[PortalAccessStatus] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[Reader]:
        query = self.db.query(Reader)
        if status is not None:
            query = query.filter(Reader.portal_access_status == status)
        return query.order_by(Reader.reader_name).offset(skip).limit(limit).all()

    def count(self, status: Optional[PortalAccessStatus] = None) -> int:
        query = self.db.query(Reader)
        if status is not None:
            query = query.filter(Reader.portal_access_status == status)
        return query.count()
