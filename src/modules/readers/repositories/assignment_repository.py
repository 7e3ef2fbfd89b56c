from typing import List, Optional
from sqlalchemy import func
from sqlalchemy.orm import Session

from modules.readers.models.assignment import Assignment, AssignmentStatus


class AssignmentRepository:
    def __init__(self, db_session: Session):
        self.db = db_session

    def save(self, assignment: Assignment) -> Assignment:
        self.db.add(assignment)
        self.db.commit()
        self.db.refresh(assignment)
        return assignment

    def next_assignment_number(self) -> int:
        current = self.db.query(func.max(Assignment.assignment_number)).scalar()
        return (current or 0) + 1

    def find_by_id(self, assignment_id: int) -> Optional[Assignment]:
        return self.db.get(Assignment, assignment_id)

    def find_for_reader(self, assignment_id: int, reader_pin: str) -> Optional[Assignment]:
        return (
            self.db.query(Assignment)
            .filter(Assignment.id == assignment_id, Assignment.reader_pin == reader_pin)
            .first()
        )

    def find_active_by_reader(self, reader_pin: str) -> List[Assignment]:
        return (
            self.db.query(Assignment)
            .filter(
                Assignment.reader_pin == reader_pin,
                Assignment.assignment_status.in_([AssignmentStatus.PENDING, AssignmentStatus.IN_PROGRESS]),
            )
            .order_by(Assignment.deadline.asc())
            .all()
        )

    def find_by_reader(self, reader_pin: str) -> List[Assignment]:
        return (
            self.db.query(Assignment)
            .filter(Assignment.reader_pin == reader_pin)
            .order_by(Assignment.deadline.asc())
            .all()
        )

    def find_completed_by_reader(self, reader_pin: str) -> List[Assignment]:
        return (
            self.db.query(Assignment)
            .filter(
                Assignment.reader_pin == reader_pin,
                Assignment.assignment_status == AssignmentStatus.COMPLETED,
            )
            .order_by(Assignment.corrections_submitted_at.desc())
            .all()
        )

    def submitted_turnarounds(self, reader_pin: str) -> List[float]:
        rows = (
            self.db.query(Assignment.turnaround_hours)
            .filter(Assignment.reader_pin == reader_pin, Assignment.turnaround_hours.isnot(None))
            .all()
        )
        return [float(row[0]) for row in rows]
