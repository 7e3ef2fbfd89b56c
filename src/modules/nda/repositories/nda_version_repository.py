from typing import Optional
from sqlalchemy.orm import Session

from modules.nda.models.nda_version import NdaVersion


class NdaVersionRepository:
    def __init__(self, db_session: Session):
        self.db = db_session

    def find_current(self) -> Optional[NdaVersion]:
        return self.db.query(NdaVersion).filter(NdaVersion.is_current.is_(True)).first()

    def find_by_number(self, version_number: str) -> Optional[NdaVersion]:
        return self.db.query(NdaVersion).filter(NdaVersion.version_number == version_number).first()

    def publish(self, version: NdaVersion) -> NdaVersion:
        """Store `version` as the single current NDA version"""
        # Clear the previous flag first so the partial unique index never sees two rows
        self.db.query(NdaVersion).filter(NdaVersion.is_current.is_(True)).update(
            {NdaVersion.is_current: False}, synchronize_session="fetch"
        )
        self.db.flush()
        version.is_current = True
        self.db.add(version)
        self.db.commit()
        self.db.refresh(version)
        return version
