# create_tables.py
import logging
from datetime import date

from database import engine, Base, SessionLocal
# Import every model so it is registered on Base
from modules.nda.models.nda_version import NdaVersion
from modules.readers.models import Reader, Assignment, ActivityLogEntry
from modules.nda.repositories.nda_version_repository import NdaVersionRepository

logger = logging.getLogger(__name__)

DEFAULT_NDA_VERSION = "1.0"
DEFAULT_NDA_TEMPLATE = "TemplateReadersNDA.pdf"


def create_tables():
    """Create every table that does not exist yet"""
    logger.info("Tables: %s", list(Base.metadata.tables.keys()))
    Base.metadata.create_all(bind=engine)


def seed_nda_version():
    """Make sure one current NDA version exists"""
    with SessionLocal() as session:
        repository = NdaVersionRepository(session)
        if repository.find_current() is not None:
            return
        version = NdaVersion(
            version_number=DEFAULT_NDA_VERSION,
            nda_template_path=DEFAULT_NDA_TEMPLATE,
            effective_date=date.today(),
            created_by="system",
        )
        repository.publish(version)
        logger.info("Seeded NDA version %s", DEFAULT_NDA_VERSION)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    create_tables()
    seed_nda_version()
