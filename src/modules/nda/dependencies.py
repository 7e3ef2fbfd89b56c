from functools import lru_cache

from fastapi import Depends
from sqlalchemy.orm import Session

from core.config import settings
from database import get_db
from modules.nda.services.nda_workflow import NdaWorkflow
from modules.nda.services.preview_cache import PreviewCache
from modules.nda.services.storage import NdaStorage
from modules.notifications.services.email_service import EmailService, get_email_service


@lru_cache()
def get_preview_cache() -> PreviewCache:
    """Process wide preview cache"""
    return PreviewCache(ttl_seconds=settings.PREVIEW_CACHE_TTL_SECONDS)


def get_nda_storage() -> NdaStorage:
    return NdaStorage()


def get_nda_workflow(
    db: Session = Depends(get_db),
    cache: PreviewCache = Depends(get_preview_cache),
    email_service: EmailService = Depends(get_email_service),
    storage: NdaStorage = Depends(get_nda_storage),
) -> NdaWorkflow:
    return NdaWorkflow(db, cache, email_service, storage)
