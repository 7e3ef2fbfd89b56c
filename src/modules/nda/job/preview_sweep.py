from apscheduler.schedulers.background import BackgroundScheduler

from core.config import settings
from modules.nda.services.preview_cache import PreviewCache


def start_preview_sweep_job(cache: PreviewCache, interval_seconds: int = None) -> BackgroundScheduler:
    scheduler = BackgroundScheduler()

    def job():
        cache.sweep()

    scheduler.add_job(
        job,
        'interval',
        seconds=interval_seconds or settings.PREVIEW_SWEEP_INTERVAL_SECONDS,
        id='nda-preview-sweep',
        max_instances=1,
        coalesce=True,
    )
    scheduler.start()
    return scheduler
