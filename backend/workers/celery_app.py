"""
Celery Application Configuration
"""

from celery import Celery
from celery.schedules import crontab

from core.config import get_settings

settings = get_settings()

celery_app = Celery(
    "floorline",
    broker=settings.redis_url,
    backend=settings.redis_url,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    worker_prefetch_multiplier=1,
    task_routes={
        "workers.edi.*": {"queue": "sync"},
        "workers.scheduler.*": {"queue": "sync"},
    },
    # ── Celery Beat Schedule ─────────────────────────────────────────
    # Inbound polling fans out across EDI-enabled vendors via
    # workers.scheduler.dispatch_edi_partners.
    beat_schedule={
        "poll-edi-partners": {
            "task": "workers.scheduler.dispatch_edi_partners",
            "schedule": crontab(minute=f"*/{settings.edi_poll_interval_minutes}"),
            "kwargs": {"task_name": "workers.edi.poll_partner"},
            "options": {"queue": "sync"},
        },
    },
)

# Auto-discover tasks
celery_app.autodiscover_tasks(["workers"], related_name="edi")
celery_app.autodiscover_tasks(["workers"], related_name="scheduler")
