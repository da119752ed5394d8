"""
Celery worker and beat scheduler for deadline monitoring.

Start worker:    celery -A regtrack.worker worker -Q deadlines,default --loglevel=info
Start beat:      celery -A regtrack.worker beat --loglevel=info
Start both:      celery -A regtrack.worker worker --beat --loglevel=info
"""
from celery import Celery
from celery.schedules import crontab

from regtrack.core.celery_config import CELERY_QUEUES, CELERY_TASK_ANNOTATIONS, CELERY_TASK_ROUTES
from regtrack.core.config import settings
from regtrack.core.sentry import init_sentry

init_sentry(
    settings.SENTRY_DSN,
    environment=settings.SENTRY_ENVIRONMENT,
    release=settings.APP_VERSION,
)

celery_app = Celery(
    "regtrack_worker",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.REDIS_URL,
    include=["regtrack.tasks.deadlines"],
)

celery_app.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    result_expires=86400,  # 24h
    task_queues=CELERY_QUEUES,
    task_default_queue="default",
    task_routes=CELERY_TASK_ROUTES,
    task_annotations=CELERY_TASK_ANNOTATIONS,
)

celery_app.conf.beat_schedule = {
    # ── Deadline monitoring ──────────────────────────────────────────────────
    "scan-deadlines-frequent": {
        "task": "tasks.scan_deadlines",
        "schedule": settings.DEADLINE_SCAN_INTERVAL_SECONDS,  # every 6h
        "kwargs": {"cadence": "frequent"},
    },
    "scan-deadlines-daily": {
        "task": "tasks.scan_deadlines",
        "schedule": crontab(hour=settings.DEADLINE_DAILY_SCAN_HOUR, minute=0),  # 9am UTC daily
        "kwargs": {"cadence": "daily"},
    },
}
