"""Celery application and beat schedule.

Run a worker and the scheduler with:
    celery -A gdprflow.workers.celery_app worker --loglevel=info
    celery -A gdprflow.workers.celery_app beat
"""

from celery import Celery
from celery.schedules import crontab

from ..config import get_settings
from ..observability.logging_config import configure_logging

settings = get_settings()
configure_logging(level=settings.LOG_LEVEL, json_format=settings.LOG_JSON)

celery_app = Celery(
    "gdprflow",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=[
        "gdprflow.retention.tasks",
        "gdprflow.consent.tasks",
    ],
)

celery_app.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
)

celery_app.conf.beat_schedule = {
    'retention-execute-due-daily': {
        'task': 'retention.execute_due',
        'schedule': crontab(hour=settings.RETENTION_SWEEP_HOUR, minute=0),
        'options': {
            'expires': 3600,  # Task expires after 1 hour if not picked up
        },
    },
    'consent-cleanup-expired-daily': {
        'task': 'retention.cleanup_expired_consents',
        'schedule': crontab(hour=settings.RETENTION_SWEEP_HOUR, minute=30),
        'options': {
            'expires': 3600,
        },
    },
}
