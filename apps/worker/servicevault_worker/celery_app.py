"""Celery application configuration."""

from celery import Celery

from servicevault_worker.settings import get_settings

settings = get_settings()

celery_app = Celery(
    "servicevault_worker",
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
    task_time_limit=settings.audit_task_time_limit_seconds,
    task_soft_time_limit=settings.audit_task_soft_time_limit_seconds,
)

# Registers tasks; must run after celery_app exists
from servicevault_worker import tasks  # noqa: F401, E402
