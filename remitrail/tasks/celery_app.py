"""
Celery application configuration.

Defines the Celery app with the Redis broker used when
PIPELINE_BACKEND=celery runs settlement pipelines on workers.
"""

from celery import Celery

from remitrail.config import settings

celery_app = Celery(
    "remitrail",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
)

celery_app.autodiscover_tasks(["remitrail.tasks"])
