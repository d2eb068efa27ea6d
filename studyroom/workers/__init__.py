"""
Celery workers module.

Background page conversion for queued ConversionJobs, plus the
periodic maintenance task run by celery beat.

Dependencies: celery, studyroom.configs
System role: Background task processing
"""

from celery import Celery
from studyroom.configs import get_settings

settings = get_settings()
celery_config = settings.celery

celery_app = Celery(
    "studyroom",
    broker=celery_config.broker_url,
    backend=celery_config.result_backend_url,
    include=[
        "studyroom.workers.tasks.conversion",
        "studyroom.workers.tasks.maintenance",
    ],
)

celery_app.conf.update(
    task_serializer=celery_config.task_serializer,
    result_serializer=celery_config.result_serializer,
    accept_content=celery_config.accept_content,
    timezone=celery_config.timezone,
    task_acks_late=True,
    beat_schedule={
        "purge-expired-cache": {
            "task": "studyroom.workers.tasks.maintenance.purge_expired_cache",
            "schedule": settings.conversion.maintenance_interval_seconds,
        },
    },
)
