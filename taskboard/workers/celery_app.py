"""
Celery application instance.

Configured with Redis broker and backend. Only used when
AUDIT_BACKEND=celery.
"""

from celery import Celery

from taskboard.core.config import settings

celery_app = Celery(
    "taskboard",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=[
        "taskboard.workers.audit_tasks",
    ],
)

celery_app.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    result_expires=3600,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,
    task_default_queue="default",
    task_queues={
        "default": {},
        "audit": {},
    },
    task_routes={
        "taskboard.workers.audit_tasks.*": {"queue": "audit"},
    },
)
