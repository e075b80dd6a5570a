"""Celery worker configuration.

Periodic jobs:
- Completion sweep for bookings whose scheduled end has passed
- Ledger reconciliation for captured bookings without commission rows
"""

from celery import Celery
from celery.schedules import crontab

from tripzeo.config import settings

# Create Celery app
celery_app = Celery(
    "tripzeo_tasks",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["tripzeo.tasks"],
)

# Celery configuration
celery_app.conf.update(
    # Task settings
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,

    # Task execution settings
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_time_limit=300,  # 5 minutes max
    task_soft_time_limit=240,

    # Worker settings
    worker_prefetch_multiplier=1,
    worker_concurrency=2,

    # Result backend settings
    result_expires=3600,

    # Retry settings
    task_default_retry_delay=60,
    task_max_retries=3,

    # Beat schedule for periodic tasks
    beat_schedule={
        "complete-elapsed-bookings": {
            "task": "tripzeo.tasks.complete_elapsed_bookings",
            "schedule": crontab(minute=f"*/{settings.sweep_interval_minutes}"),
        },
        "reconcile-ledger": {
            "task": "tripzeo.tasks.reconcile_ledger",
            "schedule": crontab(hour=4, minute=30),
        },
    },
)


if __name__ == "__main__":
    celery_app.start()
