"""
Celery configuration for background tasks
"""
from celery import Celery
from celery.schedules import crontab
import logging

from app.core.config import settings

logger = logging.getLogger(__name__)

celery_app = Celery(
    "billsense",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=[
        "app.modules.email.tasks",
        "app.modules.invoices.tasks",
        "app.modules.recurring.tasks"
    ]
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=30 * 60,  # 30 minutes
    task_soft_time_limit=25 * 60,  # 25 minutes
    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=1000,

    # Rate limiting
    task_default_rate_limit="100/m",

    # Result backend settings
    result_expires=3600,  # 1 hour

    task_always_eager=settings.CELERY_TASK_ALWAYS_EAGER,

    task_routes={
        "app.modules.email.tasks.*": {"queue": "email"},
        "app.modules.invoices.tasks.*": {"queue": "billing"},
        "app.modules.recurring.tasks.*": {"queue": "billing"},
    },

    beat_schedule={
        "mark-overdue-invoices": {
            "task": "app.modules.invoices.tasks.mark_overdue_invoices",
            "schedule": crontab(hour=0, minute=30),
        },
        "generate-recurring-invoices": {
            "task": "app.modules.recurring.tasks.generate_recurring_invoices",
            "schedule": crontab(hour=1, minute=0),
        }
    }
)

if __name__ == "__main__":
    celery_app.start()
