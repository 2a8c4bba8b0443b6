"""
Celery configuration for background tasks
"""
from celery import Celery
import logging

from app.core.config import settings

logger = logging.getLogger(__name__)

redis_url = settings.redis_url

# Create Celery instance
celery_app = Celery(
    "ally_billing",
    broker=redis_url,
    backend=redis_url,
    include=[
        "app.modules.billing.tasks",
        "app.modules.fiscal.tasks"
    ]
)

# Celery configuration
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="America/Costa_Rica",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=30 * 60,  # 30 minutes
    task_soft_time_limit=25 * 60,  # 25 minutes
    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=1000,

    # Result backend settings
    result_expires=3600,  # 1 hour

    # Task routes for different queues
    task_routes={
        "app.modules.billing.tasks.*": {"queue": "billing"},
        "app.modules.fiscal.tasks.*": {"queue": "fiscal"},
    },

    # Beat schedule for periodic tasks
    beat_schedule={
        "reclassify-overdue-documents": {
            "task": "app.modules.billing.tasks.reclassify_overdue_documents",
            "schedule": settings.OVERDUE_RECONCILE_INTERVAL_SECONDS,
        }
    }
)

if __name__ == "__main__":
    celery_app.start()
