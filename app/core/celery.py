"""
Celery configuration for background tasks
"""
from celery import Celery
from celery.schedules import crontab
import logging

from app.core.config import settings

logger = logging.getLogger(__name__)

celery_app = Celery(
    "koperasi",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=[
        "app.modules.exports.tasks",
        "app.modules.notifications.tasks",
        "app.modules.audit.tasks"
    ]
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="Asia/Jakarta",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=30 * 60,  # 30 minutes
    task_soft_time_limit=25 * 60,
    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=1000,

    result_expires=3600,  # 1 hour

    task_routes={
        "app.modules.exports.tasks.*": {"queue": "exports"},
    },

    beat_schedule={
        "cleanup-old-exports": {
            "task": "app.modules.exports.tasks.cleanup_old_exports",
            "schedule": crontab(hour=2, minute=0),
        },
        "cleanup-old-notifications": {
            "task": "app.modules.notifications.tasks.cleanup_old_notifications",
            "schedule": crontab(hour=2, minute=30),
        },
        "cleanup-old-audit-logs": {
            "task": "app.modules.audit.tasks.cleanup_old_audit_logs",
            "schedule": crontab(hour=3, minute=0, day_of_week="sunday"),
        },
    }
)

if __name__ == "__main__":
    celery_app.start()
