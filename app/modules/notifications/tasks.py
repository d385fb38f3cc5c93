"""
Background tasks for notifications
"""
import logging

from app.core.celery import celery_app
from app.core.config import settings
from app.database.database import SessionLocal
from app.modules.notifications.service import NotificationService

logger = logging.getLogger(__name__)


@celery_app.task(bind=True)
def cleanup_old_notifications(self, days: int = None):
    """
    Periodic task deleting read notifications past the retention period
    """
    db = SessionLocal()
    try:
        deleted = NotificationService(db).cleanup_old(days or settings.NOTIFICATION_RETENTION_DAYS)
        return {"deleted": deleted}
    except Exception as e:
        logger.error(f"Notification cleanup failed: {str(e)}")
        self.retry(countdown=60, max_retries=3)
    finally:
        db.close()
