"""
Background tasks for the audit trail
"""
import logging

from app.core.celery import celery_app
from app.core.config import settings
from app.database.database import SessionLocal
from app.modules.audit.service import AuditLogService

logger = logging.getLogger(__name__)


@celery_app.task(bind=True)
def cleanup_old_audit_logs(self, days: int = None):
    """
    Periodic task deleting audit entries past the retention period
    """
    db = SessionLocal()
    try:
        deleted = AuditLogService(db).cleanup_old(days or settings.AUDIT_RETENTION_DAYS)
        return {"deleted": deleted}
    except Exception as e:
        logger.error(f"Audit log cleanup failed: {str(e)}")
        self.retry(countdown=60, max_retries=3)
    finally:
        db.close()
