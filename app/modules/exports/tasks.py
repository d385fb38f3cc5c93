"""
Background tasks for batch exports
"""
import logging

from app.core.celery import celery_app
from app.database.database import SessionLocal
from app.modules.exports.service import BatchExportService

logger = logging.getLogger(__name__)

MAX_RETRIES = 3


@celery_app.task(bind=True)
def process_batch_export(self, batch_id: str):
    """
    Write the archive for a queued batch export

    A failed attempt leaves the batch in `retrying`; it becomes `failed`
    only after the last retry.
    """
    db = SessionLocal()
    try:
        logger.info(f"Processing queued batch export {batch_id} (attempt {self.request.retries + 1})")
        result = BatchExportService(db).process_batch(batch_id, raise_errors=True)
        return {"batch_id": batch_id, "status": result["status"]}
    except Exception as e:
        logger.error(f"Batch export task failed for {batch_id}: {str(e)}")
        if self.request.retries >= MAX_RETRIES:
            BatchExportService(db).mark_failed(batch_id, str(e))
            raise
        raise self.retry(exc=e, countdown=60, max_retries=MAX_RETRIES)
    finally:
        db.close()


@celery_app.task
def cleanup_old_exports(days: int = None):
    """
    Periodic task removing export files past the retention period
    """
    db = SessionLocal()
    try:
        return BatchExportService(db).cleanup_old_exports(days)
    except Exception as e:
        logger.error(f"Export cleanup failed: {str(e)}")
        raise
    finally:
        db.close()
