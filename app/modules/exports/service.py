"""
Batch export service

A batch is tracked by a JSON status file next to its archive:

    <EXPORT_STORAGE_PATH>/batch/<batch_id>.json
    <EXPORT_STORAGE_PATH>/batch/<batch_id>.zip

Small batches are written synchronously. Larger ones go to the Celery
`exports` queue when the caller asks for it and the queue is enabled.
"""
import json
import logging
import re
import zipfile
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional
from uuid import UUID, uuid4

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from app.core.config import settings
from app.modules.audit.models import AuditAction
from app.modules.audit.service import AuditLogService
from app.modules.auth.schemas import AuthContext
from app.modules.cooperatives.models import Cooperative
from app.modules.exports.schemas import BatchExportRequest
from app.modules.financial.models import FinancialReport
from app.modules.financial.services.base import report_scope
from app.modules.financial.utils import report_csv_content, report_filename

logger = logging.getLogger(__name__)

FINAL_STATES = ("completed", "failed", "cancelled")
BATCH_ID_PATTERN = re.compile(r"batch_[0-9a-f]+")
MINUTES_PER_REPORT = 0.5


def _now() -> datetime:
    return datetime.now(timezone.utc)


class BatchExportService:

    def __init__(self, db: Session, storage_path: Optional[str] = None):
        self.db = db
        self.storage = Path(storage_path or settings.EXPORT_STORAGE_PATH)
        self.batch_dir = self.storage / "batch"
        self.audit = AuditLogService(db)

    # ===== STATUS FILES =====

    def _status_path(self, batch_id: str) -> Path:
        # batch ids come from URLs
        if not BATCH_ID_PATTERN.fullmatch(batch_id or ""):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Invalid batch id"
            )
        return self.batch_dir / f"{batch_id}.json"

    def _zip_path(self, batch_id: str) -> Path:
        return self._status_path(batch_id).with_suffix(".zip")

    def _read_status(self, batch_id: str) -> Optional[Dict[str, Any]]:
        path = self._status_path(batch_id)
        if not path.exists():
            return None
        return json.loads(path.read_text(encoding="utf-8"))

    def _write_status(self, batch_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        self.batch_dir.mkdir(parents=True, exist_ok=True)
        self._status_path(batch_id).write_text(json.dumps(data, indent=2), encoding="utf-8")
        return data

    def _update_status(self, batch_id: str, **changes) -> Dict[str, Any]:
        data = self._read_status(batch_id) or {}
        new_status = changes.get("status")
        if data.get("status") in FINAL_STATES and new_status and new_status != data["status"]:
            # final states never change
            logger.info(f"Batch export {batch_id} is {data['status']}, ignoring move to {new_status}")
            return data
        data.update(changes)
        return self._write_status(batch_id, data)

    # ===== QUERY =====

    def build_export_query(self, criteria: BatchExportRequest, auth_context: Optional[AuthContext] = None):
        query = self.db.query(FinancialReport).join(
            Cooperative, FinancialReport.cooperative_id == Cooperative.id
        )

        scope = report_scope(auth_context)
        if scope:
            query = query.filter(FinancialReport.cooperative_id == scope)

        if criteria.cooperative_ids:
            query = query.filter(FinancialReport.cooperative_id.in_(criteria.cooperative_ids))
        if criteria.years:
            query = query.filter(FinancialReport.reporting_year.in_(criteria.years))
        if criteria.report_types:
            query = query.filter(FinancialReport.report_type.in_(criteria.report_types))
        if criteria.report_ids:
            query = query.filter(FinancialReport.id.in_(criteria.report_ids))
        if criteria.status:
            query = query.filter(FinancialReport.status == criteria.status)

        return query.order_by(
            Cooperative.name,
            FinancialReport.reporting_year.desc(),
            FinancialReport.report_type
        )

    # ===== EXPORT =====

    def export(self, criteria: BatchExportRequest, auth_context: AuthContext) -> Dict[str, Any]:
        reports = self.build_export_query(criteria, auth_context).all()
        if not reports:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="No reports found matching the export criteria"
            )
        if len(reports) > settings.EXPORT_MAX_REPORTS:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Too many reports for one batch ({len(reports)} > {settings.EXPORT_MAX_REPORTS})"
            )

        batch_id = f"batch_{uuid4().hex}"
        created_at = _now()
        self._write_status(batch_id, {
            "batch_id": batch_id,
            "status": "processing",
            "total_reports": len(reports),
            "processed_reports": 0,
            "progress_percentage": 0.0,
            "format": criteria.format,
            "export_type": criteria.export_type,
            "created_by": str(auth_context.user_id),
            "created_at": created_at.isoformat(),
            "estimated_completion": (
                created_at + timedelta(minutes=MINUTES_PER_REPORT * len(reports))
            ).isoformat(),
            "report_ids": [str(report.id) for report in reports],
        })

        self.audit.log(
            "financial_reports",
            batch_id,
            AuditAction.EXPORT,
            new_values={
                "batch_id": batch_id,
                "export_type": criteria.export_type,
                "format": criteria.format,
                "report_count": len(reports),
            },
            user_id=auth_context.user_id,
            cooperative_id=auth_context.cooperative_id,
        )
        self.db.commit()
        logger.info(f"Batch export {batch_id} created by {auth_context.user_id} with {len(reports)} reports")

        if (
            criteria.async_export
            and len(reports) > settings.EXPORT_ASYNC_THRESHOLD
            and settings.EXPORT_QUEUE_ENABLED
            and self._dispatch(batch_id)
        ):
            return self.get_status(batch_id)

        return self.process_batch(batch_id, reports)

    def _dispatch(self, batch_id: str) -> bool:
        from app.modules.exports.tasks import process_batch_export

        # a worker may finish the batch before delay() returns
        self._update_status(batch_id, status="queued", queued_at=_now().isoformat())
        try:
            process_batch_export.delay(batch_id)
        except Exception as e:
            logger.warning(f"Could not queue batch export {batch_id}, running synchronously: {e}")
            data = self._read_status(batch_id) or {}
            if data.get("status") == "queued":
                data["status"] = "processing"
                data.pop("queued_at", None)
                self._write_status(batch_id, data)
            return False

        logger.info(f"Batch export {batch_id} queued")
        return True

    def process_batch(
        self,
        batch_id: str,
        reports: Optional[List[FinancialReport]] = None,
        raise_errors: bool = False
    ) -> Dict[str, Any]:
        """Write the CSV archive for a batch and keep its status file current."""
        current = self.get_status(batch_id)
        if current["status"] in FINAL_STATES:
            logger.info(f"Batch export {batch_id} already {current['status']}, skipping")
            return current

        if reports is None:
            ids = [UUID(report_id) for report_id in current.get("report_ids", [])]
            reports = self.db.query(FinancialReport).filter(FinancialReport.id.in_(ids)).all()

        zip_path = self._zip_path(batch_id)
        self._update_status(batch_id, status="processing")
        try:
            used_names = set()
            with zipfile.ZipFile(zip_path, "w", compression=zipfile.ZIP_DEFLATED) as archive:
                for index, report in enumerate(reports, start=1):
                    name = report_filename(report)
                    if name in used_names:
                        name = f"{index}_{name}"
                    used_names.add(name)
                    archive.writestr(name, report_csv_content(report))
                    self._update_status(
                        batch_id,
                        processed_reports=index,
                        progress_percentage=round(index / len(reports) * 100, 2)
                    )
        except Exception as e:
            logger.error(f"Batch export {batch_id} failed: {e}")
            if raise_errors:
                # the worker retries; it marks the batch failed once retries run out
                self._update_status(
                    batch_id, status="retrying", error=str(e), last_error_at=_now().isoformat()
                )
                raise
            return self.mark_failed(batch_id, str(e))

        logger.info(f"Batch export {batch_id} completed: {len(reports)} reports")
        return self._update_status(
            batch_id,
            status="completed",
            progress_percentage=100.0,
            completed_at=_now().isoformat(),
            file_path=str(zip_path),
            file_size=zip_path.stat().st_size,
        )

    def mark_failed(self, batch_id: str, error: str) -> Dict[str, Any]:
        return self._update_status(batch_id, status="failed", error=error, failed_at=_now().isoformat())

    # ===== BATCH MANAGEMENT =====

    def get_status(self, batch_id: str) -> Dict[str, Any]:
        data = self._read_status(batch_id)
        if data is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Batch export not found"
            )
        return data

    def ensure_owner(self, data: Dict[str, Any], auth_context: AuthContext):
        if not auth_context.is_admin_dinas and data.get("created_by") != str(auth_context.user_id):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="This batch export belongs to another user"
            )

    def cancel(self, batch_id: str, auth_context: AuthContext) -> Dict[str, Any]:
        data = self.get_status(batch_id)
        self.ensure_owner(data, auth_context)
        if data["status"] in FINAL_STATES:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Batch export is already {data['status']}"
            )
        logger.info(f"Batch export {batch_id} cancelled by {auth_context.user_id}")
        return self._update_status(
            batch_id,
            status="cancelled",
            cancelled_at=_now().isoformat(),
            cancelled_by=str(auth_context.user_id),
        )

    def download(self, batch_id: str, auth_context: Optional[AuthContext] = None) -> Path:
        if auth_context is not None:
            self.ensure_owner(self.get_status(batch_id), auth_context)
        path = self._zip_path(batch_id)
        if not path.exists():
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Export file not found"
            )
        return path

    def history(self, auth_context: AuthContext, page: int = 1, per_page: int = 10) -> Dict[str, Any]:
        items = []
        if self.batch_dir.exists():
            for path in self.batch_dir.glob("*.json"):
                data = json.loads(path.read_text(encoding="utf-8"))
                if data.get("created_by") == str(auth_context.user_id):
                    items.append(data)
        items.sort(key=lambda d: d.get("created_at", ""), reverse=True)

        start = (page - 1) * per_page
        return {
            "items": items[start:start + per_page],
            "total": len(items),
            "page": page,
            "per_page": per_page,
        }

    def cleanup_old_exports(self, days: Optional[int] = None) -> Dict[str, Any]:
        days = days if days is not None else settings.EXPORT_RETENTION_DAYS
        cutoff = _now() - timedelta(days=days)
        deleted_files = 0
        deleted_size = 0

        if self.batch_dir.exists():
            for path in self.batch_dir.iterdir():
                if not path.is_file():
                    continue
                stat = path.stat()
                if datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc) < cutoff:
                    path.unlink()
                    deleted_files += 1
                    deleted_size += stat.st_size

        logger.info(f"Export cleanup removed {deleted_files} files ({deleted_size} bytes)")
        return {
            "deleted_files": deleted_files,
            "deleted_size": deleted_size,
            "cutoff_date": cutoff.isoformat(),
        }

    def get_statistics(self) -> Dict[str, Any]:
        by_type = {"zip": {"count": 0, "size": 0}, "status": {"count": 0, "size": 0}}
        if self.batch_dir.exists():
            for path in self.batch_dir.iterdir():
                if not path.is_file():
                    continue
                kind = "zip" if path.suffix == ".zip" else "status"
                by_type[kind]["count"] += 1
                by_type[kind]["size"] += path.stat().st_size

        return {
            "total_files": sum(entry["count"] for entry in by_type.values()),
            "total_size": sum(entry["size"] for entry in by_type.values()),
            "by_type": by_type,
            "storage_path": str(self.storage),
        }
