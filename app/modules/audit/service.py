"""
Audit trail service

Every write path calls AuditLogService.log() inside its own transaction;
the log row is flushed with the change and committed by the caller.
"""
import enum
import logging
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID

from fastapi import Request
from sqlalchemy import func
from sqlalchemy.orm import Session

from app.modules.audit.models import AuditLog, AuditAction

logger = logging.getLogger(__name__)


def serialize_value(value: Any) -> Any:
    """Make a column value JSON safe for old/new value snapshots."""
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, dict):
        return {k: serialize_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [serialize_value(v) for v in value]
    return value


def model_snapshot(instance, exclude: Optional[List[str]] = None) -> Dict[str, Any]:
    """Column values of an ORM instance as a JSON safe dict."""
    exclude = exclude or []
    return {
        column.name: serialize_value(getattr(instance, column.name))
        for column in instance.__table__.columns
        if column.name not in exclude
    }


class AuditLogService:
    """Write and query the audit trail"""

    def __init__(self, db: Session):
        self.db = db

    def log(
        self,
        table_name: str,
        record_id: Any,
        action: AuditAction,
        old_values: Optional[Dict[str, Any]] = None,
        new_values: Optional[Dict[str, Any]] = None,
        user_id: Optional[UUID] = None,
        cooperative_id: Optional[UUID] = None,
        request: Optional[Request] = None,
    ) -> AuditLog:
        ip_address = None
        user_agent = None
        if request is not None:
            ip_address = request.client.host if request.client else None
            user_agent = request.headers.get("user-agent")

        entry = AuditLog(
            table_name=table_name,
            record_id=str(record_id) if record_id is not None else None,
            action=action,
            old_values=serialize_value(old_values) if old_values else None,
            new_values=serialize_value(new_values) if new_values else None,
            user_id=user_id,
            cooperative_id=cooperative_id,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        self.db.add(entry)
        self.db.flush()
        logger.debug(f"Audit {action.value} on {table_name}:{record_id} by {user_id}")
        return entry

    # ===== QUERIES =====

    def _base_query(self, cooperative_id: Optional[UUID] = None):
        query = self.db.query(AuditLog)
        if cooperative_id:
            query = query.filter(AuditLog.cooperative_id == cooperative_id)
        return query

    def recent(self, limit: int = 50, cooperative_id: Optional[UUID] = None) -> List[AuditLog]:
        return self._base_query(cooperative_id).order_by(AuditLog.created_at.desc()).limit(limit).all()

    def by_user(self, user_id: UUID, limit: int = 50) -> List[AuditLog]:
        return self.db.query(AuditLog).filter(
            AuditLog.user_id == user_id
        ).order_by(AuditLog.created_at.desc()).limit(limit).all()

    def by_cooperative(self, cooperative_id: UUID, limit: int = 50) -> List[AuditLog]:
        return self._base_query(cooperative_id).order_by(AuditLog.created_at.desc()).limit(limit).all()

    def by_table(self, table_name: str, record_id: Optional[Any] = None) -> List[AuditLog]:
        query = self.db.query(AuditLog).filter(AuditLog.table_name == table_name)
        if record_id is not None:
            query = query.filter(AuditLog.record_id == str(record_id))
        return query.order_by(AuditLog.created_at.desc()).all()

    def search(
        self,
        cooperative_id: Optional[UUID] = None,
        table_name: Optional[str] = None,
        record_id: Optional[str] = None,
        user_id: Optional[UUID] = None,
        action: Optional[AuditAction] = None,
        page: int = 1,
        per_page: int = 15,
    ) -> Dict[str, Any]:
        query = self._base_query(cooperative_id)
        if table_name:
            query = query.filter(AuditLog.table_name == table_name)
        if record_id:
            query = query.filter(AuditLog.record_id == record_id)
        if user_id:
            query = query.filter(AuditLog.user_id == user_id)
        if action:
            query = query.filter(AuditLog.action == action)

        total = query.count()
        items = query.order_by(AuditLog.created_at.desc()).offset((page - 1) * per_page).limit(per_page).all()
        return {"items": items, "total": total, "page": page, "per_page": per_page}

    # ===== MAINTENANCE =====

    def cleanup_old(self, days: int = 365) -> int:
        cutoff = datetime.now(timezone.utc) - timedelta(days=days)
        deleted = self.db.query(AuditLog).filter(
            AuditLog.created_at < cutoff
        ).delete(synchronize_session=False)
        self.db.commit()
        logger.info(f"Deleted {deleted} audit log entries older than {days} days")
        return deleted

    def activity_summary(self, days: int = 30, cooperative_id: Optional[UUID] = None) -> Dict[str, Any]:
        cutoff = datetime.now(timezone.utc) - timedelta(days=days)
        query = self._base_query(cooperative_id).filter(AuditLog.created_at >= cutoff)

        by_action = {
            action.value: count
            for action, count in query.with_entities(AuditLog.action, func.count(AuditLog.id)).group_by(AuditLog.action).all()
        }
        by_table = dict(
            query.with_entities(AuditLog.table_name, func.count(AuditLog.id)).group_by(AuditLog.table_name).all()
        )

        by_date: Dict[str, int] = {}
        for (created_at,) in query.with_entities(AuditLog.created_at).all():
            key = created_at.date().isoformat()
            by_date[key] = by_date.get(key, 0) + 1

        return {
            "period_days": days,
            "total_activities": sum(by_action.values()),
            "by_action": by_action,
            "by_table": by_table,
            "by_date": dict(sorted(by_date.items())),
        }
