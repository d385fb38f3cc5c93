"""
Notification service

Delivers in-app notifications and the predefined report workflow messages.
Callers own the transaction; notify() only adds and flushes.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from app.modules.auth.models import User, UserRole
from app.modules.cooperatives.models import Cooperative
from app.modules.financial.models import REPORT_TYPE_LABELS
from app.modules.notifications.models import Notification, NotificationType

logger = logging.getLogger(__name__)


class NotificationService:
    """Create, read and maintain user notifications"""

    def __init__(self, db: Session):
        self.db = db

    def notify(
        self,
        user_id: UUID,
        type: NotificationType,
        title: str,
        message: str,
        cooperative_id: Optional[UUID] = None,
        data: Optional[Dict[str, Any]] = None,
    ) -> Notification:
        notification = Notification(
            user_id=user_id,
            type=type,
            title=title,
            message=message,
            cooperative_id=cooperative_id,
            data=data,
        )
        self.db.add(notification)
        self.db.flush()
        return notification

    def notify_multiple(
        self,
        user_ids: List[UUID],
        type: NotificationType,
        title: str,
        message: str,
        cooperative_id: Optional[UUID] = None,
        data: Optional[Dict[str, Any]] = None,
    ) -> List[Notification]:
        return [self.notify(user_id, type, title, message, cooperative_id, data) for user_id in user_ids]

    def notify_admin_dinas(
        self,
        type: NotificationType,
        title: str,
        message: str,
        cooperative_id: Optional[UUID] = None,
        data: Optional[Dict[str, Any]] = None,
    ) -> List[Notification]:
        user_ids = [
            user_id for (user_id,) in self.db.query(User.id).filter(
                User.role == UserRole.ADMIN_DINAS,
                User.is_active == True
            ).all()
        ]
        return self.notify_multiple(user_ids, type, title, message, cooperative_id, data)

    def notify_cooperative_admins(
        self,
        cooperative_id: UUID,
        type: NotificationType,
        title: str,
        message: str,
        data: Optional[Dict[str, Any]] = None,
    ) -> List[Notification]:
        user_ids = [
            user_id for (user_id,) in self.db.query(User.id).filter(
                User.role == UserRole.ADMIN_KOPERASI,
                User.cooperative_id == cooperative_id,
                User.is_active == True
            ).all()
        ]
        return self.notify_multiple(user_ids, type, title, message, cooperative_id, data)

    # ===== READ SIDE =====

    def unread_count(self, user_id: UUID) -> int:
        return self.db.query(Notification).filter(
            Notification.user_id == user_id,
            Notification.is_read == False
        ).count()

    def recent(self, user_id: UUID, limit: int = 10) -> List[Notification]:
        return self.db.query(Notification).filter(
            Notification.user_id == user_id
        ).order_by(Notification.created_at.desc()).limit(limit).all()

    def recent_for_cooperative(self, cooperative_id: UUID, limit: int = 10) -> List[Notification]:
        return self.db.query(Notification).filter(
            Notification.cooperative_id == cooperative_id
        ).order_by(Notification.created_at.desc()).limit(limit).all()

    def list_for_user(self, user_id: UUID, only_unread: bool = False, page: int = 1, per_page: int = 15) -> Dict[str, Any]:
        query = self.db.query(Notification).filter(Notification.user_id == user_id)
        if only_unread:
            query = query.filter(Notification.is_read == False)
        total = query.count()
        items = query.order_by(Notification.created_at.desc()).offset((page - 1) * per_page).limit(per_page).all()
        return {"items": items, "total": total, "page": page, "per_page": per_page}

    def _get_owned(self, notification_id: UUID, user_id: UUID) -> Notification:
        notification = self.db.query(Notification).filter(
            Notification.id == notification_id,
            Notification.user_id == user_id
        ).first()
        if not notification:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Notification not found"
            )
        return notification

    def mark_as_read(self, notification_id: UUID, user_id: UUID) -> Notification:
        notification = self._get_owned(notification_id, user_id)
        if not notification.is_read:
            notification.is_read = True
            notification.read_at = datetime.now(timezone.utc)
            self.db.commit()
            self.db.refresh(notification)
        return notification

    def mark_all_as_read(self, user_id: UUID) -> int:
        updated = self.db.query(Notification).filter(
            Notification.user_id == user_id,
            Notification.is_read == False
        ).update(
            {Notification.is_read: True, Notification.read_at: datetime.now(timezone.utc)},
            synchronize_session=False
        )
        self.db.commit()
        return updated

    def delete(self, notification_id: UUID, user_id: UUID) -> None:
        notification = self._get_owned(notification_id, user_id)
        self.db.delete(notification)
        self.db.commit()

    def cleanup_old(self, days: int = 30) -> int:
        """Remove read notifications older than the cutoff."""
        cutoff = datetime.now(timezone.utc) - timedelta(days=days)
        deleted = self.db.query(Notification).filter(
            Notification.created_at < cutoff,
            Notification.is_read == True
        ).delete(synchronize_session=False)
        self.db.commit()
        logger.info(f"Deleted {deleted} read notifications older than {days} days")
        return deleted

    # ===== REPORT WORKFLOW MESSAGES =====

    def report_submitted(self, cooperative_id: UUID, report_type: str, reporting_year: int) -> List[Notification]:
        cooperative = self.db.query(Cooperative).filter(Cooperative.id == cooperative_id).first()
        cooperative_name = cooperative.name if cooperative else ""
        label = REPORT_TYPE_LABELS.get(report_type, report_type)

        return self.notify_admin_dinas(
            NotificationType.REPORT_SUBMITTED,
            "Laporan Baru Diajukan",
            f"Laporan {label} tahun {reporting_year} dari {cooperative_name} telah diajukan dan menunggu persetujuan.",
            cooperative_id,
            {
                "report_type": report_type,
                "reporting_year": reporting_year,
                "cooperative_name": cooperative_name,
            }
        )

    def report_approved(self, cooperative_id: UUID, report_type: str, reporting_year: int) -> List[Notification]:
        label = REPORT_TYPE_LABELS.get(report_type, report_type)

        return self.notify_cooperative_admins(
            cooperative_id,
            NotificationType.REPORT_APPROVED,
            "Laporan Disetujui",
            f"Laporan {label} tahun {reporting_year} telah disetujui oleh Admin Dinas.",
            {
                "report_type": report_type,
                "reporting_year": reporting_year,
            }
        )

    def report_rejected(self, cooperative_id: UUID, report_type: str, reporting_year: int, reason: str) -> List[Notification]:
        label = REPORT_TYPE_LABELS.get(report_type, report_type)

        return self.notify_cooperative_admins(
            cooperative_id,
            NotificationType.REPORT_REJECTED,
            "Laporan Ditolak",
            f"Laporan {label} tahun {reporting_year} ditolak. Alasan: {reason}",
            {
                "report_type": report_type,
                "reporting_year": reporting_year,
                "rejection_reason": reason,
            }
        )
