from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey, Enum, JSON, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from uuid import uuid4
import enum

from app.database.database import Base
from app.common.mixins import TimestampMixin


class NotificationType(enum.Enum):
    """Tipos de notificación"""
    REPORT_SUBMITTED = "report_submitted"       # To admin_dinas
    REPORT_APPROVED = "report_approved"         # To cooperative admins
    REPORT_REJECTED = "report_rejected"         # To cooperative admins
    SYSTEM_NOTIFICATION = "system_notification"


class Notification(Base, TimestampMixin):
    __tablename__ = "notifications"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    cooperative_id = Column(UUID(as_uuid=True), ForeignKey("cooperatives.id", ondelete="CASCADE"), nullable=True, index=True)
    type = Column(Enum(NotificationType), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    data = Column(JSON, nullable=True)
    is_read = Column(Boolean, default=False, nullable=False, index=True)
    read_at = Column(DateTime(timezone=True), nullable=True)

    user = relationship("User")
    cooperative = relationship("Cooperative")
