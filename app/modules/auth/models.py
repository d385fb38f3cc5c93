from sqlalchemy import Column, String, Boolean, ForeignKey, DateTime, Enum
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from uuid import uuid4
import enum
from app.database.database import Base
from app.common.mixins import TimestampMixin


class UserRole(enum.Enum):
    """Roles de acceso"""
    ADMIN_DINAS = "admin_dinas"        # Dinas Koperasi: supervises every cooperative
    ADMIN_KOPERASI = "admin_koperasi"  # Administrator of a single cooperative


class User(Base, TimestampMixin):
    __tablename__ = "users"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, nullable=False, index=True)
    role = Column(Enum(UserRole), nullable=False, default=UserRole.ADMIN_KOPERASI, index=True)
    cooperative_id = Column(UUID(as_uuid=True), ForeignKey("cooperatives.id"), nullable=True, index=True)
    is_active = Column(Boolean, default=True, nullable=False)
    last_login = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    cooperative = relationship("Cooperative", back_populates="users")

    @property
    def is_admin_dinas(self) -> bool:
        return self.role == UserRole.ADMIN_DINAS

    @property
    def is_admin_koperasi(self) -> bool:
        return self.role == UserRole.ADMIN_KOPERASI

    def can_access_cooperative(self, cooperative_id) -> bool:
        if self.is_admin_dinas:
            return True
        return self.cooperative_id is not None and self.cooperative_id == cooperative_id
