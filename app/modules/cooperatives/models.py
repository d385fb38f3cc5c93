"""
Modelo de Cooperativa (tenant)
"""
from sqlalchemy import Column, String, Boolean, Date, Enum, Integer, Numeric, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from uuid import uuid4
import enum

from app.database.database import Base
from app.common.mixins import TimestampMixin


class BusinessType(enum.Enum):
    """Tipos de cooperativa"""
    SIMPAN_PINJAM = "simpan_pinjam"   # Savings and loan
    KONSUMEN = "konsumen"             # Consumer
    PRODUSEN = "produsen"             # Producer
    PEMASARAN = "pemasaran"           # Marketing
    JASA = "jasa"                     # Services
    SERBA_USAHA = "serba_usaha"       # Multi-purpose


class OperationalStatus(enum.Enum):
    """Estado operativo"""
    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"


class Cooperative(Base, TimestampMixin):
    __tablename__ = "cooperatives"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    name = Column(String(255), nullable=False, index=True)
    code = Column(String(10), unique=True, nullable=False)
    registration_number = Column(String(50), unique=True, nullable=False)
    address = Column(Text, nullable=True)
    phone = Column(String(20), nullable=True)
    email = Column(String(100), nullable=True)
    chairman_name = Column(String(255), nullable=True)
    manager_name = Column(String(255), nullable=True)
    establishment_date = Column(Date, nullable=True)
    business_type = Column(Enum(BusinessType), nullable=False, default=BusinessType.SIMPAN_PINJAM, index=True)
    operational_status = Column(Enum(OperationalStatus), nullable=False, default=OperationalStatus.ACTIVE, index=True)
    total_members = Column(Integer, nullable=False, default=0)
    active_members = Column(Integer, nullable=False, default=0)
    total_assets = Column(Numeric(18, 2), nullable=False, default=0)
    is_active = Column(Boolean, default=True, nullable=False)

    # Relationships
    users = relationship("User", back_populates="cooperative")
    financial_reports = relationship("FinancialReport", back_populates="cooperative", cascade="all, delete-orphan")

    @property
    def member_size_category(self) -> str:
        members = self.total_members or 0
        if members <= 100:
            return "small"
        if members <= 500:
            return "medium"
        return "large"

    @property
    def asset_size_category(self) -> str:
        assets = float(self.total_assets or 0)
        if assets < 1_000_000_000:
            return "under_1b"
        if assets <= 5_000_000_000:
            return "1b_to_5b"
        return "over_5b"
