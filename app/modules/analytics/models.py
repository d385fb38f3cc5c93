"""
Modelos para dashboards y KPIs

DashboardWidget: disposición de widgets por usuario en el dashboard de una cooperativa.
KPIMetric: valor anual de un KPI guardado para comparar el crecimiento.
"""
from datetime import datetime, timedelta, timezone
from sqlalchemy import (
    Column, String, Boolean, Date, DateTime, ForeignKey, Integer, JSON, Numeric, Text, UniqueConstraint
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from uuid import uuid4

from app.database.database import Base
from app.common.mixins import TimestampMixin


def _aware(value: datetime) -> datetime:
    # SQLite returns naive datetimes
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


class DashboardWidget(Base, TimestampMixin):
    __tablename__ = "dashboard_widgets"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    cooperative_id = Column(UUID(as_uuid=True), ForeignKey("cooperatives.id", ondelete="CASCADE"), nullable=True, index=True)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    widget_type = Column(String(50), nullable=False)
    title = Column(String(255), nullable=False)
    configuration = Column(JSON, nullable=True)
    position_x = Column(Integer, nullable=False, default=0)
    position_y = Column(Integer, nullable=False, default=0)
    width = Column(Integer, nullable=False, default=4)
    height = Column(Integer, nullable=False, default=3)
    is_active = Column(Boolean, nullable=False, default=True)
    refresh_interval = Column(Integer, nullable=True)  # minutes
    last_refreshed_at = Column(DateTime(timezone=True), nullable=True)

    user = relationship("User")

    @property
    def needs_refresh(self) -> bool:
        if not self.last_refreshed_at or not self.refresh_interval:
            return True
        due = _aware(self.last_refreshed_at) + timedelta(minutes=self.refresh_interval)
        return datetime.now(timezone.utc) >= due

    def mark_refreshed(self):
        self.last_refreshed_at = datetime.now(timezone.utc)


class KPIMetric(Base, TimestampMixin):
    __tablename__ = "kpi_metrics"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    cooperative_id = Column(UUID(as_uuid=True), ForeignKey("cooperatives.id", ondelete="CASCADE"), nullable=False, index=True)
    metric_name = Column(String(100), nullable=False, index=True)
    metric_type = Column(String(30), nullable=False)  # currency, percentage, count, ratio
    current_value = Column(Numeric(20, 4), nullable=False, default=0)
    previous_value = Column(Numeric(20, 4), nullable=True)
    target_value = Column(Numeric(20, 4), nullable=True)
    unit = Column(String(20), nullable=True)
    period_type = Column(String(20), nullable=False, default="annual")
    period_start = Column(Date, nullable=False)
    period_end = Column(Date, nullable=False)
    calculation_method = Column(Text, nullable=True)
    # "metadata" is reserved on declarative classes
    metric_metadata = Column("metadata", JSON, nullable=True)
    calculated_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("cooperative_id", "metric_name", "period_start", name="uq_kpi_metric_period"),
    )

    @staticmethod
    def _percent_change(current, reference) -> float:
        if reference is None or float(reference) == 0:
            return 0.0
        return round((float(current or 0) - float(reference)) / float(reference) * 100, 2)

    @property
    def variance(self) -> float:
        return self._percent_change(self.current_value, self.previous_value)

    @property
    def target_variance(self) -> float:
        return self._percent_change(self.current_value, self.target_value)

    @property
    def performance_status(self) -> str:
        variance = self.target_variance
        if variance >= 0:
            return "on_target"
        if variance >= -10:
            return "below_target"
        return "critical"
