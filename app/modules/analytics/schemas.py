from pydantic import BaseModel, Field, field_validator
from typing import Any, Dict, List, Optional
from uuid import UUID
from datetime import date, datetime

WIDGET_TYPES = (
    "financial_summary", "report_status", "kpi", "chart", "compliance", "notifications", "deadlines"
)


class WidgetBase(BaseModel):
    widget_type: str = Field(..., max_length=50)
    title: str = Field(..., min_length=1, max_length=255)
    configuration: Optional[Dict[str, Any]] = None
    position_x: int = Field(0, ge=0)
    position_y: int = Field(0, ge=0)
    width: int = Field(4, ge=1, le=12)
    height: int = Field(3, ge=1, le=12)
    refresh_interval: Optional[int] = Field(None, ge=1, le=1440, description="Minutes")

    @field_validator("widget_type")
    @classmethod
    def validate_widget_type(cls, v):
        if v not in WIDGET_TYPES:
            raise ValueError(f"Jenis widget tidak valid. Pilihan: {', '.join(WIDGET_TYPES)}")
        return v


class WidgetCreate(WidgetBase):
    pass


class WidgetUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    configuration: Optional[Dict[str, Any]] = None
    position_x: Optional[int] = Field(None, ge=0)
    position_y: Optional[int] = Field(None, ge=0)
    width: Optional[int] = Field(None, ge=1, le=12)
    height: Optional[int] = Field(None, ge=1, le=12)
    refresh_interval: Optional[int] = Field(None, ge=1, le=1440)
    is_active: Optional[bool] = None


class WidgetOut(WidgetBase):
    id: UUID
    user_id: UUID
    cooperative_id: Optional[UUID] = None
    is_active: bool
    last_refreshed_at: Optional[datetime] = None
    needs_refresh: bool
    created_at: datetime

    class Config:
        from_attributes = True


class KPIMetricOut(BaseModel):
    id: UUID
    cooperative_id: UUID
    metric_name: str
    metric_type: str
    current_value: float
    previous_value: Optional[float] = None
    target_value: Optional[float] = None
    unit: Optional[str] = None
    period_type: str
    period_start: date
    period_end: date
    variance: float
    target_variance: float
    performance_status: str
    calculated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class KPIRecordResponse(BaseModel):
    cooperative_id: UUID
    year: int
    metrics: List[KPIMetricOut]
