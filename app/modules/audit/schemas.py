from pydantic import BaseModel
from typing import Any, Dict, List, Optional
from uuid import UUID
from datetime import datetime

from app.modules.audit.models import AuditAction


class AuditLogOut(BaseModel):
    id: UUID
    user_id: Optional[UUID] = None
    cooperative_id: Optional[UUID] = None
    table_name: str
    record_id: Optional[str] = None
    action: AuditAction
    old_values: Optional[Dict[str, Any]] = None
    new_values: Optional[Dict[str, Any]] = None
    changed_fields: List[str] = []
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class AuditLogList(BaseModel):
    items: List[AuditLogOut]
    total: int
    page: int
    per_page: int


class AuditActivitySummary(BaseModel):
    period_days: int
    total_activities: int
    by_action: Dict[str, int]
    by_table: Dict[str, int]
    by_date: Dict[str, int]
