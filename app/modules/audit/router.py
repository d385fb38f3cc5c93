"""
Audit Router

Oversight users read the whole trail; cooperative admins only see
entries of their own cooperative.
"""
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query

from app.core.config import settings
from app.dependencies.cooperativeDependencies import OptionalCooperativeId
from app.dependencies.dbDependecies import db_dependency
from app.modules.auth.dependencies import AuthDependencies
from app.modules.auth.schemas import AuthContext
from app.modules.audit.models import AuditAction
from app.modules.audit.schemas import AuditLogList, AuditLogOut, AuditActivitySummary
from app.modules.audit.service import AuditLogService
from app.modules.financial.services.base import report_scope

router = APIRouter(prefix="/audit", tags=["Audit"])


@router.get("/logs", response_model=AuditLogList)
async def list_audit_logs(
    db: db_dependency,
    cooperative_id: OptionalCooperativeId,
    table_name: Optional[str] = Query(None, max_length=100),
    record_id: Optional[str] = Query(None, max_length=64),
    user_id: Optional[UUID] = Query(None),
    action: Optional[AuditAction] = Query(None),
    page: int = Query(1, ge=1),
    per_page: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
):
    """List audit entries, newest first."""
    result = AuditLogService(db).search(
        cooperative_id=cooperative_id,
        table_name=table_name,
        record_id=record_id,
        user_id=user_id,
        action=action,
        page=page,
        per_page=per_page,
    )
    return AuditLogList(
        items=[AuditLogOut.model_validate(item) for item in result["items"]],
        total=result["total"],
        page=page,
        per_page=per_page,
    )


@router.get("/recent", response_model=List[AuditLogOut])
async def list_recent_activity(
    db: db_dependency,
    cooperative_id: OptionalCooperativeId,
    limit: int = Query(50, ge=1, le=200),
):
    return AuditLogService(db).recent(limit, cooperative_id)


@router.get("/records/{table_name}/{record_id}", response_model=List[AuditLogOut])
async def get_record_history(
    table_name: str,
    record_id: str,
    db: db_dependency,
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role()),
):
    """Every change recorded for one row."""
    entries = AuditLogService(db).by_table(table_name, record_id)
    scope = report_scope(auth_context)
    if scope:
        entries = [entry for entry in entries if entry.cooperative_id == scope]
    return entries


@router.get("/users/{user_id}", response_model=List[AuditLogOut])
async def get_user_activity(
    user_id: UUID,
    db: db_dependency,
    limit: int = Query(50, ge=1, le=200),
    auth_context: AuthContext = Depends(AuthDependencies.require_admin_dinas()),
):
    return AuditLogService(db).by_user(user_id, limit)


@router.get("/summary", response_model=AuditActivitySummary)
async def get_activity_summary(
    db: db_dependency,
    cooperative_id: OptionalCooperativeId,
    days: int = Query(30, ge=1, le=365),
):
    """Activity counts grouped by action, table and day."""
    try:
        return AuditActivitySummary(**AuditLogService(db).activity_summary(days=days, cooperative_id=cooperative_id))
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(500, f"Error generating audit summary: {str(e)}")
