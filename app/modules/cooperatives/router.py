from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from app.core.config import settings
from app.database.database import get_db
from app.dependencies.cooperativeDependencies import resolve_cooperative_id
from app.modules.auth.dependencies import AuthDependencies
from app.modules.auth.schemas import AuthContext
from app.modules.cooperatives.models import BusinessType, OperationalStatus
from app.modules.cooperatives.schemas import CooperativeCreate, CooperativeUpdate, CooperativeOut, CooperativeList
from app.modules.cooperatives.service import CooperativeService

router = APIRouter(prefix="/cooperatives", tags=["Cooperatives"])


@router.get("", response_model=CooperativeList)
async def list_cooperatives(
    search: Optional[str] = Query(None, max_length=100),
    business_type: Optional[BusinessType] = Query(None),
    operational_status: Optional[OperationalStatus] = Query(None),
    include_inactive: bool = Query(False),
    page: int = Query(1, ge=1),
    per_page: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role()),
    db: Session = Depends(get_db)
):
    """All cooperatives for oversight users; only their own for cooperative admins."""
    only_id = None if auth_context.is_admin_dinas else auth_context.user_cooperative_id
    result = CooperativeService(db).list(
        search=search,
        business_type=business_type,
        operational_status=operational_status,
        include_inactive=include_inactive,
        only_id=only_id,
        page=page,
        per_page=per_page,
    )
    return CooperativeList(
        items=[CooperativeOut.model_validate(c) for c in result["items"]],
        total=result["total"],
        page=page,
        per_page=per_page,
    )


@router.post("", response_model=CooperativeOut, status_code=status.HTTP_201_CREATED)
async def create_cooperative(
    cooperative: CooperativeCreate,
    auth_context: AuthContext = Depends(AuthDependencies.require_admin_dinas()),
    db: Session = Depends(get_db)
):
    try:
        return CooperativeService(db).create(cooperative, auth_context.user_id)
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))


@router.get("/{cooperative_id}", response_model=CooperativeOut)
async def get_cooperative(
    cooperative_id: UUID,
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role()),
    db: Session = Depends(get_db)
):
    resolve_cooperative_id(auth_context, cooperative_id)
    return CooperativeService(db).get(cooperative_id)


@router.patch("/{cooperative_id}", response_model=CooperativeOut)
async def update_cooperative(
    cooperative_id: UUID,
    cooperative: CooperativeUpdate,
    auth_context: AuthContext = Depends(AuthDependencies.require_admin_dinas()),
    db: Session = Depends(get_db)
):
    return CooperativeService(db).update(cooperative_id, cooperative, auth_context.user_id)


@router.delete("/{cooperative_id}", response_model=CooperativeOut)
async def deactivate_cooperative(
    cooperative_id: UUID,
    auth_context: AuthContext = Depends(AuthDependencies.require_admin_dinas()),
    db: Session = Depends(get_db)
):
    """Deactivate a cooperative. Its reports are kept."""
    return CooperativeService(db).deactivate(cooperative_id, auth_context.user_id)
