"""
Cooperative maintenance service
"""
import logging
from typing import Any, Dict, Optional
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.modules.audit.models import AuditAction
from app.modules.audit.service import AuditLogService, model_snapshot
from app.modules.cooperatives.models import Cooperative, BusinessType, OperationalStatus
from app.modules.cooperatives.schemas import CooperativeCreate, CooperativeUpdate

logger = logging.getLogger(__name__)


class CooperativeService:
    """CRUD for cooperatives"""

    def __init__(self, db: Session):
        self.db = db
        self.audit = AuditLogService(db)

    def get(self, cooperative_id: UUID) -> Cooperative:
        cooperative = self.db.query(Cooperative).filter(Cooperative.id == cooperative_id).first()
        if not cooperative:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Cooperative not found"
            )
        return cooperative

    def list(
        self,
        search: Optional[str] = None,
        business_type: Optional[BusinessType] = None,
        operational_status: Optional[OperationalStatus] = None,
        include_inactive: bool = False,
        only_id: Optional[UUID] = None,
        page: int = 1,
        per_page: int = 15,
    ) -> Dict[str, Any]:
        query = self.db.query(Cooperative)
        if only_id:
            query = query.filter(Cooperative.id == only_id)
        if not include_inactive:
            query = query.filter(Cooperative.is_active == True)
        if search:
            pattern = f"%{search}%"
            query = query.filter(or_(
                Cooperative.name.ilike(pattern),
                Cooperative.code.ilike(pattern),
                Cooperative.registration_number.ilike(pattern)
            ))
        if business_type:
            query = query.filter(Cooperative.business_type == business_type)
        if operational_status:
            query = query.filter(Cooperative.operational_status == operational_status)

        total = query.count()
        items = query.order_by(Cooperative.name).offset((page - 1) * per_page).limit(per_page).all()
        return {"items": items, "total": total, "page": page, "per_page": per_page}

    def _ensure_unique(self, code: Optional[str], registration_number: Optional[str], exclude_id: Optional[UUID] = None):
        if code:
            query = self.db.query(Cooperative).filter(Cooperative.code == code)
            if exclude_id:
                query = query.filter(Cooperative.id != exclude_id)
            if query.first():
                raise HTTPException(
                    status_code=status.HTTP_409_CONFLICT,
                    detail=f"Cooperative code '{code}' already exists"
                )
        if registration_number:
            query = self.db.query(Cooperative).filter(Cooperative.registration_number == registration_number)
            if exclude_id:
                query = query.filter(Cooperative.id != exclude_id)
            if query.first():
                raise HTTPException(
                    status_code=status.HTTP_409_CONFLICT,
                    detail=f"Registration number '{registration_number}' already exists"
                )

    def create(self, data: CooperativeCreate, user_id: Optional[UUID] = None) -> Cooperative:
        self._ensure_unique(data.code, data.registration_number)

        try:
            cooperative = Cooperative(**data.model_dump())
            self.db.add(cooperative)
            self.db.flush()

            self.audit.log(
                "cooperatives", cooperative.id, AuditAction.CREATE,
                new_values=model_snapshot(cooperative),
                user_id=user_id, cooperative_id=cooperative.id
            )
            self.db.commit()
            self.db.refresh(cooperative)
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to create cooperative {data.code}: {e}")
            raise

        logger.info(f"Cooperative {cooperative.code} created by {user_id}")
        return cooperative

    def update(self, cooperative_id: UUID, data: CooperativeUpdate, user_id: Optional[UUID] = None) -> Cooperative:
        cooperative = self.get(cooperative_id)
        changes = data.model_dump(exclude_unset=True)
        self._ensure_unique(None, changes.get("registration_number"), exclude_id=cooperative_id)

        old_values = model_snapshot(cooperative)
        for field, value in changes.items():
            setattr(cooperative, field, value)

        self.db.flush()
        self.audit.log(
            "cooperatives", cooperative.id, AuditAction.UPDATE,
            old_values=old_values, new_values=model_snapshot(cooperative),
            user_id=user_id, cooperative_id=cooperative.id
        )
        self.db.commit()
        self.db.refresh(cooperative)
        return cooperative

    def deactivate(self, cooperative_id: UUID, user_id: Optional[UUID] = None) -> Cooperative:
        """Soft delete: reports stay available for historical comparison."""
        cooperative = self.get(cooperative_id)
        old_values = model_snapshot(cooperative)

        cooperative.is_active = False
        cooperative.operational_status = OperationalStatus.INACTIVE
        self.db.flush()

        self.audit.log(
            "cooperatives", cooperative.id, AuditAction.DELETE,
            old_values=old_values, new_values=model_snapshot(cooperative),
            user_id=user_id, cooperative_id=cooperative.id
        )
        self.db.commit()
        self.db.refresh(cooperative)
        logger.info(f"Cooperative {cooperative.code} deactivated by {user_id}")
        return cooperative
