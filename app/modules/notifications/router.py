from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.core.config import settings
from app.database.database import get_db
from app.modules.auth.dependencies import AuthDependencies
from app.modules.auth.schemas import AuthContext
from app.modules.notifications.schemas import NotificationList, NotificationOut, UnreadCountResponse
from app.modules.notifications.service import NotificationService

router = APIRouter(prefix="/notifications", tags=["Notifications"])


@router.get("", response_model=NotificationList)
async def list_notifications(
    unread_only: bool = Query(False),
    page: int = Query(1, ge=1),
    per_page: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role()),
    db: Session = Depends(get_db)
):
    """Notifications of the current user, newest first."""
    service = NotificationService(db)
    result = service.list_for_user(auth_context.user_id, unread_only, page, per_page)
    return NotificationList(
        items=[NotificationOut.model_validate(n) for n in result["items"]],
        total=result["total"],
        unread_count=service.unread_count(auth_context.user_id),
        page=page,
        per_page=per_page,
    )


@router.get("/unread-count", response_model=UnreadCountResponse)
async def get_unread_count(
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role()),
    db: Session = Depends(get_db)
):
    return UnreadCountResponse(unread_count=NotificationService(db).unread_count(auth_context.user_id))


@router.get("/recent", response_model=List[NotificationOut])
async def list_recent_notifications(
    limit: int = Query(10, ge=1, le=50),
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role()),
    db: Session = Depends(get_db)
):
    return NotificationService(db).recent(auth_context.user_id, limit)


@router.post("/read-all")
async def mark_all_notifications_read(
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role()),
    db: Session = Depends(get_db)
):
    updated = NotificationService(db).mark_all_as_read(auth_context.user_id)
    return {"message": "Notifications marked as read", "updated": updated}


@router.post("/{notification_id}/read", response_model=NotificationOut)
async def mark_notification_read(
    notification_id: UUID,
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role()),
    db: Session = Depends(get_db)
):
    return NotificationService(db).mark_as_read(notification_id, auth_context.user_id)


@router.delete("/{notification_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_notification(
    notification_id: UUID,
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role()),
    db: Session = Depends(get_db)
):
    NotificationService(db).delete(notification_id, auth_context.user_id)
