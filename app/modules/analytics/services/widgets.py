"""
Dashboard widgets: per-user layout, scoped to the effective cooperative.
"""

import logging
from typing import List, Optional
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from app.modules.analytics.models import DashboardWidget
from app.modules.auth.schemas import AuthContext

logger = logging.getLogger(__name__)


class DashboardWidgetService:

    def __init__(self, db: Session):
        self.db = db

    def _owned_query(self, auth_context: AuthContext):
        query = self.db.query(DashboardWidget).filter(DashboardWidget.user_id == auth_context.user_id)
        if auth_context.cooperative_id:
            query = query.filter(DashboardWidget.cooperative_id == auth_context.cooperative_id)
        return query

    def list_widgets(self, auth_context: AuthContext, include_inactive: bool = False) -> List[DashboardWidget]:
        query = self._owned_query(auth_context)
        if not include_inactive:
            query = query.filter(DashboardWidget.is_active == True)
        return query.order_by(DashboardWidget.position_y, DashboardWidget.position_x).all()

    def get_widget(self, widget_id: UUID, auth_context: AuthContext) -> DashboardWidget:
        widget = self._owned_query(auth_context).filter(DashboardWidget.id == widget_id).first()
        if not widget:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Widget not found"
            )
        return widget

    def create_widget(self, data, auth_context: AuthContext) -> DashboardWidget:
        widget = DashboardWidget(
            user_id=auth_context.user_id,
            cooperative_id=auth_context.cooperative_id,
            **data.model_dump()
        )
        self.db.add(widget)
        self.db.commit()
        self.db.refresh(widget)
        logger.info(f"Widget {widget.id} ({widget.widget_type}) created for user {auth_context.user_id}")
        return widget

    def update_widget(self, widget_id: UUID, data, auth_context: AuthContext) -> DashboardWidget:
        widget = self.get_widget(widget_id, auth_context)
        for field, value in data.model_dump(exclude_unset=True).items():
            setattr(widget, field, value)
        self.db.commit()
        self.db.refresh(widget)
        return widget

    def delete_widget(self, widget_id: UUID, auth_context: AuthContext) -> None:
        widget = self.get_widget(widget_id, auth_context)
        self.db.delete(widget)
        self.db.commit()
        logger.info(f"Widget {widget_id} deleted by user {auth_context.user_id}")

    def refresh_widget(self, widget_id: UUID, auth_context: AuthContext) -> DashboardWidget:
        widget = self.get_widget(widget_id, auth_context)
        widget.mark_refreshed()
        self.db.commit()
        self.db.refresh(widget)
        return widget

    def stale_widgets(self, auth_context: AuthContext) -> List[DashboardWidget]:
        return [w for w in self.list_widgets(auth_context) if w.needs_refresh]
