"""
Analytics Router

Role dashboards, KPI endpoints and per-user dashboard widgets.
"""

from datetime import date
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.orm import Session

from app.database.database import get_db
from app.dependencies.cooperativeDependencies import CooperativeId
from app.modules.auth.dependencies import AuthDependencies
from app.modules.auth.schemas import AuthContext
from app.modules.analytics.schemas import (
    KPIMetricOut, KPIRecordResponse, WidgetCreate, WidgetOut, WidgetUpdate
)
from app.modules.analytics.services import DashboardAnalyticsService, DashboardWidgetService, KPIService


router = APIRouter(prefix="/analytics", tags=["Analytics"])


@router.get("/dashboard/dinas")
async def get_dinas_dashboard(
    auth_context: AuthContext = Depends(AuthDependencies.require_admin_dinas()),
    db: Session = Depends(get_db)
):
    try:
        return DashboardAnalyticsService(db).get_admin_dinas_analytics()
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error generating report: {str(e)}")


@router.get("/dashboard/koperasi")
async def get_koperasi_dashboard(
    cooperative_id: CooperativeId,
    db: Session = Depends(get_db)
):
    try:
        return DashboardAnalyticsService(db).get_admin_koperasi_analytics(cooperative_id)
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error generating report: {str(e)}")


# ===== KPIs =====

@router.get("/kpis")
async def get_kpis(
    cooperative_id: CooperativeId,
    year: Optional[int] = Query(None, ge=2000, le=2100),
    db: Session = Depends(get_db)
):
    return KPIService(db).calculate_kpis(cooperative_id, year or date.today().year)


@router.get("/kpis/summary")
async def get_kpi_summary(
    cooperative_id: CooperativeId,
    year: Optional[int] = Query(None, ge=2000, le=2100),
    db: Session = Depends(get_db)
):
    return KPIService(db).get_kpi_summary(cooperative_id, year or date.today().year)


@router.get("/kpis/trends/{kpi_name}")
async def get_kpi_trends(
    kpi_name: str,
    cooperative_id: CooperativeId,
    periods: int = Query(5, ge=2, le=10, description="Number of years"),
    end_year: Optional[int] = Query(None, ge=2000, le=2100),
    db: Session = Depends(get_db)
):
    return KPIService(db).get_kpi_trends(cooperative_id, kpi_name, periods, end_year)


@router.post("/kpis/record", response_model=KPIRecordResponse)
async def record_kpis(
    cooperative_id: CooperativeId,
    year: Optional[int] = Query(None, ge=2000, le=2100),
    db: Session = Depends(get_db)
):
    year = year or date.today().year
    metrics = KPIService(db).record_kpis(cooperative_id, year)
    return KPIRecordResponse(
        cooperative_id=cooperative_id,
        year=year,
        metrics=[KPIMetricOut.model_validate(m) for m in metrics]
    )


# ===== WIDGETS =====

@router.get("/widgets", response_model=List[WidgetOut])
async def list_widgets(
    include_inactive: bool = Query(False),
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role()),
    db: Session = Depends(get_db)
):
    return DashboardWidgetService(db).list_widgets(auth_context, include_inactive)


@router.post("/widgets", response_model=WidgetOut, status_code=status.HTTP_201_CREATED)
async def create_widget(
    widget: WidgetCreate,
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role()),
    db: Session = Depends(get_db)
):
    return DashboardWidgetService(db).create_widget(widget, auth_context)


@router.get("/widgets/stale", response_model=List[WidgetOut])
async def list_stale_widgets(
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role()),
    db: Session = Depends(get_db)
):
    """Active widgets whose refresh interval has elapsed."""
    return DashboardWidgetService(db).stale_widgets(auth_context)


@router.get("/widgets/{widget_id}", response_model=WidgetOut)
async def get_widget(
    widget_id: UUID,
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role()),
    db: Session = Depends(get_db)
):
    return DashboardWidgetService(db).get_widget(widget_id, auth_context)


@router.put("/widgets/{widget_id}", response_model=WidgetOut)
async def update_widget(
    widget_id: UUID,
    widget: WidgetUpdate,
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role()),
    db: Session = Depends(get_db)
):
    return DashboardWidgetService(db).update_widget(widget_id, widget, auth_context)


@router.post("/widgets/{widget_id}/refresh", response_model=WidgetOut)
async def refresh_widget(
    widget_id: UUID,
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role()),
    db: Session = Depends(get_db)
):
    return DashboardWidgetService(db).refresh_widget(widget_id, auth_context)


@router.delete("/widgets/{widget_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_widget(
    widget_id: UUID,
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role()),
    db: Session = Depends(get_db)
):
    DashboardWidgetService(db).delete_widget(widget_id, auth_context)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
