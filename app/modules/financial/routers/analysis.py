"""
Financial Analysis Router

Read-only analysis of stored reports: statement analysis, equity, comparisons,
member analytics and the per-cooperative financial dashboard.
"""

from datetime import date
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from app.database.database import get_db
from app.dependencies.cooperativeDependencies import CooperativeId
from app.modules.auth.dependencies import AuthDependencies
from app.modules.auth.schemas import AuthContext
from app.modules.financial.models import ReportType
from ..services import (
    BalanceSheetService,
    CashFlowService,
    EquityChangesService,
    IncomeStatementService,
    MemberReportService,
    YearOverYearComparisonService
)


router = APIRouter(prefix="/financial/analysis", tags=["Financial Analysis"])
templates_router = APIRouter(prefix="/financial/templates", tags=["Financial Analysis"])


def _default_year() -> int:
    return date.today().year


@router.get("/balance-sheet/{report_id}")
async def analyze_balance_sheet(
    report_id: UUID,
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role()),
    db: Session = Depends(get_db)
):
    service = BalanceSheetService(db)
    return service.analyze(service.get_report_or_404(report_id, auth_context))


@router.get("/income-statement/{report_id}")
async def analyze_income_statement(
    report_id: UUID,
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role()),
    db: Session = Depends(get_db)
):
    service = IncomeStatementService(db)
    return service.analyze(service.get_report_or_404(report_id, auth_context))


@router.get("/cash-flow/forecast")
async def forecast_cash_flow(
    cooperative_id: CooperativeId,
    year: Optional[int] = Query(None, ge=2000, le=2100, description="Forecast year (default: current year)"),
    db: Session = Depends(get_db)
):
    return CashFlowService(db).forecast(cooperative_id, year or _default_year())


@router.get("/cash-flow/{report_id}")
async def analyze_cash_flow(
    report_id: UUID,
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role()),
    db: Session = Depends(get_db)
):
    service = CashFlowService(db)
    return service.analyze(service.get_report_or_404(report_id, auth_context))


@router.get("/equity/changes")
async def get_equity_changes(
    cooperative_id: CooperativeId,
    year: int = Query(..., ge=2000, le=2100),
    db: Session = Depends(get_db)
):
    return EquityChangesService(db).calculate_equity_changes(cooperative_id, year)


@router.get("/equity/composition")
async def get_equity_composition(
    cooperative_id: CooperativeId,
    year: int = Query(..., ge=2000, le=2100),
    db: Session = Depends(get_db)
):
    return EquityChangesService(db).analyze_composition(cooperative_id, year)


@router.get("/equity/comparison")
async def compare_equity_years(
    cooperative_id: CooperativeId,
    years: List[int] = Query(..., description="Years to compare"),
    db: Session = Depends(get_db)
):
    return EquityChangesService(db).compare_across_years(cooperative_id, years)


@router.get("/equity/forecast")
async def forecast_equity(
    cooperative_id: CooperativeId,
    year: Optional[int] = Query(None, ge=2000, le=2100),
    db: Session = Depends(get_db)
):
    return EquityChangesService(db).forecast(cooperative_id, year or _default_year() + 1)


@router.get("/comparison/years")
async def compare_years(
    cooperative_id: CooperativeId,
    report_type: ReportType = Query(ReportType.BALANCE_SHEET),
    years: List[int] = Query(..., description="Years to compare"),
    db: Session = Depends(get_db)
):
    try:
        return YearOverYearComparisonService(db).compare_across_years(cooperative_id, years, report_type)
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error generating report: {str(e)}")


@router.get("/comparison/cooperatives")
async def compare_cooperatives(
    cooperative_ids: List[UUID] = Query(..., description="Cooperatives to compare"),
    year: int = Query(..., ge=2000, le=2100),
    report_type: ReportType = Query(ReportType.BALANCE_SHEET),
    auth_context: AuthContext = Depends(AuthDependencies.require_admin_dinas()),
    db: Session = Depends(get_db)
):
    if len(cooperative_ids) < 2:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="At least two cooperatives are required for comparison"
        )
    try:
        return YearOverYearComparisonService(db).compare_cooperatives(cooperative_ids, year, report_type)
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error generating report: {str(e)}")


@router.get("/dashboard")
async def get_financial_dashboard(
    cooperative_id: CooperativeId,
    year: Optional[int] = Query(None, ge=2000, le=2100),
    db: Session = Depends(get_db)
):
    try:
        return YearOverYearComparisonService(db).generate_financial_dashboard(
            cooperative_id, year or _default_year()
        )
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error generating report: {str(e)}")


@router.get("/members/{report_id}")
async def analyze_member_report(
    report_id: UUID,
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role()),
    db: Session = Depends(get_db)
):
    service = MemberReportService(db)
    return service.analyze(service.get_report_or_404(report_id, auth_context))


@templates_router.get("/balance-sheet")
async def get_balance_sheet_template(
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role())
):
    return BalanceSheetService.get_default_account_structure()
