"""
Base service class for the financial module

Report lookups with tenant scoping, shared by the report, workflow and
analysis services.
"""

from typing import Dict, List, Optional
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from app.database.database import get_cooperative_query
from app.modules.auth.schemas import AuthContext
from app.modules.financial.models import FinancialReport, ReportPeriod, ReportStatus, ReportType

# Preference when a year has several approved reports of the same type
PERIOD_PREFERENCE = (
    ReportPeriod.ANNUAL, ReportPeriod.Q4, ReportPeriod.Q3, ReportPeriod.Q2, ReportPeriod.Q1
)


def report_scope(auth_context: Optional[AuthContext]) -> Optional[UUID]:
    """Cooperative a caller is restricted to, None for unrestricted oversight."""
    if auth_context is None:
        return None
    if auth_context.user_role == "admin_koperasi":
        return auth_context.user_cooperative_id
    return auth_context.cooperative_id


class BaseFinancialService:
    """Base service class for all financial services"""

    def __init__(self, db: Session):
        self.db = db

    def _get_base_report_query(self, cooperative_id: Optional[UUID] = None):
        return get_cooperative_query(self.db, FinancialReport, cooperative_id)

    def get_report_or_404(self, report_id: UUID, auth_context: Optional[AuthContext] = None) -> FinancialReport:
        report = self.db.query(FinancialReport).filter(FinancialReport.id == report_id).first()
        if not report:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Financial report not found"
            )

        scope = report_scope(auth_context)
        if scope and report.cooperative_id != scope:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Access to this report is not allowed"
            )
        return report

    def ensure_report_type(self, report: FinancialReport, report_type: ReportType):
        if report.report_type != report_type:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Report {report.id} is not a {report_type.value} report"
            )

    def get_approved_reports(
        self,
        cooperative_id: UUID,
        report_type: ReportType,
        years: Optional[List[int]] = None
    ) -> List[FinancialReport]:
        query = self._get_base_report_query(cooperative_id).filter(
            FinancialReport.report_type == report_type,
            FinancialReport.status == ReportStatus.APPROVED
        )
        if years:
            query = query.filter(FinancialReport.reporting_year.in_(years))
        return query.all()

    def get_approved_report(
        self,
        cooperative_id: UUID,
        report_type: ReportType,
        year: int,
        period: Optional[ReportPeriod] = None
    ) -> Optional[FinancialReport]:
        """Approved report for a year; annual first, then the latest quarter."""
        reports = self.get_approved_reports(cooperative_id, report_type, [year])
        if period:
            reports = [r for r in reports if r.reporting_period == period]
        if not reports:
            return None
        return min(reports, key=lambda r: PERIOD_PREFERENCE.index(r.reporting_period))

    def get_approved_by_year(
        self,
        cooperative_id: UUID,
        report_type: ReportType,
        years: List[int]
    ) -> Dict[int, FinancialReport]:
        result = {}
        for year in years:
            report = self.get_approved_report(cooperative_id, report_type, year)
            if report:
                result[year] = report
        return result
