"""
Dashboard Analytics Service

Aggregated views for the two roles:

- admin_dinas: every cooperative, report pipeline, compliance and alerts
- admin_koperasi: one cooperative's status, financials and deadlines
"""

import statistics
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy import func
from sqlalchemy.orm import Session

from app.modules.auth.models import User
from app.modules.cooperatives.models import BusinessType, Cooperative, OperationalStatus
from app.modules.financial.models import (
    FinancialReport, REPORT_TYPE_LABELS, ReportPeriod, ReportStatus, ReportType
)
from app.modules.financial.services.balance_sheet import category_total
from app.modules.financial.services.base import BaseFinancialService
from app.modules.financial.services.income_statement import income_totals
from app.modules.financial.services.members import MemberReportService
from app.modules.financial.utils.calculations import as_float, growth_rate, safe_divide
from app.modules.notifications.service import NotificationService

CORE_REPORT_TYPES = (ReportType.BALANCE_SHEET, ReportType.INCOME_STATEMENT, ReportType.CASH_FLOW)
QUARTERLY_REPORT_TYPES = (ReportType.BALANCE_SHEET, ReportType.INCOME_STATEMENT)
STALE_DRAFT_DAYS = 30
PENDING_REVIEW_DAYS = 7
RECENT_ACTIVITY_LIMIT = 20


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite returns naive datetimes
    if value is None:
        return None
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def quarter_deadline(year: int, period: ReportPeriod) -> date:
    """15th of the month after the quarter ends."""
    quarter = int(period.value[1])
    if quarter == 4:
        return date(year + 1, 1, 15)
    return date(year, quarter * 3 + 1, 15)


def financial_health_level(net_income: float, debt_to_equity: float, total_assets: float) -> Dict[str, Any]:
    score = 0
    if net_income > 0:
        score += 2
    elif net_income == 0:
        score += 1
    if debt_to_equity < 0.5:
        score += 2
    elif debt_to_equity < 1:
        score += 1
    if total_assets > 0:
        score += 1

    if score >= 4:
        level = "excellent"
    elif score >= 3:
        level = "good"
    elif score >= 2:
        level = "fair"
    else:
        level = "poor"
    return {"score": score, "level": level}


class DashboardAnalyticsService(BaseFinancialService):

    def __init__(self, db: Session):
        super().__init__(db)
        self.now = datetime.now(timezone.utc)
        self.current_year = self.now.year

    # ===== ADMIN DINAS =====

    def get_admin_dinas_analytics(self) -> Dict[str, Any]:
        cooperatives = self.db.query(Cooperative).all()
        reports = self.db.query(FinancialReport).all()
        return {
            "overview": self._overview(cooperatives, reports),
            "cooperative_statistics": self._cooperative_statistics(cooperatives),
            "report_statistics": self._report_statistics(reports),
            "recent_activities": self._recent_activities(reports),
            "financial_trends": self._financial_trends(),
            "compliance_status": self._compliance_status(cooperatives, reports),
            "system_alerts": self._system_alerts(cooperatives, reports),
        }

    def _overview(self, cooperatives: List[Cooperative], reports: List[FinancialReport]) -> Dict[str, int]:
        month_start = self.now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
        return {
            "total_cooperatives": sum(1 for c in cooperatives if c.is_active),
            "operational_cooperatives": sum(
                1 for c in cooperatives
                if c.is_active and c.operational_status == OperationalStatus.ACTIVE
            ),
            "reports_this_year": sum(1 for r in reports if r.reporting_year == self.current_year),
            "pending_approvals": sum(1 for r in reports if r.status == ReportStatus.SUBMITTED),
            "approvals_this_month": sum(
                1 for r in reports
                if r.status == ReportStatus.APPROVED and r.approved_at and _aware(r.approved_at) >= month_start
            ),
            "active_users": self.db.query(func.count(User.id)).filter(User.is_active == True).scalar() or 0,
        }

    def _cooperative_statistics(self, cooperatives: List[Cooperative]) -> Dict[str, Any]:
        active = [c for c in cooperatives if c.is_active]

        by_business_type = {}
        for business_type in BusinessType:
            members = [c for c in active if c.business_type == business_type]
            by_business_type[business_type.value] = {
                "count": len(members),
                "total_members": sum(c.total_members or 0 for c in members),
                "total_assets": as_float(sum((Decimal(c.total_assets or 0) for c in members), Decimal("0"))),
            }

        by_status = {s.value: sum(1 for c in cooperatives if c.operational_status == s) for s in OperationalStatus}

        member_distribution = {"small": 0, "medium": 0, "large": 0}
        asset_distribution = {"under_1b": 0, "1b_to_5b": 0, "over_5b": 0}
        for cooperative in active:
            member_distribution[cooperative.member_size_category] += 1
            asset_distribution[cooperative.asset_size_category] += 1

        return {
            "by_business_type": by_business_type,
            "by_operational_status": by_status,
            "member_distribution": member_distribution,
            "asset_distribution": asset_distribution,
        }

    def _report_statistics(self, reports: List[FinancialReport]) -> Dict[str, Any]:
        by_type = {}
        for report_type in ReportType:
            typed = [r for r in reports if r.report_type == report_type]
            by_type[report_type.value] = {
                "label": REPORT_TYPE_LABELS[report_type.value],
                "total": len(typed),
                "approved": sum(1 for r in typed if r.status == ReportStatus.APPROVED),
                "pending": sum(1 for r in typed if r.status == ReportStatus.SUBMITTED),
                "draft": sum(1 for r in typed if r.status == ReportStatus.DRAFT),
            }

        by_year = {}
        for year in sorted({r.reporting_year for r in reports}, reverse=True):
            yearly = [r for r in reports if r.reporting_year == year]
            approved = sum(1 for r in yearly if r.status == ReportStatus.APPROVED)
            by_year[str(year)] = {
                "total": len(yearly),
                "approved": approved,
                "completion_rate": round(safe_divide(approved, len(yearly)) * 100, 2),
            }

        submission_trends = []
        for month in range(1, 13):
            submitted = [
                r for r in reports
                if r.submitted_at and _aware(r.submitted_at).year == self.current_year
                and _aware(r.submitted_at).month == month
            ]
            submission_trends.append({
                "month": month,
                "submitted": len(submitted),
                "approved": sum(1 for r in submitted if r.status == ReportStatus.APPROVED),
            })

        since = self.now - timedelta(days=180)
        approval_days = [
            (_aware(r.approved_at) - _aware(r.submitted_at)).total_seconds() / 86400
            for r in reports
            if r.status == ReportStatus.APPROVED and r.approved_at and r.submitted_at
            and _aware(r.approved_at) >= since
        ]
        approval_times = {
            "count": len(approval_days),
            "average_days": round(statistics.mean(approval_days), 2) if approval_days else 0.0,
            "median_days": round(statistics.median(approval_days), 2) if approval_days else 0.0,
            "max_days": round(max(approval_days), 2) if approval_days else 0.0,
            "min_days": round(min(approval_days), 2) if approval_days else 0.0,
        }

        return {
            "by_type": by_type,
            "by_year": by_year,
            "submission_trends": submission_trends,
            "approval_times": approval_times,
        }

    def _recent_activities(self, reports: List[FinancialReport]) -> List[Dict[str, Any]]:
        events = []
        for report in reports:
            if report.submitted_at:
                events.append((_aware(report.submitted_at), "submitted", report))
            if report.approved_at:
                events.append((_aware(report.approved_at), "approved", report))
        events.sort(key=lambda e: e[0], reverse=True)

        return [
            {
                "activity": activity,
                "timestamp": timestamp.isoformat(),
                "report_id": str(report.id),
                "report_type": report.report_type.value,
                "report_type_label": report.report_type_label,
                "reporting_year": report.reporting_year,
                "cooperative_name": report.cooperative_name,
            }
            for timestamp, activity, report in events[:RECENT_ACTIVITY_LIMIT]
        ]

    def _financial_trends(self) -> List[Dict[str, Any]]:
        trends = []
        for year in range(self.current_year - 2, self.current_year + 1):
            approved = self.db.query(FinancialReport).filter(
                FinancialReport.reporting_year == year,
                FinancialReport.status == ReportStatus.APPROVED,
                FinancialReport.report_type.in_([ReportType.BALANCE_SHEET, ReportType.INCOME_STATEMENT])
            ).all()

            assets = equity = revenue = expenses = net_income = Decimal("0")
            cooperative_ids = set()
            for cooperative_id in {r.cooperative_id for r in approved}:
                balance = self.get_approved_report(cooperative_id, ReportType.BALANCE_SHEET, year)
                income = self.get_approved_report(cooperative_id, ReportType.INCOME_STATEMENT, year)
                if balance:
                    assets += category_total(balance.balance_sheet_accounts, "asset")
                    equity += category_total(balance.balance_sheet_accounts, "equity")
                if income:
                    totals = income_totals(income.income_statement_accounts)
                    revenue += totals["total_revenue"]
                    expenses += totals["total_expenses"]
                    net_income += totals["net_income"]
                cooperative_ids.add(cooperative_id)

            trends.append({
                "year": year,
                "total_assets": as_float(assets),
                "total_equity": as_float(equity),
                "total_revenue": as_float(revenue),
                "total_expenses": as_float(expenses),
                "net_income": as_float(net_income),
                "cooperative_count": len(cooperative_ids),
            })
        return trends

    def _compliance_status(self, cooperatives: List[Cooperative], reports: List[FinancialReport]) -> Dict[str, Any]:
        summary = {"compliant": 0, "partial": 0, "non_compliant": 0}
        details = []
        for cooperative in cooperatives:
            if not cooperative.is_active:
                continue
            approved_types = {
                r.report_type for r in reports
                if r.cooperative_id == cooperative.id and r.reporting_year == self.current_year
                and r.status == ReportStatus.APPROVED
            }
            completed = [t for t in CORE_REPORT_TYPES if t in approved_types]
            rate = round(len(completed) / len(CORE_REPORT_TYPES) * 100, 2)
            if rate == 100:
                compliance = "compliant"
            elif rate > 0:
                compliance = "partial"
            else:
                compliance = "non_compliant"
            summary[compliance] += 1
            details.append({
                "cooperative_id": str(cooperative.id),
                "cooperative_name": cooperative.name,
                "compliance_rate": rate,
                "status": compliance,
                "missing_reports": [t.value for t in CORE_REPORT_TYPES if t not in approved_types],
            })

        return {"year": self.current_year, "summary": summary, "details": details}

    def _system_alerts(self, cooperatives: List[Cooperative], reports: List[FinancialReport]) -> List[Dict[str, Any]]:
        alerts = []
        stale_cutoff = self.now - timedelta(days=STALE_DRAFT_DAYS)
        pending_cutoff = self.now - timedelta(days=PENDING_REVIEW_DAYS)

        stale_drafts = [
            r for r in reports
            if r.status == ReportStatus.DRAFT and r.created_at and _aware(r.created_at) < stale_cutoff
        ]
        if stale_drafts:
            alerts.append({
                "type": "stale_drafts",
                "severity": "warning",
                "count": len(stale_drafts),
                "message": f"{len(stale_drafts)} laporan masih berstatus draft lebih dari {STALE_DRAFT_DAYS} hari",
            })

        overdue_reviews = [
            r for r in reports
            if r.status == ReportStatus.SUBMITTED and r.submitted_at and _aware(r.submitted_at) < pending_cutoff
        ]
        if overdue_reviews:
            alerts.append({
                "type": "pending_review",
                "severity": "high",
                "count": len(overdue_reviews),
                "message": f"{len(overdue_reviews)} laporan menunggu persetujuan lebih dari {PENDING_REVIEW_DAYS} hari",
            })

        inactive = [c for c in cooperatives if c.operational_status == OperationalStatus.INACTIVE]
        if inactive:
            alerts.append({
                "type": "inactive_cooperatives",
                "severity": "info",
                "count": len(inactive),
                "message": f"{len(inactive)} koperasi berstatus tidak aktif",
            })
        return alerts

    # ===== ADMIN KOPERASI =====

    def get_admin_koperasi_analytics(self, cooperative_id: UUID) -> Dict[str, Any]:
        cooperative = self.db.query(Cooperative).filter(Cooperative.id == cooperative_id).first()
        if not cooperative:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Cooperative not found"
            )

        reports = self._get_base_report_query(cooperative_id).all()
        financial_summary = self._financial_summary(cooperative_id, self.current_year)
        return {
            "cooperative_overview": self._cooperative_overview(cooperative, reports),
            "financial_summary": financial_summary,
            "report_status": self._core_report_status(reports),
            "member_analytics": self._member_analytics(cooperative_id),
            "performance_metrics": self._performance_metrics(cooperative_id, financial_summary),
            "upcoming_deadlines": self._upcoming_deadlines(reports),
            "recent_notifications": [
                {
                    "id": str(n.id),
                    "type": n.type.value,
                    "title": n.title,
                    "message": n.message,
                    "is_read": n.is_read,
                    "created_at": _aware(n.created_at).isoformat() if n.created_at else None,
                }
                for n in NotificationService(self.db).recent_for_cooperative(cooperative_id, 10)
            ],
        }

    def _cooperative_overview(self, cooperative: Cooperative, reports: List[FinancialReport]) -> Dict[str, Any]:
        this_year = [r for r in reports if r.reporting_year == self.current_year]
        approvals = [_aware(r.approved_at) for r in reports if r.approved_at]
        return {
            "cooperative_id": str(cooperative.id),
            "name": cooperative.name,
            "code": cooperative.code,
            "business_type": cooperative.business_type.value,
            "operational_status": cooperative.operational_status.value,
            "total_members": cooperative.total_members,
            "active_members": cooperative.active_members,
            "reports_this_year": {s.value: sum(1 for r in this_year if r.status == s) for s in ReportStatus},
            "last_approval_date": max(approvals).isoformat() if approvals else None,
        }

    def _financial_summary(self, cooperative_id: UUID, year: int) -> Dict[str, Any]:
        balance = self.get_approved_report(cooperative_id, ReportType.BALANCE_SHEET, year)
        income = self.get_approved_report(cooperative_id, ReportType.INCOME_STATEMENT, year)

        assets = liabilities = equity = Decimal("0")
        if balance:
            assets = category_total(balance.balance_sheet_accounts, "asset")
            liabilities = category_total(balance.balance_sheet_accounts, "liability")
            equity = category_total(balance.balance_sheet_accounts, "equity")
        totals = income_totals(income.income_statement_accounts) if income else income_totals([])

        return {
            "year": year,
            "total_assets": as_float(assets),
            "total_liabilities": as_float(liabilities),
            "total_equity": as_float(equity),
            "total_revenue": as_float(totals["total_revenue"]),
            "total_expenses": as_float(totals["total_expenses"]),
            "net_income": as_float(totals["net_income"]),
            "ratios": {
                "debt_to_equity": round(safe_divide(liabilities, equity), 2),
                "roa": round(safe_divide(totals["net_income"], assets) * 100, 2),
                "roe": round(safe_divide(totals["net_income"], equity) * 100, 2),
                "profit_margin": round(safe_divide(totals["net_income"], totals["total_revenue"]) * 100, 2),
            },
        }

    def _core_report_status(self, reports: List[FinancialReport]) -> Dict[str, str]:
        result = {}
        for report_type in CORE_REPORT_TYPES:
            typed = [r for r in reports if r.report_type == report_type and r.reporting_year == self.current_year]
            if not typed:
                result[report_type.value] = "not_started"
                continue
            latest = max(typed, key=lambda r: _aware(r.updated_at or r.created_at) or self.now)
            result[report_type.value] = latest.status.value
        return result

    def _member_analytics(self, cooperative_id: UUID) -> Dict[str, Any]:
        savings = self.get_approved_report(cooperative_id, ReportType.MEMBER_SAVINGS, self.current_year)
        if not savings:
            savings = self.get_approved_report(cooperative_id, ReportType.MEMBER_SAVINGS, self.current_year - 1)
        if not savings:
            return {"available": False}
        analysis = MemberReportService(self.db).analyze_savings(savings)
        analysis.update({"available": True, "reporting_year": savings.reporting_year})
        return analysis

    def _performance_metrics(self, cooperative_id: UUID, current: Dict[str, Any]) -> Dict[str, Any]:
        previous = self._financial_summary(cooperative_id, self.current_year - 1)
        asset_growth = growth_rate(current["total_assets"], previous["total_assets"])
        revenue_growth = growth_rate(current["total_revenue"], previous["total_revenue"])
        profit_growth = growth_rate(current["net_income"], previous["net_income"])

        net_income = current["net_income"]
        if net_income > 0:
            profitability = "profitable"
        elif net_income == 0:
            profitability = "break_even"
        else:
            profitability = "loss"

        if revenue_growth > 0 and asset_growth > 0:
            growth_trend = "growing"
        elif revenue_growth < 0 and asset_growth < 0:
            growth_trend = "declining"
        else:
            growth_trend = "stable"

        return {
            "asset_growth": asset_growth,
            "revenue_growth": revenue_growth,
            "profit_growth": profit_growth,
            "indicators": {
                "profitability": profitability,
                "growth_trend": growth_trend,
                "financial_health": financial_health_level(
                    net_income, current["ratios"]["debt_to_equity"], current["total_assets"]
                ),
            },
        }

    def _upcoming_deadlines(self, reports: List[FinancialReport]) -> List[Dict[str, Any]]:
        today = self.now.date()
        current_quarter = (today.month - 1) // 3 + 1
        existing = {
            (r.report_type, r.reporting_period) for r in reports
            if r.reporting_year == self.current_year and r.status != ReportStatus.REJECTED
        }

        deadlines = []
        for quarter in range(1, current_quarter + 1):
            period = ReportPeriod(f"Q{quarter}")
            deadline = quarter_deadline(self.current_year, period)
            for report_type in QUARTERLY_REPORT_TYPES:
                if (report_type, period) in existing:
                    continue
                deadlines.append({
                    "report_type": report_type.value,
                    "report_type_label": REPORT_TYPE_LABELS[report_type.value],
                    "reporting_year": self.current_year,
                    "reporting_period": period.value,
                    "deadline": deadline.isoformat(),
                    "days_remaining": (deadline - today).days,
                    "is_overdue": deadline < today,
                })
        return sorted(deadlines, key=lambda d: d["deadline"])
