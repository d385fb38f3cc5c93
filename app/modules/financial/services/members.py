"""
Member report analytics: savings, receivables, NPL, SHU and budget lists
"""

from decimal import Decimal
from typing import Any, Dict, List

from fastapi import HTTPException, status

from app.modules.financial.models import (
    BUDGET_CATEGORIES, FinancialReport, LOAN_TYPES, NPL_CLASSIFICATIONS, PAYMENT_STATUSES,
    ReportType, SAVINGS_TYPES
)
from app.modules.financial.services.base import BaseFinancialService
from app.modules.financial.utils.calculations import as_float, safe_divide, sum_amounts


def _grouped_total(rows, key_attr: str, value_attr: str, keys) -> Dict[str, float]:
    totals = {key: Decimal("0") for key in keys}
    for row in rows:
        key = getattr(row, key_attr)
        totals[key] = totals.get(key, Decimal("0")) + Decimal(getattr(row, value_attr) or 0)
    return {key: as_float(value) for key, value in totals.items()}


class MemberReportService(BaseFinancialService):
    """Analytics over the member-level report types"""

    def analyze(self, report: FinancialReport) -> Dict[str, Any]:
        handlers = {
            ReportType.MEMBER_SAVINGS: self.analyze_savings,
            ReportType.MEMBER_RECEIVABLES: self.analyze_receivables,
            ReportType.NPL_RECEIVABLES: self.analyze_npl,
            ReportType.SHU_DISTRIBUTION: self.analyze_shu,
            ReportType.BUDGET_PLAN: self.analyze_budget,
        }
        handler = handlers.get(report.report_type)
        if not handler:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Member analytics are not available for {report.report_type.value} reports"
            )
        result = handler(report)
        result.update({
            "report_id": str(report.id),
            "report_type": report.report_type.value,
            "cooperative_name": report.cooperative_name,
            "reporting_year": report.reporting_year,
        })
        return result

    def analyze_savings(self, report: FinancialReport) -> Dict[str, Any]:
        rows = list(report.member_savings)
        members = {row.member_id for row in rows}
        total = sum_amounts(row.ending_balance for row in rows)
        deposits = sum_amounts(row.deposits for row in rows)
        withdrawals = sum_amounts(row.withdrawals for row in rows)

        per_member: Dict[str, Dict[str, Any]] = {}
        for row in rows:
            entry = per_member.setdefault(row.member_id, {
                "member_id": row.member_id, "member_name": row.member_name, "total": Decimal("0")
            })
            entry["total"] += Decimal(row.ending_balance or 0)
        top_savers = sorted(per_member.values(), key=lambda e: e["total"], reverse=True)[:10]

        return {
            "total_members": len(members),
            "total_savings": as_float(total),
            "by_savings_type": _grouped_total(rows, "savings_type", "ending_balance", SAVINGS_TYPES),
            "average_per_member": round(safe_divide(total, len(members)), 2),
            "total_deposits": as_float(deposits),
            "total_withdrawals": as_float(withdrawals),
            "total_interest": as_float(sum_amounts(row.interest_earned for row in rows)),
            "net_flow": as_float(deposits - withdrawals),
            "top_savers": [{**e, "total": as_float(e["total"])} for e in top_savers],
        }

    def analyze_receivables(self, report: FinancialReport) -> Dict[str, Any]:
        rows = list(report.member_receivables)
        total_outstanding = sum_amounts(row.outstanding_balance for row in rows)
        current_outstanding = sum_amounts(
            row.outstanding_balance for row in rows if row.payment_status == "current"
        )

        warnings: List[str] = []
        for row in rows:
            if row.payment_status != "current" and Decimal(row.outstanding_balance or 0) > 0:
                warnings.append(
                    f"Pinjaman {row.loan_number} ({row.member_name}) menunggak {row.days_overdue} hari"
                )

        return {
            "total_loans": len(rows),
            "total_loan_amount": as_float(sum_amounts(row.loan_amount for row in rows)),
            "total_outstanding": as_float(total_outstanding),
            "by_payment_status": _grouped_total(rows, "payment_status", "outstanding_balance", PAYMENT_STATUSES),
            "by_loan_type": _grouped_total(rows, "loan_type", "outstanding_balance", LOAN_TYPES),
            "collectibility_ratio": round(safe_divide(current_outstanding, total_outstanding) * 100, 2),
            "overdue_loans": [
                {"loan_number": row.loan_number, "member_name": row.member_name,
                 "payment_status": row.payment_status, "days_overdue": row.days_overdue,
                 "outstanding_balance": as_float(row.outstanding_balance)}
                for row in rows if row.payment_status != "current"
            ],
            "warnings": warnings,
        }

    def analyze_npl(self, report: FinancialReport) -> Dict[str, Any]:
        rows = list(report.npl_receivables)
        total_outstanding = sum_amounts(row.outstanding_balance for row in rows)
        total_provision = sum_amounts(row.provision_amount for row in rows)

        receivables = self.get_approved_report(
            report.cooperative_id, ReportType.MEMBER_RECEIVABLES, report.reporting_year
        )
        portfolio = sum_amounts(r.outstanding_balance for r in receivables.member_receivables) if receivables else Decimal("0")

        return {
            "total_npl_accounts": len(rows),
            "total_outstanding": as_float(total_outstanding),
            "by_classification": _grouped_total(rows, "npl_classification", "outstanding_balance", NPL_CLASSIFICATIONS),
            "provision_by_classification": _grouped_total(rows, "npl_classification", "provision_amount", NPL_CLASSIFICATIONS),
            "total_provision": as_float(total_provision),
            "coverage_ratio": round(safe_divide(total_provision, total_outstanding) * 100, 2),
            "npl_ratio": round(safe_divide(total_outstanding, portfolio) * 100, 2),
            "loan_portfolio_outstanding": as_float(portfolio),
        }

    def analyze_shu(self, report: FinancialReport) -> Dict[str, Any]:
        rows = list(report.shu_distributions)
        total = sum_amounts(row.total_shu_received for row in rows)
        paid = sum_amounts(row.net_shu_received for row in rows if row.payment_status == "paid")
        net = sum_amounts(row.net_shu_received for row in rows)

        by_member_type: Dict[str, Dict[str, Any]] = {}
        for row in rows:
            entry = by_member_type.setdefault(row.member_type, {"members": 0, "total_shu": Decimal("0")})
            entry["members"] += 1
            entry["total_shu"] += Decimal(row.total_shu_received or 0)

        return {
            "total_shu": as_float((report.data or {}).get("total_shu", total)),
            "total_distributed": as_float(total),
            "total_tax": as_float(sum_amounts(row.tax_deduction for row in rows)),
            "total_net": as_float(net),
            "member_count": len(rows),
            "by_member_type": {
                key: {"members": value["members"], "total_shu": as_float(value["total_shu"])}
                for key, value in by_member_type.items()
            },
            "payment_progress": {
                "paid_members": sum(1 for row in rows if row.payment_status == "paid"),
                "paid_amount": as_float(paid),
                "paid_percentage": round(safe_divide(paid, net) * 100, 2),
            },
        }

    def analyze_budget(self, report: FinancialReport) -> Dict[str, Any]:
        rows = list(report.budget_plans)
        by_category = _grouped_total(rows, "budget_category", "planned_amount", BUDGET_CATEGORIES)

        quarters = {f"Q{i}": Decimal("0") for i in range(1, 5)}
        for row in rows:
            for i in range(1, 5):
                allocation = getattr(row, f"quarter_{i}_allocation")
                if allocation is not None:
                    quarters[f"Q{i}"] += Decimal(row.planned_amount or 0) * Decimal(allocation) / Decimal("100")

        variance_summary = {"favorable": 0, "moderate": 0, "unfavorable": 0}
        items = []
        for row in rows:
            variance_class = row.variance_class
            variance_summary[variance_class] += 1
            items.append({
                "budget_item": row.budget_item,
                "budget_category": row.budget_category,
                "planned_amount": as_float(row.planned_amount),
                "previous_year_actual": as_float(row.previous_year_actual),
                "variance_percentage": row.calculated_variance,
                "variance_class": variance_class,
                "priority_level": row.priority_level,
            })

        return {
            "total_planned": as_float(sum_amounts(row.planned_amount for row in rows)),
            "by_category": by_category,
            "budget_balance": round(by_category.get("revenue", 0.0) - by_category.get("expense", 0.0), 2),
            "quarterly_distribution": {key: as_float(value) for key, value in quarters.items()},
            "variance_summary": variance_summary,
            "items": items,
        }
