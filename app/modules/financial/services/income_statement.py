"""
Income statement (Laporan Perhitungan Hasil Usaha) analysis
"""

from decimal import Decimal
from typing import Any, Dict, Iterable, List

from app.core.config import settings
from app.modules.financial.models import FinancialReport, ReportType
from app.modules.financial.services.base import BaseFinancialService
from app.modules.financial.services.balance_sheet import category_total
from app.modules.financial.utils.calculations import as_float, safe_divide


def income_totals(accounts: Iterable, field: str = "current_year_amount") -> Dict[str, Decimal]:
    accounts = list(accounts)
    revenue = category_total(accounts, "revenue", field)
    expense = category_total(accounts, "expense", field)
    other_income = category_total(accounts, "other_income", field)
    other_expense = category_total(accounts, "other_expense", field)
    return {
        "total_revenue": revenue,
        "total_expenses": expense,
        "total_other_income": other_income,
        "total_other_expenses": other_expense,
        "net_operating_income": revenue - expense,
        "net_income": revenue + other_income - expense - other_expense,
    }


def find_unrealistic_changes(accounts: Iterable) -> List[Dict[str, Any]]:
    """Rows whose current amount exceeds last year's by more than the allowed multiple (10x at 1000%)."""
    factor = Decimal(str(settings.MAX_AMOUNT_INCREASE_PERCENTAGE)) / Decimal("100")
    flagged = []
    for account in accounts:
        previous = Decimal(account.previous_year_amount or 0)
        current = Decimal(account.current_year_amount or 0)
        if previous > 0 and current > previous * factor:
            flagged.append({
                "account_code": account.account_code,
                "account_name": account.account_name,
                "current_year_amount": as_float(current),
                "previous_year_amount": as_float(previous),
                "increase_percentage": round(float((current - previous) / previous * 100), 2),
            })
    return flagged


class IncomeStatementService(BaseFinancialService):

    def _accounts(self, report: FinancialReport):
        self.ensure_report_type(report, ReportType.INCOME_STATEMENT)
        return list(report.income_statement_accounts)

    def calculate_totals(self, report: FinancialReport) -> Dict[str, Dict[str, float]]:
        accounts = self._accounts(report)
        return {
            period: {key: as_float(value) for key, value in income_totals(accounts, field).items()}
            for period, field in (("current", "current_year_amount"), ("previous", "previous_year_amount"))
        }

    def check_unrealistic_changes(self, report: FinancialReport) -> List[Dict[str, Any]]:
        return find_unrealistic_changes(self._accounts(report))

    def calculate_margins(self, report: FinancialReport) -> Dict[str, float]:
        totals = income_totals(self._accounts(report))
        revenue = totals["total_revenue"]
        return {
            "profit_margin": round(safe_divide(totals["net_income"], revenue) * 100, 2),
            "operating_margin": round(safe_divide(totals["net_operating_income"], revenue) * 100, 2),
            "expense_ratio": round(safe_divide(totals["total_expenses"], revenue) * 100, 2),
        }

    def analyze(self, report: FinancialReport) -> Dict[str, Any]:
        accounts = self._accounts(report)
        grouped: Dict[str, List[Dict[str, Any]]] = {}
        for account in accounts:
            grouped.setdefault(account.account_category, []).append({
                "account_code": account.account_code,
                "account_name": account.account_name,
                "parent_account_code": account.parent_account_code,
                "current_year_amount": as_float(account.current_year_amount),
                "previous_year_amount": as_float(account.previous_year_amount),
                "variance": as_float(account.variance),
                "variance_percentage": account.variance_percentage,
                "is_subtotal": account.is_subtotal,
            })

        return {
            "report_id": str(report.id),
            "cooperative_name": report.cooperative_name,
            "reporting_year": report.reporting_year,
            "accounts": grouped,
            "totals": self.calculate_totals(report),
            "margins": self.calculate_margins(report),
            "unrealistic_changes": self.check_unrealistic_changes(report),
        }
