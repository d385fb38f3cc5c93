"""
Balance sheet (Laporan Posisi Keuangan) analysis
"""

from decimal import Decimal
from typing import Any, Dict, Iterable, List

from app.core.config import settings
from app.modules.financial.models import BalanceSheetAccount, FinancialReport, ReportType
from app.modules.financial.services.base import BaseFinancialService
from app.modules.financial.utils.calculations import as_float, safe_divide, sum_amounts

BALANCE_TOLERANCE = Decimal(str(settings.BALANCE_TOLERANCE))


def category_total(accounts: Iterable, category: str, field: str = "current_year_amount") -> Decimal:
    """Sum of non-subtotal rows in one category."""
    return sum_amounts(
        getattr(a, field) for a in accounts
        if a.account_category == category and not a.is_subtotal
    )


def _name_contains(account, *keywords) -> bool:
    name = (account.account_name or "").lower()
    return any(k in name for k in keywords)


class BalanceSheetService(BaseFinancialService):
    """Totals, balance check, ratios and year-over-year view of a balance sheet"""

    CATEGORY_MAP = {
        "assets": "asset",
        "liabilities": "liability",
        "equity": "equity",
    }

    def _accounts(self, report: FinancialReport) -> List[BalanceSheetAccount]:
        self.ensure_report_type(report, ReportType.BALANCE_SHEET)
        return list(report.balance_sheet_accounts)

    def _totals(self, accounts: List[BalanceSheetAccount], field: str) -> Dict[str, Decimal]:
        assets = category_total(accounts, "asset", field)
        liabilities = category_total(accounts, "liability", field)
        equity = category_total(accounts, "equity", field)
        return {
            "total_assets": assets,
            "total_liabilities": liabilities,
            "total_equity": equity,
            "total_liabilities_equity": liabilities + equity,
        }

    def calculate_totals(self, report: FinancialReport) -> Dict[str, Dict[str, float]]:
        accounts = self._accounts(report)
        return {
            period: {key: as_float(value) for key, value in self._totals(accounts, field).items()}
            for period, field in (("current", "current_year_amount"), ("previous", "previous_year_amount"))
        }

    def validate_balance_equation(self, report: FinancialReport) -> Dict[str, Any]:
        totals = self._totals(self._accounts(report), "current_year_amount")
        difference = totals["total_assets"] - totals["total_liabilities_equity"]
        return {
            "is_balanced": abs(difference) <= BALANCE_TOLERANCE,
            "difference": as_float(difference),
            "total_assets": as_float(totals["total_assets"]),
            "total_liabilities_equity": as_float(totals["total_liabilities_equity"]),
        }

    @staticmethod
    def get_default_account_structure() -> Dict[str, List[Dict[str, Any]]]:
        """Starting chart of accounts for a cooperative balance sheet."""
        def rows(items):
            return [
                {
                    "account_code": code,
                    "account_name": name,
                    "account_subcategory": subcategory,
                    "current_year_amount": 0,
                    "previous_year_amount": 0,
                    "sort_order": index,
                }
                for index, (code, name, subcategory) in enumerate(items, start=1)
            ]

        return {
            "assets": rows([
                ("1100", "Kas", None),
                ("1200", "Bank", None),
                ("1300", "Piutang Anggota", None),
                ("1400", "Persediaan", None),
                ("1500", "Peralatan", None),
                ("1600", "Akumulasi Penyusutan Peralatan", None),
            ]),
            "liabilities": rows([
                ("2100", "Hutang Usaha", "current_liability"),
                ("2200", "Hutang Bank", "long_term_liability"),
            ]),
            "equity": rows([
                ("3100", "Simpanan Pokok", "member_equity"),
                ("3200", "Simpanan Wajib", "member_equity"),
                ("3300", "Cadangan Umum", "other_equity"),
                ("3400", "Sisa Hasil Usaha", "retained_earnings"),
            ]),
        }

    def calculate_ratios(self, report: FinancialReport) -> Dict[str, float]:
        accounts = self._accounts(report)
        totals = self._totals(accounts, "current_year_amount")

        current_assets = sum_amounts(
            a.current_year_amount for a in accounts
            if a.account_category == "asset" and not a.is_subtotal
            and (a.account_subcategory == "current_asset" or _name_contains(a, "lancar"))
        )
        current_liabilities = sum_amounts(
            a.current_year_amount for a in accounts
            if a.account_category == "liability" and not a.is_subtotal
            and (a.account_subcategory == "current_liability" or _name_contains(a, "lancar", "jangka pendek"))
        )

        return {
            "current_ratio": round(safe_divide(current_assets, current_liabilities), 2),
            "debt_to_equity": round(safe_divide(totals["total_liabilities"], totals["total_equity"]), 2),
            "equity_ratio": round(safe_divide(totals["total_equity"], totals["total_assets"]), 2),
        }

    def year_over_year(self, report: FinancialReport) -> Dict[str, Dict[str, float]]:
        accounts = self._accounts(report)
        result = {}
        for label, category in self.CATEGORY_MAP.items():
            current = category_total(accounts, category, "current_year_amount")
            previous = category_total(accounts, category, "previous_year_amount")
            variance = current - previous
            result[label] = {
                "current": as_float(current),
                "previous": as_float(previous),
                "variance": as_float(variance),
                "variance_percentage": round(safe_divide(variance, previous) * 100, 2) if previous > 0 else 0.0,
            }
        return result

    def analyze(self, report: FinancialReport) -> Dict[str, Any]:
        accounts = self._accounts(report)
        grouped = {
            label: [
                {
                    "account_code": a.account_code,
                    "account_name": a.account_name,
                    "account_subcategory": a.account_subcategory,
                    "current_year_amount": as_float(a.current_year_amount),
                    "previous_year_amount": as_float(a.previous_year_amount),
                    "variance": as_float(a.variance),
                    "variance_percentage": a.variance_percentage,
                    "is_subtotal": a.is_subtotal,
                }
                for a in accounts if a.account_category == category
            ]
            for label, category in self.CATEGORY_MAP.items()
        }
        return {
            "report_id": str(report.id),
            "cooperative_name": report.cooperative_name,
            "reporting_year": report.reporting_year,
            "accounts": grouped,
            "totals": self.calculate_totals(report),
            "balance_check": self.validate_balance_equation(report),
            "ratios": self.calculate_ratios(report),
            "year_over_year": self.year_over_year(report),
        }
