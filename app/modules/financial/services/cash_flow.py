"""
Cash flow (Laporan Arus Kas) analysis and forecasting
"""

import math
import statistics
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID

from fastapi import HTTPException, status

from app.modules.financial.models import FinancialReport, ReportType
from app.modules.financial.services.base import BaseFinancialService
from app.modules.financial.services.balance_sheet import category_total
from app.modules.financial.services.income_statement import income_totals
from app.modules.financial.utils.calculations import (
    as_float, growth_rate, safe_divide, sample_variance, sum_amounts, to_decimal
)

STRONG_OPERATING_CASH_FLOW = Decimal("1000000")

# Keyed by the sign (1, -1 or 0) of operating, investing and financing flows
CASH_FLOW_PATTERNS = {
    (1, -1, -1): ("mature", "mature"),
    (1, -1, 1): ("growth", "growth"),
    (-1, -1, 1): ("startup", "startup"),
    (-1, 1, -1): ("distressed", "decline"),
}

PATTERN_DESCRIPTIONS = {
    "mature": "Arus kas operasi positif mendanai investasi dan pembayaran pendanaan",
    "growth": "Arus kas operasi dan pendanaan digunakan untuk ekspansi",
    "startup": "Kegiatan operasi belum menghasilkan kas, investasi didanai pendanaan",
    "distressed": "Aset dijual untuk menutup kekurangan kas operasi",
    "mixed": "Pola arus kas campuran",
}

FORECAST_SCENARIOS = {
    "conservative": {"growth": -0.05, "investing": 0.5, "financing": 0.3},
    "realistic": {"growth": None, "investing": 0.8, "financing": 0.5},
    "optimistic": {"growth": 0.15, "investing": 1.2, "financing": 0.8},
}


def activity_totals(activities) -> Dict[str, Decimal]:
    activities = list(activities)

    def total(category):
        return sum_amounts(
            a.current_year_amount for a in activities
            if a.activity_category == category and not a.is_subtotal
        )

    operating, investing, financing = total("operating"), total("investing"), total("financing")
    return {
        "operating": operating,
        "investing": investing,
        "financing": financing,
        "net_cash_flow": operating + investing + financing,
    }


def classify_pattern(operating: float, investing: float, financing: float) -> Dict[str, str]:
    key = tuple((value > 0) - (value < 0) for value in (operating, investing, financing))
    pattern, stage = CASH_FLOW_PATTERNS.get(key, ("mixed", "transitional"))
    return {"pattern": pattern, "stage": stage, "description": PATTERN_DESCRIPTIONS[pattern]}


def trend_consistency(values: List[float]) -> str:
    if len(values) < 3:
        return "insufficient_data"
    steps = [b > a for a, b in zip(values, values[1:])]
    upward_share = sum(steps) / len(steps)
    if upward_share >= 0.8 or upward_share <= 0.2:
        return "high"
    if upward_share >= 0.6 or upward_share <= 0.4:
        return "medium"
    return "low"


class CashFlowService(BaseFinancialService):

    def _activities(self, report: FinancialReport):
        self.ensure_report_type(report, ReportType.CASH_FLOW)
        return list(report.cash_flow_activities)

    def prepare_cash_flow_data(self, report: FinancialReport) -> Dict[str, Any]:
        activities = self._activities(report)
        totals = activity_totals(activities)
        data = report.data or {}
        return {
            "beginning_cash_balance": as_float(data.get("beginning_cash_balance")),
            "ending_cash_balance": as_float(data.get("ending_cash_balance")),
            "operating_activities": as_float(totals["operating"]),
            "investing_activities": as_float(totals["investing"]),
            "financing_activities": as_float(totals["financing"]),
            "net_cash_flow": as_float(totals["net_cash_flow"]),
            "activity_count": len(activities),
            "generated_at": datetime.now(timezone.utc).isoformat(),
        }

    def _keyword_total(self, report: Optional[FinancialReport], category: str, keyword: str, field: str) -> Decimal:
        if not report:
            return Decimal("0")
        return sum_amounts(
            getattr(a, field) for a in report.balance_sheet_accounts
            if a.account_category == category and not a.is_subtotal
            and keyword in (a.account_name or "").lower()
        )

    def calculate_operating_cash_flow_indirect(self, cooperative_id: UUID, year: int) -> Dict[str, Any]:
        income = self.get_approved_report(cooperative_id, ReportType.INCOME_STATEMENT, year)
        net_income = income_totals(income.income_statement_accounts)["net_income"] if income else Decimal("0")

        current_bs = self.get_approved_report(cooperative_id, ReportType.BALANCE_SHEET, year)
        previous_bs = self.get_approved_report(cooperative_id, ReportType.BALANCE_SHEET, year - 1)

        def change(category, keyword):
            current = self._keyword_total(current_bs, category, keyword, "current_year_amount")
            if previous_bs:
                previous = self._keyword_total(previous_bs, category, keyword, "current_year_amount")
            else:
                previous = self._keyword_total(current_bs, category, keyword, "previous_year_amount")
            return current - previous

        receivables_change = change("asset", "piutang")
        inventory_change = change("asset", "persediaan")
        payables_change = change("liability", "hutang")
        net_change = -(receivables_change + inventory_change - payables_change)

        adjustments = {"depreciation": 0.0, "amortization": 0.0, "bad_debt_provision": 0.0}
        return {
            "net_income": as_float(net_income),
            "adjustments": adjustments,
            "working_capital_changes": {
                "receivables_change": as_float(receivables_change),
                "inventory_change": as_float(inventory_change),
                "payables_change": as_float(payables_change),
                "net_change": as_float(net_change),
            },
            "operating_cash_flow": as_float(net_income + net_change),
        }

    def analyze_pattern(self, report: FinancialReport) -> Dict[str, str]:
        totals = activity_totals(self._activities(report))
        return classify_pattern(float(totals["operating"]), float(totals["investing"]), float(totals["financing"]))

    def calculate_ratios(self, report: FinancialReport) -> Dict[str, float]:
        totals = activity_totals(self._activities(report))
        operating = totals["operating"]

        balance_sheet = self.get_approved_report(report.cooperative_id, ReportType.BALANCE_SHEET, report.reporting_year)
        current_assets = Decimal("0")
        total_liabilities = Decimal("0")
        if balance_sheet:
            accounts = list(balance_sheet.balance_sheet_accounts)
            current_assets = sum_amounts(
                a.current_year_amount for a in accounts
                if a.account_category == "asset" and not a.is_subtotal
                and (a.account_subcategory == "current_asset" or "lancar" in (a.account_name or "").lower())
            )
            total_liabilities = category_total(accounts, "liability")

        income = self.get_approved_report(report.cooperative_id, ReportType.INCOME_STATEMENT, report.reporting_year)
        revenue = income_totals(income.income_statement_accounts)["total_revenue"] if income else Decimal("0")

        return {
            "operating_cash_flow_ratio": round(safe_divide(operating, current_assets), 2),
            "cash_debt_coverage": round(safe_divide(operating, total_liabilities), 2),
            "cash_flow_margin": round(safe_divide(operating, revenue) * 100, 2),
        }

    def historical_comparison(self, report: FinancialReport, years_back: int = 3) -> List[Dict[str, Any]]:
        years = list(range(report.reporting_year - years_back, report.reporting_year + 1))
        reports = self.get_approved_by_year(report.cooperative_id, ReportType.CASH_FLOW, years)
        reports[report.reporting_year] = report

        history = []
        for year in sorted(reports):
            totals = activity_totals(reports[year].cash_flow_activities)
            history.append({
                "year": year,
                "operating": as_float(totals["operating"]),
                "investing": as_float(totals["investing"]),
                "financing": as_float(totals["financing"]),
                "net_cash_flow": as_float(totals["net_cash_flow"]),
            })

        for previous, current in zip(history, history[1:]):
            current["operating_growth"] = growth_rate(current["operating"], previous["operating"])
        return history

    def generate_summary(self, report: FinancialReport) -> Dict[str, Any]:
        totals = activity_totals(self._activities(report))
        operating = totals["operating"]
        pattern = classify_pattern(float(operating), float(totals["investing"]), float(totals["financing"]))

        if operating > STRONG_OPERATING_CASH_FLOW:
            health = "strong"
        elif operating <= 0:
            health = "weak"
        else:
            health = "moderate"

        strengths, concerns, recommendations = [], [], []
        stage = pattern["stage"]
        if stage == "mature":
            strengths.append("Arus kas operasi mampu mendanai investasi dan kewajiban")
            recommendations.append("Pertimbangkan peningkatan pembagian SHU atau investasi produktif")
        elif stage == "growth":
            strengths.append("Koperasi sedang melakukan ekspansi usaha")
            concerns.append("Ketergantungan pada sumber pendanaan eksternal")
            recommendations.append("Pantau kemampuan pembayaran kewajiban pendanaan")
        elif stage == "startup":
            concerns.append("Arus kas operasi masih negatif")
            recommendations.append("Fokus pada peningkatan pendapatan operasional")
        elif stage == "decline":
            concerns.append("Penjualan aset digunakan untuk menutup kekurangan kas")
            recommendations.append("Lakukan evaluasi menyeluruh atas kegiatan usaha")
        else:
            recommendations.append("Tinjau kembali komposisi arus kas")

        if operating <= 0:
            concerns.append("Kegiatan operasi tidak menghasilkan kas")

        return {
            "health": health,
            "pattern": pattern["pattern"],
            "stage": stage,
            "strengths": strengths,
            "concerns": concerns,
            "recommendations": recommendations,
        }

    def forecast(self, cooperative_id: UUID, year: int) -> Dict[str, Any]:
        years = [year - 3, year - 2, year - 1]
        reports = self.get_approved_by_year(cooperative_id, ReportType.CASH_FLOW, years)
        if len(reports) < 2:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail="At least two approved cash flow reports from the previous three years are required"
            )

        history = [(y, activity_totals(reports[y].cash_flow_activities)) for y in sorted(reports)]
        operating = [float(t["operating"]) for _, t in history]
        last = history[-1][1]

        growth_rates = [
            (current - previous) / abs(previous)
            for previous, current in zip(operating, operating[1:]) if previous != 0
        ]
        realistic_growth = statistics.mean(growth_rates) if growth_rates else 0.0

        scenarios = {}
        for name, params in FORECAST_SCENARIOS.items():
            growth = realistic_growth if params["growth"] is None else params["growth"]
            op = float(last["operating"]) * (1 + growth)
            inv = float(last["investing"]) * params["investing"]
            fin = float(last["financing"]) * params["financing"]
            scenarios[name] = {
                "growth_rate": round(growth, 4),
                "operating": round(op, 2),
                "investing": round(inv, 2),
                "financing": round(fin, 2),
                "net_cash_flow": round(op + inv + fin, 2),
            }

        mean = statistics.mean(operating)
        variance = sample_variance(operating)
        cv = abs(variance / mean) if mean != 0 else 1.0
        if cv < 0.2:
            confidence = "high"
        elif cv < 0.5:
            confidence = "medium"
        else:
            confidence = "low"

        volatility_ratio = math.sqrt(variance) / abs(mean) if mean != 0 else 1.0
        if volatility_ratio < 0.1:
            volatility = "low"
        elif volatility_ratio < 0.3:
            volatility = "medium"
        else:
            volatility = "high"

        return {
            "cooperative_id": str(cooperative_id),
            "forecast_year": year,
            "historical_years": [y for y, _ in history],
            "historical_operating": [round(v, 2) for v in operating],
            "scenarios": scenarios,
            "confidence": confidence,
            "volatility": volatility,
            "trend_consistency": trend_consistency(operating),
        }

    def free_cash_flow(self, report: FinancialReport) -> Dict[str, Any]:
        activities = self._activities(report)
        operating = activity_totals(activities)["operating"]
        capital_expenditure = sum_amounts(
            a.current_year_amount for a in activities
            if a.activity_category == "investing" and not a.is_subtotal and to_decimal(a.current_year_amount) < 0
        )
        fcf = operating + capital_expenditure

        balance_sheet = self.get_approved_report(report.cooperative_id, ReportType.BALANCE_SHEET, report.reporting_year)
        assets = category_total(balance_sheet.balance_sheet_accounts, "asset") if balance_sheet else Decimal("0")
        equity = category_total(balance_sheet.balance_sheet_accounts, "equity") if balance_sheet else Decimal("0")

        if fcf > 0:
            interpretation = "positive"
        elif operating > 0:
            interpretation = "investing"
        else:
            interpretation = "concerning"

        return {
            "operating_cash_flow": as_float(operating),
            "capital_expenditure": as_float(capital_expenditure),
            "free_cash_flow": as_float(fcf),
            "fcf_to_assets": round(safe_divide(fcf, assets) * 100, 2),
            "fcf_to_equity": round(safe_divide(fcf, equity) * 100, 2),
            "interpretation": interpretation,
        }

    def analyze(self, report: FinancialReport) -> Dict[str, Any]:
        return {
            "report_id": str(report.id),
            "cooperative_name": report.cooperative_name,
            "reporting_year": report.reporting_year,
            "cash_flow": self.prepare_cash_flow_data(report),
            "pattern": self.analyze_pattern(report),
            "ratios": self.calculate_ratios(report),
            "free_cash_flow": self.free_cash_flow(report),
            "indirect_method": self.calculate_operating_cash_flow_indirect(report.cooperative_id, report.reporting_year),
            "historical": self.historical_comparison(report),
            "summary": self.generate_summary(report),
        }
