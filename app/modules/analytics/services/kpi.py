"""
KPI Service

Annual key performance indicators computed from approved reports, their
trends across years and persisted KPIMetric snapshots.
"""

import logging
import math
import statistics
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from app.common.validators import format_rupiah
from app.modules.analytics.models import KPIMetric
from app.modules.cooperatives.models import Cooperative
from app.modules.financial.models import ReportType
from app.modules.financial.services.balance_sheet import category_total
from app.modules.financial.services.base import BaseFinancialService
from app.modules.financial.services.income_statement import income_totals
from app.modules.financial.utils.calculations import (
    as_float, growth_rate, linear_regression, moving_average, population_std, safe_divide, sum_amounts
)

logger = logging.getLogger(__name__)


CURRENCY_KPIS = (
    "total_assets", "total_liabilities", "total_equity", "net_income",
    "total_loans", "outstanding_loans", "total_savings", "average_savings_per_member",
)
PERCENTAGE_KPIS = (
    "roa", "roe", "loan_default_rate", "member_growth_rate", "savings_growth_rate",
    "cost_to_income_ratio", "operational_efficiency",
)
COUNT_KPIS = ("total_members", "active_members")
NUMERIC_KPIS = CURRENCY_KPIS + PERCENTAGE_KPIS + COUNT_KPIS

# Lower values are better for these
DESCENDING_KPIS = ("loan_default_rate", "cost_to_income_ratio")

PERFORMANCE_CRITERIA = {
    "total_assets": {
        "excellent_growth": 15, "good_growth": 10, "fair_growth": 5,
        "excellent_value": 10_000_000, "good_value": 5_000_000, "fair_value": 1_000_000,
        "low_volatility": 500_000, "medium_volatility": 1_000_000,
    },
    "roa": {
        "excellent_growth": 2, "good_growth": 1, "fair_growth": 0,
        "excellent_value": 15, "good_value": 10, "fair_value": 5,
        "low_volatility": 2, "medium_volatility": 5,
    },
    "roe": {
        "excellent_growth": 3, "good_growth": 2, "fair_growth": 0,
        "excellent_value": 20, "good_value": 15, "fair_value": 10,
        "low_volatility": 3, "medium_volatility": 7,
    },
    "loan_default_rate": {
        "excellent_growth": -2, "good_growth": -1, "fair_growth": 0,
        "excellent_value": 2, "good_value": 5, "fair_value": 10,
        "low_volatility": 1, "medium_volatility": 3,
    },
}
DEFAULT_CRITERIA = {
    "excellent_growth": 10, "good_growth": 5, "fair_growth": 0,
    "excellent_value": 1_000_000, "good_value": 500_000, "fair_value": 100_000,
    "low_volatility": 50_000, "medium_volatility": 100_000,
}


def format_kpi_value(kpi_name: str, value) -> str:
    if kpi_name in CURRENCY_KPIS:
        return format_rupiah(value)
    if kpi_name in PERCENTAGE_KPIS:
        return f"{float(value or 0):.2f}%"
    return f"{int(round(float(value or 0)))}"


def kpi_metric_type(kpi_name: str) -> str:
    if kpi_name in CURRENCY_KPIS:
        return "currency"
    if kpi_name in PERCENTAGE_KPIS:
        return "percentage"
    return "count"


def portfolio_quality(default_rate: float) -> str:
    if default_rate < 2:
        return "excellent"
    if default_rate < 5:
        return "good"
    if default_rate < 10:
        return "fair"
    return "poor"


def trend_direction(values: List[float]) -> str:
    if len(values) < 2:
        return "insufficient_data"
    first_half = values[:math.ceil(len(values) / 2)]
    second_half = values[len(values) // 2:]
    first_avg = statistics.mean(first_half)
    second_avg = statistics.mean(second_half)
    change = (second_avg - first_avg) / first_avg * 100 if first_avg > 0 else 0

    if change > 5:
        return "strongly_increasing"
    if change > 1:
        return "increasing"
    if change > -1:
        return "stable"
    if change > -5:
        return "decreasing"
    return "strongly_decreasing"


def series_growth(values: List[float]) -> float:
    """First to last percentage change, 0 when the series starts at zero."""
    if len(values) < 2 or values[0] == 0:
        return 0.0
    return round((values[-1] - values[0]) / values[0] * 100, 2)


def linear_forecast(values: List[float], periods: int = 3) -> List[Dict[str, Any]]:
    if len(values) < 2:
        return []
    slope, intercept = linear_regression(list(range(len(values))), values)
    forecast = []
    for i in range(1, periods + 1):
        projected = slope * (len(values) - 1 + i) + intercept
        forecast.append({
            "period": i,
            "value": round(max(0.0, projected), 2),
            "confidence": max(50, 90 - 10 * i),
        })
    return forecast


def performance_rating(kpi_name: str, values: List[float]) -> str:
    if not values:
        return "no_data"

    criteria = PERFORMANCE_CRITERIA.get(kpi_name, DEFAULT_CRITERIA)
    descending = kpi_name in DESCENDING_KPIS
    growth = series_growth(values)
    volatility = population_std(values)
    latest = values[-1]

    def reaches(value, threshold):
        return value <= threshold if descending else value >= threshold

    score = 0
    if reaches(growth, criteria["excellent_growth"]):
        score += 40
    elif reaches(growth, criteria["good_growth"]):
        score += 30
    elif reaches(growth, criteria["fair_growth"]):
        score += 20
    else:
        score += 10

    if volatility <= criteria["low_volatility"]:
        score += 30
    elif volatility <= criteria["medium_volatility"]:
        score += 20
    else:
        score += 10

    if reaches(latest, criteria["excellent_value"]):
        score += 30
    elif reaches(latest, criteria["good_value"]):
        score += 20
    elif reaches(latest, criteria["fair_value"]):
        score += 10

    if score >= 80:
        return "excellent"
    if score >= 60:
        return "good"
    if score >= 40:
        return "fair"
    return "poor"


def trend_insights(kpi_name: str, values: List[float]) -> List[str]:
    if not values:
        return ["Belum ada data untuk dianalisis"]

    insights = []
    growth = series_growth(values)
    if growth > 10:
        insights.append(f"Pertumbuhan kuat sebesar {growth:.2f}% menunjukkan kinerja sangat baik")
    elif growth < -10:
        insights.append(f"Penurunan sebesar {growth:.2f}% memerlukan perhatian segera")

    mean = statistics.mean(values)
    volatility_percent = population_std(values) / mean * 100 if mean > 0 else 0
    if volatility_percent > 30:
        insights.append(f"Volatilitas tinggi ({volatility_percent:.2f}%) menunjukkan kinerja tidak stabil")
    elif volatility_percent < 10:
        insights.append("Volatilitas rendah menunjukkan kinerja stabil dan dapat diprediksi")

    direction = trend_direction(values)
    if direction == "strongly_increasing":
        insights.append("Tren meningkat secara konsisten")
    elif direction == "strongly_decreasing":
        insights.append("Tren menurun secara konsisten, perlu intervensi strategis")
    elif direction == "stable":
        insights.append("Kinerja stabil menunjukkan operasional yang konsisten")

    latest = values[-1]
    if kpi_name == "loan_default_rate":
        if latest > 10:
            insights.append("Tingkat kredit bermasalah tinggi, perketat analisis kredit")
        elif latest < 2:
            insights.append("Kualitas portofolio pinjaman sangat baik")
    elif kpi_name == "member_growth_rate":
        if latest > 20:
            insights.append("Pertumbuhan anggota pesat, siapkan peningkatan kapasitas layanan")
        elif latest < 0:
            insights.append("Jumlah anggota menurun, perlu strategi retensi anggota")
    elif kpi_name == "cost_to_income_ratio":
        if latest > 80:
            insights.append("Rasio biaya tinggi menunjukkan operasional kurang efisien")
        elif latest < 50:
            insights.append("Efisiensi operasional sangat baik")
    return insights


class KPIService(BaseFinancialService):

    def __init__(self, db: Session):
        super().__init__(db)

    def _get_cooperative(self, cooperative_id: UUID) -> Cooperative:
        cooperative = self.db.query(Cooperative).filter(Cooperative.id == cooperative_id).first()
        if not cooperative:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Cooperative not found"
            )
        return cooperative

    def _snapshot(self, cooperative_id: UUID, metric_name: str, year: int) -> Optional[KPIMetric]:
        return self.db.query(KPIMetric).filter(
            KPIMetric.cooperative_id == cooperative_id,
            KPIMetric.metric_name == metric_name,
            KPIMetric.period_start == date(year, 1, 1)
        ).first()

    def _total_savings(self, cooperative_id: UUID, year: int) -> Optional[Decimal]:
        report = self.get_approved_report(cooperative_id, ReportType.MEMBER_SAVINGS, year)
        if not report:
            return None
        return sum_amounts(row.ending_balance for row in report.member_savings)

    def calculate_kpis(self, cooperative_id: UUID, year: int) -> Dict[str, Any]:
        cooperative = self._get_cooperative(cooperative_id)

        balance = self.get_approved_report(cooperative_id, ReportType.BALANCE_SHEET, year)
        income = self.get_approved_report(cooperative_id, ReportType.INCOME_STATEMENT, year)
        receivables = self.get_approved_report(cooperative_id, ReportType.MEMBER_RECEIVABLES, year)

        accounts = balance.balance_sheet_accounts if balance else []
        assets = category_total(accounts, "asset")
        liabilities = category_total(accounts, "liability")
        equity = category_total(accounts, "equity")
        totals = income_totals(income.income_statement_accounts if income else [])
        net_income = totals["net_income"]

        previous_members = self._snapshot(cooperative_id, "total_members", year - 1)
        member_growth = growth_rate(
            cooperative.total_members, previous_members.current_value
        ) if previous_members else 0.0

        loans = list(receivables.member_receivables) if receivables else []
        total_loans = sum_amounts(row.loan_amount for row in loans)
        outstanding = sum_amounts(row.outstanding_balance for row in loans)
        defaulted = sum_amounts(row.outstanding_balance for row in loans if row.payment_status != "current")
        default_rate = round(safe_divide(defaulted, outstanding) * 100, 2)

        savings = self._total_savings(cooperative_id, year) or Decimal("0")
        previous_savings = self._total_savings(cooperative_id, year - 1)
        savings_growth = growth_rate(savings, previous_savings) if previous_savings is not None else 0.0

        cost_to_income = round(safe_divide(totals["total_expenses"], totals["total_revenue"]) * 100, 2)

        return {
            "cooperative_id": str(cooperative_id),
            "year": year,
            "total_assets": as_float(assets),
            "total_liabilities": as_float(liabilities),
            "total_equity": as_float(equity),
            "net_income": as_float(net_income),
            "roa": round(safe_divide(net_income, assets) * 100, 2),
            "roe": round(safe_divide(net_income, equity) * 100, 2),
            "total_members": cooperative.total_members or 0,
            "active_members": cooperative.active_members or 0,
            "member_growth_rate": member_growth,
            "total_loans": as_float(total_loans),
            "outstanding_loans": as_float(outstanding),
            "loan_default_rate": default_rate,
            "loan_portfolio_quality": portfolio_quality(default_rate),
            "total_savings": as_float(savings),
            "average_savings_per_member": round(safe_divide(savings, cooperative.total_members), 2),
            "savings_growth_rate": savings_growth,
            "cost_to_income_ratio": cost_to_income,
            "operational_efficiency": round(100 - cost_to_income, 2),
        }

    def get_kpi_summary(self, cooperative_id: UUID, year: int) -> Dict[str, Any]:
        kpis = self.calculate_kpis(cooperative_id, year)

        def entry(name):
            return {"value": kpis[name], "formatted": format_kpi_value(name, kpis[name])}

        return {
            "year": year,
            "financial_health": {
                name: entry(name) for name in ("total_assets", "total_equity", "roa", "roe")
            },
            "member_metrics": {
                "total_members": entry("total_members"),
                "active_members": entry("active_members"),
                "growth_rate": entry("member_growth_rate"),
            },
            "loan_portfolio": {
                "total_loans": entry("total_loans"),
                "outstanding_loans": entry("outstanding_loans"),
                "default_rate": entry("loan_default_rate"),
                "portfolio_quality": kpis["loan_portfolio_quality"],
            },
            "savings_performance": {
                "total_savings": entry("total_savings"),
                "average_per_member": entry("average_savings_per_member"),
                "growth_rate": entry("savings_growth_rate"),
            },
        }

    def get_kpi_trends(self, cooperative_id: UUID, kpi_name: str, periods: int = 5,
                       end_year: Optional[int] = None) -> Dict[str, Any]:
        if kpi_name not in NUMERIC_KPIS:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Unknown KPI: {kpi_name}"
            )

        end_year = end_year or date.today().year
        data = []
        for year in range(end_year - periods + 1, end_year + 1):
            value = self.calculate_kpis(cooperative_id, year)[kpi_name]
            data.append({"year": year, "value": value, "formatted": format_kpi_value(kpi_name, value)})
        values = [float(point["value"]) for point in data]

        return {
            "kpi_name": kpi_name,
            "data": data,
            "trend_direction": trend_direction(values),
            "growth_rate": series_growth(values),
            "volatility": round(population_std(values), 2),
            "moving_average": moving_average(values, 3),
            "forecast": linear_forecast(values, 3),
            "performance_rating": performance_rating(kpi_name, values),
            "insights": trend_insights(kpi_name, values),
        }

    def record_kpis(self, cooperative_id: UUID, year: int) -> List[KPIMetric]:
        """Upsert one KPIMetric per numeric KPI for the year."""
        kpis = self.calculate_kpis(cooperative_id, year)
        now = datetime.now(timezone.utc)
        recorded = []

        for name in NUMERIC_KPIS:
            previous = self._snapshot(cooperative_id, name, year - 1)
            metric = self._snapshot(cooperative_id, name, year)
            if not metric:
                metric = KPIMetric(
                    cooperative_id=cooperative_id,
                    metric_name=name,
                    period_type="annual",
                    period_start=date(year, 1, 1),
                    period_end=date(year, 12, 31),
                )
                self.db.add(metric)
            metric.metric_type = kpi_metric_type(name)
            metric.unit = {"currency": "IDR", "percentage": "%", "count": None}[metric.metric_type]
            metric.current_value = Decimal(str(kpis[name]))
            metric.previous_value = previous.current_value if previous else None
            metric.calculation_method = "approved_reports"
            metric.metric_metadata = {"year": year, "formatted": format_kpi_value(name, kpis[name])}
            metric.calculated_at = now
            recorded.append(metric)

        self.db.commit()
        for metric in recorded:
            self.db.refresh(metric)
        logger.info(f"Recorded {len(recorded)} KPI metrics for cooperative {cooperative_id}, year {year}")
        return recorded
