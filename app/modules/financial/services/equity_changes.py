"""
Equity changes (Laporan Perubahan Ekuitas) analysis
"""

import statistics
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID

from fastapi import HTTPException, status

from app.modules.financial.models import (
    EQUITY_COMPONENTS, FinancialReport, MEMBER_EQUITY_COMPONENTS, ReportType
)
from app.modules.financial.services.base import BaseFinancialService
from app.modules.financial.services.balance_sheet import category_total
from app.modules.financial.utils.calculations import as_float, growth_rate, linear_regression, safe_divide

COMPONENT_LABELS = {
    "simpanan_pokok": "Simpanan Pokok",
    "simpanan_wajib": "Simpanan Wajib",
    "simpanan_sukarela": "Simpanan Sukarela",
    "cadangan": "Cadangan",
    "shu_belum_dibagi": "SHU Belum Dibagi",
    "laba_ditahan": "Laba Ditahan",
}


def component_balances(report: Optional[FinancialReport]) -> Dict[str, Decimal]:
    if not report:
        return {}
    return {row.equity_component: Decimal(row.ending_balance or 0) for row in report.equity_changes}


def trend_direction(first: float, last: float) -> str:
    change = growth_rate(last, first)
    if change > 5:
        return "increasing"
    if change < -5:
        return "decreasing"
    return "stable"


class EquityChangesService(BaseFinancialService):

    def _require_report(self, cooperative_id: UUID, year: int) -> FinancialReport:
        report = self.get_approved_report(cooperative_id, ReportType.EQUITY_CHANGES, year)
        if not report:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"No approved equity changes report for {year}"
            )
        return report

    def calculate_equity_changes(self, cooperative_id: UUID, year: int) -> Dict[str, Any]:
        report = self._require_report(cooperative_id, year)
        prior = component_balances(
            self.get_approved_report(cooperative_id, ReportType.EQUITY_CHANGES, year - 1)
        )

        components = []
        totals = {"beginning_balance": Decimal("0"), "additions": Decimal("0"),
                  "reductions": Decimal("0"), "ending_balance": Decimal("0")}
        for row in report.equity_changes:
            beginning = prior.get(row.equity_component, Decimal(row.beginning_balance or 0))
            ending = Decimal(row.ending_balance or 0)
            components.append({
                "equity_component": row.equity_component,
                "label": COMPONENT_LABELS.get(row.equity_component, row.equity_component),
                "beginning_balance": as_float(beginning),
                "additions": as_float(row.additions),
                "reductions": as_float(row.reductions),
                "ending_balance": as_float(ending),
                "change_amount": as_float(ending - beginning),
                "change_percentage": growth_rate(ending, beginning),
            })
            totals["beginning_balance"] += beginning
            totals["additions"] += Decimal(row.additions or 0)
            totals["reductions"] += Decimal(row.reductions or 0)
            totals["ending_balance"] += ending

        totals_out = {key: as_float(value) for key, value in totals.items()}
        totals_out["net_change"] = as_float(totals["ending_balance"] - totals["beginning_balance"])
        return {
            "cooperative_id": str(cooperative_id),
            "year": year,
            "components": components,
            "totals": totals_out,
            "beginning_from_prior_year": bool(prior),
        }

    def analyze_composition(self, cooperative_id: UUID, year: int) -> Dict[str, Any]:
        report = self._require_report(cooperative_id, year)
        current = component_balances(report)
        total = sum(current.values(), Decimal("0"))
        previous = component_balances(
            self.get_approved_report(cooperative_id, ReportType.EQUITY_CHANGES, year - 1)
        )
        if not previous:
            previous = {row.equity_component: Decimal(row.beginning_balance or 0) for row in report.equity_changes}

        composition = {
            component: {
                "amount": as_float(amount),
                "percentage": round(safe_divide(amount, total) * 100, 2),
            }
            for component, amount in current.items()
        }
        growth = {
            component: growth_rate(amount, previous.get(component, 0))
            for component, amount in current.items()
        }

        history_reports = self.get_approved_by_year(
            cooperative_id, ReportType.EQUITY_CHANGES, list(range(year - 4, year + 1))
        )
        history = {
            component: [
                {"year": y, "amount": as_float(component_balances(history_reports[y]).get(component, 0))}
                for y in sorted(history_reports)
            ]
            for component in current
        }

        ratios = {"equity_ratio": 0.0, "debt_to_equity": 0.0, "equity_multiplier": 0.0}
        balance_sheet = self.get_approved_report(cooperative_id, ReportType.BALANCE_SHEET, year)
        if balance_sheet:
            accounts = list(balance_sheet.balance_sheet_accounts)
            assets = category_total(accounts, "asset")
            liabilities = category_total(accounts, "liability")
            equity = category_total(accounts, "equity")
            ratios = {
                "equity_ratio": round(safe_divide(equity, assets) * 100, 2),
                "debt_to_equity": round(safe_divide(liabilities, equity), 2),
                "equity_multiplier": round(safe_divide(assets, equity), 2),
            }

        dominant = max(current, key=lambda c: current[c]) if current else None
        if ratios["equity_ratio"] > 60:
            strength = "strong"
        elif ratios["equity_ratio"] < 30:
            strength = "weak"
        else:
            strength = "moderate"

        growing = [c for c, g in growth.items() if g > 5]
        declining = [c for c, g in growth.items() if g < -5]
        recommendations = []
        if strength == "weak":
            recommendations.append("Tingkatkan modal sendiri melalui simpanan anggota dan cadangan")
        if declining:
            recommendations.append(
                "Evaluasi penurunan komponen: " + ", ".join(COMPONENT_LABELS.get(c, c) for c in declining)
            )
        if dominant and dominant not in MEMBER_EQUITY_COMPONENTS:
            recommendations.append("Perkuat porsi simpanan anggota dalam struktur ekuitas")

        return {
            "cooperative_id": str(cooperative_id),
            "year": year,
            "total_equity": as_float(total),
            "composition": composition,
            "growth_rates": growth,
            "history": history,
            "ratios": ratios,
            "summary": {
                "dominant_component": dominant,
                "equity_strength": strength,
                "growing_components": growing,
                "declining_components": declining,
                "recommendations": recommendations,
            },
        }

    def compare_across_years(self, cooperative_id: UUID, years: List[int]) -> Dict[str, Any]:
        reports = self.get_approved_by_year(cooperative_id, ReportType.EQUITY_CHANGES, sorted(set(years)))
        if not reports:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="No approved equity changes reports for the requested years"
            )

        snapshots = []
        for year in sorted(reports):
            balances = component_balances(reports[year])
            snapshots.append({
                "year": year,
                "components": {c: as_float(v) for c, v in balances.items()},
                "total": as_float(sum(balances.values(), Decimal("0"))),
            })

        changes = []
        for previous, current in zip(snapshots, snapshots[1:]):
            changes.append({
                "from_year": previous["year"],
                "to_year": current["year"],
                "total_change": round(current["total"] - previous["total"], 2),
                "total_change_percentage": growth_rate(current["total"], previous["total"]),
                "components": {
                    c: growth_rate(amount, previous["components"].get(c, 0))
                    for c, amount in current["components"].items()
                },
            })

        trends = {}
        if len(snapshots) >= 3:
            for component in EQUITY_COMPONENTS + ("total",):
                if component == "total":
                    values = [s["total"] for s in snapshots]
                else:
                    values = [s["components"].get(component, 0.0) for s in snapshots]
                slope, _ = linear_regression([s["year"] for s in snapshots], values)
                trends[component] = {
                    "slope": round(slope, 2),
                    "direction": trend_direction(values[0], values[-1]),
                }

        return {
            "cooperative_id": str(cooperative_id),
            "years": [s["year"] for s in snapshots],
            "snapshots": snapshots,
            "year_over_year": changes,
            "trends": trends,
        }

    def forecast(self, cooperative_id: UUID, forecast_year: int) -> Dict[str, Any]:
        reports = self.get_approved_by_year(
            cooperative_id, ReportType.EQUITY_CHANGES, list(range(forecast_year - 5, forecast_year))
        )

        series: Dict[str, List] = {}
        for year in sorted(reports):
            for component, amount in component_balances(reports[year]).items():
                series.setdefault(component, []).append((year, float(amount)))

        forecasts = {}
        for component, points in series.items():
            if len(points) < 3:
                continue
            xs = [p[0] for p in points]
            ys = [p[1] for p in points]
            slope, intercept = linear_regression(xs, ys)
            predicted = max(0.0, slope * forecast_year + intercept)

            mean = statistics.mean(ys)
            cv = statistics.pvariance(ys) / mean * 100 if mean > 0 else 100.0
            if cv < 10:
                confidence = "high"
            elif cv < 25:
                confidence = "medium"
            else:
                confidence = "low"

            forecasts[component] = {
                "forecast_amount": round(predicted, 2),
                "slope": round(slope, 2),
                "data_points": len(points),
                "confidence": confidence,
                "trend": trend_direction(ys[0], ys[-1]),
            }

        if not forecasts:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail="At least three years of approved equity data are required per component"
            )

        return {
            "cooperative_id": str(cooperative_id),
            "forecast_year": forecast_year,
            "components": forecasts,
            "total_forecast": round(sum(f["forecast_amount"] for f in forecasts.values()), 2),
        }
