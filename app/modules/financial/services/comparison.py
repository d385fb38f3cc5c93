"""
Year-over-year and cross-cooperative comparison of approved reports
"""

import statistics
from typing import Any, Dict, List
from uuid import UUID

from fastapi import HTTPException, status

from app.modules.cooperatives.models import Cooperative
from app.modules.financial.models import (
    FinancialReport, MEMBER_EQUITY_COMPONENTS, RETAINED_EARNINGS_COMPONENTS, ReportType
)
from app.modules.financial.services.base import BaseFinancialService
from app.modules.financial.services.balance_sheet import category_total
from app.modules.financial.services.cash_flow import activity_totals
from app.modules.financial.services.income_statement import income_totals
from app.modules.financial.utils.calculations import (
    as_float, coefficient_of_variation, growth_rate, linear_regression, percentile,
    percentile_rank, population_std, safe_divide, sum_amounts
)

COMPARABLE_TYPES = (
    ReportType.BALANCE_SHEET, ReportType.INCOME_STATEMENT, ReportType.CASH_FLOW, ReportType.EQUITY_CHANGES
)

# Lower is better for these metrics when ranking
ASCENDING_METRIC_KEYWORDS = ("liabilities", "expenses")


def _contains(account, keyword: str) -> bool:
    return keyword in (account.account_name or "").lower()


def extract_metrics(report: FinancialReport) -> Dict[str, float]:
    """Headline figures of an approved report, keyed by metric name."""
    if report.report_type == ReportType.BALANCE_SHEET:
        accounts = [a for a in report.balance_sheet_accounts if not a.is_subtotal]
        assets = [a for a in accounts if a.account_category == "asset"]
        liabilities = [a for a in accounts if a.account_category == "liability"]
        return {
            "total_assets": as_float(category_total(accounts, "asset")),
            "current_assets": as_float(sum_amounts(
                a.current_year_amount for a in assets
                if a.account_subcategory == "current_asset" or _contains(a, "lancar")
            )),
            "fixed_assets": as_float(sum_amounts(
                a.current_year_amount for a in assets
                if a.account_subcategory == "fixed_asset" or _contains(a, "tetap")
            )),
            "total_liabilities": as_float(category_total(accounts, "liability")),
            "current_liabilities": as_float(sum_amounts(
                a.current_year_amount for a in liabilities
                if a.account_subcategory == "current_liability" or _contains(a, "lancar")
            )),
            "total_equity": as_float(category_total(accounts, "equity")),
            "cash_and_equivalents": as_float(sum_amounts(
                a.current_year_amount for a in assets if _contains(a, "kas")
            )),
        }

    if report.report_type == ReportType.INCOME_STATEMENT:
        accounts = [a for a in report.income_statement_accounts if not a.is_subtotal]
        totals = income_totals(accounts)
        revenue_rows = [a for a in accounts if a.account_category == "revenue"]
        expense_rows = [a for a in accounts if a.account_category == "expense"]
        cost_of_goods = sum_amounts(a.current_year_amount for a in expense_rows if _contains(a, "pokok"))
        return {
            "total_revenue": as_float(totals["total_revenue"]),
            "operating_revenue": as_float(sum_amounts(
                a.current_year_amount for a in revenue_rows if not _contains(a, "lain")
            )),
            "other_income": as_float(totals["total_other_income"]),
            "total_expenses": as_float(totals["total_expenses"]),
            "operating_expenses": as_float(sum_amounts(
                a.current_year_amount for a in expense_rows if not _contains(a, "lain")
            )),
            "other_expenses": as_float(totals["total_other_expenses"]),
            "net_income": as_float(totals["net_income"]),
            "gross_profit": as_float(totals["total_revenue"] - cost_of_goods),
        }

    if report.report_type == ReportType.CASH_FLOW:
        totals = activity_totals(report.cash_flow_activities)
        data = report.data or {}
        return {
            "operating_cash_flow": as_float(totals["operating"]),
            "investing_cash_flow": as_float(totals["investing"]),
            "financing_cash_flow": as_float(totals["financing"]),
            "net_cash_flow": as_float(totals["net_cash_flow"]),
            "beginning_cash": as_float(data.get("beginning_cash_balance")),
            "ending_cash": as_float(data.get("ending_cash_balance")),
        }

    if report.report_type == ReportType.EQUITY_CHANGES:
        rows = list(report.equity_changes)
        beginning = sum_amounts(r.beginning_balance for r in rows)
        ending = sum_amounts(r.ending_balance for r in rows)
        return {
            "total_beginning_equity": as_float(beginning),
            "total_ending_equity": as_float(ending),
            "net_change": as_float(ending - beginning),
            "member_equity": as_float(sum_amounts(
                r.ending_balance for r in rows if r.equity_component in MEMBER_EQUITY_COMPONENTS
            )),
            "retained_earnings": as_float(sum_amounts(
                r.ending_balance for r in rows if r.equity_component in RETAINED_EARNINGS_COMPONENTS
            )),
        }

    return {}


def trend_of(years: List[int], values: List[float]) -> Dict[str, Any]:
    slope, _ = linear_regression(years, values)
    if slope > 0:
        direction = "increasing"
    elif slope < 0:
        direction = "decreasing"
    else:
        direction = "stable"

    if abs(slope) > 1_000_000:
        strength = "strong"
    elif abs(slope) > 100_000:
        strength = "moderate"
    else:
        strength = "weak"
    return {"slope": round(slope, 2), "direction": direction, "strength": strength}


def performance_level(rank: float) -> str:
    if rank >= 75:
        return "excellent"
    if rank >= 50:
        return "above_average"
    if rank >= 25:
        return "below_average"
    return "poor"


def is_ascending_metric(metric: str) -> bool:
    return any(keyword in metric for keyword in ASCENDING_METRIC_KEYWORDS)


class YearOverYearComparisonService(BaseFinancialService):

    def _check_type(self, report_type: ReportType):
        if report_type not in COMPARABLE_TYPES:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Comparison is not available for {report_type.value} reports"
            )

    def compare_across_years(self, cooperative_id: UUID, years: List[int], report_type: ReportType) -> Dict[str, Any]:
        self._check_type(report_type)
        reports = self.get_approved_by_year(cooperative_id, report_type, sorted(set(years)))
        if not reports:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="No approved reports found for the requested years"
            )

        ordered_years = sorted(reports)
        yearly_data = [{"year": y, "metrics": extract_metrics(reports[y])} for y in ordered_years]
        metric_names = list(yearly_data[0]["metrics"].keys())

        trends, growth_rates, variance_analysis = {}, {}, {}
        for metric in metric_names:
            values = [entry["metrics"].get(metric, 0.0) for entry in yearly_data]

            if len(values) >= 2:
                trends[metric] = trend_of(ordered_years, values)
            growth_rates[metric] = [
                {"from_year": a["year"], "to_year": b["year"],
                 "growth_rate": growth_rate(b["metrics"].get(metric, 0.0), a["metrics"].get(metric, 0.0))}
                for a, b in zip(yearly_data, yearly_data[1:])
            ]

            cv = coefficient_of_variation(values) or 0.0
            if cv < 10:
                volatility = "low"
            elif cv < 25:
                volatility = "medium"
            else:
                volatility = "high"
            variance_analysis[metric] = {
                "mean": round(statistics.mean(values), 2),
                "std_deviation": round(population_std(values), 2),
                "coefficient_of_variation": round(cv, 2),
                "volatility": volatility,
                "min": min(values),
                "max": max(values),
            }

        increasing = [m for m, t in trends.items() if t["direction"] == "increasing"]
        decreasing = [m for m, t in trends.items() if t["direction"] == "decreasing"]
        return {
            "cooperative_id": str(cooperative_id),
            "report_type": report_type.value,
            "yearly_data": yearly_data,
            "trends": trends,
            "growth_rates": growth_rates,
            "variance_analysis": variance_analysis,
            "summary": {
                "years_analyzed": len(ordered_years),
                "period": f"{ordered_years[0]}-{ordered_years[-1]}",
                "increasing_metrics": increasing,
                "decreasing_metrics": decreasing,
                "high_volatility_metrics": [
                    m for m, v in variance_analysis.items() if v["volatility"] == "high"
                ],
            },
        }

    def compare_cooperatives(
        self,
        cooperative_ids: List[UUID],
        year: int,
        report_type: ReportType
    ) -> Dict[str, Any]:
        self._check_type(report_type)
        entries = []
        for cooperative_id in cooperative_ids:
            report = self.get_approved_report(cooperative_id, report_type, year)
            if report:
                entries.append({
                    "cooperative_id": str(cooperative_id),
                    "cooperative_name": report.cooperative_name,
                    "metrics": extract_metrics(report),
                })
        if not entries:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="No approved reports found for the selected cooperatives"
            )

        metric_names = list(entries[0]["metrics"].keys())
        rankings, benchmarks = {}, {}
        peer_analysis = {entry["cooperative_id"]: {} for entry in entries}

        for metric in metric_names:
            values = [entry["metrics"].get(metric, 0.0) for entry in entries]
            ascending = is_ascending_metric(metric)
            ordered = sorted(entries, key=lambda e: e["metrics"].get(metric, 0.0), reverse=not ascending)
            rankings[metric] = [
                {"rank": position, "cooperative_id": e["cooperative_id"],
                 "cooperative_name": e["cooperative_name"], "value": e["metrics"].get(metric, 0.0)}
                for position, e in enumerate(ordered, start=1)
            ]
            benchmarks[metric] = {
                "min": min(values),
                "max": max(values),
                "average": round(statistics.mean(values), 2),
                "median": round(statistics.median(values), 2),
                "p25": round(percentile(values, 25), 2),
                "p75": round(percentile(values, 75), 2),
            }
            for entry in entries:
                value = entry["metrics"].get(metric, 0.0)
                rank = percentile_rank(values, value)
                if ascending:
                    rank = round(100 - rank, 2)
                peer_analysis[entry["cooperative_id"]][metric] = {
                    "value": value,
                    "percentile_rank": rank,
                    "performance_level": performance_level(rank),
                    "vs_average": round(value - benchmarks[metric]["average"], 2),
                }

        return {
            "year": year,
            "report_type": report_type.value,
            "cooperatives": entries,
            "rankings": rankings,
            "benchmarks": benchmarks,
            "peer_analysis": peer_analysis,
            "summary": {
                "requested_cooperatives": len(cooperative_ids),
                "compared_cooperatives": len(entries),
            },
        }

    def _metrics_for(self, cooperative_id: UUID, report_type: ReportType, year: int) -> Dict[str, float]:
        report = self.get_approved_report(cooperative_id, report_type, year)
        return extract_metrics(report) if report else {}

    def generate_financial_dashboard(self, cooperative_id: UUID, year: int) -> Dict[str, Any]:
        cooperative = self.db.query(Cooperative).filter(Cooperative.id == cooperative_id).first()
        balance = self._metrics_for(cooperative_id, ReportType.BALANCE_SHEET, year)
        income = self._metrics_for(cooperative_id, ReportType.INCOME_STATEMENT, year)
        cash = self._metrics_for(cooperative_id, ReportType.CASH_FLOW, year)

        assets = balance.get("total_assets", 0.0)
        equity = balance.get("total_equity", 0.0)
        liabilities = balance.get("total_liabilities", 0.0)
        net_income = income.get("net_income", 0.0)
        revenue = income.get("total_revenue", 0.0)

        current_ratio = round(safe_divide(balance.get("current_assets"), balance.get("current_liabilities")), 2)
        roa = round(safe_divide(net_income, assets) * 100, 2)
        roe = round(safe_divide(net_income, equity) * 100, 2)
        debt_to_equity = round(safe_divide(liabilities, equity), 2)

        trend_analysis = []
        for trend_year in range(year - 2, year + 1):
            bs = self._metrics_for(cooperative_id, ReportType.BALANCE_SHEET, trend_year)
            inc = self._metrics_for(cooperative_id, ReportType.INCOME_STATEMENT, trend_year)
            trend_analysis.append({
                "year": trend_year,
                "total_assets": bs.get("total_assets", 0.0),
                "total_equity": bs.get("total_equity", 0.0),
                "total_revenue": inc.get("total_revenue", 0.0),
                "net_income": inc.get("net_income", 0.0),
            })
        previous = trend_analysis[-2]

        alerts = []
        if balance and balance.get("current_liabilities") and current_ratio < 1:
            alerts.append({"type": "liquidity", "severity": "high",
                           "message": f"Rasio lancar di bawah 1 ({current_ratio})"})
        if income and equity and roe < 0:
            alerts.append({"type": "profitability", "severity": "high",
                           "message": f"Return on equity negatif ({roe}%)"})
        if balance and debt_to_equity > 2:
            alerts.append({"type": "leverage", "severity": "medium",
                           "message": f"Rasio utang terhadap ekuitas tinggi ({debt_to_equity})"})

        return {
            "overview": {
                "cooperative_id": str(cooperative_id),
                "cooperative_name": cooperative.name if cooperative else None,
                "year": year,
                "has_balance_sheet": bool(balance),
                "has_income_statement": bool(income),
                "has_cash_flow": bool(cash),
            },
            "key_metrics": {
                "liquidity": {
                    "current_ratio": current_ratio,
                    "cash_and_equivalents": balance.get("cash_and_equivalents", 0.0),
                    "operating_cash_flow": cash.get("operating_cash_flow", 0.0),
                },
                "profitability": {
                    "net_income": net_income,
                    "roa": roa,
                    "roe": roe,
                    "profit_margin": round(safe_divide(net_income, revenue) * 100, 2),
                },
                "leverage": {
                    "debt_to_equity": debt_to_equity,
                    "equity_ratio": round(safe_divide(equity, assets) * 100, 2),
                },
            },
            "trend_analysis": trend_analysis,
            "performance_indicators": {
                "asset_growth": growth_rate(assets, previous["total_assets"]),
                "revenue_growth": growth_rate(revenue, previous["total_revenue"]),
                "profit_growth": growth_rate(net_income, previous["net_income"]),
            },
            "alerts": alerts,
        }
