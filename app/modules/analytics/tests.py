"""
Tests para el módulo de Analytics

Cubre:
- Cálculo de KPIs anuales, tendencias y snapshots persistidos
- Dashboards de admin_dinas y admin_koperasi
- Widgets personalizados por usuario
"""

import pytest
from datetime import date
from uuid import uuid4

from fastapi import HTTPException

from conftest import balance_sheet_lines, create_report, income_statement_lines
from app.modules.analytics.models import KPIMetric
from app.modules.analytics.services import DashboardAnalyticsService, KPIService, format_kpi_value
from app.modules.analytics.services.dashboard import financial_health_level, quarter_deadline
from app.modules.analytics.services.kpi import (
    linear_forecast, performance_rating, portfolio_quality, series_growth, trend_direction
)
from app.modules.financial.models import ReportPeriod, ReportStatus, ReportType


# ===== FIXTURES =====

@pytest.fixture
def approved_statements(db_session, cooperative):
    """Neraca y laba rugi aprobados para 2024"""
    create_report(db_session, cooperative, year=2024, lines=balance_sheet_lines(1000000, 400000, 600000))
    create_report(
        db_session, cooperative, report_type=ReportType.INCOME_STATEMENT, year=2024,
        lines=income_statement_lines(500000, 300000)
    )


@pytest.fixture
def widget_data():
    return {"widget_type": "kpi", "title": "ROA Tahunan", "configuration": {"kpi": "roa"}, "width": 6}


# ===== PURE FUNCTIONS =====

class TestKPIFunctions:
    """Funciones de tendencia, pronóstico y calificación"""

    def test_trend_direction(self):
        assert trend_direction([5]) == "insufficient_data"
        assert trend_direction([100, 100, 100]) == "stable"
        assert trend_direction([800, 900, 1000]) == "strongly_increasing"
        assert trend_direction([1000, 900, 800]) == "strongly_decreasing"

    def test_series_growth(self):
        assert series_growth([100, 150]) == 50.0
        assert series_growth([0, 150]) == 0.0

    def test_linear_forecast(self):
        forecast = linear_forecast([100, 200, 300], 2)
        assert forecast == [
            {"period": 1, "value": 400.0, "confidence": 80},
            {"period": 2, "value": 500.0, "confidence": 70},
        ]

    def test_linear_forecast_never_negative(self):
        forecast = linear_forecast([300, 100], 3)
        assert all(point["value"] >= 0 for point in forecast)

    def test_default_rate_rating_prefers_lower_values(self):
        assert performance_rating("loan_default_rate", [5, 3, 1]) == "excellent"
        assert performance_rating("roa", []) == "no_data"

    def test_portfolio_quality(self):
        assert portfolio_quality(1.5) == "excellent"
        assert portfolio_quality(4) == "good"
        assert portfolio_quality(7) == "fair"
        assert portfolio_quality(12) == "poor"

    def test_format_kpi_value(self):
        assert format_kpi_value("roa", 12.5) == "12.50%"
        assert format_kpi_value("total_members", 150) == "150"
        assert format_kpi_value("total_assets", 1000000).startswith("Rp")

    def test_quarter_deadline(self):
        assert quarter_deadline(2024, ReportPeriod.Q1) == date(2024, 4, 15)
        assert quarter_deadline(2024, ReportPeriod.Q3) == date(2024, 10, 15)
        assert quarter_deadline(2024, ReportPeriod.Q4) == date(2025, 1, 15)

    def test_financial_health_level(self):
        assert financial_health_level(100, 0.3, 1000)["level"] == "excellent"
        assert financial_health_level(-1, 2, 0) == {"score": 0, "level": "poor"}


# ===== KPI SERVICE =====

class TestKPIService:
    """KPIs calculados desde reportes aprobados"""

    def test_calculate_kpis(self, db_session, cooperative, approved_statements):
        kpis = KPIService(db_session).calculate_kpis(cooperative.id, 2024)

        assert kpis["total_assets"] == 1000000.0
        assert kpis["net_income"] == 200000.0
        assert kpis["roa"] == 20.0
        assert kpis["roe"] == 33.33
        assert kpis["cost_to_income_ratio"] == 60.0
        assert kpis["operational_efficiency"] == 40.0
        assert kpis["member_growth_rate"] == 0.0

    def test_kpis_without_reports_are_zero(self, db_session, cooperative):
        kpis = KPIService(db_session).calculate_kpis(cooperative.id, 2024)
        assert kpis["total_assets"] == 0.0
        assert kpis["loan_default_rate"] == 0.0
        assert kpis["loan_portfolio_quality"] == "excellent"

    def test_unknown_cooperative(self, db_session):
        with pytest.raises(HTTPException) as exc_info:
            KPIService(db_session).calculate_kpis(uuid4(), 2024)
        assert exc_info.value.status_code == 404

    def test_pending_reports_are_ignored(self, db_session, cooperative):
        create_report(
            db_session, cooperative, status=ReportStatus.SUBMITTED,
            lines=balance_sheet_lines(1000000, 400000, 600000)
        )
        assert KPIService(db_session).calculate_kpis(cooperative.id, 2024)["total_assets"] == 0.0

    def test_record_kpis_upserts(self, db_session, cooperative, approved_statements):
        service = KPIService(db_session)
        first = service.record_kpis(cooperative.id, 2024)
        second = service.record_kpis(cooperative.id, 2024)

        assert len(first) == len(second)
        count = db_session.query(KPIMetric).filter(KPIMetric.cooperative_id == cooperative.id).count()
        assert count == len(first)

    def test_member_growth_uses_previous_snapshot(self, db_session, cooperative):
        service = KPIService(db_session)
        service.record_kpis(cooperative.id, 2023)

        cooperative.total_members = 165
        db_session.commit()

        assert service.calculate_kpis(cooperative.id, 2024)["member_growth_rate"] == 10.0
        metric = next(m for m in service.record_kpis(cooperative.id, 2024) if m.metric_name == "total_members")
        assert float(metric.previous_value) == 150.0

    def test_kpi_trends(self, db_session, cooperative):
        for year, assets in ((2022, 800000), (2023, 900000), (2024, 1000000)):
            create_report(db_session, cooperative, year=year, lines=balance_sheet_lines(assets, 300000, assets - 300000))

        trends = KPIService(db_session).get_kpi_trends(cooperative.id, "total_assets", periods=3, end_year=2024)
        assert [point["year"] for point in trends["data"]] == [2022, 2023, 2024]
        assert trends["growth_rate"] == 25.0
        assert trends["trend_direction"] == "strongly_increasing"
        assert len(trends["forecast"]) == 3

    def test_unknown_kpi(self, db_session, cooperative):
        with pytest.raises(HTTPException) as exc_info:
            KPIService(db_session).get_kpi_trends(cooperative.id, "market_share")
        assert exc_info.value.status_code == 404

    def test_kpi_summary(self, db_session, cooperative, approved_statements):
        summary = KPIService(db_session).get_kpi_summary(cooperative.id, 2024)
        assert summary["financial_health"]["roa"]["formatted"] == "20.00%"
        assert summary["member_metrics"]["total_members"]["value"] == 150


# ===== DASHBOARDS =====

class TestDashboardAnalytics:
    """Dashboards por rol"""

    def test_admin_dinas_overview(self, db_session, cooperative, other_cooperative, dinas_user):
        create_report(db_session, cooperative, status=ReportStatus.SUBMITTED)
        result = DashboardAnalyticsService(db_session).get_admin_dinas_analytics()

        assert result["overview"]["total_cooperatives"] == 2
        assert result["overview"]["pending_approvals"] == 1
        assert result["cooperative_statistics"]["by_business_type"]["simpan_pinjam"]["count"] == 1
        assert {"report_statistics", "compliance_status", "system_alerts"} <= set(result)

    def test_admin_koperasi_dashboard(self, db_session, cooperative):
        result = DashboardAnalyticsService(db_session).get_admin_koperasi_analytics(cooperative.id)

        assert result["cooperative_overview"]["name"] == "Koperasi Sejahtera"
        assert result["report_status"]["balance_sheet"] == "not_started"
        assert result["member_analytics"] == {"available": False}
        assert isinstance(result["upcoming_deadlines"], list)

    def test_admin_koperasi_unknown_cooperative(self, db_session):
        with pytest.raises(HTTPException) as exc_info:
            DashboardAnalyticsService(db_session).get_admin_koperasi_analytics(uuid4())
        assert exc_info.value.status_code == 404


# ===== API =====

class TestAnalyticsAPI:
    """Endpoints de analytics y widgets"""

    def test_dinas_dashboard_requires_admin_dinas(self, client, koperasi_headers):
        response = client.get("/api/v1/analytics/dashboard/dinas", headers=koperasi_headers)
        assert response.status_code == 403

    def test_dinas_dashboard(self, client, dinas_headers, cooperative):
        response = client.get("/api/v1/analytics/dashboard/dinas", headers=dinas_headers)
        assert response.status_code == 200
        assert response.json()["overview"]["total_cooperatives"] == 1

    def test_koperasi_dashboard(self, client, koperasi_headers, cooperative):
        response = client.get("/api/v1/analytics/dashboard/koperasi", headers=koperasi_headers)
        assert response.status_code == 200
        assert response.json()["cooperative_overview"]["cooperative_id"] == str(cooperative.id)

    def test_kpis_endpoint(self, client, koperasi_headers, approved_statements):
        response = client.get("/api/v1/analytics/kpis", params={"year": 2024}, headers=koperasi_headers)
        assert response.status_code == 200
        assert response.json()["roa"] == 20.0

    def test_record_kpis_endpoint(self, client, koperasi_headers, approved_statements):
        response = client.post("/api/v1/analytics/kpis/record", params={"year": 2024}, headers=koperasi_headers)
        assert response.status_code == 200
        assert response.json()["year"] == 2024
        assert response.json()["metrics"]

    def test_widget_lifecycle(self, client, koperasi_headers, widget_data):
        response = client.post("/api/v1/analytics/widgets", json=widget_data, headers=koperasi_headers)
        assert response.status_code == 201
        widget_id = response.json()["id"]

        response = client.put(
            f"/api/v1/analytics/widgets/{widget_id}", json={"title": "ROE Tahunan"}, headers=koperasi_headers
        )
        assert response.status_code == 200
        assert response.json()["title"] == "ROE Tahunan"
        assert response.json()["width"] == 6

        response = client.post(f"/api/v1/analytics/widgets/{widget_id}/refresh", headers=koperasi_headers)
        assert response.status_code == 200
        assert response.json()["last_refreshed_at"] is not None

        response = client.delete(f"/api/v1/analytics/widgets/{widget_id}", headers=koperasi_headers)
        assert response.status_code == 204
        response = client.get("/api/v1/analytics/widgets", headers=koperasi_headers)
        assert response.json() == []

    def test_invalid_widget_type(self, client, koperasi_headers, widget_data):
        widget_data["widget_type"] = "weather"
        response = client.post("/api/v1/analytics/widgets", json=widget_data, headers=koperasi_headers)
        assert response.status_code == 422

    def test_widgets_are_private(self, client, koperasi_headers, dinas_headers, widget_data):
        widget_id = client.post(
            "/api/v1/analytics/widgets", json=widget_data, headers=koperasi_headers
        ).json()["id"]
        response = client.get(f"/api/v1/analytics/widgets/{widget_id}", headers=dinas_headers)
        assert response.status_code == 404

    def test_stale_widgets(self, client, koperasi_headers, widget_data):
        widget_data["refresh_interval"] = 60
        widget_id = client.post(
            "/api/v1/analytics/widgets", json=widget_data, headers=koperasi_headers
        ).json()["id"]

        response = client.get("/api/v1/analytics/widgets/stale", headers=koperasi_headers)
        assert response.status_code == 200
        assert [w["id"] for w in response.json()] == [widget_id]

        client.post(f"/api/v1/analytics/widgets/{widget_id}/refresh", headers=koperasi_headers)
        response = client.get("/api/v1/analytics/widgets/stale", headers=koperasi_headers)
        assert response.json() == []
