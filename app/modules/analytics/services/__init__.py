"""
Services package for the analytics module
"""

from .dashboard import DashboardAnalyticsService
from .kpi import KPIService, format_kpi_value
from .widgets import DashboardWidgetService

__all__ = [
    "DashboardAnalyticsService",
    "KPIService",
    "format_kpi_value",
    "DashboardWidgetService"
]
