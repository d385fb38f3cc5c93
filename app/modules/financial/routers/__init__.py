"""
Routers package for the financial module
"""

from .reports import router as reports_router
from .analysis import router as analysis_router, templates_router

__all__ = [
    "reports_router",
    "analysis_router",
    "templates_router"
]
