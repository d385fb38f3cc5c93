from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
import logging

# Import database components
from app.database.database import sync_engine, Base

# Import middleware
from app.common.middleware import CooperativeMiddleware, SecurityHeadersMiddleware

# Import routers
from app.modules.auth.router import auth_router
from app.modules.cooperatives.router import router as cooperatives_router
from app.modules.financial.routers import reports_router, analysis_router, templates_router
from app.modules.analytics.router import router as analytics_router
from app.modules.exports.router import router as exports_router
from app.modules.notifications.router import router as notifications_router
from app.modules.audit.router import router as audit_router

# Import models for table creation
import app.modules.cooperatives.models
import app.modules.auth.models
import app.modules.financial.models
import app.modules.analytics.models
import app.modules.notifications.models
import app.modules.audit.models

from app.core.config import settings

# Configure logging
logging.basicConfig(
    level=logging.INFO if settings.ENVIRONMENT == "production" else logging.DEBUG,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# FastAPI app
app = FastAPI(
    title="Koperasi Reporting API",
    description="Multi-cooperative financial reporting and analytics API built with FastAPI, PostgreSQL and Celery",
    version="1.0.0",
    docs_url="/docs" if settings.ENVIRONMENT != "production" else None,
    redoc_url="/redoc" if settings.ENVIRONMENT != "production" else None
)

# Add middleware (order matters!)
app.add_middleware(GZipMiddleware, minimum_size=1000)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(CooperativeMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(auth_router, prefix="/api/v1/auth", tags=["Auth"])
app.include_router(cooperatives_router, prefix="/api/v1")
app.include_router(reports_router, prefix="/api/v1")
app.include_router(analysis_router, prefix="/api/v1")
app.include_router(templates_router, prefix="/api/v1")
app.include_router(analytics_router, prefix="/api/v1")
app.include_router(exports_router, prefix="/api/v1")
app.include_router(notifications_router, prefix="/api/v1")
app.include_router(audit_router, prefix="/api/v1")

# Create database tables (no migrations, skipped under tests)
if settings.ENVIRONMENT != "test":
    Base.metadata.create_all(bind=sync_engine)


@app.get("/")
async def read_root():
    return {
        "message": "Koperasi Reporting API is running",
        "version": "1.0.0",
        "environment": settings.ENVIRONMENT
    }


@app.get("/health")
async def health_check():
    return {"status": "healthy", "environment": settings.ENVIRONMENT}


@app.on_event("startup")
async def startup_event():
    logger.info("Koperasi Reporting API starting up...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Debug mode: {settings.DEBUG}")


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Koperasi Reporting API shutting down...")
