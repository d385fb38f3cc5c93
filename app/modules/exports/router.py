"""
Exports Router

Batch export of financial reports. Cooperative admins only export their own
cooperative's reports; oversight users export across cooperatives.
"""
from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import FileResponse
from sqlalchemy.orm import Session

from app.database.database import get_db
from app.modules.auth.dependencies import AuthDependencies
from app.modules.auth.schemas import AuthContext
from app.modules.exports.schemas import (
    BatchExportRequest, BatchHistory, BatchStatus, ExportCleanupResult, ExportStatistics
)
from app.modules.exports.service import BatchExportService

router = APIRouter(prefix="/exports", tags=["Exports"])


@router.post("/batch", response_model=BatchStatus, status_code=status.HTTP_202_ACCEPTED)
async def create_batch_export(
    criteria: BatchExportRequest,
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role()),
    db: Session = Depends(get_db)
):
    try:
        return BatchExportService(db).export(criteria, auth_context)
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error generating report: {str(e)}")


@router.get("/batch/{batch_id}/status", response_model=BatchStatus)
async def get_batch_status(
    batch_id: str,
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role()),
    db: Session = Depends(get_db)
):
    service = BatchExportService(db)
    data = service.get_status(batch_id)
    service.ensure_owner(data, auth_context)
    return data


@router.get("/batch/{batch_id}/download")
async def download_batch_export(
    batch_id: str,
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role()),
    db: Session = Depends(get_db)
):
    path = BatchExportService(db).download(batch_id, auth_context)
    return FileResponse(path, media_type="application/zip", filename=f"Laporan_Keuangan_{batch_id}.zip")


@router.post("/batch/{batch_id}/cancel", response_model=BatchStatus)
async def cancel_batch_export(
    batch_id: str,
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role()),
    db: Session = Depends(get_db)
):
    return BatchExportService(db).cancel(batch_id, auth_context)


@router.get("/history", response_model=BatchHistory)
async def get_export_history(
    page: int = Query(1, ge=1),
    per_page: int = Query(10, ge=1, le=50),
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role()),
    db: Session = Depends(get_db)
):
    return BatchExportService(db).history(auth_context, page, per_page)


@router.get("/statistics", response_model=ExportStatistics)
async def get_export_statistics(
    auth_context: AuthContext = Depends(AuthDependencies.require_admin_dinas()),
    db: Session = Depends(get_db)
):
    return BatchExportService(db).get_statistics()


@router.post("/cleanup", response_model=ExportCleanupResult)
async def cleanup_exports(
    days: int = Query(30, ge=1, le=365),
    auth_context: AuthContext = Depends(AuthDependencies.require_admin_dinas()),
    db: Session = Depends(get_db)
):
    return BatchExportService(db).cleanup_old_exports(days)
