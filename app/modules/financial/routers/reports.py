"""
Financial Reports Router

Report CRUD, the submission workflow, validation and consolidation.
"""

from typing import Annotated, List, Optional
from uuid import UUID

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Response, status
from sqlalchemy.orm import Session

from app.core.config import settings
from app.database.database import get_db
from app.dependencies.cooperativeDependencies import resolve_cooperative_id
from app.modules.auth.dependencies import AuthDependencies
from app.modules.auth.schemas import AuthContext
from app.modules.financial.models import FinancialReport, ReportPeriod, ReportStatus, ReportType
from ..schemas import (
    ConsolidatedReportResponse,
    DuplicateReportRequest,
    FinancialReportDetail,
    FinancialReportList,
    FinancialReportOut,
    FinancialReportPayload,
    RejectReportRequest,
    ValidationResult
)
from ..services import FinancialValidationService, ReportGenerationService, ReportWorkflowService
from ..utils import CSV_HEADERS, create_csv_response, line_items_as_json, prepare_report_csv, report_filename


router = APIRouter(prefix="/financial/reports", tags=["Financial Reports"])

ReportPayload = Annotated[FinancialReportPayload, Body(discriminator="report_type")]


def build_detail(db: Session, report: FinancialReport) -> FinancialReportDetail:
    validation = FinancialValidationService(db).validate_report_integrity(report)
    return FinancialReportDetail(
        **FinancialReportOut.model_validate(report).model_dump(),
        line_items=line_items_as_json(report),
        warnings=validation["warnings"],
    )


@router.get("", response_model=FinancialReportList)
async def list_reports(
    cooperative_id: Optional[UUID] = Query(None, description="Filter by cooperative"),
    report_type: Optional[ReportType] = Query(None),
    reporting_year: Optional[int] = Query(None, ge=2000, le=2100),
    reporting_period: Optional[ReportPeriod] = Query(None),
    report_status: Optional[ReportStatus] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    per_page: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role()),
    db: Session = Depends(get_db)
):
    scope = resolve_cooperative_id(auth_context, cooperative_id, required=False)
    result = ReportGenerationService(db).list_reports(
        cooperative_id=scope,
        report_type=report_type,
        reporting_year=reporting_year,
        reporting_period=reporting_period,
        report_status=report_status,
        page=page,
        per_page=per_page,
    )
    return FinancialReportList(
        items=[FinancialReportOut.model_validate(r) for r in result["items"]],
        total=result["total"],
        page=page,
        per_page=per_page,
    )


@router.post("", response_model=FinancialReportDetail, status_code=status.HTTP_201_CREATED)
async def create_report(
    payload: ReportPayload,
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role()),
    db: Session = Depends(get_db)
):
    """Create a draft report; the body's report_type selects the line item schema."""
    cooperative_id = resolve_cooperative_id(auth_context, payload.cooperative_id)
    report = ReportGenerationService(db).create_report(cooperative_id, payload, auth_context.user_id)
    return build_detail(db, report)


@router.get("/consolidated", response_model=ConsolidatedReportResponse)
async def get_consolidated_report(
    report_type: ReportType = Query(...),
    reporting_year: int = Query(..., ge=2000, le=2100),
    reporting_period: ReportPeriod = Query(ReportPeriod.ANNUAL),
    cooperative_ids: Optional[List[UUID]] = Query(None, description="Defaults to every cooperative"),
    auth_context: AuthContext = Depends(AuthDependencies.require_admin_dinas()),
    db: Session = Depends(get_db)
):
    try:
        return ReportGenerationService(db).generate_consolidated_report(
            cooperative_ids, report_type, reporting_year, reporting_period
        )
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error generating report: {str(e)}")


@router.get("/validation-rules/{report_type}")
async def get_validation_rules(
    report_type: ReportType,
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role())
):
    return FinancialValidationService.get_validation_rules(report_type)


@router.get("/{report_id}", response_model=None)
async def get_report(
    report_id: UUID,
    export: Optional[str] = Query(None, pattern="^(csv)$", description="Export format: csv"),
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role()),
    db: Session = Depends(get_db)
):
    report = ReportGenerationService(db).get_report(report_id, auth_context)
    if export == "csv":
        return create_csv_response(
            prepare_report_csv(report),
            report_filename(report),
            CSV_HEADERS[report.report_type.value]
        )
    return build_detail(db, report)


@router.put("/{report_id}", response_model=FinancialReportDetail)
async def update_report(
    report_id: UUID,
    payload: ReportPayload,
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role()),
    db: Session = Depends(get_db)
):
    service = ReportGenerationService(db)
    report = service.get_report(report_id, auth_context)
    report = service.update_report(report, payload, auth_context.user_id)
    return build_detail(db, report)


@router.delete("/{report_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_report(
    report_id: UUID,
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role()),
    db: Session = Depends(get_db)
):
    service = ReportGenerationService(db)
    report = service.get_report(report_id, auth_context)
    service.delete_report(report, auth_context.user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{report_id}/submit", response_model=FinancialReportOut)
async def submit_report(
    report_id: UUID,
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role()),
    db: Session = Depends(get_db)
):
    service = ReportWorkflowService(db)
    report = service.get_report_or_404(report_id, auth_context)
    return service.submit(report, auth_context)


@router.post("/{report_id}/approve", response_model=FinancialReportOut)
async def approve_report(
    report_id: UUID,
    auth_context: AuthContext = Depends(AuthDependencies.require_admin_dinas()),
    db: Session = Depends(get_db)
):
    service = ReportWorkflowService(db)
    report = service.get_report_or_404(report_id, auth_context)
    return service.approve(report, auth_context)


@router.post("/{report_id}/reject", response_model=FinancialReportOut)
async def reject_report(
    report_id: UUID,
    request: RejectReportRequest,
    auth_context: AuthContext = Depends(AuthDependencies.require_admin_dinas()),
    db: Session = Depends(get_db)
):
    service = ReportWorkflowService(db)
    report = service.get_report_or_404(report_id, auth_context)
    return service.reject(report, request.reason, auth_context)


@router.post("/{report_id}/validate", response_model=ValidationResult)
async def validate_report(
    report_id: UUID,
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role()),
    db: Session = Depends(get_db)
):
    service = FinancialValidationService(db)
    report = service.get_report_or_404(report_id, auth_context)
    return service.validate_report_integrity(report)


@router.post("/{report_id}/duplicate", response_model=FinancialReportDetail, status_code=status.HTTP_201_CREATED)
async def duplicate_report(
    report_id: UUID,
    request: DuplicateReportRequest,
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role()),
    db: Session = Depends(get_db)
):
    service = ReportGenerationService(db)
    report = service.get_report(report_id, auth_context)
    if request.reporting_year == report.reporting_year and request.reporting_period == report.reporting_period:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Target period must differ from the source report"
        )
    copy = service.duplicate_report(report, request.reporting_year, request.reporting_period, auth_context.user_id)
    return build_detail(db, copy)
