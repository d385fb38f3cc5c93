from pydantic import BaseModel, ConfigDict, Field, model_validator
from typing import Any, Dict, List, Literal, Optional
from uuid import UUID

from app.modules.financial.models import ReportStatus, ReportType

ExportType = Literal["cooperative", "year", "report_type", "custom"]


class BatchExportRequest(BaseModel):
    """Criterios de exportación por lote"""
    model_config = ConfigDict(populate_by_name=True)

    export_type: ExportType
    cooperative_ids: Optional[List[UUID]] = None
    years: Optional[List[int]] = None
    report_types: Optional[List[ReportType]] = None
    report_ids: Optional[List[UUID]] = None
    status: Optional[ReportStatus] = ReportStatus.APPROVED
    format: Literal["csv"] = "csv"
    async_export: bool = Field(False, alias="async")

    @model_validator(mode="after")
    def validate_criteria(self):
        required = {
            "cooperative": ("cooperative_ids", "Pilih minimal satu koperasi"),
            "year": ("years", "Pilih minimal satu tahun"),
            "report_type": ("report_types", "Pilih minimal satu jenis laporan"),
            "custom": ("report_ids", "Pilih minimal satu laporan"),
        }
        field, message = required[self.export_type]
        if not getattr(self, field):
            raise ValueError(message)
        return self


class BatchStatus(BaseModel):
    batch_id: str
    status: str
    total_reports: int
    processed_reports: int
    progress_percentage: float
    format: str
    export_type: str
    created_by: Optional[str] = None
    created_at: str
    estimated_completion: Optional[str] = None
    queued_at: Optional[str] = None
    completed_at: Optional[str] = None
    failed_at: Optional[str] = None
    cancelled_at: Optional[str] = None
    cancelled_by: Optional[str] = None
    file_path: Optional[str] = None
    file_size: Optional[int] = None
    error: Optional[str] = None
    last_error_at: Optional[str] = None


class BatchHistory(BaseModel):
    items: List[BatchStatus]
    total: int
    page: int
    per_page: int


class ExportCleanupResult(BaseModel):
    deleted_files: int
    deleted_size: int
    cutoff_date: str


class ExportStatistics(BaseModel):
    total_files: int
    total_size: int
    by_type: Dict[str, Dict[str, Any]]
    storage_path: str
