"""
Tests para el módulo de Exportaciones por lote

Cubre:
- Validación de criterios de exportación
- Generación del ZIP con un CSV por reporte y archivo de estado
- Envío a la cola de Celery y ejecución síncrona de respaldo
- Cancelación, descarga, historial y limpieza de archivos antiguos
"""

import os
import time
import zipfile

import pytest
from fastapi import HTTPException
from pydantic import ValidationError

from conftest import balance_sheet_lines, create_report, income_statement_lines
from app.core.config import settings
from app.modules.audit.models import AuditAction, AuditLog
from app.modules.auth.schemas import AuthContext
from app.modules.exports import service as export_service
from app.modules.exports import tasks as export_tasks
from app.modules.exports.schemas import BatchExportRequest
from app.modules.exports.service import BatchExportService
from app.modules.financial.models import ReportStatus, ReportType


# ===== FIXTURES =====

@pytest.fixture
def storage(tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "EXPORT_STORAGE_PATH", str(tmp_path))
    return tmp_path


@pytest.fixture
def dinas_context(dinas_user):
    return AuthContext(user_id=dinas_user.id, user_name=dinas_user.name, user_role="admin_dinas")


@pytest.fixture
def koperasi_context(koperasi_user, cooperative):
    return AuthContext(
        user_id=koperasi_user.id,
        user_name=koperasi_user.name,
        user_role="admin_koperasi",
        user_cooperative_id=cooperative.id,
        cooperative_id=cooperative.id,
    )


@pytest.fixture
def approved_reports(db_session, cooperative, other_cooperative):
    """Tres reportes aprobados y un borrador"""
    return [
        create_report(db_session, cooperative, year=2024, lines=balance_sheet_lines(1000, 400, 600)),
        create_report(
            db_session, cooperative, report_type=ReportType.INCOME_STATEMENT, year=2024,
            lines=income_statement_lines(500, 300)
        ),
        create_report(db_session, other_cooperative, year=2024, lines=balance_sheet_lines(800, 300, 500)),
        create_report(db_session, cooperative, year=2023, status=ReportStatus.DRAFT),
    ]


class FakeTask:
    def __init__(self, fail=False):
        self.fail = fail
        self.calls = []

    def delay(self, batch_id):
        if self.fail:
            raise ConnectionError("broker unavailable")
        self.calls.append(batch_id)


class InlineTask:
    """Worker que termina el lote antes de que delay() retorne"""

    def __init__(self, service):
        self.service = service

    def delay(self, batch_id):
        self.service.process_batch(batch_id)


# ===== SCHEMAS =====

class TestBatchExportRequest:
    """Criterios según el tipo de exportación"""

    def test_year_export_requires_years(self):
        with pytest.raises(ValidationError) as exc_info:
            BatchExportRequest(export_type="year")
        assert "tahun" in str(exc_info.value)

    def test_async_alias(self):
        criteria = BatchExportRequest.model_validate({"export_type": "year", "years": [2024], "async": True})
        assert criteria.async_export is True
        assert criteria.status == ReportStatus.APPROVED

    def test_only_csv_format(self):
        with pytest.raises(ValidationError):
            BatchExportRequest(export_type="year", years=[2024], format="pdf")


# ===== SERVICE =====

class TestBatchExportService:
    """Procesamiento de lotes"""

    def test_export_by_year_writes_zip(self, db_session, tmp_path, dinas_context, approved_reports):
        service = BatchExportService(db_session, storage_path=str(tmp_path))
        result = service.export(BatchExportRequest(export_type="year", years=[2024]), dinas_context)

        assert result["status"] == "completed"
        assert result["total_reports"] == 3
        assert result["processed_reports"] == 3
        assert result["progress_percentage"] == 100.0
        with zipfile.ZipFile(result["file_path"]) as archive:
            names = archive.namelist()
        assert len(names) == 3
        assert "Neraca_Koperasi_Sejahtera_2024.csv" in names

    def test_export_is_audited(self, db_session, tmp_path, dinas_context, approved_reports):
        service = BatchExportService(db_session, storage_path=str(tmp_path))
        result = service.export(BatchExportRequest(export_type="year", years=[2024]), dinas_context)

        entry = db_session.query(AuditLog).filter(AuditLog.action == AuditAction.EXPORT).one()
        assert entry.new_values["batch_id"] == result["batch_id"]
        assert entry.new_values["report_count"] == 3

    def test_koperasi_exports_only_own_reports(self, db_session, tmp_path, koperasi_context, approved_reports):
        service = BatchExportService(db_session, storage_path=str(tmp_path))
        result = service.export(BatchExportRequest(export_type="year", years=[2024]), koperasi_context)
        assert result["total_reports"] == 2

    def test_koperasi_cannot_export_other_cooperative(
        self, db_session, tmp_path, koperasi_context, other_cooperative, approved_reports
    ):
        service = BatchExportService(db_session, storage_path=str(tmp_path))
        criteria = BatchExportRequest(export_type="cooperative", cooperative_ids=[other_cooperative.id])
        with pytest.raises(HTTPException) as exc_info:
            service.export(criteria, koperasi_context)
        assert exc_info.value.status_code == 404

    def test_export_without_matches(self, db_session, tmp_path, dinas_context, approved_reports):
        service = BatchExportService(db_session, storage_path=str(tmp_path))
        with pytest.raises(HTTPException) as exc_info:
            service.export(BatchExportRequest(export_type="year", years=[2020]), dinas_context)
        assert exc_info.value.status_code == 404

    def test_export_limit(self, db_session, tmp_path, monkeypatch, dinas_context, approved_reports):
        monkeypatch.setattr(settings, "EXPORT_MAX_REPORTS", 2)
        service = BatchExportService(db_session, storage_path=str(tmp_path))
        with pytest.raises(HTTPException) as exc_info:
            service.export(BatchExportRequest(export_type="year", years=[2024]), dinas_context)
        assert exc_info.value.status_code == 400

    def test_async_export_is_queued(self, db_session, tmp_path, monkeypatch, dinas_context, approved_reports):
        fake = FakeTask()
        monkeypatch.setattr(export_tasks, "process_batch_export", fake)
        monkeypatch.setattr(settings, "EXPORT_ASYNC_THRESHOLD", 1)
        monkeypatch.setattr(settings, "EXPORT_QUEUE_ENABLED", True)

        service = BatchExportService(db_session, storage_path=str(tmp_path))
        criteria = BatchExportRequest(export_type="year", years=[2024], async_export=True)
        result = service.export(criteria, dinas_context)

        assert result["status"] == "queued"
        assert fake.calls == [result["batch_id"]]

        completed = service.process_batch(result["batch_id"])
        assert completed["status"] == "completed"
        assert completed["total_reports"] == 3

    def test_async_export_falls_back_when_queue_fails(
        self, db_session, tmp_path, monkeypatch, dinas_context, approved_reports
    ):
        monkeypatch.setattr(export_tasks, "process_batch_export", FakeTask(fail=True))
        monkeypatch.setattr(settings, "EXPORT_ASYNC_THRESHOLD", 1)
        monkeypatch.setattr(settings, "EXPORT_QUEUE_ENABLED", True)

        service = BatchExportService(db_session, storage_path=str(tmp_path))
        criteria = BatchExportRequest(export_type="year", years=[2024], async_export=True)
        assert service.export(criteria, dinas_context)["status"] == "completed"

    def test_worker_finishing_before_dispatch_returns_stays_completed(
        self, db_session, tmp_path, monkeypatch, dinas_context, approved_reports
    ):
        service = BatchExportService(db_session, storage_path=str(tmp_path))
        monkeypatch.setattr(export_tasks, "process_batch_export", InlineTask(service))
        monkeypatch.setattr(settings, "EXPORT_ASYNC_THRESHOLD", 1)
        monkeypatch.setattr(settings, "EXPORT_QUEUE_ENABLED", True)

        criteria = BatchExportRequest(export_type="year", years=[2024], async_export=True)
        result = service.export(criteria, dinas_context)

        assert result["status"] == "completed"
        assert service.get_status(result["batch_id"])["status"] == "completed"
        assert service.download(result["batch_id"]).exists()

    def test_final_status_is_not_overwritten(self, db_session, tmp_path, dinas_context, approved_reports):
        service = BatchExportService(db_session, storage_path=str(tmp_path))
        batch_id = service.export(BatchExportRequest(export_type="year", years=[2024]), dinas_context)["batch_id"]

        service._update_status(batch_id, status="queued")
        assert service.get_status(batch_id)["status"] == "completed"

    def test_small_batches_run_synchronously(
        self, db_session, tmp_path, monkeypatch, dinas_context, approved_reports
    ):
        fake = FakeTask()
        monkeypatch.setattr(export_tasks, "process_batch_export", fake)
        monkeypatch.setattr(settings, "EXPORT_QUEUE_ENABLED", True)

        service = BatchExportService(db_session, storage_path=str(tmp_path))
        criteria = BatchExportRequest(export_type="year", years=[2024], async_export=True)
        assert service.export(criteria, dinas_context)["status"] == "completed"
        assert fake.calls == []

    def test_failed_batch_records_error(self, db_session, tmp_path, monkeypatch, dinas_context, approved_reports):
        def broken(report):
            raise ValueError("rusak")

        monkeypatch.setattr(export_service, "report_csv_content", broken)
        service = BatchExportService(db_session, storage_path=str(tmp_path))
        result = service.export(BatchExportRequest(export_type="year", years=[2024]), dinas_context)

        assert result["status"] == "failed"
        assert result["error"] == "rusak"

    def test_worker_failure_leaves_batch_retryable(
        self, db_session, tmp_path, monkeypatch, dinas_context, approved_reports
    ):
        service = BatchExportService(db_session, storage_path=str(tmp_path))
        monkeypatch.setattr(export_tasks, "process_batch_export", FakeTask())
        monkeypatch.setattr(settings, "EXPORT_ASYNC_THRESHOLD", 1)
        monkeypatch.setattr(settings, "EXPORT_QUEUE_ENABLED", True)
        criteria = BatchExportRequest(export_type="year", years=[2024], async_export=True)
        batch_id = service.export(criteria, dinas_context)["batch_id"]

        original = export_service.report_csv_content
        monkeypatch.setattr(export_service, "report_csv_content", lambda report: 1 / 0)
        with pytest.raises(ZeroDivisionError):
            service.process_batch(batch_id, raise_errors=True)
        assert service.get_status(batch_id)["status"] == "retrying"

        monkeypatch.setattr(export_service, "report_csv_content", original)
        result = service.process_batch(batch_id, raise_errors=True)
        assert result["status"] == "completed"
        assert result["processed_reports"] == 3

    def test_task_retry_completes_batch(self, db_session, storage, monkeypatch, dinas_context, approved_reports):
        service = BatchExportService(db_session)
        batch_id = service.export(BatchExportRequest(export_type="year", years=[2024]), dinas_context)["batch_id"]
        service._write_status(batch_id, {**service.get_status(batch_id), "status": "queued"})

        original = export_service.report_csv_content
        calls = []

        def flaky(report):
            calls.append(report.id)
            if len(calls) == 1:
                raise ConnectionError("storage unavailable")
            return original(report)

        monkeypatch.setattr(export_service, "report_csv_content", flaky)
        monkeypatch.setattr(export_tasks, "SessionLocal", lambda: db_session)

        export_tasks.process_batch_export.apply(args=[batch_id])
        assert service.get_status(batch_id)["status"] == "completed"

    def test_task_marks_failed_after_last_retry(
        self, db_session, storage, monkeypatch, dinas_context, approved_reports
    ):
        service = BatchExportService(db_session)
        batch_id = service.export(BatchExportRequest(export_type="year", years=[2024]), dinas_context)["batch_id"]
        service._write_status(batch_id, {**service.get_status(batch_id), "status": "queued"})

        def broken(report):
            raise ValueError("rusak")

        monkeypatch.setattr(export_service, "report_csv_content", broken)
        monkeypatch.setattr(export_tasks, "SessionLocal", lambda: db_session)

        result = export_tasks.process_batch_export.apply(args=[batch_id])
        assert result.failed()
        data = service.get_status(batch_id)
        assert data["status"] == "failed"
        assert data["error"] == "rusak"

    def test_cancel_completed_batch_is_refused(self, db_session, tmp_path, dinas_context, approved_reports):
        service = BatchExportService(db_session, storage_path=str(tmp_path))
        result = service.export(BatchExportRequest(export_type="year", years=[2024]), dinas_context)

        with pytest.raises(HTTPException) as exc_info:
            service.cancel(result["batch_id"], dinas_context)
        assert exc_info.value.status_code == 400

    def test_cancelled_batch_is_not_processed(
        self, db_session, tmp_path, monkeypatch, dinas_context, approved_reports
    ):
        monkeypatch.setattr(export_tasks, "process_batch_export", FakeTask())
        monkeypatch.setattr(settings, "EXPORT_ASYNC_THRESHOLD", 1)
        monkeypatch.setattr(settings, "EXPORT_QUEUE_ENABLED", True)

        service = BatchExportService(db_session, storage_path=str(tmp_path))
        criteria = BatchExportRequest(export_type="year", years=[2024], async_export=True)
        batch_id = service.export(criteria, dinas_context)["batch_id"]

        assert service.cancel(batch_id, dinas_context)["status"] == "cancelled"
        assert service.process_batch(batch_id)["status"] == "cancelled"
        with pytest.raises(HTTPException) as exc_info:
            service.download(batch_id)
        assert exc_info.value.status_code == 404

    def test_other_user_cannot_read_batch(
        self, db_session, tmp_path, dinas_context, koperasi_context, approved_reports
    ):
        service = BatchExportService(db_session, storage_path=str(tmp_path))
        result = service.export(BatchExportRequest(export_type="year", years=[2024]), dinas_context)

        with pytest.raises(HTTPException) as exc_info:
            service.download(result["batch_id"], koperasi_context)
        assert exc_info.value.status_code == 403

    def test_invalid_batch_id(self, db_session, tmp_path):
        with pytest.raises(HTTPException) as exc_info:
            BatchExportService(db_session, storage_path=str(tmp_path)).get_status("../secret")
        assert exc_info.value.status_code == 400

    @pytest.mark.parametrize("batch_id", ["report_abc123", "batch_XYZ", "batch_", "batch_abc.json", "..batch_abc"])
    def test_batch_id_must_be_batch_hex(self, db_session, tmp_path, batch_id):
        with pytest.raises(HTTPException) as exc_info:
            BatchExportService(db_session, storage_path=str(tmp_path)).get_status(batch_id)
        assert exc_info.value.status_code == 400

    def test_history_lists_own_batches(self, db_session, tmp_path, dinas_context, koperasi_context, approved_reports):
        service = BatchExportService(db_session, storage_path=str(tmp_path))
        service.export(BatchExportRequest(export_type="year", years=[2024]), dinas_context)
        service.export(BatchExportRequest(export_type="year", years=[2024]), koperasi_context)

        history = service.history(dinas_context)
        assert history["total"] == 1
        assert history["items"][0]["created_by"] == str(dinas_context.user_id)

    def test_cleanup_removes_old_files(self, db_session, tmp_path, dinas_context, approved_reports):
        service = BatchExportService(db_session, storage_path=str(tmp_path))
        result = service.export(BatchExportRequest(export_type="year", years=[2024]), dinas_context)

        old = time.time() - 40 * 86400
        for suffix in (".zip", ".json"):
            os.utime(service.batch_dir / f"{result['batch_id']}{suffix}", (old, old))

        cleanup = service.cleanup_old_exports(days=30)
        assert cleanup["deleted_files"] == 2
        assert service.get_statistics()["total_files"] == 0

    def test_statistics(self, db_session, tmp_path, dinas_context, approved_reports):
        service = BatchExportService(db_session, storage_path=str(tmp_path))
        service.export(BatchExportRequest(export_type="year", years=[2024]), dinas_context)

        stats = service.get_statistics()
        assert stats["by_type"]["zip"]["count"] == 1
        assert stats["by_type"]["status"]["count"] == 1


# ===== API =====

class TestExportsAPI:
    """Endpoints de exportación"""

    def test_batch_export_and_download(self, client, storage, dinas_headers, approved_reports):
        response = client.post(
            "/api/v1/exports/batch", json={"export_type": "year", "years": [2024]}, headers=dinas_headers
        )
        assert response.status_code == 202
        batch_id = response.json()["batch_id"]

        response = client.get(f"/api/v1/exports/batch/{batch_id}/status", headers=dinas_headers)
        assert response.status_code == 200
        assert response.json()["status"] == "completed"

        response = client.get(f"/api/v1/exports/batch/{batch_id}/download", headers=dinas_headers)
        assert response.status_code == 200
        assert response.headers["content-type"] == "application/zip"

    def test_invalid_criteria(self, client, storage, dinas_headers):
        response = client.post("/api/v1/exports/batch", json={"export_type": "custom"}, headers=dinas_headers)
        assert response.status_code == 422

    def test_unknown_batch(self, client, storage, dinas_headers):
        response = client.get("/api/v1/exports/batch/batch_0123abcd/status", headers=dinas_headers)
        assert response.status_code == 404

    def test_statistics_require_admin_dinas(self, client, storage, koperasi_headers):
        response = client.get("/api/v1/exports/statistics", headers=koperasi_headers)
        assert response.status_code == 403

    def test_history(self, client, storage, koperasi_headers, approved_reports):
        client.post("/api/v1/exports/batch", json={"export_type": "year", "years": [2024]}, headers=koperasi_headers)
        response = client.get("/api/v1/exports/history", headers=koperasi_headers)
        assert response.status_code == 200
        assert response.json()["total"] == 1
