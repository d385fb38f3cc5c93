"""
Tests para el módulo de Auditoría

Cubre el registro de cambios, búsquedas con scoping por cooperativa,
resumen de actividad y limpieza por antigüedad.
"""

import pytest
from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import uuid4

from app.modules.audit.models import AuditAction, AuditLog
from app.modules.audit.service import AuditLogService, serialize_value
from app.modules.financial.models import ReportStatus


# ===== FIXTURES =====

@pytest.fixture
def audit_entries(db_session, cooperative, other_cooperative, dinas_user):
    service = AuditLogService(db_session)
    service.log("financial_reports", uuid4(), AuditAction.CREATE, new_values={"status": "draft"},
                user_id=dinas_user.id, cooperative_id=cooperative.id)
    service.log("financial_reports", uuid4(), AuditAction.APPROVE, old_values={"status": "submitted"},
                new_values={"status": "approved"}, user_id=dinas_user.id, cooperative_id=cooperative.id)
    service.log("cooperatives", other_cooperative.id, AuditAction.UPDATE, old_values={"total_members": 50},
                new_values={"total_members": 60}, cooperative_id=other_cooperative.id)
    db_session.commit()


# ===== SERVICE =====

class TestAuditLogService:
    """Registro y consulta del trail de auditoría"""

    def test_serialize_value(self):
        value = {
            "amount": Decimal("10.50"),
            "day": date(2024, 1, 31),
            "status": ReportStatus.APPROVED,
            "items": [Decimal("1")],
        }
        assert serialize_value(value) == {
            "amount": 10.5, "day": "2024-01-31", "status": "approved", "items": [1.0]
        }

    def test_changed_fields(self, db_session, audit_entries):
        entry = db_session.query(AuditLog).filter(AuditLog.action == AuditAction.UPDATE).one()
        assert entry.changed_fields == ["total_members"]

    def test_search_by_cooperative(self, db_session, cooperative, audit_entries):
        result = AuditLogService(db_session).search(cooperative_id=cooperative.id)
        assert result["total"] == 2

    def test_search_by_action(self, db_session, audit_entries):
        result = AuditLogService(db_session).search(action=AuditAction.APPROVE)
        assert result["total"] == 1
        assert result["items"][0].new_values == {"status": "approved"}

    def test_by_cooperative(self, db_session, other_cooperative, audit_entries):
        entries = AuditLogService(db_session).by_cooperative(other_cooperative.id)
        assert [entry.table_name for entry in entries] == ["cooperatives"]

    def test_activity_summary(self, db_session, audit_entries):
        summary = AuditLogService(db_session).activity_summary(days=30)
        assert summary["total_activities"] == 3
        assert summary["by_table"] == {"financial_reports": 2, "cooperatives": 1}
        assert summary["by_action"]["CREATE"] == 1

    def test_cleanup_old(self, db_session, audit_entries):
        db_session.add(AuditLog(
            table_name="financial_reports",
            record_id="old",
            action=AuditAction.VIEW,
            created_at=datetime(2020, 1, 1, tzinfo=timezone.utc),
        ))
        db_session.commit()

        assert AuditLogService(db_session).cleanup_old(days=365) == 1
        assert db_session.query(AuditLog).count() == 3


# ===== API =====

class TestAuditAPI:
    """Consulta del trail por rol"""

    def test_dinas_sees_everything(self, client, dinas_headers, audit_entries):
        response = client.get("/api/v1/audit/logs", headers=dinas_headers)
        assert response.status_code == 200
        assert response.json()["total"] == 3

    def test_koperasi_sees_own_cooperative(self, client, koperasi_headers, audit_entries):
        response = client.get("/api/v1/audit/logs", headers=koperasi_headers)
        assert response.status_code == 200
        assert response.json()["total"] == 2

    def test_koperasi_cannot_query_other_cooperative(
        self, client, koperasi_headers, other_cooperative, audit_entries
    ):
        response = client.get(
            "/api/v1/audit/logs", params={"cooperative_id": str(other_cooperative.id)}, headers=koperasi_headers
        )
        assert response.status_code == 403

    def test_summary(self, client, dinas_headers, audit_entries):
        response = client.get("/api/v1/audit/summary", params={"days": 7}, headers=dinas_headers)
        assert response.status_code == 200
        assert response.json()["total_activities"] == 3

    def test_record_history_is_scoped(self, client, dinas_headers, koperasi_headers, other_cooperative, audit_entries):
        path = f"/api/v1/audit/records/cooperatives/{other_cooperative.id}"
        assert len(client.get(path, headers=dinas_headers).json()) == 1
        assert client.get(path, headers=koperasi_headers).json() == []

    def test_user_activity_requires_admin_dinas(self, client, dinas_user, dinas_headers, koperasi_headers, audit_entries):
        path = f"/api/v1/audit/users/{dinas_user.id}"
        assert client.get(path, headers=koperasi_headers).status_code == 403
        response = client.get(path, headers=dinas_headers)
        assert response.status_code == 200
        assert len(response.json()) == 2

    def test_recent_activity(self, client, koperasi_headers, audit_entries):
        response = client.get("/api/v1/audit/recent", params={"limit": 1}, headers=koperasi_headers)
        assert response.status_code == 200
        assert len(response.json()) == 1
