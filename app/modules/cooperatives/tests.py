"""
Tests para el módulo de Cooperativas

Cubre:
- Validaciones de datos (código, nomor badan hukum, teléfono)
- Alta, edición y desactivación con auditoría
- Visibilidad: admin_dinas ve todas, admin_koperasi solo la suya
"""

import pytest
from datetime import date, timedelta
from decimal import Decimal
from uuid import uuid4

from fastapi import HTTPException
from pydantic import ValidationError

from app.modules.audit.models import AuditAction, AuditLog
from app.modules.cooperatives.models import BusinessType, OperationalStatus
from app.modules.cooperatives.schemas import CooperativeCreate, CooperativeUpdate
from app.modules.cooperatives.service import CooperativeService


# ===== FIXTURES =====

@pytest.fixture
def cooperative_data():
    """Datos de ejemplo para registrar una cooperativa"""
    return {
        "name": "  Koperasi Tani Maju  ",
        "code": "ktm-01",
        "registration_number": "518/BH/XVI.2/2010",
        "phone": "0812-3456-7890",
        "email": "Info@TaniMaju.example.com",
        "business_type": "produsen",
        "total_members": 80,
        "active_members": 70,
        "total_assets": "750000000",
    }


# ===== SCHEMAS =====

class TestCooperativeSchemas:
    """Normalización y validación de datos de cooperativa"""

    def test_create_normalizes_fields(self, cooperative_data):
        data = CooperativeCreate(**cooperative_data)
        assert data.name == "Koperasi Tani Maju"
        assert data.code == "KTM-01"
        assert data.phone == "6281234567890"
        assert data.email == "info@tanimaju.example.com"
        assert data.business_type == BusinessType.PRODUSEN

    def test_invalid_code(self, cooperative_data):
        cooperative_data["code"] = "K T M"
        with pytest.raises(ValidationError):
            CooperativeCreate(**cooperative_data)

    def test_invalid_phone(self, cooperative_data):
        cooperative_data["phone"] = "12345"
        with pytest.raises(ValidationError) as exc_info:
            CooperativeCreate(**cooperative_data)
        assert "Nomor telepon" in str(exc_info.value)

    def test_future_establishment_date(self, cooperative_data):
        cooperative_data["establishment_date"] = (date.today() + timedelta(days=1)).isoformat()
        with pytest.raises(ValidationError):
            CooperativeCreate(**cooperative_data)

    def test_negative_assets(self, cooperative_data):
        cooperative_data["total_assets"] = "-1"
        with pytest.raises(ValidationError):
            CooperativeCreate(**cooperative_data)


# ===== SERVICE =====

class TestCooperativeService:
    """Operaciones de negocio sobre cooperativas"""

    def test_create_is_audited(self, db_session, dinas_user, cooperative_data):
        cooperative = CooperativeService(db_session).create(CooperativeCreate(**cooperative_data), dinas_user.id)

        assert cooperative.is_active is True
        assert cooperative.operational_status == OperationalStatus.ACTIVE
        entry = db_session.query(AuditLog).filter(AuditLog.record_id == str(cooperative.id)).one()
        assert entry.action == AuditAction.CREATE
        assert entry.user_id == dinas_user.id

    def test_duplicate_code_conflicts(self, db_session, cooperative, cooperative_data):
        cooperative_data["code"] = "KSJ"
        with pytest.raises(HTTPException) as exc_info:
            CooperativeService(db_session).create(CooperativeCreate(**cooperative_data))
        assert exc_info.value.status_code == 409

    def test_duplicate_registration_number_conflicts(self, db_session, cooperative, cooperative_data):
        cooperative_data["registration_number"] = "REG-001"
        with pytest.raises(HTTPException) as exc_info:
            CooperativeService(db_session).create(CooperativeCreate(**cooperative_data))
        assert exc_info.value.status_code == 409

    def test_update_records_changed_fields(self, db_session, cooperative):
        updated = CooperativeService(db_session).update(
            cooperative.id, CooperativeUpdate(total_members=200, chairman_name="Budi Santoso")
        )
        assert updated.total_members == 200
        assert updated.total_assets == Decimal("2500000000")

        entry = db_session.query(AuditLog).filter(AuditLog.action == AuditAction.UPDATE).one()
        assert "total_members" in entry.changed_fields
        assert "chairman_name" in entry.changed_fields

    def test_deactivate_keeps_record(self, db_session, cooperative):
        service = CooperativeService(db_session)
        service.deactivate(cooperative.id)

        assert service.get(cooperative.id).is_active is False
        assert service.list()["total"] == 0
        assert service.list(include_inactive=True)["total"] == 1

    def test_get_unknown(self, db_session):
        with pytest.raises(HTTPException) as exc_info:
            CooperativeService(db_session).get(uuid4())
        assert exc_info.value.status_code == 404

    def test_list_filters(self, db_session, cooperative, other_cooperative):
        service = CooperativeService(db_session)
        assert service.list(search="makmur")["total"] == 1
        assert service.list(business_type=BusinessType.SIMPAN_PINJAM)["items"][0].code == "KSJ"

    def test_size_categories(self, cooperative, other_cooperative):
        assert cooperative.member_size_category == "medium"
        assert cooperative.asset_size_category == "1b_to_5b"
        assert other_cooperative.member_size_category == "small"
        assert other_cooperative.asset_size_category == "under_1b"


# ===== API =====

class TestCooperativesAPI:
    """Endpoints de cooperativas"""

    def test_dinas_creates_cooperative(self, client, dinas_headers, cooperative_data):
        response = client.post("/api/v1/cooperatives", json=cooperative_data, headers=dinas_headers)
        assert response.status_code == 201
        assert response.json()["code"] == "KTM-01"

    def test_koperasi_cannot_create_cooperative(self, client, koperasi_headers, cooperative_data):
        response = client.post("/api/v1/cooperatives", json=cooperative_data, headers=koperasi_headers)
        assert response.status_code == 403

    def test_dinas_lists_all(self, client, dinas_headers, cooperative, other_cooperative):
        response = client.get("/api/v1/cooperatives", headers=dinas_headers)
        assert response.status_code == 200
        assert response.json()["total"] == 2

    def test_koperasi_lists_only_own(self, client, koperasi_headers, cooperative, other_cooperative):
        response = client.get("/api/v1/cooperatives", headers=koperasi_headers)
        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 1
        assert body["items"][0]["id"] == str(cooperative.id)

    def test_koperasi_cannot_read_other(self, client, koperasi_headers, other_cooperative):
        response = client.get(f"/api/v1/cooperatives/{other_cooperative.id}", headers=koperasi_headers)
        assert response.status_code == 403

    def test_update_and_deactivate(self, client, dinas_headers, cooperative):
        response = client.patch(
            f"/api/v1/cooperatives/{cooperative.id}",
            json={"operational_status": "suspended"},
            headers=dinas_headers,
        )
        assert response.status_code == 200
        assert response.json()["operational_status"] == "suspended"

        response = client.delete(f"/api/v1/cooperatives/{cooperative.id}", headers=dinas_headers)
        assert response.status_code == 200
        assert response.json()["is_active"] is False
        assert response.json()["operational_status"] == "inactive"
