"""
Tests para el módulo de Autenticación

Cubre tokens JWT, contexto de cooperativa por request y control de roles.
"""

import pytest
from datetime import timedelta
from uuid import uuid4

import jwt

from conftest import auth_headers
from app.modules.auth.utils import create_access_token, decode_access_token


# ===== FIXTURES =====

@pytest.fixture
def expired_headers(koperasi_user):
    token = create_access_token({"sub": str(koperasi_user.id)}, expires_delta=timedelta(minutes=-5))
    return {"Authorization": f"Bearer {token}"}


# ===== TOKENS =====

class TestTokens:
    """Emisión y verificación de tokens"""

    def test_round_trip(self):
        user_id = str(uuid4())
        payload = decode_access_token(create_access_token({"sub": user_id}))
        assert payload["sub"] == user_id
        assert payload["type"] == "access"

    def test_expired_token(self):
        token = create_access_token({"sub": str(uuid4())}, expires_delta=timedelta(seconds=-1))
        with pytest.raises(jwt.ExpiredSignatureError):
            decode_access_token(token)


# ===== API =====

class TestAuthAPI:
    """Resolución del usuario y del contexto de cooperativa"""

    def test_me(self, client, koperasi_headers, cooperative):
        response = client.get("/api/v1/auth/me", headers=koperasi_headers)
        assert response.status_code == 200
        body = response.json()
        assert body["user"]["role"] == "admin_koperasi"
        assert body["cooperative_name"] == "Koperasi Sejahtera"

    def test_expired_token_is_rejected(self, client, expired_headers):
        response = client.get("/api/v1/auth/me", headers=expired_headers)
        assert response.status_code == 401

    def test_unknown_user_is_rejected(self, client, db_session):
        headers = {"Authorization": f"Bearer {create_access_token({'sub': str(uuid4())})}"}
        response = client.get("/api/v1/auth/me", headers=headers)
        assert response.status_code == 401

    def test_inactive_user_is_rejected(self, client, db_session, koperasi_user, koperasi_headers):
        koperasi_user.is_active = False
        db_session.commit()
        response = client.get("/api/v1/auth/me", headers=koperasi_headers)
        assert response.status_code == 401

    def test_koperasi_context_is_pinned(self, client, koperasi_headers, cooperative):
        response = client.get("/api/v1/auth/context", headers=koperasi_headers)
        assert response.status_code == 200
        assert response.json()["cooperative_id"] == str(cooperative.id)

    def test_koperasi_cannot_switch_cooperative(self, client, koperasi_user, other_cooperative):
        response = client.get("/api/v1/auth/context", headers=auth_headers(koperasi_user, other_cooperative.id))
        assert response.status_code == 403

    def test_dinas_selects_cooperative_by_header(self, client, dinas_user, cooperative):
        response = client.get("/api/v1/auth/context", headers=auth_headers(dinas_user, cooperative.id))
        assert response.status_code == 200
        assert response.json()["cooperative_id"] == str(cooperative.id)

    def test_dinas_without_header_has_no_scope(self, client, dinas_headers):
        response = client.get("/api/v1/auth/context", headers=dinas_headers)
        assert response.json()["cooperative_id"] is None

    def test_invalid_cooperative_header(self, client, dinas_headers):
        response = client.get(
            "/api/v1/auth/context", headers={**dinas_headers, "X-Cooperative-ID": "bukan-uuid"}
        )
        assert response.status_code == 400

    def test_security_headers(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.headers["X-Frame-Options"] == "DENY"
