"""
Tests para el módulo de Notificaciones

Cubre los mensajes del flujo de aprobación, lectura y borrado por usuario
y la limpieza de notificaciones leídas.
"""

import pytest
from datetime import datetime, timezone

from app.modules.notifications.models import Notification, NotificationType
from app.modules.notifications.service import NotificationService


# ===== FIXTURES =====

@pytest.fixture
def koperasi_notification(db_session, koperasi_user, cooperative):
    notification = NotificationService(db_session).notify(
        koperasi_user.id,
        NotificationType.SYSTEM_NOTIFICATION,
        "Pengingat",
        "Batas waktu laporan triwulan semakin dekat.",
        cooperative.id,
    )
    db_session.commit()
    return notification


# ===== SERVICE =====

class TestNotificationService:
    """Mensajes del flujo de reportes"""

    def test_report_submitted_goes_to_admin_dinas(self, db_session, cooperative, dinas_user, koperasi_user):
        notifications = NotificationService(db_session).report_submitted(cooperative.id, "balance_sheet", 2024)
        db_session.commit()

        assert [n.user_id for n in notifications] == [dinas_user.id]
        assert "Koperasi Sejahtera" in notifications[0].message
        assert notifications[0].data["reporting_year"] == 2024

    def test_report_rejected_goes_to_cooperative_admins(
        self, db_session, cooperative, dinas_user, koperasi_user
    ):
        notifications = NotificationService(db_session).report_rejected(
            cooperative.id, "income_statement", 2024, "Beban operasional belum dirinci"
        )
        db_session.commit()

        assert [n.user_id for n in notifications] == [koperasi_user.id]
        assert notifications[0].type == NotificationType.REPORT_REJECTED
        assert "Beban operasional belum dirinci" in notifications[0].message

    def test_inactive_users_are_skipped(self, db_session, cooperative, koperasi_user):
        koperasi_user.is_active = False
        db_session.commit()
        assert NotificationService(db_session).report_approved(cooperative.id, "cash_flow", 2024) == []

    def test_mark_all_as_read(self, db_session, koperasi_user, koperasi_notification):
        service = NotificationService(db_session)
        assert service.unread_count(koperasi_user.id) == 1
        assert service.mark_all_as_read(koperasi_user.id) == 1
        assert service.unread_count(koperasi_user.id) == 0

    def test_cleanup_removes_only_old_read(self, db_session, koperasi_user, cooperative):
        old = datetime(2020, 1, 1, tzinfo=timezone.utc)
        for is_read in (True, False):
            db_session.add(Notification(
                user_id=koperasi_user.id,
                cooperative_id=cooperative.id,
                type=NotificationType.SYSTEM_NOTIFICATION,
                title="Lama",
                message="Notifikasi lama",
                is_read=is_read,
                created_at=old,
                updated_at=old,
            ))
        db_session.commit()

        assert NotificationService(db_session).cleanup_old(days=30) == 1
        assert db_session.query(Notification).count() == 1


# ===== API =====

class TestNotificationsAPI:
    """Endpoints de notificaciones del usuario actual"""

    def test_list(self, client, koperasi_headers, koperasi_notification):
        response = client.get("/api/v1/notifications", headers=koperasi_headers)
        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 1
        assert body["unread_count"] == 1

    def test_mark_as_read(self, client, koperasi_headers, koperasi_notification):
        response = client.post(f"/api/v1/notifications/{koperasi_notification.id}/read", headers=koperasi_headers)
        assert response.status_code == 200
        assert response.json()["is_read"] is True

        response = client.get("/api/v1/notifications/unread-count", headers=koperasi_headers)
        assert response.json()["unread_count"] == 0

    def test_other_user_cannot_read(self, client, dinas_headers, koperasi_notification):
        response = client.post(f"/api/v1/notifications/{koperasi_notification.id}/read", headers=dinas_headers)
        assert response.status_code == 404

    def test_delete(self, client, koperasi_headers, koperasi_notification):
        response = client.delete(f"/api/v1/notifications/{koperasi_notification.id}", headers=koperasi_headers)
        assert response.status_code == 204

        response = client.get("/api/v1/notifications", headers=koperasi_headers)
        assert response.json()["total"] == 0

    def test_recent(self, client, koperasi_headers, dinas_headers, koperasi_notification):
        response = client.get("/api/v1/notifications/recent", params={"limit": 5}, headers=koperasi_headers)
        assert response.status_code == 200
        assert [n["id"] for n in response.json()] == [str(koperasi_notification.id)]

        assert client.get("/api/v1/notifications/recent", headers=dinas_headers).json() == []
