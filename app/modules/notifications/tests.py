"""
Tests for in-app notifications.
"""
import pytest
from fastapi import HTTPException

from app.modules.notifications.models import NotificationType
from app.modules.notifications.service import NotificationService


class TestNotificationService:

    def test_visibility(self, db_session, sample_company, sample_user, make_member):
        member, _ = make_member(sample_company, "member@example.com", "member")
        service = NotificationService(db_session)
        service.notify(sample_company.id, NotificationType.SYSTEM, "For everyone")
        service.notify(sample_company.id, NotificationType.SYSTEM, "For the owner", user_id=sample_user.id)
        service.notify(sample_company.id, NotificationType.SYSTEM, "For the member", user_id=member.id, commit=True)

        owner_titles = {n.title for n in service.get_notifications(sample_company.id, sample_user.id).items}
        assert owner_titles == {"For everyone", "For the owner"}
        assert service.unread_count(sample_company.id, member.id) == 2

    def test_other_company_not_visible(self, db_session, sample_company, sample_user, other_company):
        service = NotificationService(db_session)
        service.notify(other_company.company.id, NotificationType.SYSTEM, "Not yours", commit=True)
        assert service.get_notifications(sample_company.id, sample_user.id).total == 0

    def test_disabled_type_is_skipped(self, db_session, sample_company):
        from app.modules.settings.schemas import SettingsUpdate
        from app.modules.settings.service import SettingsService

        SettingsService(db_session).update(
            sample_company.id, SettingsUpdate(notification_preferences={"payment_received": False})
        )
        service = NotificationService(db_session)
        assert service.notify(sample_company.id, NotificationType.PAYMENT_RECEIVED, "Paid", commit=True) is None
        assert service.notify(sample_company.id, NotificationType.QUOTATION_ACCEPTED, "Accepted", commit=True)

    def test_mark_read(self, db_session, sample_company, sample_user):
        service = NotificationService(db_session)
        first = service.notify(sample_company.id, NotificationType.SYSTEM, "One", commit=True)
        service.notify(sample_company.id, NotificationType.SYSTEM, "Two", commit=True)

        assert service.mark_read(first.id, sample_company.id, sample_user.id).is_read
        assert service.unread_count(sample_company.id, sample_user.id) == 1
        unread = service.get_notifications(sample_company.id, sample_user.id, unread_only=True)
        assert [n.title for n in unread.items] == ["Two"]

        assert service.mark_all_read(sample_company.id, sample_user.id) == {"updated": 1}
        assert service.unread_count(sample_company.id, sample_user.id) == 0

    def test_cannot_touch_someone_elses(self, db_session, sample_company, sample_user, make_member):
        member, _ = make_member(sample_company, "member@example.com", "member")
        service = NotificationService(db_session)
        private = service.notify(sample_company.id, NotificationType.SYSTEM, "Private", user_id=member.id, commit=True)

        with pytest.raises(HTTPException) as exc_info:
            service.delete_notification(private.id, sample_company.id, sample_user.id)
        assert exc_info.value.status_code == 404


class TestNotificationEndpoints:

    def test_flow(self, db_session, client, auth_headers, sample_company):
        notification = NotificationService(db_session).notify(
            sample_company.id, NotificationType.SYSTEM, "Welcome", meta={"source": "test"}, commit=True
        )

        listing = client.get("/notifications/", headers=auth_headers).json()
        assert listing["unread_count"] == 1
        assert listing["items"][0]["metadata"] == {"source": "test"}

        assert client.get("/notifications/unread-count", headers=auth_headers).json() == {"unread_count": 1}
        read = client.post(f"/notifications/{notification.id}/read", headers=auth_headers)
        assert read.json()["is_read"] is True

        assert client.delete(f"/notifications/{notification.id}", headers=auth_headers).status_code == 200
        assert client.get("/notifications/", headers=auth_headers).json()["total"] == 0
