"""
Tests for notification settings, the in-app inbox and device tokens
"""

import pytest
from sqlmodel import select

from membership.core.exceptions import InvalidInput, NotFound
from membership.models import Channel, DeviceToken, EventType, Notification, NotificationSetting
from membership.services.device_tokens import DeviceTokenStore
from membership.services.notification_settings import NotificationInbox, NotificationSettingsService


@pytest.fixture
def settings_service(tenant_session) -> NotificationSettingsService:
    return NotificationSettingsService(tenant_session)


def settings_rows(session, user_id):
    return session.exec(select(NotificationSetting).where(NotificationSetting.user_id == user_id)).all()


class TestEnsureSettings:
    """Back-filling setting rows"""

    def test_is_idempotent(self, settings_service, admin, tenant_session):
        assert settings_service.ensure_settings(admin.id) == 0
        assert len(settings_rows(tenant_session, admin.id)) == len(EventType)

    def test_fills_only_missing_rows(self, settings_service, admin, tenant_session):
        settings_service.update_setting(admin.id, "role_created", email_enabled=False)
        for row in settings_rows(tenant_session, admin.id):
            if row.event_type in ("user_invited", "invite_sent"):
                tenant_session.delete(row)
        tenant_session.commit()

        assert settings_service.ensure_settings(admin.id) == 2
        assert settings_service.ensure_settings(admin.id) == 0

        restored = settings_service.get_setting(admin.id, "user_invited")
        assert restored.email_enabled and restored.push_enabled and restored.in_app_enabled
        assert settings_service.get_setting(admin.id, "role_created").email_enabled is False


class TestUpdateSettings:
    """Changing channel flags"""

    def test_update_setting(self, settings_service, admin):
        setting = settings_service.update_setting(admin.id, "user_disabled", push_enabled=False)

        assert setting.email_enabled is True
        assert setting.push_enabled is False
        assert settings_service.is_enabled(admin.id, "user_disabled", Channel.PUSH) is False
        assert settings_service.is_enabled(admin.id, "user_disabled", Channel.IN_APP) is True

    def test_unknown_event_type(self, settings_service, admin):
        with pytest.raises(InvalidInput):
            settings_service.update_setting(admin.id, "user_promoted", email_enabled=False)

    def test_bulk_update(self, settings_service, admin):
        settings = settings_service.update_settings(admin.id, {
            "role_created": {"email_enabled": False},
            "invite_sent": {"in_app_enabled": False, "push_enabled": False},
        })

        by_type = {s.event_type: s for s in settings}
        assert [s.event_type for s in settings] == [e.value for e in EventType]
        assert by_type["role_created"].email_enabled is False
        assert by_type["invite_sent"].enabled_channels() == [Channel.EMAIL]

    def test_bulk_update_rejects_unknown_before_changing(self, settings_service, admin):
        with pytest.raises(InvalidInput):
            settings_service.update_settings(admin.id, {
                "role_created": {"email_enabled": False},
                "nope": {"email_enabled": False},
            })

        assert settings_service.is_enabled(admin.id, "role_created", Channel.EMAIL) is True

    def test_is_enabled_without_row(self, settings_service):
        assert settings_service.is_enabled(9999, "user_disabled", Channel.EMAIL) is False


class TestInbox:
    """In-app notifications"""

    @pytest.fixture
    def inbox(self, tenant_session, admin) -> NotificationInbox:
        for index in range(3):
            tenant_session.add(Notification(
                user_id=admin.id,
                event_type="role_created",
                title="Role Created",
                body=f"Role {index} created",
            ))
        tenant_session.commit()
        return NotificationInbox(tenant_session)

    def test_unread_count_and_mark(self, inbox, admin):
        assert inbox.unread_count(admin.id) == 3

        first = inbox.list(admin.id)[0]
        inbox.mark_as_read(admin.id, first.id)

        assert inbox.unread_count(admin.id) == 2
        assert first.id not in [n.id for n in inbox.list(admin.id, unread_only=True)]

    def test_mark_all_as_read(self, inbox, admin):
        assert inbox.mark_all_as_read(admin.id) == 3
        assert inbox.unread_count(admin.id) == 0
        assert inbox.mark_all_as_read(admin.id) == 0

    def test_cannot_read_other_users_notification(self, inbox, admin, add_member):
        other = add_member("Uma Two", "uma@acme.io", "User")
        notification = inbox.list(admin.id)[0]

        with pytest.raises(NotFound):
            inbox.mark_as_read(other.id, notification.id)

    def test_list_limit(self, inbox, admin):
        assert len(inbox.list(admin.id, limit=2)) == 2


class TestDeviceTokens:
    """Push device tokens"""

    def test_store_is_an_upsert(self, tenant_session, admin):
        store = DeviceTokenStore(tenant_session)

        store.store_token(admin.id, "phone-1", device_type="ios")
        store.deactivate_token(admin.id, "phone-1")
        assert store.active_tokens(admin.id) == []

        store.store_token(admin.id, "phone-1", device_type="ios", device_name="Olivia's phone")

        rows = tenant_session.exec(select(DeviceToken).where(DeviceToken.user_id == admin.id)).all()
        assert len(rows) == 1
        assert rows[0].device_name == "Olivia's phone"
        assert store.active_tokens(admin.id) == ["phone-1"]

    def test_deactivate_unknown_token(self, tenant_session, admin):
        assert DeviceTokenStore(tenant_session).deactivate_token(admin.id, "never-seen") is False
