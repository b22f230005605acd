"""
Tests for notification fan-out
"""

import pytest
from unittest.mock import MagicMock
from sqlmodel import select

from membership.core.dispatcher import EventDispatcher
from membership.core.events import InviteEvent, RoleEvent, RoleRef, UserEvent, performer_metadata
from membership.models import Channel, Notification
from membership.services.device_tokens import DeviceTokenStore
from membership.services.notification_router import Delivery, NotificationRouter
from membership.services.notification_settings import NotificationSettingsService
from membership.services.transports import InAppChannel
from membership.services.users import UserService


@pytest.fixture
def push() -> MagicMock:
    transport = MagicMock()
    transport.send.return_value = True
    return transport


@pytest.fixture
def router(central_engine, tenant_databases, mail, push) -> NotificationRouter:
    return NotificationRouter(central_engine, tenant_databases, mail=mail, push=push, in_app=InAppChannel())


@pytest.fixture
def users(tenant, tenant_session, publish) -> UserService:
    return UserService(tenant.id, tenant_session, publish=publish)


def only_push(session, user_id, event_type):
    NotificationSettingsService(session).update_setting(
        user_id, event_type, email_enabled=False, push_enabled=True, in_app_enabled=False
    )


def mute(session, user_id, event_type):
    NotificationSettingsService(session).update_setting(
        user_id, event_type, email_enabled=False, push_enabled=False, in_app_enabled=False
    )


def notifications_of(session, user_id):
    return session.exec(select(Notification).where(Notification.user_id == user_id)).all()


class TestFanOut:
    """Who gets notified, and on which channels"""

    def test_capability_and_channel_filtering(
        self, router, users, admin, add_member, tenant_session, events, mail, push
    ):
        """P (Manage User, push only) gets one push; Q (no capability) gets nothing"""
        p = add_member("Pat Manager", "pat@acme.io", "Manager")
        q = add_member("Quinn User", "quinn@acme.io", "User")
        target = add_member("Sam User", "sam@acme.io", "User")
        only_push(tenant_session, p.id, "user_disabled")
        DeviceTokenStore(tenant_session).store_token(p.id, "pat-device")

        users.disable_user(target.id, actor=admin)
        deliveries = router.handle(events[-1])

        assert deliveries == [Delivery(p.id, Channel.PUSH, True)]
        push.send.assert_called_once()
        tokens, title, body, data = push.send.call_args[0]
        assert tokens == ["pat-device"]
        assert title == "User Disabled"
        assert body == "User Sam User has been disabled."
        assert all(isinstance(value, str) for value in data.values())
        mail.send.assert_not_called()
        assert notifications_of(tenant_session, q.id) == []
        assert notifications_of(tenant_session, p.id) == []

    def test_performer_is_excluded(self, router, users, admin, add_member, tenant_session, events):
        manager = add_member("Pat Manager", "pat@acme.io", "Manager")
        target = add_member("Sam User", "sam@acme.io", "User")

        users.disable_user(target.id, actor=manager)
        deliveries = router.handle(events[-1])

        assert {d.user_id for d in deliveries} == {admin.id}

    def test_muted_subscriber_is_skipped(self, router, users, admin, add_member, tenant_session, events):
        manager = add_member("Pat Manager", "pat@acme.io", "Manager")
        target = add_member("Sam User", "sam@acme.io", "User")
        mute(tenant_session, admin.id, "user_disabled")

        users.disable_user(target.id, actor=manager)

        assert router.handle(events[-1]) == []

    def test_disabled_subscriber_is_excluded(self, router, users, admin, add_member, events):
        manager = add_member("Pat Manager", "pat@acme.io", "Manager")
        target = add_member("Sam User", "sam@acme.io", "User")
        users.disable_user(manager.id, actor=admin)

        users.enable_user(target.id, actor=admin)
        deliveries = router.handle(events[-1])

        assert deliveries == []

    def test_all_channels_for_default_settings(self, router, users, admin, add_member, tenant_session, events, mail):
        """Default settings enable every channel; push without tokens is not delivered"""
        manager = add_member("Pat Manager", "pat@acme.io", "Manager")
        target = add_member("Sam User", "sam@acme.io", "User")

        users.disable_user(target.id, actor=manager)
        deliveries = router.handle(events[-1])

        assert deliveries == [
            Delivery(admin.id, Channel.EMAIL, True),
            Delivery(admin.id, Channel.PUSH, False),
            Delivery(admin.id, Channel.IN_APP, True),
        ]
        to, message = mail.send.call_args[0]
        assert to == "olivia@acme.io"
        assert message.action_text == "View User"

        stored = notifications_of(tenant_session, admin.id)
        assert len(stored) == 1
        assert stored[0].event_type == "user_disabled"
        assert stored[0].title == "User Disabled"
        assert stored[0].data["user_id"] == target.id

    def test_role_events_need_modify_roles(self, router, admin, add_member, tenant):
        manager = add_member("Pat Manager", "pat@acme.io", "Manager")
        event = RoleEvent(
            tenant_id=tenant.id,
            action="created",
            role=RoleRef(id=42, name="Barista"),
            metadata=performer_metadata(manager),
        )

        deliveries = router.handle(event)

        assert {d.user_id for d in deliveries} == {admin.id}

    def test_unknown_event_type_is_ignored(self, router, admin, tenant, mail):
        event = InviteEvent(
            tenant_id=tenant.id,
            action="accepted",
            invite_id=1,
            email="new@x.com",
            role=RoleRef(id=1, name="User"),
        )

        assert router.handle(event) == []
        mail.send.assert_not_called()

    def test_missing_tenant_is_dropped(self, router, mail):
        event = UserEvent(
            tenant_id="no-such-tenant",
            action="disabled",
            user_id=1,
            user_name="Sam",
            user_email="sam@x.com",
        )

        assert router.handle(event) == []
        mail.send.assert_not_called()


class TestChannelIsolation:
    """One failing channel never blocks the others"""

    def test_mail_failure(self, router, users, add_member, admin, tenant_session, events, mail):
        manager = add_member("Pat Manager", "pat@acme.io", "Manager")
        target = add_member("Sam User", "sam@acme.io", "User")
        mail.send.side_effect = RuntimeError("smtp down")

        users.disable_user(target.id, actor=manager)
        deliveries = router.handle(events[-1])

        assert Delivery(admin.id, Channel.EMAIL, False) in deliveries
        assert Delivery(admin.id, Channel.IN_APP, True) in deliveries
        assert len(notifications_of(tenant_session, admin.id)) == 1

    def test_push_rejected(self, router, users, add_member, admin, tenant_session, events, push):
        manager = add_member("Pat Manager", "pat@acme.io", "Manager")
        target = add_member("Sam User", "sam@acme.io", "User")
        DeviceTokenStore(tenant_session).store_token(admin.id, "olivia-phone")
        push.send.return_value = False

        users.disable_user(target.id, actor=manager)
        deliveries = router.handle(events[-1])

        assert Delivery(admin.id, Channel.PUSH, False) in deliveries
        assert Delivery(admin.id, Channel.EMAIL, True) in deliveries

    def test_deactivated_tokens_are_not_used(self, router, users, add_member, admin, tenant_session, events, push):
        manager = add_member("Pat Manager", "pat@acme.io", "Manager")
        target = add_member("Sam User", "sam@acme.io", "User")
        tokens = DeviceTokenStore(tenant_session)
        tokens.store_token(admin.id, "old-phone")
        tokens.store_token(admin.id, "new-phone")
        tokens.deactivate_token(admin.id, "old-phone")

        users.disable_user(target.id, actor=manager)
        router.handle(events[-1])

        assert push.send.call_args[0][0] == ["new-phone"]


class TestDispatchedFanOut:
    """The router runs as a dispatcher handler"""

    def test_published_event_reaches_inbox(self, router, users, add_member, admin, tenant_session, events):
        manager = add_member("Pat Manager", "pat@acme.io", "Manager")
        target = add_member("Sam User", "sam@acme.io", "User")
        users.disable_user(target.id, actor=manager)

        dispatcher = EventDispatcher(workers=1, attempt_timeout=5.0)
        dispatcher.subscribe(router.handle)
        dispatcher.start()
        try:
            assert dispatcher.publish(events[-1]) is True
            assert dispatcher.join(timeout=5.0) is True
        finally:
            dispatcher.stop()

        assert len(notifications_of(tenant_session, admin.id)) == 1
