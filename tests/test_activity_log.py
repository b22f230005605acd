"""
Tests for the activity log: recording domain events and listing them
"""

import pytest
from datetime import timedelta
from unittest.mock import MagicMock

from sqlmodel import select

from membership.core.clock import utcnow
from membership.core.events import InviteEvent, RoleEvent, RoleRef, UserEvent, performer_metadata
from membership.core.exceptions import InvalidInput
from membership.models import ActivityLog
from membership.services.activity_log import ActivityLogRecorder, ActivityLogService, action_label, describe
from membership.services.invites import InviteLifecycle
from membership.services.roles import RoleService
from membership.services.users import UserService


@pytest.fixture
def recorder(central_engine, tenant_databases) -> ActivityLogRecorder:
    return ActivityLogRecorder(central_engine, tenant_databases)


@pytest.fixture
def activity(tenant_session) -> ActivityLogService:
    return ActivityLogService(tenant_session)


def record_all(recorder, events):
    for event in events:
        recorder.handle(event)
    events.clear()


class TestDescribe:
    """Test feature, action and description of each event"""

    def test_role_updated(self, admin):
        event = UserEvent(
            tenant_id="t1",
            action="role_updated",
            user_id=7,
            user_name="Sam",
            user_email="sam@x.com",
            metadata=dict(
                performer_metadata(admin),
                old_role=RoleRef(id=3, name="User"),
                new_role=RoleRef(id=2, name="Manager"),
            ),
        )

        assert action_label(event) == "Update Role"
        assert describe(event) == "User Sam role changed from User to Manager by Olivia Owner"

    def test_invite_sent(self, admin):
        event = InviteEvent(
            tenant_id="t1",
            action="sent",
            invite_id=1,
            email="new@x.com",
            role=RoleRef(id=3, name="User"),
            metadata=performer_metadata(admin),
        )

        assert action_label(event) == "Invite User"
        assert describe(event) == "new@x.com was invited with role User by Olivia Owner"

    def test_action_without_label(self):
        event = RoleEvent(tenant_id="t1", action="permissions_synced", role=RoleRef(id=3, name="User"))

        assert action_label(event) == "Permissions synced"
        assert describe(event) == "Role 'User' - permissions_synced"


class TestRecord:
    """Test one row per event"""

    def test_record_role_event(self, activity, admin):
        event = RoleEvent(
            tenant_id="t1",
            action="created",
            role=RoleRef(id=9, name="Barista"),
            metadata=performer_metadata(admin),
        )

        log = activity.record(event)

        assert log.feature == "Role"
        assert log.action == "Create Role"
        assert log.details == "Role 'Barista' was created by Olivia Owner"
        assert log.performed_by == admin.id
        assert log.performed_at == event.occurred_at

    def test_redelivered_event_is_logged_once(self, activity, tenant_session, admin):
        event = RoleEvent(tenant_id="t1", action="deleted", role=RoleRef(id=9, name="Barista"))

        first = activity.record(event)
        again = activity.record(event)

        assert again.id == first.id
        assert len(tenant_session.exec(select(ActivityLog)).all()) == 1

    def test_user_invited_is_not_logged(self, activity, tenant_session):
        event = UserEvent(tenant_id="t1", action="invited", user_id=None, user_name="new@x.com", user_email="new@x.com")

        assert activity.record(event) is None
        assert tenant_session.exec(select(ActivityLog)).all() == []

    def test_unknown_performer_is_dropped(self, activity):
        event = RoleEvent(
            tenant_id="t1",
            action="updated",
            role=RoleRef(id=9, name="Barista"),
            metadata={"performer": 4242, "performer_name": "Gone"},
        )

        log = activity.record(event)

        assert log.performed_by is None


class TestRecorder:
    """Test the dispatcher subscriber against real services"""

    def test_invite_flow_is_logged(self, recorder, activity, tenant, tenant_session, central_session, roles, admin, events):
        invites = InviteLifecycle(tenant.id, tenant_session, central_session, mail=MagicMock(), publish=events.append)

        invite = invites.issue(["new@x.com"], roles["User"].id, inviter=admin).created[0]
        invites.resend(invite.id, actor=admin)
        invites.cancel(invite.id, actor=admin)
        record_all(recorder, events)

        page = activity.list_logs()
        assert [entry.log.action for entry in page.entries] == ["Cancel Invite", "Resend Invite", "Invite User"]
        assert {entry.log.feature for entry in page.entries} == {"User"}
        assert all(entry.performer.id == admin.id for entry in page.entries)

    def test_user_and_role_changes_are_logged(self, recorder, activity, tenant, tenant_session, roles, admin, add_member, events):
        member = add_member("Uma Two", "uma@acme.io", "User")
        users = UserService(tenant.id, tenant_session, publish=events.append)
        role_service = RoleService(tenant.id, tenant_session, publish=events.append)

        users.update_user_role(member.id, roles["Manager"].id, actor=admin)
        users.disable_user(member.id, actor=admin)
        role_service.create_role("Barista", actor=admin)
        record_all(recorder, events)

        assert activity.available_features() == ["Role", "User"]
        assert activity.available_actions() == ["Create Role", "Disable User", "Update Role"]
        details = [entry.log.details for entry in activity.list_logs(feature="User").entries]
        assert details == [
            "User Uma Two was disabled by Olivia Owner",
            "User Uma Two role changed from User to Manager by Olivia Owner",
        ]

    def test_deleting_performer_keeps_history(self, recorder, activity, tenant, tenant_session, roles, admin, add_member, events):
        manager = add_member("Mia Manager", "mia@acme.io", "Admin")
        role_service = RoleService(tenant.id, tenant_session, publish=events.append)
        role_service.create_role("Barista", actor=manager)
        record_all(recorder, events)

        UserService(tenant.id, tenant_session, publish=events.append).delete_user(manager.id, actor=admin)
        record_all(recorder, events)

        logs = {entry.log.action: entry for entry in activity.list_logs().entries}
        assert logs["Create Role"].log.performed_by is None
        assert logs["Create Role"].performer is None
        assert logs["Delete User"].performer.id == admin.id

    def test_missing_tenant_is_skipped(self, recorder):
        event = RoleEvent(tenant_id="no-such-tenant", action="created", role=RoleRef(id=1, name="User"))

        assert recorder.handle(event) is None


class TestListLogs:
    """Test filters and pagination"""

    @pytest.fixture
    def logged(self, activity, admin, add_member):
        member = add_member("Uma Two", "uma@acme.io", "Manager")
        old = RoleEvent(tenant_id="t1", action="created", role=RoleRef(id=9, name="Barista"),
                        metadata=performer_metadata(admin))
        old.occurred_at = utcnow() - timedelta(days=10)
        activity.record(old)
        activity.record(RoleEvent(tenant_id="t1", action="updated", role=RoleRef(id=9, name="Barista"),
                                  metadata=performer_metadata(member)))
        activity.record(InviteEvent(tenant_id="t1", action="sent", invite_id=1, email="new@x.com",
                                    role=RoleRef(id=3, name="User"), metadata=performer_metadata(member)))
        return member

    def test_newest_first(self, activity, logged):
        page = activity.list_logs()

        assert page.total == 3
        assert [entry.log.action for entry in page.entries] == ["Invite User", "Update Role", "Create Role"]

    def test_filter_by_feature_action_and_performer(self, activity, logged, admin):
        assert activity.list_logs(feature="Role").total == 2
        assert activity.list_logs(action="Invite User").total == 1
        assert activity.list_logs(performed_by=admin.id).total == 1
        assert activity.list_logs(performed_by=logged.id).total == 2

    def test_search_matches_details_and_performer(self, activity, logged):
        assert activity.list_logs(search="barista").total == 2
        assert activity.list_logs(search="uma@acme.io").total == 2
        assert activity.list_logs(search="nothing-like-this").total == 0

    def test_date_range(self, activity, logged):
        today = utcnow().date()

        assert activity.list_logs(date_from=today).total == 2
        assert activity.list_logs(date_to=today - timedelta(days=5)).total == 1
        assert activity.list_logs(date_from=today, date_to=today).total == 2

    def test_pagination(self, activity, logged):
        page = activity.list_logs(page=2, per_page=10)

        assert page.total == 3
        assert page.entries == []

    def test_invalid_filters(self, activity):
        today = utcnow().date()

        with pytest.raises(InvalidInput, match="end date"):
            activity.list_logs(date_from=today, date_to=today - timedelta(days=1))
        with pytest.raises(InvalidInput):
            activity.list_logs(per_page=500)
        with pytest.raises(InvalidInput):
            activity.list_logs(page=0)
