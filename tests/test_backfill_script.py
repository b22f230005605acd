"""
Tests for the notification settings back-fill job
"""

from sqlmodel import select

from membership.models import EventType, NotificationSetting, Tenant
from membership.scripts.backfill_notification_settings import backfill_all, backfill_tenant


def drop_settings(session, event_type: str) -> None:
    for row in session.exec(select(NotificationSetting).where(NotificationSetting.event_type == event_type)).all():
        session.delete(row)
    session.commit()


class TestBackfill:
    """Missing rows are created, existing preferences are kept"""

    def test_backfill_tenant(self, tenant, tenant_databases, tenant_session, add_member):
        add_member("Uma Two", "uma@acme.io", "User")
        drop_settings(tenant_session, "role_deleted")

        assert backfill_tenant(tenant.id, tenant_databases) == 2
        assert backfill_tenant(tenant.id, tenant_databases) == 0

        rows = tenant_session.exec(select(NotificationSetting)).all()
        assert len(rows) == 2 * len(EventType)

    def test_backfill_all_survives_failing_tenant(self, central_session, tenant, tenant_databases, tenant_session):
        drop_settings(tenant_session, "invite_resent")
        central_session.add(Tenant(id="tenant-without-store", name="Broken"))
        central_session.commit()

        results = backfill_all(central_session, tenant_databases)

        assert results["created"] == 1
        assert results["tenants"] == 1
        assert results["failed"] == ["tenant-without-store"]
