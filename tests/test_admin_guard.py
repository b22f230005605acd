"""
Unit tests for the admin invariant guard predicates
"""

from membership.services.admin_guard import AdminInvariantGuard


class TestAdminInvariantGuard:
    """Test guard decisions over the Admin holders"""

    def test_sole_admin(self, tenant_session, admin):
        guard = AdminInvariantGuard(tenant_session)

        assert guard.admin_count() == 1
        assert guard.is_admin(admin) is True
        assert guard.is_sole_admin(admin) is True

    def test_can_change_role(self, tenant_session, admin, roles, add_member):
        guard = AdminInvariantGuard(tenant_session)

        assert guard.can_change_role(admin, roles["User"].id) is False
        assert guard.can_change_role(admin, None) is False
        assert guard.can_change_role(admin, roles["Admin"].id) is True

        add_member("Ada Second", "ada@acme.io", "Admin")
        assert guard.can_change_role(admin, roles["User"].id) is True

    def test_non_admin_is_unrestricted(self, tenant_session, add_member, roles):
        member = add_member("Uma Two", "uma@acme.io", "User")
        guard = AdminInvariantGuard(tenant_session)

        assert guard.is_admin(member) is False
        assert guard.can_change_role(member, roles["Manager"].id) is True
        assert guard.can_disable_or_delete(member) is True

    def test_can_disable_or_delete(self, tenant_session, admin, add_member):
        guard = AdminInvariantGuard(tenant_session)
        other = add_member("Ada Second", "ada@acme.io", "Admin")

        assert guard.can_disable_or_delete(admin, actor=other) is True
        assert guard.can_disable_or_delete(admin, actor=admin) is False

    def test_disabled_admins_still_count(self, tenant_session, admin, add_member):
        other = add_member("Ada Second", "ada@acme.io", "Admin")
        other.is_disabled = True
        tenant_session.add(other)
        tenant_session.commit()

        guard = AdminInvariantGuard(tenant_session)

        assert guard.admin_count() == 2
        assert guard.is_sole_admin(admin) is False

    def test_can_enable(self, tenant_session, admin, add_member):
        guard = AdminInvariantGuard(tenant_session)
        other = add_member("Uma Two", "uma@acme.io", "User")

        assert guard.can_enable(other, actor=admin) is True
        assert guard.can_enable(admin, actor=admin) is False
