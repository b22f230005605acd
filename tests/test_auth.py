"""
Unit test for JWT authentication and central accounts
"""

import pytest
from datetime import timedelta
from jose import jwt

from membership.core.auth import (
    SessionScope,
    TokenSessionContext,
    create_access_token,
    decode_access_token,
    hash_password,
    verify_password,
)
from membership.core.config import get_settings
from membership.core.exceptions import InvalidInput, NotFound, PolicyViolation, StateConflict
from membership.services.identity_store import TenantIdentityRepository
from membership.services.membership import MembershipLinker

settings = get_settings()


def test_password_hashing():
    """Test bcrypt hashing round trip"""
    digest = hash_password("secret123")

    assert digest != "secret123"
    assert verify_password(digest, "secret123") is True
    assert verify_password(digest, "wrong-password") is False
    assert verify_password("not-a-bcrypt-digest", "secret123") is False


def test_create_tenant_token():
    """Test JWT token creation"""
    token = create_access_token("global-1", SessionScope.TENANT, tenant_id="tenant-1")

    payload = decode_access_token(token)
    assert payload["sub"] == "global-1"
    assert payload["scope"] == "tenant"
    assert payload["tenant_id"] == "tenant-1"
    assert "exp" in payload


def test_tenant_token_needs_tenant():
    with pytest.raises(ValueError):
        create_access_token("global-1", SessionScope.TENANT)


def test_decode_expired_token():
    token = create_access_token("global-1", SessionScope.CENTRAL, expires_delta=timedelta(seconds=-1))

    assert decode_access_token(token) is None


def test_decode_token_with_unknown_scope():
    token = jwt.encode({"sub": "global-1", "scope": "admin"}, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)

    assert decode_access_token(token) is None


def test_decode_token_with_wrong_key():
    token = jwt.encode({"sub": "global-1", "scope": "central"}, "another-key", algorithm=settings.JWT_ALGORITHM)

    assert decode_access_token(token) is None


class TestSessionContext:
    """Test per-scope login state"""

    def test_login_per_scope(self, owner):
        context = TokenSessionContext()

        context.login(owner, SessionScope.CENTRAL)

        assert context.is_authenticated(SessionScope.CENTRAL)
        assert not context.is_authenticated(SessionScope.TENANT)
        assert context.current_identity(SessionScope.CENTRAL) is owner
        assert decode_access_token(context.tokens[SessionScope.CENTRAL])["sub"] == owner.global_id


class TestCentralAccounts:
    """Test registration, login and business switching"""

    def test_register_logs_in(self, provisioning):
        context = TokenSessionContext()

        user = provisioning.register_central_identity("Bob", "Bob@X.com", "bobpassword", session_context=context)

        assert user.email == "bob@x.com"
        assert context.current_identity(SessionScope.CENTRAL) is user

    def test_register_validation(self, provisioning, owner):
        with pytest.raises(InvalidInput):
            provisioning.register_central_identity(" ", "bob@x.com", "bobpassword")
        with pytest.raises(InvalidInput):
            provisioning.register_central_identity("Bob", "bob@x.com", "short")
        with pytest.raises(StateConflict):
            provisioning.register_central_identity("Olivia Again", "OLIVIA@acme.io", "password123")

    def test_authenticate(self, provisioning, owner):
        assert provisioning.authenticate("olivia@acme.io", "password123").global_id == owner.global_id
        assert provisioning.authenticate("olivia@acme.io", "wrong-password") is None
        assert provisioning.authenticate("nobody@acme.io", "password123") is None

    def test_create_tenant_makes_creator_admin(self, provisioning, owner, tenant, tenant_session, roles, central_session):
        user = TenantIdentityRepository(tenant_session).find_by_global_id(owner.global_id)

        assert user.role_id == roles["Admin"].id
        assert MembershipLinker(central_session).favorite_tenant(owner.global_id) == tenant.id

    def test_provision_tenant_is_rerunnable(self, provisioning, owner, tenant, tenant_session, roles):
        user = provisioning.provision_tenant(tenant.id, owner)

        assert user.role_id == roles["Admin"].id
        assert len(TenantIdentityRepository(tenant_session).list()) == 1

    def test_switch_to_tenant(self, provisioning, owner, tenant):
        context = TokenSessionContext()

        user, token = provisioning.switch_to_tenant(owner, tenant.id, context)

        payload = decode_access_token(token)
        assert payload["scope"] == "tenant"
        assert payload["tenant_id"] == tenant.id
        assert user.global_id == owner.global_id
        assert context.is_authenticated(SessionScope.TENANT)

    def test_switch_requires_membership(self, provisioning, tenant):
        bob = provisioning.register_central_identity("Bob", "bob@x.com", "bobpassword")

        with pytest.raises(PolicyViolation):
            provisioning.switch_to_tenant(bob, tenant.id, TokenSessionContext())

    def test_switch_refuses_disabled_user(self, provisioning, tenant, add_member, admin, tenant_session):
        member = add_member("Uma Two", "uma@acme.io", "User")
        member.is_disabled = True
        tenant_session.add(member)
        tenant_session.commit()
        central = provisioning.central_users.get(member.global_id)

        with pytest.raises(PolicyViolation, match="disabled"):
            provisioning.switch_to_tenant(central, tenant.id, TokenSessionContext())

    def test_switch_to_unknown_tenant(self, provisioning, owner):
        with pytest.raises(NotFound):
            provisioning.switch_to_tenant(owner, "no-such-tenant", TokenSessionContext())

    def test_grant_access_refuses_demoting_sole_admin(self, provisioning, owner, tenant):
        with pytest.raises(PolicyViolation):
            provisioning.grant_access(owner, tenant.id, "User")
