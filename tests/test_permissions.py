"""
Unit tests for RBAC permission system
"""

import pytest

from membership.core.exceptions import PermissionDenied
from membership.core.permissions import (
    Permission,
    SYSTEM_ROLE_PERMISSIONS,
    authorize,
    get_permissions_for_role,
    has_permission,
    parse_permissions,
    validate_permission_names,
)
from membership.models import Role


def make_role(name: str, permissions) -> Role:
    return Role(name=name, permissions=[p.value for p in permissions])


def test_get_permissions_for_role():
    """Test permission retrieval from role rows"""
    # Admin has all permissions
    admin_perms = get_permissions_for_role(make_role("Admin", SYSTEM_ROLE_PERMISSIONS["Admin"]))
    assert admin_perms == set(Permission)

    # Manager manages users but cannot edit roles or invite
    manager_perms = get_permissions_for_role(make_role("Manager", SYSTEM_ROLE_PERMISSIONS["Manager"]))
    assert Permission.MANAGE_USER in manager_perms
    assert Permission.MODIFY_ROLES not in manager_perms
    assert Permission.INVITE_USER not in manager_perms

    # No role, no permissions
    assert get_permissions_for_role(None) == set()


def test_has_permission():
    """Test permission checking logic"""
    user_perms = get_permissions_for_role(make_role("User", SYSTEM_ROLE_PERMISSIONS["User"]))

    assert has_permission(Permission.VIEW_USER, user_perms)
    assert not has_permission(Permission.MANAGE_USER, user_perms)


def test_parse_permissions_ignores_unknown():
    assert parse_permissions(["View User", "Brew Coffee"]) == {Permission.VIEW_USER}


def test_authorize():
    """Test authorize raises for missing permissions and disabled users"""
    role = make_role("Manager", SYSTEM_ROLE_PERMISSIONS["Manager"])

    authorize(role, Permission.MANAGE_USER)

    with pytest.raises(PermissionDenied) as error:
        authorize(role, Permission.MODIFY_ROLES)
    assert error.value.permission == "Modify Roles"

    with pytest.raises(PermissionDenied):
        authorize(role, Permission.MANAGE_USER, is_disabled=True)


def test_validate_permission_names():
    assert validate_permission_names(["View User", "Invite User", "View User"]) == ["Invite User", "View User"]
    assert validate_permission_names(None) == []

    with pytest.raises(ValueError, match="Brew Coffee"):
        validate_permission_names(["Brew Coffee"])
