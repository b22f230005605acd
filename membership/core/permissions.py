"""
RBAC (Role-Based Access Control) permission system

Permissions live on tenant roles as a list of names. The seeded system roles
below are created in every tenant store at provisioning time.
"""

from enum import Enum
from typing import Dict, Iterable, Optional, Set

from membership.core.exceptions import PermissionDenied


class Permission(str, Enum):
    """Permission definitions"""
    # Role permissions
    VIEW_ROLE = "View Role"
    MODIFY_ROLES = "Modify Roles"

    # User permissions
    VIEW_USER = "View User"
    INVITE_USER = "Invite User"
    MANAGE_USER = "Manage User"

    # Activity log permissions
    VIEW_ACTIVITY_LOG = "View Activity Log"


ADMIN_ROLE = "Admin"

# Seeded role permission mapping
SYSTEM_ROLE_PERMISSIONS: Dict[str, Set[Permission]] = {
    ADMIN_ROLE: {
        # Admins have all permissions
        Permission.VIEW_ROLE,
        Permission.MODIFY_ROLES,
        Permission.VIEW_USER,
        Permission.INVITE_USER,
        Permission.MANAGE_USER,
        Permission.VIEW_ACTIVITY_LOG,
    },
    "Manager": {
        # Managers handle users but cannot invite or edit roles
        Permission.VIEW_ROLE,
        Permission.VIEW_USER,
        Permission.MANAGE_USER,
        Permission.VIEW_ACTIVITY_LOG,
    },
    "User": {
        Permission.VIEW_USER,
    },
    "Moderator": {
        Permission.VIEW_USER,
    },
}

SYSTEM_ROLE_DESCRIPTIONS: Dict[str, str] = {
    ADMIN_ROLE: "Full access to the organization",
    "Manager": "Manages users and views roles",
    "User": "Basic member access",
    "Moderator": "Can view members",
}

# Only the Admin role is locked against edits
PROTECTED_ROLES: Set[str] = {ADMIN_ROLE}


def parse_permissions(names: Iterable[str]) -> Set[Permission]:
    """Convert stored permission names, ignoring unknown ones"""
    known = {p.value: p for p in Permission}
    return {known[name] for name in names if name in known}


def get_permissions_for_role(role) -> Set[Permission]:
    """Get permissions for a role row (or None)"""
    if role is None:
        return set()
    return parse_permissions(role.permissions or [])


def has_permission(required_permission: Permission, user_permissions: Set[Permission]) -> bool:
    """Check if user has required permission"""
    return required_permission in user_permissions


def authorize(role, required_permission: Permission, is_disabled: bool = False) -> None:
    """Raise PermissionDenied unless the role grants the permission"""
    if is_disabled or not has_permission(required_permission, get_permissions_for_role(role)):
        raise PermissionDenied(required_permission.value)


def validate_permission_names(names: Optional[Iterable[str]]) -> list[str]:
    """Return the names sorted, raising ValueError on unknown permissions"""
    names = list(names or [])
    unknown = sorted(set(names) - {p.value for p in Permission})
    if unknown:
        raise ValueError(f"Unknown permissions: {', '.join(unknown)}")
    return sorted(set(names))
