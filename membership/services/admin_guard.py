"""
Admin invariant guard

Every tenant keeps at least one user holding the Admin role. The predicates
below answer whether an operation would break that; callers evaluate them
inside the transaction that performs the guarded mutation, after locking
the Admin holders with lock_admins().
"""

from typing import List, Optional
from sqlmodel import Session, select

from membership.core.exceptions import PolicyViolation
from membership.core.permissions import ADMIN_ROLE
from membership.models import Role, TenantUser

SOLE_ADMIN_ROLE_CHANGE = (
    "Cannot remove the Admin role from the only admin user. "
    "Please assign the Admin role to another user first."
)
SOLE_ADMIN_DISABLE = (
    "Cannot disable the only admin user. "
    "Please assign the Admin role to another user first."
)
SOLE_ADMIN_DELETE = (
    "Cannot delete the only admin user. "
    "Please assign the Admin role to another user first."
)
SELF_DISABLE = "You cannot disable your own account."
SELF_DELETE = "You cannot delete your own account."
SELF_ENABLE = "You cannot enable your own account."


class AdminInvariantGuard:
    """Pure decisions over the Admin holders of one tenant store"""

    def __init__(self, session: Session):
        self.session = session

    def admin_role(self) -> Optional[Role]:
        return self.session.exec(select(Role).where(Role.name == ADMIN_ROLE)).first()

    def lock_admins(self) -> List[TenantUser]:
        """Row-lock the Admin holders for the rest of the transaction"""
        role = self.admin_role()
        if role is None:
            return []
        return list(self.session.exec(
            select(TenantUser)
            .where(TenantUser.role_id == role.id)
            .order_by(TenantUser.id)
            .with_for_update()
        ).all())

    def admin_count(self) -> int:
        return len(self.lock_admins())

    def is_admin(self, user: TenantUser) -> bool:
        role = self.admin_role()
        return role is not None and user.role_id == role.id

    def is_sole_admin(self, user: TenantUser) -> bool:
        return self.is_admin(user) and self.admin_count() == 1

    def can_change_role(self, user: TenantUser, new_role_id: Optional[int]) -> bool:
        """The sole admin may only be reassigned to Admin itself"""
        if not self.is_sole_admin(user):
            return True
        role = self.admin_role()
        return new_role_id is not None and new_role_id == role.id

    def can_disable_or_delete(self, user: TenantUser, actor: Optional[TenantUser] = None) -> bool:
        if actor is not None and actor.id == user.id:
            return False
        return not self.is_sole_admin(user)

    def can_enable(self, user: TenantUser, actor: Optional[TenantUser]) -> bool:
        return actor is None or actor.id != user.id

    # Raising forms used by the services

    def ensure_can_change_role(self, user: TenantUser, new_role_id: Optional[int]) -> None:
        if not self.can_change_role(user, new_role_id):
            raise PolicyViolation(SOLE_ADMIN_ROLE_CHANGE)

    def ensure_can_disable(self, user: TenantUser, actor: Optional[TenantUser]) -> None:
        if actor is not None and actor.id == user.id:
            raise PolicyViolation(SELF_DISABLE)
        if not self.can_disable_or_delete(user, actor):
            raise PolicyViolation(SOLE_ADMIN_DISABLE)

    def ensure_can_delete(self, user: TenantUser, actor: Optional[TenantUser]) -> None:
        if actor is not None and actor.id == user.id:
            raise PolicyViolation(SELF_DELETE)
        if not self.can_disable_or_delete(user, actor):
            raise PolicyViolation(SOLE_ADMIN_DELETE)

    def ensure_can_enable(self, user: TenantUser, actor: Optional[TenantUser]) -> None:
        if not self.can_enable(user, actor):
            raise PolicyViolation(SELF_ENABLE)
