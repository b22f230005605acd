"""
Tenant role management
"""

from typing import Iterable, List, Optional
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, func, select
import structlog

from membership.core.clock import utcnow
from membership.core.database import transaction
from membership.core.dispatcher import EventPublisher, dispatcher, publish_safely
from membership.core.events import RoleEvent, performer_metadata
from membership.core.exceptions import InvalidInput, NotFound, RoleInUse, SystemRoleProtected
from membership.core.permissions import validate_permission_names
from membership.models import Invite, Role, TenantUser

logger = structlog.get_logger(__name__)


class RoleService:
    """Roles of one tenant store"""

    def __init__(self, tenant_id: str, session: Session, publish: Optional[EventPublisher] = None):
        self.tenant_id = tenant_id
        self.session = session
        self.publish = publish or dispatcher.publish

    def list_roles(self) -> List[Role]:
        return list(self.session.exec(select(Role).order_by(Role.name)).all())

    def get_role(self, role_id: int) -> Role:
        role = self.session.get(Role, role_id)
        if role is None:
            raise NotFound("Role", role_id)
        return role

    def find_by_name(self, name: str) -> Optional[Role]:
        return self.session.exec(select(Role).where(Role.name == name)).first()

    def holder_count(self, role_id: int) -> int:
        return self.session.exec(
            select(func.count()).select_from(TenantUser).where(TenantUser.role_id == role_id)
        ).one()

    def _clean_name(self, name: Optional[str], exclude_id: Optional[int] = None) -> str:
        name = (name or "").strip()
        if not name:
            raise InvalidInput("Role name is required")
        if len(name) > 100:
            raise InvalidInput("Role name must be at most 100 characters")
        existing = self.find_by_name(name)
        if existing is not None and existing.id != exclude_id:
            raise InvalidInput(f"Role name already taken: {name}")
        return name

    def _permissions(self, names: Optional[Iterable[str]]) -> List[str]:
        try:
            return validate_permission_names(names)
        except ValueError as e:
            raise InvalidInput(str(e))

    def _publish(self, role: Role, action: str, actor) -> None:
        publish_safely(self.publish, RoleEvent(
            tenant_id=self.tenant_id,
            action=action,
            role=role.ref(),
            metadata=performer_metadata(actor),
        ))

    def _save_new(self, role: Role) -> Role:
        try:
            with transaction(self.session):
                self.session.add(role)
        except IntegrityError:
            raise InvalidInput(f"Role name already taken: {role.name}")
        return role

    def create_role(
        self,
        name: str,
        description: Optional[str] = None,
        permissions: Optional[Iterable[str]] = None,
        actor=None,
    ) -> Role:
        role = Role(
            name=self._clean_name(name),
            description=description,
            permissions=self._permissions(permissions),
        )
        self._save_new(role)
        logger.info(f"Role created: {role.name} in tenant {self.tenant_id}")
        self._publish(role, "created", actor)
        return role

    def update_role(
        self,
        role_id: int,
        name: Optional[str] = None,
        description: Optional[str] = None,
        permissions: Optional[Iterable[str]] = None,
        actor=None,
    ) -> Role:
        with transaction(self.session):
            role = self.get_role(role_id)
            if not role.can_be_modified():
                raise SystemRoleProtected("System roles cannot be modified.")
            if name is not None:
                role.name = self._clean_name(name, exclude_id=role.id)
            if description is not None:
                role.description = description
            if permissions is not None:
                role.permissions = self._permissions(permissions)
            role.updated_at = utcnow()
            self.session.add(role)

        logger.info(f"Role updated: {role.name} in tenant {self.tenant_id}")
        self._publish(role, "updated", actor)
        return role

    def delete_role(self, role_id: int, actor=None) -> None:
        """Only non-system roles nobody holds, and no open invite targets, can go"""
        with transaction(self.session):
            role = self.get_role(role_id)
            if not role.can_be_modified():
                raise SystemRoleProtected("System roles cannot be deleted.")
            holders = self.holder_count(role.id)
            if holders:
                raise RoleInUse(f"Role '{role.name}' is assigned to {holders} user(s)")
            open_invites = self.session.exec(
                select(func.count()).select_from(Invite).where(
                    Invite.role_id == role.id,
                    Invite.accepted_at.is_(None),
                )
            ).one()
            if open_invites:
                raise RoleInUse(f"Role '{role.name}' is used by {open_invites} open invitation(s)")
            ref = role.ref()
            self.session.delete(role)

        logger.info(f"Role deleted: {ref.name} in tenant {self.tenant_id}")
        publish_safely(self.publish, RoleEvent(
            tenant_id=self.tenant_id,
            action="deleted",
            role=ref,
            metadata=performer_metadata(actor),
        ))

    def copy_name(self, name: str) -> str:
        """'<name> (Copy)', then '<name> (Copy) 1', '<name> (Copy) 2', ..."""
        base = f"{name} (Copy)"
        candidate = base
        counter = 1
        while self.find_by_name(candidate) is not None:
            candidate = f"{base} {counter}"
            counter += 1
        return candidate

    def copy_role(self, role_id: int, actor=None) -> Role:
        source = self.get_role(role_id)
        if not source.can_be_modified():
            raise SystemRoleProtected("System roles cannot be copied.")
        role = Role(
            name=self.copy_name(source.name),
            description=source.description,
            permissions=list(source.permissions or []),
        )
        self._save_new(role)
        logger.info(f"Role copied: {source.name} -> {role.name} in tenant {self.tenant_id}")
        self._publish(role, "created", actor)
        return role
