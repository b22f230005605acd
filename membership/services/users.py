"""
Tenant user management

Role changes, disable and delete are checked by the admin guard inside the
same transaction that applies them.
"""

from typing import List, Optional
from sqlmodel import Session, select
import structlog

from membership.core.clock import utcnow
from membership.core.database import transaction
from membership.core.dispatcher import EventPublisher, dispatcher, publish_safely
from membership.core.events import RoleRef, UserEvent, performer_metadata
from membership.core.exceptions import NotFound
from membership.models import DeviceToken, Notification, NotificationSetting, Role, TenantUser, UserStatus
from membership.services.activity_log import ActivityLogService
from membership.services.admin_guard import AdminInvariantGuard
from membership.services.identity_store import TenantIdentityRepository

logger = structlog.get_logger(__name__)


class UserService:
    """Users of one tenant store"""

    def __init__(self, tenant_id: str, session: Session, publish: Optional[EventPublisher] = None):
        self.tenant_id = tenant_id
        self.session = session
        self.users = TenantIdentityRepository(session)
        self.guard = AdminInvariantGuard(session)
        self.publish = publish or dispatcher.publish

    def list_users(self, status: Optional[UserStatus] = None) -> List[TenantUser]:
        users = self.users.list()
        if status is not None:
            users = [user for user in users if user.status == status]
        return users

    def get_user(self, user_id: int) -> TenantUser:
        return self.users.get_or_404(user_id)

    def _role_ref(self, role_id: Optional[int]) -> Optional[RoleRef]:
        if role_id is None:
            return None
        role = self.session.get(Role, role_id)
        return role.ref() if role is not None else None

    def _publish(self, user: TenantUser, action: str, actor: Optional[TenantUser], **extra) -> None:
        metadata = performer_metadata(actor)
        metadata.update(extra)
        publish_safely(self.publish, UserEvent(
            tenant_id=self.tenant_id,
            action=action,
            user_id=user.id,
            user_name=user.name,
            user_email=user.email,
            metadata=metadata,
        ))

    def update_user_role(self, user_id: int, role_id: int, actor: Optional[TenantUser] = None) -> TenantUser:
        with transaction(self.session):
            self.guard.lock_admins()
            user = self.users.get_or_404(user_id)
            role = self.session.get(Role, role_id)
            if role is None:
                raise NotFound("Role", role_id)
            if user.role_id == role.id:
                return user

            self.guard.ensure_can_change_role(user, role.id)
            old_role = self._role_ref(user.role_id)
            user.role_id = role.id
            user.updated_at = utcnow()
            self.session.add(user)

        logger.info(f"User {user.id} role changed to {role.name} in tenant {self.tenant_id}")
        self._publish(user, "role_updated", actor, old_role=old_role, new_role=role.ref())
        return user

    def disable_user(self, user_id: int, actor: Optional[TenantUser] = None) -> TenantUser:
        with transaction(self.session):
            self.guard.lock_admins()
            user = self.users.get_or_404(user_id)
            self.guard.ensure_can_disable(user, actor)
            user.is_disabled = True
            user.updated_at = utcnow()
            self.session.add(user)

        logger.info(f"User {user.id} disabled in tenant {self.tenant_id}")
        self._publish(user, "disabled", actor)
        return user

    def enable_user(self, user_id: int, actor: Optional[TenantUser] = None) -> TenantUser:
        with transaction(self.session):
            user = self.users.get_or_404(user_id)
            self.guard.ensure_can_enable(user, actor)
            user.is_disabled = False
            user.updated_at = utcnow()
            self.session.add(user)

        logger.info(f"User {user.id} enabled in tenant {self.tenant_id}")
        self._publish(user, "enabled", actor)
        return user

    def delete_user(self, user_id: int, actor: Optional[TenantUser] = None) -> TenantUser:
        """Remove the tenant user and its tenant-local rows; membership is left to the caller"""
        with transaction(self.session):
            self.guard.lock_admins()
            user = self.users.get_or_404(user_id)
            self.guard.ensure_can_delete(user, actor)
            for model in (NotificationSetting, Notification, DeviceToken):
                for row in self.session.exec(select(model).where(model.user_id == user.id)).all():
                    self.session.delete(row)
            ActivityLogService(self.session).detach_performer(user.id)
            # Child rows go first, the tenant store enforces foreign keys
            self.session.flush()
            self.session.delete(user)

        logger.info(f"User {user_id} deleted from tenant {self.tenant_id}")
        self._publish(user, "deleted", actor)
        return user

    def holders_of(self, role_id: int) -> List[TenantUser]:
        return list(self.session.exec(select(TenantUser).where(TenantUser.role_id == role_id)).all())
