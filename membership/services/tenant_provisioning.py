"""
Tenant provisioning and central account flows

Creating a tenant touches both stores: the tenant row and the creator's
membership are committed centrally first, then the tenant store is created,
seeded and the creator materialized as Admin. Every tenant-side step is
create-if-missing, so provision_tenant() can be rerun for a tenant whose
setup was interrupted.
"""

from typing import Optional, Tuple
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select
import structlog

from membership.core.auth import SessionContext, SessionScope, hash_password, verify_password
from membership.core.database import TenantDatabaseManager, transaction
from membership.core.exceptions import InvalidInput, NotFound, PolicyViolation, StateConflict
from membership.core.permissions import (
    ADMIN_ROLE,
    PROTECTED_ROLES,
    SYSTEM_ROLE_DESCRIPTIONS,
    SYSTEM_ROLE_PERMISSIONS,
)
from membership.models import CentralUser, Role, Tenant, TenantUser
from membership.services.admin_guard import AdminInvariantGuard
from membership.services.identity_store import CentralIdentityRepository, TenantIdentityRepository
from membership.services.membership import MembershipLinker

logger = structlog.get_logger(__name__)


def seed_roles(session: Session) -> int:
    """Create the seeded roles that are missing; returns how many were created"""
    existing = set(session.exec(select(Role.name)).all())
    missing = [name for name in SYSTEM_ROLE_PERMISSIONS if name not in existing]
    if not missing:
        return 0
    with transaction(session):
        for name in missing:
            session.add(Role(
                name=name,
                description=SYSTEM_ROLE_DESCRIPTIONS.get(name),
                is_system=name in PROTECTED_ROLES,
                permissions=sorted(p.value for p in SYSTEM_ROLE_PERMISSIONS[name]),
            ))
    logger.info(f"Seeded roles: {', '.join(missing)}")
    return len(missing)


class TenantProvisioningService:

    def __init__(self, central_session: Session, tenant_databases: TenantDatabaseManager):
        self.central_session = central_session
        self.tenant_databases = tenant_databases
        self.central_users = CentralIdentityRepository(central_session)
        self.linker = MembershipLinker(central_session)

    # Central accounts

    def register_central_identity(
        self,
        name: str,
        email: str,
        password: str,
        session_context: Optional[SessionContext] = None,
    ) -> CentralUser:
        name = (name or "").strip()
        if not name:
            raise InvalidInput("Name is required")
        if not password or len(password) < 8:
            raise InvalidInput("Password must be at least 8 characters")
        if self.central_users.find_by_email(email) is not None:
            raise StateConflict("Email already registered")

        try:
            with transaction(self.central_session):
                user = self.central_users.add(name=name, email=email, password_hash=hash_password(password))
        except IntegrityError:
            raise StateConflict("Email already registered")

        logger.info(f"Central user registered: {user.global_id}")
        if session_context is not None:
            session_context.login(user, SessionScope.CENTRAL)
        return user

    def authenticate(self, email: str, password: str) -> Optional[CentralUser]:
        user = self.central_users.find_by_email(email)
        if user is None or not verify_password(user.password_hash, password):
            logger.info(f"Failed login for {email}")
            return None
        return user

    # Tenants

    def get_tenant(self, tenant_id: str) -> Tenant:
        tenant = self.central_session.get(Tenant, tenant_id)
        if tenant is None:
            raise NotFound("Business", tenant_id)
        return tenant

    def create_tenant(self, owner: CentralUser, name: str) -> Tenant:
        """Create a tenant owned by `owner`, who becomes its Admin"""
        name = (name or "").strip()
        if not name:
            raise InvalidInput("Business name is required")

        with transaction(self.central_session):
            tenant = Tenant(name=name)
            self.central_session.add(tenant)
            self.central_session.flush()
            self.linker.stage_attach(owner, tenant.id)

        logger.info(f"Tenant created: {tenant.id} ({tenant.name}) by {owner.global_id}")
        self.provision_tenant(tenant.id, owner)

        if self.linker.favorite_tenant(owner.global_id) is None:
            self.linker.set_favorite(owner, tenant.id)
        return tenant

    def provision_tenant(self, tenant_id: str, owner: CentralUser) -> TenantUser:
        """Create the tenant store, seed roles and materialize the owner as Admin"""
        self.tenant_databases.create_tenant_database(tenant_id)
        session = self.tenant_databases.session(tenant_id)
        try:
            seed_roles(session)
            admin = session.exec(select(Role).where(Role.name == ADMIN_ROLE)).one()
            user = self.linker.materialize_identity(owner, session, role_id=admin.id)
            if user.role_id != admin.id:
                with transaction(session):
                    user.role_id = admin.id
                    session.add(user)
            return user
        finally:
            session.close()

    def grant_access(self, central: CentralUser, tenant_id: str, role_name: str) -> TenantUser:
        """Explicitly give an existing central user a role in a tenant"""
        self.get_tenant(tenant_id)
        self.linker.attach(central, tenant_id)

        session = self.tenant_databases.session(tenant_id)
        try:
            role = session.exec(select(Role).where(Role.name == role_name)).first()
            if role is None:
                raise NotFound("Role", role_name)
            user = self.linker.materialize_identity(central, session, role_id=role.id)
            if user.role_id != role.id:
                with transaction(session):
                    guard = AdminInvariantGuard(session)
                    guard.lock_admins()
                    guard.ensure_can_change_role(user, role.id)
                    user.role_id = role.id
                    session.add(user)
            logger.info(f"Granted {role_name} in tenant {tenant_id} to {central.global_id}")
            return user
        finally:
            session.close()

    def switch_to_tenant(
        self,
        central: CentralUser,
        tenant_id: str,
        session_context: SessionContext,
    ) -> Tuple[TenantUser, str]:
        """Log the central user into a tenant it belongs to"""
        self.get_tenant(tenant_id)
        if not self.linker.is_member(central.global_id, tenant_id):
            raise PolicyViolation("You do not have access to this business.")

        session = self.tenant_databases.session(tenant_id)
        try:
            user = TenantIdentityRepository(session).find_by_global_id(central.global_id)
        finally:
            session.close()
        if user is None:
            raise PolicyViolation("You do not have access to this business.")
        if user.is_disabled:
            raise PolicyViolation("Your account in this business is disabled.")

        token = session_context.login(central, SessionScope.TENANT, tenant_id=tenant_id)
        logger.info(f"Central user {central.global_id} switched to tenant {tenant_id}")
        return user, token
