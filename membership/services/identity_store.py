"""
Identity store

Two explicit repositories: the central repository works on a central store
session, the tenant repository on one tenant store session. IdentityStore
bundles them with the tenant database manager so callers always name the
scope they are working in.
"""

from typing import Iterable, List, Optional
from sqlmodel import Session, select
import structlog

from membership.core.clock import utcnow
from membership.core.database import TenantDatabaseManager, transaction
from membership.core.exceptions import NotFound, StateConflict
from membership.models import CentralUser, TenantMembership, TenantUser, normalize_email

logger = structlog.get_logger(__name__)


class CentralIdentityRepository:
    """Central users, keyed by global_id"""

    def __init__(self, session: Session):
        self.session = session

    def get(self, global_id: str) -> Optional[CentralUser]:
        return self.session.exec(
            select(CentralUser).where(CentralUser.global_id == global_id)
        ).first()

    def get_or_404(self, global_id: str) -> CentralUser:
        user = self.get(global_id)
        if user is None:
            raise NotFound("Central user", global_id)
        return user

    def find_by_email(self, email: str) -> Optional[CentralUser]:
        return self.session.exec(
            select(CentralUser).where(CentralUser.email == normalize_email(email))
        ).first()

    def add(self, name: str, email: str, password_hash: str) -> CentralUser:
        """Stage a new central user; the caller owns the transaction"""
        user = CentralUser(name=name, email=normalize_email(email), password_hash=password_hash)
        self.session.add(user)
        self.session.flush()
        return user


class TenantIdentityRepository:
    """Tenant users of one tenant store, keyed by global_id"""

    def __init__(self, session: Session):
        self.session = session

    def get(self, user_id: int) -> Optional[TenantUser]:
        return self.session.get(TenantUser, user_id)

    def get_or_404(self, user_id: int) -> TenantUser:
        user = self.get(user_id)
        if user is None:
            raise NotFound("User", user_id)
        return user

    def find_by_global_id(self, global_id: str) -> Optional[TenantUser]:
        return self.session.exec(
            select(TenantUser).where(TenantUser.global_id == global_id)
        ).first()

    def find_by_email(self, email: str) -> Optional[TenantUser]:
        return self.session.exec(
            select(TenantUser).where(TenantUser.email == normalize_email(email))
        ).first()

    def list(self) -> List[TenantUser]:
        return list(self.session.exec(select(TenantUser).order_by(TenantUser.id)).all())

    def add_from_central(self, central: CentralUser, role_id: Optional[int] = None) -> TenantUser:
        """Stage a tenant user mirroring the central user's synced attributes"""
        user = TenantUser(**central.synced_attributes(), role_id=role_id)
        self.session.add(user)
        self.session.flush()
        return user

    def apply_central(self, user: TenantUser, central: CentralUser) -> bool:
        """Copy synced attributes onto the tenant user; returns whether anything changed"""
        changed = False
        for name, value in central.synced_attributes().items():
            if getattr(user, name) != value:
                setattr(user, name, value)
                changed = True
        if changed:
            user.updated_at = utcnow()
            self.session.add(user)
        return changed


class IdentityStore:
    """Entry point to both identity spaces"""

    def __init__(self, central_session: Session, tenant_databases: TenantDatabaseManager):
        self.central_session = central_session
        self.tenant_databases = tenant_databases
        self.central = CentralIdentityRepository(central_session)

    def tenant(self, session: Session) -> TenantIdentityRepository:
        return TenantIdentityRepository(session)

    def tenant_ids_for(self, global_id: str) -> List[str]:
        return list(self.central_session.exec(
            select(TenantMembership.tenant_id).where(TenantMembership.global_id == global_id)
        ).all())

    def update_central(
        self,
        global_id: str,
        name: Optional[str] = None,
        email: Optional[str] = None,
        email_verified_at=None,
    ) -> CentralUser:
        """
        Update the central user, then propagate the synced attributes to every
        tenant store the user is a member of. Each tenant is its own transaction,
        so a failing tenant is logged and the next one still gets updated; the
        sync is idempotent and can simply be run again.
        """
        with transaction(self.central_session):
            central = self.central.get_or_404(global_id)
            if email is not None:
                other = self.central.find_by_email(email)
                if other is not None and other.global_id != global_id:
                    raise StateConflict("Email already registered")
            if name is not None:
                central.name = name
            if email is not None:
                central.email = normalize_email(email)
            if email_verified_at is not None:
                central.email_verified_at = email_verified_at
            central.updated_at = utcnow()
            self.central_session.add(central)

        self.sync_tenants(central, self.tenant_ids_for(global_id))
        return central

    def sync_tenants(self, central: CentralUser, tenant_ids: Iterable[str]) -> List[str]:
        """Push synced attributes into the given tenant stores, returns the tenants that failed"""
        failed = []
        for tenant_id in tenant_ids:
            session = self.tenant_databases.session(tenant_id)
            try:
                with transaction(session):
                    repo = self.tenant(session)
                    user = repo.find_by_global_id(central.global_id)
                    if user is not None and repo.apply_central(user, central):
                        logger.info(f"Synced central user {central.global_id} into tenant {tenant_id}")
            except Exception as e:
                logger.error(f"Failed to sync central user {central.global_id} into tenant {tenant_id}: {e}")
                failed.append(tenant_id)
            finally:
                session.close()
        return failed
