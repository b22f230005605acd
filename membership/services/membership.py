"""
Membership linker

Links central users to tenants (central store) and provisions the tenant
user of a central user inside a tenant store on first use.
"""

from typing import List, Optional
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select
import structlog

from membership.core.database import transaction
from membership.core.exceptions import NotFound
from membership.models import CentralUser, Tenant, TenantMembership, TenantUser
from membership.services.identity_store import TenantIdentityRepository
from membership.services.notification_settings import NotificationSettingsService

logger = structlog.get_logger(__name__)


class MembershipLinker:
    """Membership rows live in the central store, tenant users in the tenant stores"""

    def __init__(self, central_session: Session):
        self.central_session = central_session

    # Central store

    def get_membership(self, global_id: str, tenant_id: str) -> Optional[TenantMembership]:
        return self.central_session.exec(
            select(TenantMembership).where(
                TenantMembership.global_id == global_id,
                TenantMembership.tenant_id == tenant_id,
            )
        ).first()

    def is_member(self, global_id: str, tenant_id: str) -> bool:
        return self.get_membership(global_id, tenant_id) is not None

    def stage_attach(self, central: CentralUser, tenant_id: str) -> TenantMembership:
        """Add the membership to the current central transaction if absent"""
        membership = self.get_membership(central.global_id, tenant_id)
        if membership is None:
            membership = TenantMembership(global_id=central.global_id, tenant_id=tenant_id)
            self.central_session.add(membership)
            self.central_session.flush()
        return membership

    def attach(self, central: CentralUser, tenant_id: str) -> TenantMembership:
        """Idempotent; does not create the tenant user"""
        try:
            with transaction(self.central_session):
                membership = self.stage_attach(central, tenant_id)
        except IntegrityError:
            # Attached concurrently
            membership = self.get_membership(central.global_id, tenant_id)
            if membership is None:
                raise
        logger.info(f"Central user {central.global_id} attached to tenant {tenant_id}")
        return membership

    def detach(self, central: CentralUser, tenant_id: str) -> bool:
        """Remove the membership; the tenant user is left alone"""
        with transaction(self.central_session):
            membership = self.get_membership(central.global_id, tenant_id)
            if membership is None:
                return False
            self.central_session.delete(membership)
        logger.info(f"Central user {central.global_id} detached from tenant {tenant_id}")
        return True

    def tenants_for(self, global_id: str) -> List[Tenant]:
        """Tenants of a central user, favorite first"""
        rows = self.central_session.exec(
            select(Tenant, TenantMembership.favorite)
            .join(TenantMembership, TenantMembership.tenant_id == Tenant.id)
            .where(TenantMembership.global_id == global_id)
            .order_by(TenantMembership.favorite.desc(), Tenant.name)
        ).all()
        return [tenant for tenant, _ in rows]

    def favorite_tenant(self, global_id: str) -> Optional[str]:
        return self.central_session.exec(
            select(TenantMembership.tenant_id).where(
                TenantMembership.global_id == global_id,
                TenantMembership.favorite == True,  # noqa: E712
            )
        ).first()

    def _locked_memberships(self, global_id: str) -> List[TenantMembership]:
        return list(self.central_session.exec(
            select(TenantMembership)
            .where(TenantMembership.global_id == global_id)
            .order_by(TenantMembership.id)
            .with_for_update()
        ).all())

    def set_favorite(self, central: CentralUser, tenant_id: str) -> TenantMembership:
        """
        Make tenant_id the only favorite of the central user. Clearing and
        setting happen in one transaction over row-locked memberships, and the
        partial unique index rejects a second favorite outright, so concurrent
        calls end with exactly one favorite.
        """
        with transaction(self.central_session):
            memberships = self._locked_memberships(central.global_id)
            target = next((m for m in memberships if m.tenant_id == tenant_id), None)
            if target is None:
                raise NotFound("Membership", tenant_id)

            for membership in memberships:
                if membership.favorite and membership is not target:
                    membership.favorite = False
                    self.central_session.add(membership)
            # Clears must reach the database before the new favorite does
            self.central_session.flush()

            target.favorite = True
            self.central_session.add(target)

        logger.info(f"Favorite tenant of {central.global_id} set to {tenant_id}")
        return target

    def clear_favorite(self, central: CentralUser, tenant_id: str) -> None:
        with transaction(self.central_session):
            membership = self.get_membership(central.global_id, tenant_id)
            if membership is None:
                raise NotFound("Membership", tenant_id)
            membership.favorite = False
            self.central_session.add(membership)

    def toggle_favorite(self, central: CentralUser, tenant_id: str) -> bool:
        """Flip the favorite marker; returns the new state"""
        membership = self.get_membership(central.global_id, tenant_id)
        if membership is None:
            raise NotFound("Membership", tenant_id)
        if membership.favorite:
            self.clear_favorite(central, tenant_id)
            return False
        self.set_favorite(central, tenant_id)
        return True

    # Tenant store

    def materialize_identity(
        self,
        central: CentralUser,
        tenant_session: Session,
        role_id: Optional[int] = None,
    ) -> TenantUser:
        """
        Return the tenant user of a central user, creating it if missing.

        Creation is its own tenant transaction. When a concurrent call created
        the row first, the unique global_id makes our insert fail and we read
        theirs instead. role_id only applies to a newly created user.
        """
        repo = TenantIdentityRepository(tenant_session)
        user = repo.find_by_global_id(central.global_id)
        if user is None:
            try:
                with transaction(tenant_session):
                    user = repo.add_from_central(central, role_id=role_id)
                logger.info(f"Tenant user {user.id} materialized for {central.global_id}")
            except IntegrityError:
                user = repo.find_by_global_id(central.global_id)
                if user is None:
                    raise
                logger.info(f"Tenant user for {central.global_id} already materialized")

        NotificationSettingsService(tenant_session).ensure_settings(user.id)
        return user
