"""
Invitation lifecycle

pending --resend--> pending (bounded by resent_count)
pending --accept--> accepted
pending --cancel--> deleted
pending --time--> expired (derived, resendable, not cancellable)
"""

from dataclasses import dataclass, field
from datetime import timedelta
from typing import Dict, List, Optional
import secrets

from email_validator import EmailNotValidError, validate_email
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select
import structlog

from membership.core.auth import SessionContext, SessionScope, hash_password
from membership.core.clock import utcnow
from membership.core.config import Settings, get_settings
from membership.core.database import transaction
from membership.core.dispatcher import EventPublisher, dispatcher, publish_safely
from membership.core.events import InviteEvent, RoleRef, UserEvent, performer_metadata
from membership.core.exceptions import (
    AlreadyMember,
    DuplicatePendingInvite,
    InvalidInput,
    InvalidOrExpiredInvite,
    InviteNotCancellable,
    NotFound,
    ResendNotAllowed,
    StateConflict,
)
from membership.models import CentralUser, Invite, InviteStatus, Role, Tenant, TenantUser, normalize_email
from membership.services.admin_guard import AdminInvariantGuard
from membership.services.identity_store import CentralIdentityRepository, TenantIdentityRepository
from membership.services.membership import MembershipLinker
from membership.services.notification_messages import render_invitation
from membership.services.transports import LoggingMailTransport, MailTransport

logger = structlog.get_logger(__name__)


@dataclass
class SkippedEmail:
    email: str
    reason: StateConflict


@dataclass
class IssueResult:
    """Outcome of issuing invites to a batch of emails"""
    created: List[Invite] = field(default_factory=list)
    skipped: List[SkippedEmail] = field(default_factory=list)

    @property
    def sent_count(self) -> int:
        return len(self.created)

    @property
    def skipped_count(self) -> int:
        return len(self.skipped)

    def summary(self) -> str:
        return f"{self.sent_count} sent, {self.skipped_count} skipped"


@dataclass
class AcceptResult:
    """Outcome of accepting an invite"""
    user: TenantUser
    central_user: CentralUser
    is_new_user: bool
    tokens: Dict[SessionScope, str] = field(default_factory=dict)


def generate_token(nbytes: int) -> str:
    return secrets.token_urlsafe(nbytes)


def validate_emails(emails: List[str]) -> List[str]:
    """Normalize and de-duplicate emails, preserving order; any invalid email rejects the batch"""
    normalized = []
    invalid = []
    for email in emails:
        email = email.strip()
        try:
            validate_email(email, check_deliverability=False)
        except EmailNotValidError:
            invalid.append(email)
            continue
        email = normalize_email(email)
        if email not in normalized:
            normalized.append(email)
    if invalid:
        raise InvalidInput(f"Invalid email addresses: {', '.join(invalid)}")
    if not normalized:
        raise InvalidInput("At least one email address is required")
    return normalized


class InviteLifecycle:
    """Invite state transitions of one tenant"""

    def __init__(
        self,
        tenant_id: str,
        tenant_session: Session,
        central_session: Optional[Session] = None,
        mail: Optional[MailTransport] = None,
        publish: Optional[EventPublisher] = None,
        settings: Optional[Settings] = None,
    ):
        self.tenant_id = tenant_id
        self.session = tenant_session
        self.central_session = central_session
        self.settings = settings or get_settings()
        self.mail = mail or LoggingMailTransport(self.settings.MAIL_FROM)
        self.publish = publish or dispatcher.publish

    # Queries

    def get(self, invite_id: int, lock: bool = False) -> Invite:
        statement = select(Invite).where(Invite.id == invite_id)
        if lock:
            statement = statement.with_for_update().execution_options(populate_existing=True)
        invite = self.session.exec(statement).first()
        if invite is None:
            raise NotFound("Invite", invite_id)
        return invite

    def get_by_token(self, token: str) -> Invite:
        """Unaccepted, unexpired invite for a token"""
        invite = self.session.exec(
            select(Invite).where(Invite.token == token, Invite.accepted_at.is_(None))
        ).first()
        if invite is None or invite.is_expired():
            raise InvalidOrExpiredInvite()
        return invite

    def list_invites(self, status: Optional[InviteStatus] = None, search: Optional[str] = None) -> List[Invite]:
        statement = select(Invite)
        now = utcnow()
        if status == InviteStatus.ACCEPTED:
            statement = statement.where(Invite.accepted_at.is_not(None))
        elif status == InviteStatus.PENDING:
            statement = statement.where(Invite.accepted_at.is_(None), Invite.expires_at >= now)
        elif status == InviteStatus.EXPIRED:
            statement = statement.where(Invite.accepted_at.is_(None), Invite.expires_at < now)
        if search:
            statement = statement.where(Invite.email.contains(search.lower()))
        return list(self.session.exec(statement.order_by(Invite.created_at.desc(), Invite.id.desc())).all())

    def _role_ref(self, role_id: Optional[int]) -> RoleRef:
        role = self.session.get(Role, role_id) if role_id is not None else None
        return role.ref() if role is not None else RoleRef(id=role_id, name="No Role")

    def _tenant_name(self) -> str:
        if self.central_session is not None:
            tenant = self.central_session.get(Tenant, self.tenant_id)
            if tenant is not None:
                return tenant.name
        return "your organization"

    # Transitions

    def issue(self, emails: List[str], role_id: int, inviter: Optional[TenantUser] = None) -> IssueResult:
        """
        Create one invite per email. Emails that already belong to a user of
        this tenant, or that already have an unaccepted invite, are skipped.
        Each invite is committed on its own.
        """
        emails = validate_emails(emails)
        role = self.session.get(Role, role_id)
        if role is None:
            raise NotFound("Role", role_id)

        result = IssueResult()
        users = TenantIdentityRepository(self.session)
        for email in emails:
            if users.find_by_email(email) is not None:
                result.skipped.append(SkippedEmail(email, AlreadyMember(f"User {email} is already a member")))
                continue

            try:
                with transaction(self.session):
                    existing = self.session.exec(
                        select(Invite).where(Invite.email == email, Invite.accepted_at.is_(None))
                    ).first()
                    if existing is not None:
                        raise DuplicatePendingInvite(f"An invitation for {email} already exists")
                    invite = Invite(
                        email=email,
                        role_id=role.id,
                        token=generate_token(self.settings.INVITE_TOKEN_BYTES),
                        expires_at=utcnow() + timedelta(days=self.settings.INVITE_EXPIRY_DAYS),
                        invited_by=inviter.id if inviter else None,
                    )
                    self.session.add(invite)
            except DuplicatePendingInvite as e:
                result.skipped.append(SkippedEmail(email, e))
                continue
            except IntegrityError:
                # Lost a race against a concurrent issue for the same email
                result.skipped.append(
                    SkippedEmail(email, DuplicatePendingInvite(f"An invitation for {email} already exists"))
                )
                continue

            result.created.append(invite)
            logger.info(f"Invite created: {invite.id} for {email} in tenant {self.tenant_id}")

        for invite in result.created:
            self.send_invitation(invite, inviter)
            metadata = performer_metadata(inviter)
            publish_safely(self.publish, InviteEvent(
                tenant_id=self.tenant_id,
                action="sent",
                invite_id=invite.id,
                email=invite.email,
                role=role.ref(),
                metadata=metadata,
            ))
            publish_safely(self.publish, UserEvent(
                tenant_id=self.tenant_id,
                action="invited",
                user_id=None,
                user_name=invite.email,
                user_email=invite.email,
                metadata=metadata,
            ))

        logger.info(f"Invites issued in tenant {self.tenant_id}: {result.summary()}")
        return result

    def send_invitation(self, invite: Invite, inviter: Optional[TenantUser] = None) -> bool:
        """Mail the invitee; failures are logged and reported as False"""
        message = render_invitation(
            email=invite.email,
            role=self._role_ref(invite.role_id),
            tenant_name=self._tenant_name(),
            tenant_id=self.tenant_id,
            token=invite.token,
            inviter_name=inviter.name if inviter else None,
            base_url=self.settings.APP_BASE_URL,
            expiry_days=self.settings.INVITE_EXPIRY_DAYS,
        )
        try:
            self.mail.send(invite.email, message)
        except Exception as e:
            logger.error(f"Failed to send invitation {invite.id} to {invite.email}: {e}")
            return False
        return True

    def resend(self, invite_id: int, actor: Optional[TenantUser] = None) -> Invite:
        """New token and expiry; allowed for expired invites until the resend cap"""
        max_resends = self.settings.INVITE_MAX_RESENDS
        with transaction(self.session):
            invite = self.get(invite_id, lock=True)
            if invite.is_accepted():
                raise ResendNotAllowed("Invitation has already been accepted")
            if not invite.can_be_resent(max_resends):
                raise ResendNotAllowed(f"Invitation can be resent at most {max_resends} times")
            invite.transition_to_resent(
                token=generate_token(self.settings.INVITE_TOKEN_BYTES),
                expires_at=utcnow() + timedelta(days=self.settings.INVITE_EXPIRY_DAYS),
                resent_by=actor.id if actor else None,
            )
            self.session.add(invite)

        logger.info(f"Invite resent: {invite.id} ({invite.resent_count}/{max_resends})")
        self.send_invitation(invite, actor)
        publish_safely(self.publish, InviteEvent(
            tenant_id=self.tenant_id,
            action="resent",
            invite_id=invite.id,
            email=invite.email,
            role=self._role_ref(invite.role_id),
            metadata=performer_metadata(actor),
        ))
        return invite

    def cancel(self, invite_id: int, actor: Optional[TenantUser] = None) -> None:
        """Hard delete of a pending invite"""
        with transaction(self.session):
            invite = self.get(invite_id, lock=True)
            if not invite.can_be_cancelled():
                raise InviteNotCancellable(f"Only pending invitations can be cancelled (status: {invite.status.value})")
            email = invite.email
            role = self._role_ref(invite.role_id)
            self.session.delete(invite)

        logger.info(f"Invite cancelled: {invite_id} for {email}")
        publish_safely(self.publish, InviteEvent(
            tenant_id=self.tenant_id,
            action="cancelled",
            invite_id=invite_id,
            email=email,
            role=role,
            metadata=performer_metadata(actor),
        ))

    def accept(
        self,
        token: str,
        name: Optional[str] = None,
        password: Optional[str] = None,
        session_context: Optional[SessionContext] = None,
    ) -> AcceptResult:
        """
        Accept an invite.

        The central transaction runs first (create the central user when the
        email is new, attach the membership), then the tenant side
        (materialize the tenant user, assign the role, mark the invite
        accepted). Replaying after a crash between the two is safe because
        every step is create-if-missing. Only newly created users are logged
        in; existing users keep the session they already have.
        """
        if self.central_session is None:
            raise RuntimeError("Accepting invites needs a central session")

        invite = self.get_by_token(token)
        central, is_new = self._accept_central(invite, name, password)
        user = self._accept_tenant(invite, central)

        result = AcceptResult(user=user, central_user=central, is_new_user=is_new)
        if is_new and session_context is not None:
            result.tokens[SessionScope.CENTRAL] = session_context.login(central, SessionScope.CENTRAL)
            result.tokens[SessionScope.TENANT] = session_context.login(
                central, SessionScope.TENANT, tenant_id=self.tenant_id
            )

        logger.info(f"Invite accepted: {invite.id} by {central.global_id} (new user: {is_new})")
        publish_safely(self.publish, InviteEvent(
            tenant_id=self.tenant_id,
            action="accepted",
            invite_id=invite.id,
            email=invite.email,
            role=self._role_ref(invite.role_id),
            metadata=performer_metadata(user),
        ))
        return result

    def _accept_central(self, invite: Invite, name: Optional[str], password: Optional[str]):
        central_users = CentralIdentityRepository(self.central_session)
        linker = MembershipLinker(self.central_session)

        central = central_users.find_by_email(invite.email)
        if central is not None:
            # Submitted name and password are ignored for existing users
            linker.attach(central, self.tenant_id)
            return central, False

        if not name or not password:
            raise InvalidInput("Name and password are required to create an account")
        try:
            with transaction(self.central_session):
                central = central_users.add(name=name, email=invite.email, password_hash=hash_password(password))
                linker.stage_attach(central, self.tenant_id)
        except IntegrityError:
            # The email registered concurrently, treat it as an existing user
            central = central_users.find_by_email(invite.email)
            if central is None:
                raise
            linker.attach(central, self.tenant_id)
            return central, False

        logger.info(f"Central user created from invite: {central.global_id}")
        return central, True

    def _accept_tenant(self, invite: Invite, central: CentralUser) -> TenantUser:
        linker = MembershipLinker(self.central_session)
        user = linker.materialize_identity(central, self.session, role_id=invite.role_id)

        with transaction(self.session):
            invite = self.get(invite.id, lock=True)
            if invite.is_accepted() or invite.is_expired():
                raise InvalidOrExpiredInvite()
            if user.role_id != invite.role_id:
                guard = AdminInvariantGuard(self.session)
                if guard.can_change_role(user, invite.role_id):
                    user.role_id = invite.role_id
                    user.updated_at = utcnow()
                    self.session.add(user)
                else:
                    logger.warning(f"Kept Admin role of sole admin {user.id} while accepting invite {invite.id}")
            invite.transition_to_accepted()
            self.session.add(invite)
        return user
