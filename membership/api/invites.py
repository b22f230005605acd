"""
Invitation API endpoints
"""

from fastapi import APIRouter, Depends, status
from sqlmodel import Session
from typing import List, Optional
import structlog

from membership.api.dependencies import get_event_publisher, get_mail_transport, get_tenant_session, require_permission
from membership.core.auth import SessionScope, TokenSessionContext
from membership.core.database import get_central_session
from membership.core.dispatcher import EventPublisher
from membership.core.permissions import Permission
from membership.models import InviteStatus, Role, Tenant, TenantUser
from membership.schemas.invite import (
    AcceptInviteRequest,
    AcceptInviteResponse,
    InviteCreate,
    InviteDetails,
    InviteResponse,
    IssueInvitesResponse,
    SkippedEmailResponse,
)
from membership.services.identity_store import CentralIdentityRepository
from membership.services.invites import InviteLifecycle
from membership.services.transports import MailTransport

logger = structlog.get_logger(__name__)
router = APIRouter()


def get_invite_lifecycle(
    tenant_id: str,
    session: Session = Depends(get_tenant_session),
    central_session: Session = Depends(get_central_session),
    mail: MailTransport = Depends(get_mail_transport),
    publish: EventPublisher = Depends(get_event_publisher),
) -> InviteLifecycle:
    return InviteLifecycle(tenant_id, session, central_session=central_session, mail=mail, publish=publish)


@router.get("/", response_model=List[InviteResponse])
def list_invites(
    status: Optional[InviteStatus] = None,
    search: Optional[str] = None,
    user: TenantUser = Depends(require_permission(Permission.VIEW_USER)),
    invites: InviteLifecycle = Depends(get_invite_lifecycle),
):
    return [InviteResponse.model_validate(invite) for invite in invites.list_invites(status, search)]


@router.post("/", response_model=IssueInvitesResponse, status_code=status.HTTP_201_CREATED)
def issue_invites(
    data: InviteCreate,
    user: TenantUser = Depends(require_permission(Permission.INVITE_USER)),
    invites: InviteLifecycle = Depends(get_invite_lifecycle),
):
    """Invite a batch of emails; existing members and open invites are skipped"""
    result = invites.issue([str(email) for email in data.emails], data.role_id, inviter=user)
    return IssueInvitesResponse(
        message=result.summary(),
        sent=result.sent_count,
        skipped=result.skipped_count,
        invites=[InviteResponse.model_validate(invite) for invite in result.created],
        skipped_emails=[
            SkippedEmailResponse(email=skipped.email, reason=skipped.reason.message)
            for skipped in result.skipped
        ],
    )


@router.post("/{invite_id}/resend", response_model=InviteResponse)
def resend_invite(
    invite_id: int,
    user: TenantUser = Depends(require_permission(Permission.INVITE_USER)),
    invites: InviteLifecycle = Depends(get_invite_lifecycle),
):
    return InviteResponse.model_validate(invites.resend(invite_id, actor=user))


@router.delete("/{invite_id}", status_code=status.HTTP_204_NO_CONTENT)
def cancel_invite(
    invite_id: int,
    user: TenantUser = Depends(require_permission(Permission.INVITE_USER)),
    invites: InviteLifecycle = Depends(get_invite_lifecycle),
):
    invites.cancel(invite_id, actor=user)


@router.get("/accept/{token}", response_model=InviteDetails)
def show_invite(
    token: str,
    invites: InviteLifecycle = Depends(get_invite_lifecycle),
    central_session: Session = Depends(get_central_session),
):
    """Public: details for the acceptance page"""
    invite = invites.get_by_token(token)
    role = invites.session.get(Role, invite.role_id) if invite.role_id is not None else None
    tenant = central_session.get(Tenant, invites.tenant_id)
    return InviteDetails(
        email=invite.email,
        role_name=role.name if role else "No Role",
        business_name=tenant.name,
        expires_at=invite.expires_at,
        existing_user=CentralIdentityRepository(central_session).find_by_email(invite.email) is not None,
    )


@router.post("/accept/{token}", response_model=AcceptInviteResponse)
def accept_invite(
    token: str,
    data: AcceptInviteRequest,
    invites: InviteLifecycle = Depends(get_invite_lifecycle),
):
    """Public: accept an invite; only new accounts are logged in"""
    context = TokenSessionContext()
    result = invites.accept(token, name=data.name, password=data.password, session_context=context)
    return AcceptInviteResponse(
        message="Invitation accepted successfully.",
        user_id=result.user.id,
        global_id=result.central_user.global_id,
        is_new_user=result.is_new_user,
        central_token=result.tokens.get(SessionScope.CENTRAL),
        tenant_token=result.tokens.get(SessionScope.TENANT),
    )
