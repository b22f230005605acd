"""
Tenant user API endpoints
"""

from fastapi import APIRouter, Depends, status
from sqlmodel import Session
from typing import List, Optional
import structlog

from membership.api.dependencies import get_event_publisher, get_tenant_session, require_permission
from membership.core.database import get_central_session
from membership.core.dispatcher import EventPublisher
from membership.core.permissions import Permission
from membership.models import TenantUser, UserStatus
from membership.schemas.user import UserResponse, UserRoleUpdate
from membership.services.identity_store import CentralIdentityRepository
from membership.services.membership import MembershipLinker
from membership.services.users import UserService

logger = structlog.get_logger(__name__)
router = APIRouter()


def get_user_service(
    tenant_id: str,
    session: Session = Depends(get_tenant_session),
    publish: EventPublisher = Depends(get_event_publisher),
) -> UserService:
    return UserService(tenant_id, session, publish=publish)


@router.get("/", response_model=List[UserResponse])
def list_users(
    status: Optional[UserStatus] = None,
    user: TenantUser = Depends(require_permission(Permission.VIEW_USER)),
    users: UserService = Depends(get_user_service),
):
    return [UserResponse.model_validate(u) for u in users.list_users(status)]


@router.put("/{user_id}/role", response_model=UserResponse)
def update_user_role(
    user_id: int,
    data: UserRoleUpdate,
    user: TenantUser = Depends(require_permission(Permission.MANAGE_USER)),
    users: UserService = Depends(get_user_service),
):
    return UserResponse.model_validate(users.update_user_role(user_id, data.role_id, actor=user))


@router.post("/{user_id}/disable", response_model=UserResponse)
def disable_user(
    user_id: int,
    user: TenantUser = Depends(require_permission(Permission.MANAGE_USER)),
    users: UserService = Depends(get_user_service),
):
    return UserResponse.model_validate(users.disable_user(user_id, actor=user))


@router.post("/{user_id}/enable", response_model=UserResponse)
def enable_user(
    user_id: int,
    user: TenantUser = Depends(require_permission(Permission.MANAGE_USER)),
    users: UserService = Depends(get_user_service),
):
    return UserResponse.model_validate(users.enable_user(user_id, actor=user))


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_user(
    user_id: int,
    tenant_id: str,
    user: TenantUser = Depends(require_permission(Permission.MANAGE_USER)),
    users: UserService = Depends(get_user_service),
    central_session: Session = Depends(get_central_session),
):
    """Delete the tenant user, then revoke the membership centrally"""
    deleted = users.delete_user(user_id, actor=user)
    central = CentralIdentityRepository(central_session).get(deleted.global_id)
    if central is not None:
        MembershipLinker(central_session).detach(central, tenant_id)
