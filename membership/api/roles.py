"""
Role API endpoints
"""

from fastapi import APIRouter, Depends, status
from sqlmodel import Session
from typing import List
import structlog

from membership.api.dependencies import get_event_publisher, get_tenant_session, require_permission
from membership.core.dispatcher import EventPublisher
from membership.core.permissions import Permission
from membership.models import TenantUser
from membership.schemas.user import RoleCreate, RoleResponse, RoleUpdate
from membership.services.roles import RoleService

logger = structlog.get_logger(__name__)
router = APIRouter()


def get_role_service(
    tenant_id: str,
    session: Session = Depends(get_tenant_session),
    publish: EventPublisher = Depends(get_event_publisher),
) -> RoleService:
    return RoleService(tenant_id, session, publish=publish)


@router.get("/", response_model=List[RoleResponse])
def list_roles(
    user: TenantUser = Depends(require_permission(Permission.VIEW_ROLE)),
    roles: RoleService = Depends(get_role_service),
):
    return [RoleResponse.model_validate(role) for role in roles.list_roles()]


@router.post("/", response_model=RoleResponse, status_code=status.HTTP_201_CREATED)
def create_role(
    data: RoleCreate,
    user: TenantUser = Depends(require_permission(Permission.MODIFY_ROLES)),
    roles: RoleService = Depends(get_role_service),
):
    role = roles.create_role(data.name, data.description, data.permissions, actor=user)
    return RoleResponse.model_validate(role)


@router.put("/{role_id}", response_model=RoleResponse)
def update_role(
    role_id: int,
    data: RoleUpdate,
    user: TenantUser = Depends(require_permission(Permission.MODIFY_ROLES)),
    roles: RoleService = Depends(get_role_service),
):
    role = roles.update_role(role_id, data.name, data.description, data.permissions, actor=user)
    return RoleResponse.model_validate(role)


@router.delete("/{role_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_role(
    role_id: int,
    user: TenantUser = Depends(require_permission(Permission.MODIFY_ROLES)),
    roles: RoleService = Depends(get_role_service),
):
    roles.delete_role(role_id, actor=user)


@router.post("/{role_id}/copy", response_model=RoleResponse, status_code=status.HTTP_201_CREATED)
def copy_role(
    role_id: int,
    user: TenantUser = Depends(require_permission(Permission.MODIFY_ROLES)),
    roles: RoleService = Depends(get_role_service),
):
    return RoleResponse.model_validate(roles.copy_role(role_id, actor=user))
