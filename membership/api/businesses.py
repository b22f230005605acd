"""
Business (tenant) API endpoints for central users
"""

from fastapi import APIRouter, Depends, status
from sqlmodel import Session
from typing import List
import structlog

from membership.api.dependencies import get_current_central_user
from membership.core.auth import SessionScope, TokenSessionContext
from membership.core.database import TenantDatabaseManager, get_central_session, get_tenant_databases
from membership.models import CentralUser
from membership.schemas.auth import TokenResponse
from membership.schemas.business import BusinessCreate, BusinessResponse, FavoriteResponse
from membership.services.membership import MembershipLinker
from membership.services.tenant_provisioning import TenantProvisioningService

logger = structlog.get_logger(__name__)
router = APIRouter()


@router.get("/", response_model=List[BusinessResponse])
def list_businesses(
    user: CentralUser = Depends(get_current_central_user),
    session: Session = Depends(get_central_session),
):
    """Businesses of the current user, favorite first"""
    linker = MembershipLinker(session)
    favorite = linker.favorite_tenant(user.global_id)
    return [
        BusinessResponse(id=tenant.id, name=tenant.name, favorite=tenant.id == favorite, created_at=tenant.created_at)
        for tenant in linker.tenants_for(user.global_id)
    ]


@router.post("/", response_model=BusinessResponse, status_code=status.HTTP_201_CREATED)
def create_business(
    data: BusinessCreate,
    user: CentralUser = Depends(get_current_central_user),
    session: Session = Depends(get_central_session),
    tenant_databases: TenantDatabaseManager = Depends(get_tenant_databases),
):
    """Create a business; the creator becomes its Admin"""
    tenant = TenantProvisioningService(session, tenant_databases).create_tenant(user, data.name)
    favorite = MembershipLinker(session).favorite_tenant(user.global_id) == tenant.id
    return BusinessResponse(id=tenant.id, name=tenant.name, favorite=favorite, created_at=tenant.created_at)


@router.put("/{tenant_id}/favorite", response_model=FavoriteResponse)
def set_favorite(
    tenant_id: str,
    user: CentralUser = Depends(get_current_central_user),
    session: Session = Depends(get_central_session),
):
    MembershipLinker(session).set_favorite(user, tenant_id)
    return FavoriteResponse(tenant_id=tenant_id, favorite=True)


@router.delete("/{tenant_id}/favorite", response_model=FavoriteResponse)
def clear_favorite(
    tenant_id: str,
    user: CentralUser = Depends(get_current_central_user),
    session: Session = Depends(get_central_session),
):
    MembershipLinker(session).clear_favorite(user, tenant_id)
    return FavoriteResponse(tenant_id=tenant_id, favorite=False)


@router.post("/{tenant_id}/favorite/toggle", response_model=FavoriteResponse)
def toggle_favorite(
    tenant_id: str,
    user: CentralUser = Depends(get_current_central_user),
    session: Session = Depends(get_central_session),
):
    favorite = MembershipLinker(session).toggle_favorite(user, tenant_id)
    return FavoriteResponse(tenant_id=tenant_id, favorite=favorite)


@router.post("/{tenant_id}/switch", response_model=TokenResponse)
def switch_business(
    tenant_id: str,
    user: CentralUser = Depends(get_current_central_user),
    session: Session = Depends(get_central_session),
    tenant_databases: TenantDatabaseManager = Depends(get_tenant_databases),
):
    """Exchange the central session for a session inside one business"""
    context = TokenSessionContext()
    _, token = TenantProvisioningService(session, tenant_databases).switch_to_tenant(user, tenant_id, context)
    return TokenResponse(access_token=token, scope=SessionScope.TENANT.value, tenant_id=tenant_id)
