"""
Central account API endpoints
"""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlmodel import Session
import structlog

from membership.api.dependencies import get_current_central_user
from membership.core.auth import SessionScope, TokenSessionContext
from membership.core.database import TenantDatabaseManager, get_central_session, get_tenant_databases
from membership.models import CentralUser
from membership.schemas.auth import (
    CentralUserResponse,
    LoginRequest,
    ProfileUpdate,
    RegisterRequest,
    TokenResponse,
)
from membership.services.identity_store import IdentityStore
from membership.services.tenant_provisioning import TenantProvisioningService

logger = structlog.get_logger(__name__)
router = APIRouter()


@router.post("/register", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
def register(
    data: RegisterRequest,
    session: Session = Depends(get_central_session),
    tenant_databases: TenantDatabaseManager = Depends(get_tenant_databases),
):
    """Register a central account and log it in"""
    context = TokenSessionContext()
    TenantProvisioningService(session, tenant_databases).register_central_identity(
        name=data.name,
        email=data.email,
        password=data.password,
        session_context=context,
    )
    return TokenResponse(access_token=context.tokens[SessionScope.CENTRAL], scope=SessionScope.CENTRAL.value)


@router.post("/login", response_model=TokenResponse)
def login(
    data: LoginRequest,
    session: Session = Depends(get_central_session),
    tenant_databases: TenantDatabaseManager = Depends(get_tenant_databases),
):
    """Central login"""
    user = TenantProvisioningService(session, tenant_databases).authenticate(data.email, data.password)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
        )
    token = TokenSessionContext().login(user, SessionScope.CENTRAL)
    logger.info(f"Central user logged in: {user.global_id}")
    return TokenResponse(access_token=token, scope=SessionScope.CENTRAL.value)


@router.get("/me", response_model=CentralUserResponse)
def me(user: CentralUser = Depends(get_current_central_user)):
    return CentralUserResponse.model_validate(user)


@router.patch("/me", response_model=CentralUserResponse)
def update_profile(
    data: ProfileUpdate,
    user: CentralUser = Depends(get_current_central_user),
    session: Session = Depends(get_central_session),
    tenant_databases: TenantDatabaseManager = Depends(get_tenant_databases),
):
    """Update the central profile; every tenant copy follows"""
    store = IdentityStore(session, tenant_databases)
    user = store.update_central(user.global_id, name=data.name, email=data.email)
    return CentralUserResponse.model_validate(user)
