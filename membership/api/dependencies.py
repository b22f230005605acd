"""
Authentication and store dependencies for FastAPI
"""

from fastapi import Depends, HTTPException, Path, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlmodel import Session
from typing import Any, Callable, Dict, Iterator
import structlog

from membership.core.auth import SessionScope, decode_access_token
from membership.core.config import get_settings
from membership.core.database import TenantDatabaseManager, get_central_session, get_tenant_databases
from membership.core.dispatcher import EventPublisher, dispatcher
from membership.core.permissions import Permission, authorize
from membership.models import CentralUser, Tenant, TenantUser
from membership.services.identity_store import CentralIdentityRepository, TenantIdentityRepository
from membership.services.transports import LoggingMailTransport, MailTransport

logger = structlog.get_logger(__name__)
settings = get_settings()
security = HTTPBearer()


def credentials_exception() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_event_publisher() -> EventPublisher:
    """Overridden in tests to capture events"""
    return dispatcher.publish


def get_mail_transport() -> MailTransport:
    return LoggingMailTransport(settings.MAIL_FROM)


def get_token_payload(
    credentials: HTTPAuthorizationCredentials = Depends(security)
) -> Dict[str, Any]:
    """Decode the bearer token"""
    payload = decode_access_token(credentials.credentials)
    if payload is None or not payload.get("sub"):
        raise credentials_exception()
    return payload


def get_current_central_user(
    payload: Dict[str, Any] = Depends(get_token_payload),
    session: Session = Depends(get_central_session),
) -> CentralUser:
    """Central user behind a token of any scope"""
    user = CentralIdentityRepository(session).get(payload["sub"])
    if user is None:
        raise credentials_exception()
    logger.debug(f"Central user authenticated: {user.global_id}")
    return user


def get_tenant_session(
    tenant_id: str = Path(...),
    central_session: Session = Depends(get_central_session),
    tenant_databases: TenantDatabaseManager = Depends(get_tenant_databases),
) -> Iterator[Session]:
    """Session on the tenant store named by the path"""
    if central_session.get(Tenant, tenant_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Business not found")
    with tenant_databases.session(tenant_id) as session:
        yield session


def get_current_tenant_user(
    tenant_id: str = Path(...),
    payload: Dict[str, Any] = Depends(get_token_payload),
    session: Session = Depends(get_tenant_session),
) -> TenantUser:
    """Tenant user behind a tenant scoped token for this tenant"""
    if payload.get("scope") != SessionScope.TENANT.value or payload.get("tenant_id") != tenant_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Token is not valid for this business",
        )
    user = TenantIdentityRepository(session).find_by_global_id(payload["sub"])
    if user is None:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You do not have access to this business.")
    if user.is_disabled:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Your account in this business is disabled.")
    return user


def require_permission(permission: Permission) -> Callable:
    """Dependency factory for permission-gated endpoints"""

    def checker(user: TenantUser = Depends(get_current_tenant_user)) -> TenantUser:
        authorize(user.role, permission, is_disabled=user.is_disabled)
        return user

    return checker
