"""
Authentication utilities: password hashing, JWT tokens and session scopes
"""

from datetime import timedelta
from enum import Enum
from jose import JWTError, jwt
from passlib.context import CryptContext
from typing import Any, Dict, Optional, Protocol

from membership.core.clock import utcnow
from membership.core.config import get_settings

settings = get_settings()
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password_hash: str, password: str) -> bool:
    """Check a password against its digest; malformed digests never match"""
    try:
        return pwd_context.verify(password, password_hash)
    except ValueError:
        return False


class SessionScope(str, Enum):
    """Where a session is valid: the central account or one tenant"""
    CENTRAL = "central"
    TENANT = "tenant"


def create_access_token(
    subject: str,
    scope: SessionScope,
    tenant_id: Optional[str] = None,
    expires_delta: Optional[timedelta] = None
) -> str:
    """Create JWT access token; subject is the central global_id"""
    if scope == SessionScope.TENANT and not tenant_id:
        raise ValueError("Tenant scoped tokens need a tenant_id")

    now = utcnow()
    if expires_delta:
        expire = now + expires_delta
    else:
        expire = now + timedelta(minutes=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES)

    to_encode = {
        "sub": subject,
        "scope": SessionScope(scope).value,
        "exp": expire,
        "iat": now,
    }
    if tenant_id:
        to_encode["tenant_id"] = tenant_id

    return jwt.encode(to_encode, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: str) -> Optional[Dict[str, Any]]:
    """Decode and validate JWT token"""
    try:
        payload = jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except JWTError:
        return None
    if payload.get("scope") not in {scope.value for scope in SessionScope}:
        return None
    return payload


class SessionContext(Protocol):
    """Login state of the caller, per scope"""

    def login(self, identity, scope: SessionScope, tenant_id: Optional[str] = None) -> str:
        ...

    def current_identity(self, scope: SessionScope):
        ...


class TokenSessionContext:
    """Session context backed by JWT bearer tokens, one per scope"""

    def __init__(self):
        self._identities: Dict[SessionScope, Any] = {}
        self.tokens: Dict[SessionScope, str] = {}

    def login(self, identity, scope: SessionScope, tenant_id: Optional[str] = None) -> str:
        scope = SessionScope(scope)
        token = create_access_token(identity.global_id, scope, tenant_id=tenant_id)
        self._identities[scope] = identity
        self.tokens[scope] = token
        return token

    def current_identity(self, scope: SessionScope):
        return self._identities.get(SessionScope(scope))

    def is_authenticated(self, scope: SessionScope) -> bool:
        return SessionScope(scope) in self._identities
