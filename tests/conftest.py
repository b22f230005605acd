"""
Test configuration for pytest
"""

import pytest
import os
from typing import Generator
from unittest.mock import MagicMock

# Test environment variables
os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["TENANT_DATABASE_URL_TEMPLATE"] = "sqlite:///:memory:"
os.environ["JWT_SECRET_KEY"] = "test-jwt-secret"
os.environ["APP_BASE_URL"] = "https://app.acme.io"

from sqlmodel import Session, select

from membership.core.database import TenantDatabaseManager, create_store_engine, init_central_db
from membership.models import Role, TenantUser
from membership.services.identity_store import TenantIdentityRepository
from membership.services.tenant_provisioning import TenantProvisioningService

PASSWORD = "password123"


@pytest.fixture(scope="function")
def central_engine():
    """Fresh in-memory central store for each test"""
    engine = create_store_engine("sqlite:///:memory:")
    init_central_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture(scope="function")
def central_session(central_engine) -> Generator[Session, None, None]:
    with Session(central_engine, expire_on_commit=False) as session:
        yield session


@pytest.fixture(scope="function")
def tenant_databases() -> Generator[TenantDatabaseManager, None, None]:
    """Every tenant gets its own in-memory store"""
    databases = TenantDatabaseManager("sqlite:///:memory:")
    yield databases
    databases.dispose()


@pytest.fixture
def provisioning(central_session, tenant_databases) -> TenantProvisioningService:
    return TenantProvisioningService(central_session, tenant_databases)


@pytest.fixture
def owner(provisioning):
    """Central user who creates the test business"""
    return provisioning.register_central_identity("Olivia Owner", "olivia@acme.io", PASSWORD)


@pytest.fixture
def tenant(provisioning, owner):
    return provisioning.create_tenant(owner, "Acme Coffee")


@pytest.fixture
def tenant_session(tenant, tenant_databases) -> Generator[Session, None, None]:
    with tenant_databases.session(tenant.id) as session:
        yield session


@pytest.fixture
def roles(tenant_session):
    """Seeded roles by name"""
    return {role.name: role for role in tenant_session.exec(select(Role)).all()}


@pytest.fixture
def admin(tenant_session, owner) -> TenantUser:
    """Tenant user of the business creator, the only Admin"""
    return TenantIdentityRepository(tenant_session).find_by_global_id(owner.global_id)


@pytest.fixture
def add_member(provisioning, tenant, tenant_session):
    """Register a central user and grant it a role in the test business"""

    def _add_member(name: str, email: str, role_name: str = "User") -> TenantUser:
        central = provisioning.register_central_identity(name, email, PASSWORD)
        user = provisioning.grant_access(central, tenant.id, role_name)
        return tenant_session.get(TenantUser, user.id)

    return _add_member


@pytest.fixture
def events() -> list:
    """Events captured by the recording publisher"""
    return []


@pytest.fixture
def publish(events):
    return events.append


@pytest.fixture
def mail() -> MagicMock:
    return MagicMock()
