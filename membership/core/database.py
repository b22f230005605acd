"""
Database configuration and session management

The central store (central users, tenants, memberships) lives behind a single
engine. Every tenant owns an isolated store; TenantDatabaseManager hands out
one engine per tenant. Sessions are always passed explicitly, there is no
ambient "current tenant".
"""

from contextlib import contextmanager
from typing import Dict, Iterator, Optional
import os
import threading

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, Session
import structlog

from membership.core.config import get_settings
from membership.models import central_tables, tenant_tables

logger = structlog.get_logger(__name__)
settings = get_settings()


def _install_sqlite_events(engine: Engine) -> None:
    @event.listens_for(engine, "connect")
    def _sqlite_pragmas(dbapi_conn, _):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON;")
        cursor.close()


def create_store_engine(url: str, echo: bool = False) -> Engine:
    """Create an engine for a central or tenant store"""
    kwargs = {"echo": echo, "future": True}
    parsed = make_url(url)
    is_sqlite = parsed.get_backend_name() == "sqlite"
    if is_sqlite:
        kwargs["connect_args"] = {"check_same_thread": False}
        if parsed.database in (None, "", ":memory:"):
            # In-memory databases only exist for the life of one connection
            kwargs["poolclass"] = StaticPool
        else:
            directory = os.path.dirname(os.path.abspath(parsed.database))
            os.makedirs(directory, exist_ok=True)
    engine = create_engine(url, **kwargs)
    if is_sqlite:
        _install_sqlite_events(engine)
    return engine


# Central store engine
central_engine = create_store_engine(settings.DATABASE_URL, echo=settings.DEBUG)


def init_central_db(engine: Optional[Engine] = None) -> None:
    """Create central tables (development only, production uses Alembic)"""
    SQLModel.metadata.create_all(engine or central_engine, tables=central_tables())
    logger.info("Central database tables created")


def get_central_session() -> Iterator[Session]:
    """Dependency to get a central database session"""
    with Session(central_engine, expire_on_commit=False) as session:
        yield session


class TenantDatabaseManager:
    """Resolves and provisions the isolated database of each tenant"""

    def __init__(self, url_template: str, echo: bool = False):
        self.url_template = url_template
        self.echo = echo
        self._engines: Dict[str, Engine] = {}
        self._lock = threading.Lock()

    def url_for(self, tenant_id: str) -> str:
        return self.url_template.format(tenant_id=tenant_id)

    def engine_for(self, tenant_id: str) -> Engine:
        """Get (or lazily create) the engine of a tenant store"""
        with self._lock:
            engine = self._engines.get(tenant_id)
            if engine is None:
                engine = create_store_engine(self.url_for(tenant_id), echo=self.echo)
                self._engines[tenant_id] = engine
            return engine

    def create_tenant_database(self, tenant_id: str) -> None:
        """Create the tenant schema; safe to call more than once"""
        SQLModel.metadata.create_all(self.engine_for(tenant_id), tables=tenant_tables())
        logger.info(f"Tenant database ready: {tenant_id}")

    def drop_tenant_database(self, tenant_id: str) -> None:
        """Drop the tenant schema and forget its engine"""
        with self._lock:
            engine = self._engines.pop(tenant_id, None)
        if engine is None:
            return
        SQLModel.metadata.drop_all(engine, tables=tenant_tables())
        engine.dispose()
        logger.info(f"Tenant database dropped: {tenant_id}")

    def session(self, tenant_id: str) -> Session:
        """Open a new session on the tenant store"""
        return Session(self.engine_for(tenant_id), expire_on_commit=False)

    def dispose(self) -> None:
        with self._lock:
            engines = list(self._engines.values())
            self._engines.clear()
        for engine in engines:
            engine.dispose()


tenant_databases = TenantDatabaseManager(
    settings.TENANT_DATABASE_URL_TEMPLATE,
    echo=settings.DEBUG,
)


def get_tenant_databases() -> TenantDatabaseManager:
    """Dependency to get the tenant database manager"""
    return tenant_databases


@contextmanager
def transaction(session: Session) -> Iterator[Session]:
    """Commit on success, roll back and re-raise on any failure"""
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
