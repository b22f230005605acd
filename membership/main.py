"""
Tenant Membership - Main Application Entry Point
Central accounts, businesses, invitations and notification fan-out
"""

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import structlog

from membership import __version__
from membership.core.config import get_settings
from membership.core.database import central_engine, init_central_db, tenant_databases
from membership.core.dispatcher import dispatcher
from membership.core.exceptions import InvalidInput, MembershipError, NotFound, PolicyViolation, StateConflict
from membership.services.activity_log import ActivityLogRecorder
from membership.services.notification_router import NotificationRouter
from membership.api import activity_logs, auth, businesses, invites, notifications, roles, users

# Configure structured logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.JSONRenderer()
    ],
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
)

logger = structlog.get_logger(__name__)
settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    # Startup
    logger.info("Initializing Tenant Membership backend")
    if settings.ENVIRONMENT == "development":
        init_central_db()
    else:
        logger.info("Central database managed by Alembic migrations")

    router = NotificationRouter(central_engine, tenant_databases)
    recorder = ActivityLogRecorder(central_engine, tenant_databases)
    dispatcher.subscribe(router.handle)
    dispatcher.subscribe(recorder.handle)
    dispatcher.start()

    yield

    # Shutdown
    logger.info("Shutting down Tenant Membership backend")
    dispatcher.stop()
    dispatcher.unsubscribe(router.handle)
    dispatcher.unsubscribe(recorder.handle)
    tenant_databases.dispose()


# Create FastAPI application
app = FastAPI(
    title="Tenant Membership API",
    description="Multi-tenant organization membership with invitations and notifications",
    version=__version__,
    lifespan=lifespan,
)

# Configure middleware stack
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Domain errors
ERROR_STATUS = (
    (NotFound, status.HTTP_404_NOT_FOUND),
    (PolicyViolation, status.HTTP_403_FORBIDDEN),
    (StateConflict, status.HTTP_409_CONFLICT),
    (InvalidInput, status.HTTP_422_UNPROCESSABLE_ENTITY),
)


@app.exception_handler(MembershipError)
async def membership_error_handler(request: Request, exc: MembershipError):
    status_code = next(
        (code for error_class, code in ERROR_STATUS if isinstance(exc, error_class)),
        status.HTTP_400_BAD_REQUEST,
    )
    logger.info(f"{request.method} {request.url.path} refused: {exc.message}")
    return JSONResponse(
        status_code=status_code,
        content={"detail": exc.message, "error": exc.__class__.__name__},
    )


# Include routers
prefix = settings.API_V1_PREFIX
app.include_router(auth.router, prefix=f"{prefix}/auth", tags=["auth"])
app.include_router(businesses.router, prefix=f"{prefix}/businesses", tags=["businesses"])
app.include_router(invites.router, prefix=f"{prefix}/tenants/{{tenant_id}}/invites", tags=["invites"])
app.include_router(users.router, prefix=f"{prefix}/tenants/{{tenant_id}}/users", tags=["users"])
app.include_router(roles.router, prefix=f"{prefix}/tenants/{{tenant_id}}/roles", tags=["roles"])
app.include_router(
    notifications.router,
    prefix=f"{prefix}/tenants/{{tenant_id}}/notifications",
    tags=["notifications"],
)
app.include_router(
    activity_logs.router,
    prefix=f"{prefix}/tenants/{{tenant_id}}/activity-logs",
    tags=["activity-logs"],
)


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "healthy", "service": "tenant-membership-api"}


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": "Tenant Membership API",
        "version": __version__,
        "docs": "/docs",
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "membership.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.ENVIRONMENT == "development",
        log_level="info",
    )
