"""
Application configuration using Pydantic Settings
"""

from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Application
    APP_NAME: str = "Tenant Membership"
    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    APP_BASE_URL: str = "http://localhost:8000"

    # API
    API_V1_PREFIX: str = "/api/v1"
    ALLOWED_ORIGINS: list[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]

    # Central database (central users, tenants, memberships)
    DATABASE_URL: str = "sqlite:///./central.db"

    # Tenant databases, one per tenant
    TENANT_DATABASE_URL_TEMPLATE: str = "sqlite:///./tenants/tenant_{tenant_id}.db"

    # JWT
    JWT_SECRET_KEY: str = "jwt-secret-key-change-in-production"
    JWT_ALGORITHM: str = "HS256"
    JWT_ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24  # 24 hours

    # Invitations
    INVITE_EXPIRY_DAYS: int = 7
    INVITE_MAX_RESENDS: int = 3
    INVITE_TOKEN_BYTES: int = 48  # 64 url-safe characters

    # Event dispatcher
    EVENT_MAX_ATTEMPTS: int = 3
    EVENT_ATTEMPT_TIMEOUT_SECONDS: float = 60.0
    EVENT_QUEUE_MAXSIZE: int = 1000
    EVENT_WORKERS: int = 2

    # Mail
    MAIL_FROM: str = "no-reply@localhost"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
