"""
Back-fill missing notification settings

Creates the setting rows a tenant user is missing, for every user of every
tenant. Existing preferences are never changed, so the job can be run at any
time (e.g., after a new event type is added).
"""

import sys
from sqlmodel import Session, select
import structlog

from membership.core.database import TenantDatabaseManager, central_engine, tenant_databases
from membership.models import Tenant, TenantUser
from membership.services.notification_settings import NotificationSettingsService

logger = structlog.get_logger(__name__)


def backfill_tenant(tenant_id: str, databases: TenantDatabaseManager) -> int:
    """Back-fill one tenant store, returns the number of rows created"""
    created = 0
    with databases.session(tenant_id) as session:
        service = NotificationSettingsService(session)
        user_ids = session.exec(select(TenantUser.id)).all()
        for user_id in user_ids:
            created += service.ensure_settings(user_id)
    return created


def backfill_all(central_session: Session, databases: TenantDatabaseManager) -> dict:
    """Back-fill every tenant; a failing tenant does not stop the others"""
    results = {"tenants": 0, "created": 0, "failed": []}
    for tenant_id in central_session.exec(select(Tenant.id)).all():
        try:
            results["created"] += backfill_tenant(tenant_id, databases)
            results["tenants"] += 1
        except Exception as e:
            logger.error(f"Failed to back-fill tenant {tenant_id}: {e}")
            results["failed"].append(tenant_id)
    return results


def main():
    """Main entry point for the back-fill job"""
    logger.info("Starting notification settings back-fill")

    try:
        with Session(central_engine) as session:
            results = backfill_all(session, tenant_databases)
    except Exception as e:
        logger.error(f"Fatal error in back-fill job: {e}")
        sys.exit(1)

    logger.info(f"Notification settings back-fill complete: {results}")
    if results["failed"]:
        sys.exit(1)


if __name__ == "__main__":
    main()
