"""
Activity log

ActivityLogRecorder is subscribed to the event dispatcher next to the
notification router and writes one ActivityLog row per user, role and invite
event. ActivityLogService reads them back with filters for the activity log
screen.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Dict, List, Optional
from sqlalchemy import or_
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, func, select
import structlog

from membership.core.database import TenantDatabaseManager, transaction
from membership.core.events import DomainEvent, EventCategory, InviteEvent, RoleEvent, UserEvent
from membership.core.exceptions import InvalidInput
from membership.models import ActivityLog, Tenant, TenantUser

logger = structlog.get_logger(__name__)

FEATURES: Dict[EventCategory, str] = {
    EventCategory.USER: "User",
    EventCategory.ROLE: "Role",
    # Invites belong to user management
    EventCategory.INVITE: "User",
}

ACTIONS: Dict[EventCategory, Dict[str, str]] = {
    EventCategory.USER: {
        "role_updated": "Update Role",
        "enabled": "Enable User",
        "disabled": "Disable User",
        "deleted": "Delete User",
    },
    EventCategory.ROLE: {
        "created": "Create Role",
        "updated": "Update Role",
        "deleted": "Delete Role",
    },
    EventCategory.INVITE: {
        "sent": "Invite User",
        "accepted": "Accept Invite",
        "resent": "Resend Invite",
        "cancelled": "Cancel Invite",
    },
}

# Already recorded through invite.sent
SKIPPED = {("user", "invited")}


def action_label(event: DomainEvent) -> str:
    label = ACTIONS.get(event.category, {}).get(event.action)
    if label is None:
        label = event.action.replace("_", " ").capitalize()
    return label


def _role_name(role) -> str:
    return role.name if role is not None else "No Role"


def describe(event: DomainEvent) -> str:
    """One line description of what happened"""
    by = f" by {event.performer_name}" if event.performer is not None else ""
    if isinstance(event, UserEvent):
        if event.action == "role_updated":
            old = _role_name(event.metadata.get("old_role"))
            new = _role_name(event.metadata.get("new_role"))
            return f"User {event.user_name} role changed from {old} to {new}{by}"
        if event.action in ("enabled", "disabled", "deleted"):
            return f"User {event.user_name} was {event.action}{by}"
        return f"User {event.user_name} - {event.action}"
    if isinstance(event, RoleEvent):
        if event.action in ("created", "updated", "deleted"):
            return f"Role '{event.role.name}' was {event.action}{by}"
        return f"Role '{event.role.name}' - {event.action}"
    if isinstance(event, InviteEvent):
        if event.action == "sent":
            return f"{event.email} was invited with role {_role_name(event.role)}{by}"
        if event.action == "accepted":
            return f"{event.email} accepted invitation with role {_role_name(event.role)}"
        if event.action in ("resent", "cancelled"):
            return f"Invitation to {event.email} was {event.action}{by}"
        return f"Invitation to {event.email} - {event.action}"
    return f"{event.category.value.title()} {event.action}"


@dataclass
class ActivityLogEntry:
    log: ActivityLog
    performer: Optional[TenantUser] = None


@dataclass
class ActivityLogPage:
    entries: List[ActivityLogEntry] = field(default_factory=list)
    total: int = 0
    page: int = 1
    per_page: int = 15


class ActivityLogService:
    """Activity log rows of one tenant store"""

    def __init__(self, session: Session):
        self.session = session

    def find_by_event(self, event_id: str) -> Optional[ActivityLog]:
        return self.session.exec(select(ActivityLog).where(ActivityLog.event_id == event_id)).first()

    def record(self, event: DomainEvent) -> Optional[ActivityLog]:
        """Write the row for an event; recording the same event twice returns the first row"""
        if (event.category.value, event.action) in SKIPPED:
            return None

        event_id = str(event.event_id)
        existing = self.find_by_event(event_id)
        if existing is not None:
            return existing

        performed_by = event.performer
        if performed_by is not None and self.session.get(TenantUser, performed_by) is None:
            # Performer was deleted before the event was handled
            performed_by = None

        try:
            with transaction(self.session):
                log = ActivityLog(
                    event_id=event_id,
                    feature=FEATURES[event.category],
                    action=action_label(event),
                    details=describe(event),
                    performed_by=performed_by,
                    performed_at=event.occurred_at,
                )
                self.session.add(log)
        except IntegrityError:
            # Same event recorded concurrently
            existing = self.find_by_event(event_id)
            if existing is None:
                raise
            return existing

        logger.debug(f"Activity logged for {event.name} ({event_id}): {log.action}")
        return log

    def list_logs(
        self,
        feature: Optional[str] = None,
        action: Optional[str] = None,
        performed_by: Optional[int] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        search: Optional[str] = None,
        page: int = 1,
        per_page: int = 15,
    ) -> ActivityLogPage:
        """Newest first; date_to is inclusive"""
        if date_from and date_to and date_to < date_from:
            raise InvalidInput("The end date must be after or equal to the start date.")
        if not 10 <= per_page <= 100:
            raise InvalidInput("The per page value must be between 10 and 100.")
        if page < 1:
            raise InvalidInput("Page must be at least 1")

        conditions = []
        if feature:
            conditions.append(ActivityLog.feature == feature)
        if action:
            conditions.append(ActivityLog.action == action)
        if performed_by is not None:
            conditions.append(ActivityLog.performed_by == performed_by)
        if date_from:
            conditions.append(ActivityLog.performed_at >= datetime.combine(date_from, time.min))
        if date_to:
            conditions.append(ActivityLog.performed_at < datetime.combine(date_to + timedelta(days=1), time.min))
        if search:
            pattern = f"%{search}%"
            conditions.append(or_(
                ActivityLog.feature.ilike(pattern),
                ActivityLog.action.ilike(pattern),
                ActivityLog.details.ilike(pattern),
                TenantUser.name.ilike(pattern),
                TenantUser.email.ilike(pattern),
            ))

        performer_join = TenantUser.id == ActivityLog.performed_by
        total = self.session.exec(
            select(func.count()).select_from(ActivityLog).outerjoin(TenantUser, performer_join).where(*conditions)
        ).one()
        rows = self.session.exec(
            select(ActivityLog, TenantUser)
            .outerjoin(TenantUser, performer_join)
            .where(*conditions)
            .order_by(ActivityLog.performed_at.desc(), ActivityLog.id.desc())
            .offset((page - 1) * per_page)
            .limit(per_page)
        ).all()
        return ActivityLogPage(
            entries=[ActivityLogEntry(log, performer) for log, performer in rows],
            total=total,
            page=page,
            per_page=per_page,
        )

    def available_features(self) -> List[str]:
        return list(self.session.exec(select(ActivityLog.feature).distinct().order_by(ActivityLog.feature)).all())

    def available_actions(self) -> List[str]:
        return list(self.session.exec(select(ActivityLog.action).distinct().order_by(ActivityLog.action)).all())

    def detach_performer(self, user_id: int) -> int:
        """Keep the history of a user about to be deleted; caller owns the transaction"""
        logs = self.session.exec(select(ActivityLog).where(ActivityLog.performed_by == user_id)).all()
        for log in logs:
            log.performed_by = None
            self.session.add(log)
        return len(logs)


class ActivityLogRecorder:
    """Dispatcher subscriber writing activity log rows"""

    def __init__(self, central_engine: Engine, tenant_databases: TenantDatabaseManager):
        self.central_engine = central_engine
        self.tenant_databases = tenant_databases

    def __call__(self, event: DomainEvent) -> Optional[ActivityLog]:
        return self.handle(event)

    def handle(self, event: DomainEvent) -> Optional[ActivityLog]:
        with Session(self.central_engine) as central_session:
            tenant = central_session.get(Tenant, event.tenant_id)
        if tenant is None:
            logger.warning(f"Tenant {event.tenant_id} not found, activity for {event.name} not logged")
            return None

        with self.tenant_databases.session(event.tenant_id) as session:
            return ActivityLogService(session).record(event)
