"""
Notification router

Subscribed to the event dispatcher. For every event it resolves the tenant
users who subscribed to the event type, drops the performer, disabled users
and users without the capability for that class of event, then delivers one
message per enabled channel. Channel failures are isolated: logged, never
retried and never surfaced to the mutation that raised the event.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional
from sqlalchemy import or_
from sqlalchemy.engine import Engine
from sqlmodel import Session, select
import structlog

from membership.core.config import Settings, get_settings
from membership.core.database import TenantDatabaseManager
from membership.core.events import DomainEvent, EventCategory
from membership.core.permissions import Permission, get_permissions_for_role, has_permission
from membership.models import Channel, NotificationSetting, Role, Tenant, TenantUser, is_known_event_type
from membership.services.device_tokens import DeviceTokenStore
from membership.services.notification_messages import render
from membership.services.transports import InAppChannel, LoggingMailTransport, LoggingPushTransport, MailTransport, PushTransport

logger = structlog.get_logger(__name__)

# Capability a subscriber needs to hear about each class of event
REQUIRED_PERMISSIONS: Dict[EventCategory, Permission] = {
    EventCategory.USER: Permission.MANAGE_USER,
    EventCategory.ROLE: Permission.MODIFY_ROLES,
    EventCategory.INVITE: Permission.INVITE_USER,
}


@dataclass
class Delivery:
    user_id: int
    channel: Channel
    delivered: bool


class NotificationRouter:

    def __init__(
        self,
        central_engine: Engine,
        tenant_databases: TenantDatabaseManager,
        mail: Optional[MailTransport] = None,
        push: Optional[PushTransport] = None,
        in_app: Optional[InAppChannel] = None,
        settings: Optional[Settings] = None,
    ):
        self.central_engine = central_engine
        self.tenant_databases = tenant_databases
        self.settings = settings or get_settings()
        self.mail = mail or LoggingMailTransport(self.settings.MAIL_FROM)
        self.push = push or LoggingPushTransport()
        self.in_app = in_app or InAppChannel()

    def __call__(self, event: DomainEvent) -> List[Delivery]:
        return self.handle(event)

    def handle(self, event: DomainEvent) -> List[Delivery]:
        if not is_known_event_type(event.event_type):
            logger.debug(f"No notifications for {event.event_type}")
            return []

        with Session(self.central_engine) as central_session:
            tenant = central_session.get(Tenant, event.tenant_id)
        if tenant is None:
            logger.warning(f"Tenant {event.tenant_id} not found, dropping {event.name} ({event.event_id})")
            return []

        deliveries: List[Delivery] = []
        with self.tenant_databases.session(event.tenant_id) as session:
            for user, setting in self.eligible_subscribers(session, event):
                for channel in setting.enabled_channels():
                    deliveries.append(self._deliver(session, event, user, channel))

        logger.info(f"Routed {event.name} ({event.event_id}): {len(deliveries)} deliveries")
        return deliveries

    def subscribers(self, session: Session, event_type: str):
        """(user, setting) pairs with at least one channel on for the event type"""
        return session.exec(
            select(TenantUser, NotificationSetting)
            .join(NotificationSetting, NotificationSetting.user_id == TenantUser.id)
            .where(
                NotificationSetting.event_type == event_type,
                or_(
                    NotificationSetting.email_enabled == True,  # noqa: E712
                    NotificationSetting.push_enabled == True,  # noqa: E712
                    NotificationSetting.in_app_enabled == True,  # noqa: E712
                ),
            )
            .order_by(TenantUser.id)
        ).all()

    def eligible_subscribers(self, session: Session, event: DomainEvent):
        required = REQUIRED_PERMISSIONS[event.category]
        roles = {role.id: role for role in session.exec(select(Role)).all()}
        eligible = []
        for user, setting in self.subscribers(session, event.event_type):
            if event.performer is not None and user.id == event.performer:
                continue
            if user.is_disabled:
                continue
            if not has_permission(required, get_permissions_for_role(roles.get(user.role_id))):
                continue
            eligible.append((user, setting))
        return eligible

    def _deliver(self, session: Session, event: DomainEvent, user: TenantUser, channel: Channel) -> Delivery:
        message = render(event, channel, self.settings.APP_BASE_URL)
        try:
            if channel == Channel.EMAIL:
                self.mail.send(user.email, message)
                delivered = True
            elif channel == Channel.PUSH:
                tokens = DeviceTokenStore(session).active_tokens(user.id)
                if not tokens:
                    logger.debug(f"No active device tokens for user {user.id}")
                    return Delivery(user.id, channel, False)
                delivered = self.push.send(tokens, message.title, message.body, message.data)
                if not delivered:
                    logger.warning(f"Push rejected for user {user.id} on {event.name} ({event.event_id})")
            else:
                self.in_app.deliver(session, user.id, event.event_type, message)
                delivered = True
        except Exception as e:
            logger.error(
                f"Failed {channel.value} delivery to user {user.id} "
                f"for {event.name} ({event.event_id}): {e}"
            )
            delivered = False
        return Delivery(user.id, channel, delivered)
