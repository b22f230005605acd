"""
Notification settings and in-app inbox of tenant users
"""

from typing import Dict, List, Optional, Set
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, func, select
import structlog

from membership.core.clock import utcnow
from membership.core.database import transaction
from membership.core.exceptions import InvalidInput, NotFound
from membership.models import (
    Channel,
    EventType,
    Notification,
    NotificationSetting,
    is_known_event_type,
)

logger = structlog.get_logger(__name__)


class NotificationSettingsService:
    """Per user, per event type channel preferences"""

    def __init__(self, session: Session):
        self.session = session

    def _existing_event_types(self, user_id: int) -> Set[str]:
        return set(self.session.exec(
            select(NotificationSetting.event_type).where(NotificationSetting.user_id == user_id)
        ).all())

    def _missing_event_types(self, user_id: int) -> List[EventType]:
        existing = self._existing_event_types(user_id)
        return [event_type for event_type in EventType if event_type.value not in existing]

    def ensure_settings(self, user_id: int) -> int:
        """
        Create the missing setting rows of a user, all channels enabled.
        Existing rows are never touched. Returns how many rows were created.
        """
        for attempt in range(2):
            missing = self._missing_event_types(user_id)
            if not missing:
                return 0
            try:
                with transaction(self.session):
                    for event_type in missing:
                        self.session.add(NotificationSetting(user_id=user_id, event_type=event_type.value))
            except IntegrityError:
                # Another back-fill won the race, look again
                logger.info(f"Concurrent settings back-fill for user {user_id}, retrying")
                continue
            logger.info(f"Created {len(missing)} notification settings for user {user_id}")
            return len(missing)
        return 0

    def get_settings(self, user_id: int) -> List[NotificationSetting]:
        """Settings of a user in EventType order, back-filling missing rows first"""
        self.ensure_settings(user_id)
        rows = self.session.exec(
            select(NotificationSetting).where(NotificationSetting.user_id == user_id)
        ).all()
        order = {event_type.value: index for index, event_type in enumerate(EventType)}
        return sorted(
            (row for row in rows if row.event_type in order),
            key=lambda row: order[row.event_type],
        )

    def get_setting(self, user_id: int, event_type: str) -> Optional[NotificationSetting]:
        return self.session.exec(
            select(NotificationSetting).where(
                NotificationSetting.user_id == user_id,
                NotificationSetting.event_type == event_type,
            )
        ).first()

    def update_setting(
        self,
        user_id: int,
        event_type: str,
        email_enabled: Optional[bool] = None,
        push_enabled: Optional[bool] = None,
        in_app_enabled: Optional[bool] = None,
    ) -> NotificationSetting:
        """Change the channel flags of one event type; None leaves a flag as is"""
        if not is_known_event_type(event_type):
            raise InvalidInput(f"Unknown event type: {event_type}")

        self.ensure_settings(user_id)
        with transaction(self.session):
            setting = self.get_setting(user_id, event_type)
            if email_enabled is not None:
                setting.email_enabled = email_enabled
            if push_enabled is not None:
                setting.push_enabled = push_enabled
            if in_app_enabled is not None:
                setting.in_app_enabled = in_app_enabled
            setting.updated_at = utcnow()
            self.session.add(setting)

        logger.info(f"Notification setting updated: user {user_id} {event_type}")
        return setting

    def update_settings(self, user_id: int, changes: Dict[str, Dict[str, bool]]) -> List[NotificationSetting]:
        """Bulk form of update_setting, keyed by event type"""
        unknown = sorted(key for key in changes if not is_known_event_type(key))
        if unknown:
            raise InvalidInput(f"Unknown event types: {', '.join(unknown)}")
        for event_type, flags in changes.items():
            self.update_setting(user_id, event_type, **flags)
        return self.get_settings(user_id)

    def is_enabled(self, user_id: int, event_type: str, channel: Channel) -> bool:
        setting = self.get_setting(user_id, event_type)
        return setting is not None and setting.is_channel_enabled(channel)


class NotificationInbox:
    """In-app notifications of a user"""

    def __init__(self, session: Session):
        self.session = session

    def list(self, user_id: int, unread_only: bool = False, limit: int = 50) -> List[Notification]:
        statement = select(Notification).where(Notification.user_id == user_id)
        if unread_only:
            statement = statement.where(Notification.read_at.is_(None))
        statement = statement.order_by(Notification.created_at.desc()).limit(limit)
        return list(self.session.exec(statement).all())

    def unread_count(self, user_id: int) -> int:
        return self.session.exec(
            select(func.count()).select_from(Notification).where(
                Notification.user_id == user_id,
                Notification.read_at.is_(None),
            )
        ).one()

    def mark_as_read(self, user_id: int, notification_id: str) -> Notification:
        with transaction(self.session):
            notification = self.session.get(Notification, notification_id)
            if notification is None or notification.user_id != user_id:
                raise NotFound("Notification", notification_id)
            notification.mark_as_read()
            self.session.add(notification)
        return notification

    def mark_all_as_read(self, user_id: int) -> int:
        with transaction(self.session):
            unread = self.list(user_id, unread_only=True, limit=None)
            for notification in unread:
                notification.mark_as_read()
                self.session.add(notification)
        return len(unread)
