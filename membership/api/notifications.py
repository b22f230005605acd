"""
Notification settings, inbox and device token API endpoints
"""

from fastapi import APIRouter, Depends, status
from sqlmodel import Session
from typing import List
import structlog

from membership.api.dependencies import get_current_tenant_user, get_tenant_session
from membership.models import EVENT_TYPE_LABELS, EventType, TenantUser
from membership.schemas.notification import (
    DeviceTokenCreate,
    DeviceTokenDelete,
    NotificationResponse,
    NotificationSettingResponse,
    NotificationSettingsUpdate,
    UnreadCountResponse,
)
from membership.services.device_tokens import DeviceTokenStore
from membership.services.notification_settings import NotificationInbox, NotificationSettingsService

logger = structlog.get_logger(__name__)
router = APIRouter()


def _setting_responses(settings) -> List[NotificationSettingResponse]:
    responses = []
    for setting in settings:
        response = NotificationSettingResponse.model_validate(setting)
        response.label = EVENT_TYPE_LABELS[EventType(setting.event_type)]
        responses.append(response)
    return responses


@router.get("/settings", response_model=List[NotificationSettingResponse])
def get_settings(
    user: TenantUser = Depends(get_current_tenant_user),
    session: Session = Depends(get_tenant_session),
):
    return _setting_responses(NotificationSettingsService(session).get_settings(user.id))


@router.put("/settings", response_model=List[NotificationSettingResponse])
def update_settings(
    data: NotificationSettingsUpdate,
    user: TenantUser = Depends(get_current_tenant_user),
    session: Session = Depends(get_tenant_session),
):
    changes = {
        event_type: flags.model_dump(exclude_none=True)
        for event_type, flags in data.settings.items()
    }
    settings = NotificationSettingsService(session).update_settings(user.id, changes)
    return _setting_responses(settings)


@router.get("/", response_model=List[NotificationResponse])
def list_notifications(
    unread_only: bool = False,
    limit: int = 50,
    user: TenantUser = Depends(get_current_tenant_user),
    session: Session = Depends(get_tenant_session),
):
    inbox = NotificationInbox(session)
    return [NotificationResponse.model_validate(n) for n in inbox.list(user.id, unread_only, limit)]


@router.get("/unread-count", response_model=UnreadCountResponse)
def unread_count(
    user: TenantUser = Depends(get_current_tenant_user),
    session: Session = Depends(get_tenant_session),
):
    return UnreadCountResponse(unread=NotificationInbox(session).unread_count(user.id))


@router.post("/read-all", response_model=UnreadCountResponse)
def mark_all_as_read(
    user: TenantUser = Depends(get_current_tenant_user),
    session: Session = Depends(get_tenant_session),
):
    inbox = NotificationInbox(session)
    inbox.mark_all_as_read(user.id)
    return UnreadCountResponse(unread=inbox.unread_count(user.id))


@router.post("/{notification_id}/read", response_model=NotificationResponse)
def mark_as_read(
    notification_id: str,
    user: TenantUser = Depends(get_current_tenant_user),
    session: Session = Depends(get_tenant_session),
):
    return NotificationResponse.model_validate(NotificationInbox(session).mark_as_read(user.id, notification_id))


@router.post("/device-tokens", status_code=status.HTTP_201_CREATED)
def store_device_token(
    data: DeviceTokenCreate,
    user: TenantUser = Depends(get_current_tenant_user),
    session: Session = Depends(get_tenant_session),
):
    DeviceTokenStore(session).store_token(user.id, data.token, data.device_type, data.device_name)
    return {"message": "Device token stored"}


@router.delete("/device-tokens", status_code=status.HTTP_204_NO_CONTENT)
def deactivate_device_token(
    data: DeviceTokenDelete,
    user: TenantUser = Depends(get_current_tenant_user),
    session: Session = Depends(get_tenant_session),
):
    DeviceTokenStore(session).deactivate_token(user.id, data.token)
