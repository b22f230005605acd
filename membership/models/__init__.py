"""
Table models

Central store: central users, tenants, memberships.
Tenant store: users, roles, invites, notification settings, notifications, device tokens,
activity logs.
"""

from sqlalchemy import Table
from typing import List

from membership.models.central_user import CentralUser, normalize_email
from membership.models.tenant import Tenant
from membership.models.tenant_membership import TenantMembership
from membership.models.role import Role
from membership.models.tenant_user import TenantUser, UserStatus
from membership.models.invite import Invite, InviteStatus
from membership.models.notification_setting import (
    Channel,
    EVENT_TYPE_LABELS,
    EventType,
    NotificationSetting,
    is_known_event_type,
)
from membership.models.notification import Notification
from membership.models.device_token import DeviceToken
from membership.models.activity_log import ActivityLog


def central_tables() -> List[Table]:
    return [CentralUser.__table__, Tenant.__table__, TenantMembership.__table__]


def tenant_tables() -> List[Table]:
    return [
        Role.__table__,
        TenantUser.__table__,
        Invite.__table__,
        NotificationSetting.__table__,
        Notification.__table__,
        DeviceToken.__table__,
        ActivityLog.__table__,
    ]
