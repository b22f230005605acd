"""
Activity log API endpoints
"""

from fastapi import APIRouter, Depends, Query
from sqlmodel import Session
from typing import Optional
from datetime import date

from membership.api.dependencies import get_tenant_session, require_permission
from membership.core.permissions import Permission
from membership.models import TenantUser
from membership.schemas.activity_log import ActivityLogListResponse, ActivityLogResponse, PerformerSummary
from membership.services.activity_log import ActivityLogService

router = APIRouter()


@router.get("/", response_model=ActivityLogListResponse)
def list_activity_logs(
    feature: Optional[str] = Query(default=None, max_length=255),
    action: Optional[str] = Query(default=None, max_length=255),
    performed_by: Optional[int] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    search: Optional[str] = Query(default=None, max_length=255),
    page: int = Query(default=1, ge=1),
    per_page: int = Query(default=15, ge=10, le=100),
    user: TenantUser = Depends(require_permission(Permission.VIEW_ACTIVITY_LOG)),
    session: Session = Depends(get_tenant_session),
):
    """Newest first, filtered like the activity log screen"""
    service = ActivityLogService(session)
    result = service.list_logs(
        feature=feature,
        action=action,
        performed_by=performed_by,
        date_from=date_from,
        date_to=date_to,
        search=search,
        page=page,
        per_page=per_page,
    )
    logs = []
    for entry in result.entries:
        response = ActivityLogResponse.model_validate(entry.log)
        if entry.performer is not None:
            response.performer = PerformerSummary.model_validate(entry.performer)
        logs.append(response)
    return ActivityLogListResponse(
        logs=logs,
        total=result.total,
        page=result.page,
        per_page=result.per_page,
        available_features=service.available_features(),
        available_actions=service.available_actions(),
    )
