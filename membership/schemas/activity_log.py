"""
Pydantic schemas for the activity log
"""

from pydantic import BaseModel, ConfigDict
from typing import List, Optional
from datetime import datetime


class PerformerSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    email: str


class ActivityLogResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    feature: str
    action: str
    details: str
    performed_by: Optional[int] = None
    performed_at: datetime
    performer: Optional[PerformerSummary] = None


class ActivityLogListResponse(BaseModel):
    logs: List[ActivityLogResponse]
    total: int
    page: int
    per_page: int
    available_features: List[str]
    available_actions: List[str]
