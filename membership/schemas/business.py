"""
Pydantic schemas for businesses (tenants)
"""

from pydantic import BaseModel, Field
from datetime import datetime


class BusinessCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)


class BusinessResponse(BaseModel):
    id: str
    name: str
    favorite: bool
    created_at: datetime


class FavoriteResponse(BaseModel):
    tenant_id: str
    favorite: bool
