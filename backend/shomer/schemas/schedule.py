"""Pydantic schemas for schedule settings, content locks and admin Shabbat times"""
from datetime import datetime
from typing import Literal, Optional
from pydantic import BaseModel, Field


class ScheduleSettingsUpdate(BaseModel):
    """Schema for updating a user's schedule preferences"""
    location_id: Optional[str] = Field(None, max_length=50)
    hide_offset: Optional[Literal["immediate", "15min", "30min", "1hour"]] = None
    restore_offset: Optional[Literal["immediate", "30min", "1hour"]] = None


class LocationResponse(BaseModel):
    """A supported location with its weekly clock times"""
    id: str
    name: str
    geonameid: int
    entry: str
    exit: str


class ContentLockRequest(BaseModel):
    """Schema for locking a content item"""
    reason: str = Field("manual", max_length=255)


class ContentLockResponse(BaseModel):
    """Locked content item as returned by the API"""
    platform: str
    content_id: str
    is_locked: bool
    reason: str
    created_at: datetime

    model_config = {"from_attributes": True}


class AdminShabbatTimesUpdate(BaseModel):
    """Schema for setting the admin-mode quiet period"""
    entry: datetime
    exit: datetime
