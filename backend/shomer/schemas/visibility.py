"""Pydantic schemas for hide/restore pass results"""
from datetime import datetime
from typing import List, Literal, Optional
from pydantic import BaseModel, Field

PassAction = Literal["hide", "restore"]


class ItemError(BaseModel):
    """A single content item that could not be changed"""
    content_id: str
    error: str


class PlatformResult(BaseModel):
    """Outcome of one pass on one platform"""
    platform: str
    total: int = 0
    successful: int = 0
    failed: int = 0
    skipped_locked: int = 0
    skipped_already: int = 0
    errors: List[ItemError] = Field(default_factory=list)
    error: Optional[str] = None  # Platform-level failure (authentication, listing, timeout)

    @property
    def success(self) -> bool:
        return self.error is None and self.failed == 0


class PassResult(BaseModel):
    """Outcome of one hide or restore pass across all of a user's platforms"""
    user_id: int
    action: PassAction
    trigger: Literal["scheduled", "manual"] = "scheduled"
    started_at: datetime
    finished_at: Optional[datetime] = None
    platforms: List[PlatformResult] = Field(default_factory=list)
    error: Optional[str] = None

    @property
    def affected_count(self) -> int:
        return sum(p.successful for p in self.platforms)

    @property
    def failed_count(self) -> int:
        return sum(p.failed for p in self.platforms)

    @property
    def success(self) -> bool:
        return self.error is None and all(p.success for p in self.platforms)


class HistoryEntryResponse(BaseModel):
    """History entry as returned by the API"""
    id: int
    timestamp: datetime
    action: str
    platform: str
    trigger: str
    affected_count: int
    failed_count: int
    success: bool
    error: Optional[str] = None
    details: Optional[dict] = None

    model_config = {"from_attributes": True}
