"""Content lock routes - exempt items from automatic hide/restore"""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from shomer.core.config import SUPPORTED_PLATFORMS
from shomer.core.security import require_auth, require_csrf
from shomer.db.session import get_db
from shomer.schemas.schedule import ContentLockRequest, ContentLockResponse
from shomer.services.content_state_service import list_content_locks, set_content_lock

router = APIRouter(prefix="/api/locks", tags=["locks"])
logger = logging.getLogger(__name__)


def _check_platform(platform: str) -> None:
    if platform not in SUPPORTED_PLATFORMS:
        raise HTTPException(400, f"Unsupported platform: {platform}")


@router.get("", response_model=List[ContentLockResponse])
def get_locks(
    platform: Optional[str] = Query(None),
    user_id: int = Depends(require_auth),
    db: Session = Depends(get_db)
):
    if platform is not None:
        _check_platform(platform)
    return list_content_locks(user_id, db, platform=platform)


@router.put("/{platform}/{content_id}", response_model=ContentLockResponse)
def lock_content(
    platform: str,
    content_id: str,
    request_data: ContentLockRequest,
    user_id: int = Depends(require_csrf),
    db: Session = Depends(get_db)
):
    """Lock an item so hide and restore passes leave it alone"""
    _check_platform(platform)
    lock = set_content_lock(user_id, platform, content_id, True, reason=request_data.reason, db=db)
    logger.info(f"User {user_id} locked {platform} item {content_id}")
    return lock


@router.delete("/{platform}/{content_id}")
def unlock_content(
    platform: str,
    content_id: str,
    user_id: int = Depends(require_csrf),
    db: Session = Depends(get_db)
):
    """Unlock an item; an item still hidden is restored by the next restore pass"""
    _check_platform(platform)
    set_content_lock(user_id, platform, content_id, False, db=db)
    logger.info(f"User {user_id} unlocked {platform} item {content_id}")
    return {"platform": platform, "content_id": content_id, "is_locked": False}
