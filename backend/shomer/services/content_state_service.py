"""Content lock and original-status stores consulted by hide/restore passes"""
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from shomer.models.content_lock import ContentLock
from shomer.models.original_status import OriginalStatus

logger = logging.getLogger(__name__)


# Content locks (written only by explicit user action)
def is_content_locked(user_id: int, platform: str, content_id: str, db: Session) -> bool:
    """Whether a content item is exempt from automatic changes"""
    lock = db.query(ContentLock).filter(
        ContentLock.user_id == user_id,
        ContentLock.platform == platform,
        ContentLock.content_id == content_id
    ).first()
    return bool(lock and lock.is_locked)


def get_content_lock(user_id: int, platform: str, content_id: str, db: Session) -> Optional[ContentLock]:
    return db.query(ContentLock).filter(
        ContentLock.user_id == user_id,
        ContentLock.platform == platform,
        ContentLock.content_id == content_id
    ).first()


def set_content_lock(user_id: int, platform: str, content_id: str, is_locked: bool,
                     reason: str = "manual", db: Session = None) -> Optional[ContentLock]:
    """Lock or unlock a content item; unlocking removes the row
    
    Returns:
        The lock row when locking, None when unlocking
    """
    lock = get_content_lock(user_id, platform, content_id, db)

    if not is_locked:
        if lock:
            db.delete(lock)
            db.commit()
        return None

    if lock:
        lock.is_locked = True
        lock.reason = reason
    else:
        lock = ContentLock(
            user_id=user_id,
            platform=platform,
            content_id=content_id,
            is_locked=True,
            reason=reason
        )
        db.add(lock)
    db.commit()
    db.refresh(lock)
    return lock


def list_content_locks(user_id: int, db: Session, platform: Optional[str] = None) -> List[ContentLock]:
    """All locked items for a user, optionally for one platform"""
    query = db.query(ContentLock).filter(
        ContentLock.user_id == user_id,
        ContentLock.is_locked.is_(True)
    )
    if platform:
        query = query.filter(ContentLock.platform == platform)
    return query.order_by(ContentLock.platform, ContentLock.content_id).all()


# Original statuses (written by hide passes, consumed by restore passes)
def save_original_status(user_id: int, platform: str, content_id: str, visibility: Any, db: Session) -> bool:
    """Record an item's visibility before hiding it. Write-once: an existing record is kept.
    
    Returns:
        True if a new record was written, False if one already existed
    """
    existing = db.query(OriginalStatus).filter(
        OriginalStatus.user_id == user_id,
        OriginalStatus.platform == platform,
        OriginalStatus.content_id == content_id
    ).first()
    if existing:
        return False

    db.add(OriginalStatus(
        user_id=user_id,
        platform=platform,
        content_id=content_id,
        original_visibility=visibility
    ))
    try:
        db.commit()
    except IntegrityError:
        # A concurrent pass wrote it first; that record wins
        db.rollback()
        return False
    return True


def get_original_statuses(user_id: int, platform: str, db: Session) -> Dict[str, Any]:
    """content_id -> original visibility for every item awaiting restore"""
    rows = db.query(OriginalStatus).filter(
        OriginalStatus.user_id == user_id,
        OriginalStatus.platform == platform
    ).order_by(OriginalStatus.id).all()
    return {row.content_id: row.original_visibility for row in rows}


def clear_original_status(user_id: int, platform: str, content_id: str, db: Session) -> bool:
    """Delete the record after a successful restore"""
    deleted = db.query(OriginalStatus).filter(
        OriginalStatus.user_id == user_id,
        OriginalStatus.platform == platform,
        OriginalStatus.content_id == content_id
    ).delete()
    db.commit()
    return deleted > 0
