"""History log - append-only record of hide/restore pass outcomes"""
import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from shomer.models.history_entry import HistoryEntry
from shomer.schemas.visibility import PassResult, PlatformResult

logger = logging.getLogger(__name__)

AGGREGATE_PLATFORM = "automatic"


def _platform_error_text(result: PlatformResult) -> Optional[str]:
    if result.error:
        return result.error
    if result.failed:
        return f"{result.failed} of {result.total} items failed"
    return None


def record_pass(result: PassResult, db: Session) -> List[HistoryEntry]:
    """Write one entry per platform plus one aggregate entry for a finished pass
    
    Returns:
        The entries written (platform entries first, aggregate last)
    """
    timestamp = result.finished_at or result.started_at
    entries = []

    for platform_result in result.platforms:
        entries.append(HistoryEntry(
            user_id=result.user_id,
            timestamp=timestamp,
            action=result.action,
            platform=platform_result.platform,
            trigger=result.trigger,
            affected_count=platform_result.successful,
            failed_count=platform_result.failed,
            success=platform_result.success,
            error=_platform_error_text(platform_result),
            details=platform_result.model_dump(exclude={"platform"}),
        ))

    aggregate_error = result.error
    if aggregate_error is None and not result.success:
        failed_platforms = [p.platform for p in result.platforms if not p.success]
        aggregate_error = f"Failures on: {', '.join(failed_platforms)}"

    entries.append(HistoryEntry(
        user_id=result.user_id,
        timestamp=timestamp,
        action=result.action,
        platform=AGGREGATE_PLATFORM,
        trigger=result.trigger,
        affected_count=result.affected_count,
        failed_count=result.failed_count,
        success=result.success,
        error=aggregate_error,
        details={"platforms": [p.platform for p in result.platforms]},
    ))

    db.add_all(entries)
    db.commit()
    return entries


def get_history(user_id: int, db: Session, limit: int = 50) -> List[HistoryEntry]:
    """Most recent history entries for a user, newest first"""
    return db.query(HistoryEntry).filter(
        HistoryEntry.user_id == user_id
    ).order_by(HistoryEntry.timestamp.desc(), HistoryEntry.id.desc()).limit(limit).all()
