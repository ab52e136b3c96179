"""History routes"""
from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from shomer.core.security import require_auth
from shomer.db.session import get_db
from shomer.schemas.visibility import HistoryEntryResponse
from shomer.services.history_service import get_history

router = APIRouter(prefix="/api/history", tags=["history"])


@router.get("", response_model=List[HistoryEntryResponse])
def list_history(
    limit: int = Query(50, ge=1, le=500),
    user_id: int = Depends(require_auth),
    db: Session = Depends(get_db)
):
    """The user's hide/restore history, newest first"""
    return get_history(user_id, db, limit=limit)
