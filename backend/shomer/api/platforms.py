"""Platform connection routes"""
import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from shomer.core.config import SUPPORTED_PLATFORMS
from shomer.core.security import require_auth, require_csrf
from shomer.db import helpers as db_helpers
from shomer.db.session import get_db

router = APIRouter(prefix="/api/platforms", tags=["platforms"])
logger = logging.getLogger(__name__)


@router.get("")
def get_platforms(user_id: int = Depends(require_auth), db: Session = Depends(get_db)):
    """Connection status for every supported platform"""
    result = {}
    for platform in SUPPORTED_PLATFORMS:
        token = db_helpers.get_oauth_token(user_id, platform, db=db)
        result[platform] = {
            "connected": token is not None,
            "expires_at": token.expires_at.isoformat() if token and token.expires_at else None,
        }
    return result


@router.delete("/{platform}")
def disconnect_platform(platform: str, user_id: int = Depends(require_csrf), db: Session = Depends(get_db)):
    """Remove the stored credentials for a platform"""
    if platform not in SUPPORTED_PLATFORMS:
        raise HTTPException(400, f"Unsupported platform: {platform}")

    if not db_helpers.delete_oauth_token(user_id, platform, db=db):
        raise HTTPException(404, f"{platform} is not connected")

    logger.info(f"User {user_id} disconnected {platform}")
    return {"platform": platform, "connected": False}
