"""Security dependencies: session authentication, CSRF and admin checks"""
import logging
from typing import Optional

from fastapi import Depends, Header, HTTPException, Request
from sqlalchemy.orm import Session

from shomer.db.helpers import get_user
from shomer.db.redis import get_session, get_csrf_token
from shomer.db.session import get_db
from shomer.models.user import User

security_logger = logging.getLogger("security")


def require_auth(request: Request) -> int:
    """Dependency: Require authentication, return user_id"""
    session_id = request.cookies.get("session_id")

    if not session_id:
        raise HTTPException(401, "Not authenticated. Please log in.")

    user_id = get_session(session_id)
    if not user_id:
        raise HTTPException(401, "Session expired. Please log in again.")

    return user_id


def require_csrf(
    request: Request,
    user_id: int = Depends(require_auth),
    x_csrf_token: Optional[str] = Header(None, alias="X-CSRF-Token")
) -> int:
    """Dependency: Require auth + valid CSRF token, return user_id"""
    session_id = request.cookies.get("session_id")

    expected_csrf = get_csrf_token(session_id)
    if not expected_csrf or x_csrf_token != expected_csrf:
        security_logger.warning(
            f"CSRF validation failed - User: {user_id}, "
            f"IP: {request.client.host if request.client else 'unknown'}, "
            f"Path: {request.url.path}"
        )
        raise HTTPException(403, "Invalid or missing CSRF token")

    return user_id


def require_admin(user_id: int = Depends(require_csrf), db: Session = Depends(get_db)) -> User:
    """Dependency: Require admin role (state-changing routes)"""
    user = get_user(user_id, db)
    if not user or not user.is_admin:
        security_logger.warning(f"Admin access denied for user {user_id}")
        raise HTTPException(403, "Admin access required")
    return user


def require_admin_get(user_id: int = Depends(require_auth), db: Session = Depends(get_db)) -> User:
    """Dependency: Require admin role (for GET requests - no CSRF required)"""
    user = get_user(user_id, db)
    if not user or not user.is_admin:
        security_logger.warning(f"Admin access denied for user {user_id}")
        raise HTTPException(403, "Admin access required")
    return user
