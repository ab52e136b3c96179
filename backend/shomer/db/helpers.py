"""Database helper functions for user settings, platform tokens and system settings"""
from sqlalchemy.orm import Session
from typing import Optional, List, Dict, Any
import json
import logging
from datetime import datetime, timezone

from shomer.models.user import User
from shomer.models.setting import Setting
from shomer.models.oauth_token import OAuthToken
from shomer.models.system_setting import SystemSetting
from shomer.db.session import SessionLocal
from shomer.utils.encryption import encrypt
from shomer.db.redis import (
    get_cached_settings, set_cached_settings, invalidate_settings_cache
)

logger = logging.getLogger(__name__)


def get_user_settings(user_id: int, category: str = "schedule", db: Session = None) -> Dict[str, Any]:
    """Get user settings by category (schedule, youtube, facebook)
    Uses Redis caching.
    
    Args:
        user_id: User ID
        category: Settings category
        db: Database session (if None, creates its own)
    """
    cached = get_cached_settings(user_id, category)
    if cached is not None:
        return cached
    
    should_close = False
    if db is None:
        db = SessionLocal()
        should_close = True
    
    try:
        rows = db.query(Setting).filter(
            Setting.user_id == user_id,
            Setting.category == category
        ).all()
        
        settings_dict = {}
        for setting in rows:
            try:
                settings_dict[setting.key] = json.loads(setting.value)
            except (json.JSONDecodeError, TypeError):
                # Rows written before values were always JSON-encoded
                settings_dict[setting.key] = setting.value
        
        set_cached_settings(user_id, category, settings_dict)
        
        return settings_dict
    finally:
        if should_close:
            db.close()


def set_user_setting(user_id: int, category: str, key: str, value: Any, db: Session = None) -> None:
    """Set a user setting (creates or updates)
    
    Args:
        user_id: User ID
        category: Settings category
        key: Setting key
        value: Setting value (always JSON-encoded, so "281" reads back as a string)
        db: Database session (if None, creates its own)
    """
    should_close = False
    if db is None:
        db = SessionLocal()
        should_close = True
    
    try:
        setting = db.query(Setting).filter(
            Setting.user_id == user_id,
            Setting.category == category,
            Setting.key == key
        ).first()
        
        value_str = json.dumps(value)
        
        if setting:
            setting.value = value_str
        else:
            setting = Setting(
                user_id=user_id,
                category=category,
                key=key,
                value=value_str
            )
            db.add(setting)
        
        db.commit()
        
        invalidate_settings_cache(user_id, category)
    finally:
        if should_close:
            db.close()


def get_user(user_id: int, db: Session) -> Optional[User]:
    """Get a user by id"""
    return db.query(User).filter(User.id == user_id).first()


def get_oauth_token(user_id: int, platform: str, db: Session = None) -> Optional[OAuthToken]:
    """Get OAuth token for a platform (still encrypted)
    
    Args:
        user_id: User ID
        platform: Platform name
        db: Database session (if None, creates its own)
    """
    should_close = False
    if db is None:
        db = SessionLocal()
        should_close = True
    
    try:
        return db.query(OAuthToken).filter(
            OAuthToken.user_id == user_id,
            OAuthToken.platform == platform
        ).first()
    finally:
        if should_close:
            db.close()


def get_connected_platforms(user_id: int, db: Session) -> List[str]:
    """Get the platforms a user has stored tokens for"""
    rows = db.query(OAuthToken.platform).filter(OAuthToken.user_id == user_id).all()
    return sorted(row[0] for row in rows)


def save_oauth_token(user_id: int, platform: str, access_token: str,
                     refresh_token: str = None, expires_at: datetime = None,
                     extra_data: Dict = None, db: Session = None) -> OAuthToken:
    """Save or update OAuth token (tokens are encrypted)
    
    Overwrites any existing token for the (user, platform) pair. A missing
    refresh_token keeps the stored one, since providers often omit it on refresh.
    
    Args:
        user_id: User ID
        platform: Platform name
        access_token: Access token (will be encrypted)
        refresh_token: Refresh token (will be encrypted, optional)
        expires_at: Token expiration time (optional)
        extra_data: Additional token data (optional, merged into existing)
        db: Database session (if None, creates its own)
    """
    should_close = False
    if db is None:
        db = SessionLocal()
        should_close = True
    
    try:
        token = db.query(OAuthToken).filter(
            OAuthToken.user_id == user_id,
            OAuthToken.platform == platform
        ).first()
        
        encrypted_access = encrypt(access_token) if access_token else ""
        encrypted_refresh = encrypt(refresh_token) if refresh_token else None
        
        if token:
            token.access_token = encrypted_access
            if encrypted_refresh is not None:
                token.refresh_token = encrypted_refresh
            token.expires_at = expires_at
            if extra_data:
                token.extra_data = {**(token.extra_data or {}), **extra_data}
            elif token.extra_data is None:
                token.extra_data = {}
            token.updated_at = datetime.now(timezone.utc)
        else:
            token = OAuthToken(
                user_id=user_id,
                platform=platform,
                access_token=encrypted_access,
                refresh_token=encrypted_refresh,
                expires_at=expires_at,
                extra_data=extra_data or {}
            )
            db.add(token)
        
        db.commit()
        db.refresh(token)
        
        return token
    finally:
        if should_close:
            db.close()


def delete_oauth_token(user_id: int, platform: str, db: Session = None) -> bool:
    """Delete OAuth token
    
    Args:
        user_id: User ID
        platform: Platform name
        db: Database session (if None, creates its own)
    """
    should_close = False
    if db is None:
        db = SessionLocal()
        should_close = True
    
    try:
        token = db.query(OAuthToken).filter(
            OAuthToken.user_id == user_id,
            OAuthToken.platform == platform
        ).first()
        
        if not token:
            return False
        
        db.delete(token)
        db.commit()
        return True
    finally:
        if should_close:
            db.close()


def get_system_setting(key: str, db: Session) -> Optional[str]:
    """Get a system-wide setting value"""
    row = db.query(SystemSetting).filter(SystemSetting.key == key).first()
    return row.value if row else None


def set_system_setting(key: str, value: str, db: Session) -> None:
    """Create or update a system-wide setting"""
    row = db.query(SystemSetting).filter(SystemSetting.key == key).first()
    if row:
        row.value = value
    else:
        db.add(SystemSetting(key=key, value=value))
    db.commit()
