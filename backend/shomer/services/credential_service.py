"""Credential service - decrypts stored platform tokens and refreshes them before use"""
import asyncio
import logging
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy.orm import Session

from shomer.core.config import settings
from shomer.db.helpers import get_oauth_token, save_oauth_token
from shomer.db.redis import acquire_lock, release_lock
from shomer.models.oauth_token import OAuthToken
from shomer.services.platforms.base import BasePlatformAdapter, PlatformAPIError, PlatformCredentials
from shomer.utils.encryption import decrypt

logger = logging.getLogger(__name__)

CONCURRENT_REFRESH_WAIT_SECONDS = 1.5


class AuthenticationError(Exception):
    """No usable credentials for a platform in this pass"""

    def __init__(self, platform: str, message: str):
        self.platform = platform
        super().__init__(message)


@contextmanager
def _distributed_lock(lock_key: str, timeout: int):
    acquired = acquire_lock(lock_key, timeout=timeout)
    try:
        yield acquired
    finally:
        if acquired:
            release_lock(lock_key)


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes even for timezone-aware columns
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def needs_refresh(expires_at: Optional[datetime], now: Optional[datetime] = None) -> bool:
    """True when the token expires within the refresh buffer (tokens without expiry never do)"""
    expires_at = _aware(expires_at)
    if expires_at is None:
        return False
    now = now or datetime.now(timezone.utc)
    return expires_at < now + timedelta(seconds=settings.TOKEN_REFRESH_BUFFER_SECONDS)


def to_platform_credentials(token: OAuthToken) -> PlatformCredentials:
    """Decrypt a stored token
    
    Raises:
        AuthenticationError: If the stored token cannot be decrypted
    """
    try:
        access_token = decrypt(token.access_token)
        refresh_token = decrypt(token.refresh_token) if token.refresh_token else None
    except ValueError as e:
        raise AuthenticationError(token.platform, f"Stored token could not be decrypted: {e}")

    if not access_token:
        raise AuthenticationError(token.platform, "Stored access token is empty")

    return PlatformCredentials(
        access_token=access_token,
        refresh_token=refresh_token,
        expires_at=_aware(token.expires_at),
        extra_data=dict(token.extra_data or {}),
    )


async def get_valid_credentials(user_id: int, adapter: BasePlatformAdapter, db: Session) -> PlatformCredentials:
    """Return usable credentials for a user's platform, refreshing them first if they expire soon
    
    Args:
        user_id: User ID
        adapter: Adapter of the platform (performs the refresh call)
        db: Database session
        
    Raises:
        AuthenticationError: Missing, undecryptable or unrefreshable token
    """
    platform = adapter.platform
    token = get_oauth_token(user_id, platform, db=db)
    if not token:
        raise AuthenticationError(platform, "No credentials")

    credentials = to_platform_credentials(token)
    if not needs_refresh(credentials.expires_at):
        return credentials

    lock_key = f"token_refresh:{user_id}:{platform}"
    with _distributed_lock(lock_key, settings.TOKEN_REFRESH_LOCK_TIMEOUT) as acquired:
        if not acquired:
            # Another pass is refreshing - wait and use its result
            logger.info(f"Waiting for concurrent {platform} token refresh (user {user_id})")
            await asyncio.sleep(CONCURRENT_REFRESH_WAIT_SECONDS)
            db.expire_all()
            fresh = get_oauth_token(user_id, platform, db=db)
            if fresh and not needs_refresh(fresh.expires_at):
                return to_platform_credentials(fresh)
            raise AuthenticationError(platform, "Concurrent token refresh did not produce a valid token")

        # Double-check after acquiring the lock: another process may have refreshed already
        db.expire_all()
        current = get_oauth_token(user_id, platform, db=db)
        if current is None:
            raise AuthenticationError(platform, "Credentials were removed during refresh")
        if not needs_refresh(current.expires_at):
            return to_platform_credentials(current)

        try:
            refreshed = await adapter.refresh_token(to_platform_credentials(current))
        except PlatformAPIError as e:
            logger.warning(f"{platform} token refresh failed (user {user_id}): {e}")
            raise AuthenticationError(platform, f"Token refresh failed: {e}")

        save_oauth_token(
            user_id=user_id,
            platform=platform,
            access_token=refreshed.access_token,
            refresh_token=refreshed.refresh_token,
            expires_at=refreshed.expires_at,
            db=db
        )
        logger.info(f"{platform} token refreshed (user {user_id})")
        return refreshed
