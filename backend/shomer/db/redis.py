"""Redis client for session lookup, settings caching and distributed locks"""
import json
import logging
from typing import Optional, Dict

import redis

from shomer.core.config import settings

logger = logging.getLogger(__name__)

# Lazy initialization - no connection at import time
_client = None


def get_redis_client():
    """Get or create Redis client (lazy initialization)
    
    This prevents connection attempts during import, allowing mocks to be applied first.
    """
    global _client
    if _client is None:
        _client = redis.from_url(settings.REDIS_URL, decode_responses=True)
    return _client


# Session helpers (sessions are issued by the auth service)
def get_session(session_id: str) -> Optional[int]:
    """Resolve a session id to a user id"""
    value = get_redis_client().get(f"session:{session_id}")
    return int(value) if value else None


def get_csrf_token(session_id: str) -> Optional[str]:
    """Get the CSRF token bound to a session"""
    return get_redis_client().get(f"csrf:{session_id}")


# Settings cache
def get_cached_settings(user_id: int, category: str) -> Optional[Dict]:
    """Get cached settings for a user/category"""
    try:
        cached = get_redis_client().get(f"settings:{user_id}:{category}")
    except redis.RedisError as e:
        logger.warning(f"Settings cache read failed for user {user_id}: {e}")
        return None
    if cached:
        return json.loads(cached)
    return None


def set_cached_settings(user_id: int, category: str, settings_dict: Dict) -> None:
    """Cache settings for a user/category"""
    try:
        get_redis_client().setex(
            f"settings:{user_id}:{category}",
            settings.SETTINGS_CACHE_TTL,
            json.dumps(settings_dict)
        )
    except redis.RedisError as e:
        logger.warning(f"Settings cache write failed for user {user_id}: {e}")


def invalidate_settings_cache(user_id: int, category: Optional[str] = None) -> None:
    """Invalidate cached settings for a user (one category or all of them)"""
    try:
        client = get_redis_client()
        if category:
            client.delete(f"settings:{user_id}:{category}")
            return
        keys = list(client.scan_iter(match=f"settings:{user_id}:*"))
        if keys:
            client.delete(*keys)
    except redis.RedisError as e:
        logger.warning(f"Settings cache invalidation failed for user {user_id}: {e}")


# Distributed locks
def acquire_lock(lock_key: str, timeout: int = 30) -> bool:
    """Acquire a distributed lock using Redis SET with NX and EX.
    
    Args:
        lock_key: The lock key to acquire
        timeout: Lock timeout in seconds (default 30)
        
    Returns:
        True if lock was acquired, False if lock already exists
    """
    result = get_redis_client().set(lock_key, "1", nx=True, ex=timeout)
    return result is True


def release_lock(lock_key: str) -> None:
    """Release a distributed lock by deleting the key."""
    get_redis_client().delete(lock_key)
