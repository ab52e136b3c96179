"""Shared pytest fixtures for test suite"""
import asyncio
import os
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, Generator, List, Optional, Set
from unittest.mock import AsyncMock, Mock, patch

import fakeredis
import pytest
from cryptography.fernet import Fernet
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

# Settings are read at import time
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ENCRYPTION_KEY", Fernet.generate_key().decode())
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["SHABBAT_TIMES_PROVIDER"] = "table"

# Add backend directory to Python path
backend_dir = Path(__file__).parent.parent
if str(backend_dir) not in sys.path:
    sys.path.insert(0, str(backend_dir))

from shomer.db import redis as redis_module
from shomer.db.helpers import save_oauth_token, set_system_setting, set_user_setting
from shomer.db.session import get_db
from shomer.main import app
from shomer.models import Base
from shomer.models.subscription import Subscription
from shomer.models.user import User
from shomer.services.platforms.base import (
    BasePlatformAdapter, ContentItem, PlatformAPIError, PlatformCredentials, TokenRefreshError
)
from shomer.services.shabbat_times import ADMIN_ENTRY_KEY, ADMIN_EXIT_KEY
from shomer.services.visibility_executor import VisibilityExecutor
from shomer.tasks.scheduler import VisibilityScheduler


# SQLite in-memory database for testing
TEST_DATABASE_URL = "sqlite:///:memory:"

# Create test engine with StaticPool for in-memory database
test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

# Create test session factory
TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


class FakeAdapter(BasePlatformAdapter):
    """In-memory platform: items keyed by id, scriptable failures, every call recorded"""

    def __init__(self, platform: str = "youtube", hidden_visibility: Any = "private",
                 items: Optional[Dict[str, Any]] = None):
        self.platform = platform
        self.hidden_visibility = hidden_visibility
        self.items: Dict[str, Any] = dict(items or {})
        self.fail_items: Set[str] = set()
        self.fail_listing = False
        self.list_delay = 0.0
        self.refresh_fails = False
        self.set_calls: List[tuple] = []
        self.refresh_calls = 0

    async def list_content(self, credentials: PlatformCredentials) -> List[ContentItem]:
        if self.list_delay:
            await asyncio.sleep(self.list_delay)
        if self.fail_listing:
            raise PlatformAPIError(self.platform, "listing unavailable", 503)
        return [ContentItem(id=item_id, visibility=visibility) for item_id, visibility in self.items.items()]

    async def set_visibility(self, credentials: PlatformCredentials, content_id: str, visibility: Any) -> None:
        self.set_calls.append((content_id, visibility))
        if content_id in self.fail_items:
            raise PlatformAPIError(self.platform, f"cannot update {content_id}", 500)
        self.items[content_id] = visibility

    async def refresh_token(self, credentials: PlatformCredentials) -> PlatformCredentials:
        self.refresh_calls += 1
        if self.refresh_fails:
            raise TokenRefreshError(self.platform, "invalid_grant", 400)
        return PlatformCredentials(
            access_token="refreshed-access",
            refresh_token=None,
            expires_at=datetime.now(timezone.utc) + timedelta(hours=1),
        )


@pytest.fixture(scope="function")
def db_session() -> Generator[Session, None, None]:
    """Create a fresh SQLite in-memory database session for each test"""
    Base.metadata.create_all(bind=test_engine)
    session = TestSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture(scope="function", autouse=True)
def mock_redis():
    """Replace the lazy Redis client with fakeredis"""
    fake_redis = fakeredis.FakeStrictRedis(decode_responses=True)
    with patch.object(redis_module, "_client", fake_redis):
        yield fake_redis


@pytest.fixture(scope="function")
def test_user(db_session: Session) -> User:
    user = User(email="user@example.com")
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture(scope="function")
def admin_user(db_session: Session) -> User:
    user = User(email="admin@example.com", is_admin=True)
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


def add_subscription(db: Session, user_id: int, plan_type: str = "premium", status: str = "active") -> Subscription:
    subscription = Subscription(user_id=user_id, plan_type=plan_type, status=status)
    db.add(subscription)
    db.commit()
    return subscription


def connect_platform(db: Session, user_id: int, platform: str, expires_in: Optional[timedelta] = timedelta(days=30)):
    expires_at = datetime.now(timezone.utc) + expires_in if expires_in is not None else None
    return save_oauth_token(
        user_id=user_id,
        platform=platform,
        access_token=f"{platform}-access",
        refresh_token=f"{platform}-refresh",
        expires_at=expires_at,
        db=db
    )


def set_admin_period(db: Session, entry: datetime, exit_: datetime) -> None:
    set_system_setting(ADMIN_ENTRY_KEY, entry.isoformat(), db)
    set_system_setting(ADMIN_EXIT_KEY, exit_.isoformat(), db)


def set_schedule(db: Session, user_id: int, location_id: str, hide_offset: Optional[str] = None,
                 restore_offset: Optional[str] = None) -> None:
    set_user_setting(user_id, "schedule", "location_id", location_id, db=db)
    if hide_offset is not None:
        set_user_setting(user_id, "schedule", "hide_offset", hide_offset, db=db)
    if restore_offset is not None:
        set_user_setting(user_id, "schedule", "restore_offset", restore_offset, db=db)


@pytest.fixture(scope="function")
def youtube_adapter() -> FakeAdapter:
    return FakeAdapter("youtube", "private")


@pytest.fixture(scope="function")
def facebook_adapter() -> FakeAdapter:
    return FakeAdapter("facebook", {"value": "SELF"})


@pytest.fixture(scope="function")
def executor(db_session, youtube_adapter, facebook_adapter) -> VisibilityExecutor:
    """Executor wired to the fake adapters and the test database, no item delay"""
    return VisibilityExecutor(
        adapters={"youtube": youtube_adapter, "facebook": facebook_adapter},
        session_factory=TestSessionLocal,
        item_delay=0,
        platform_timeout=5,
    )


@pytest.fixture(scope="function")
def client(db_session: Session, mock_redis) -> Generator[TestClient, None, None]:
    """FastAPI test client with test database, fakeredis and a mocked scheduler"""

    def override_get_db():
        try:
            yield db_session
        finally:
            pass  # Don't close session here, handled by fixture

    app.dependency_overrides[get_db] = override_get_db

    try:
        with TestClient(app) as test_client:
            scheduler = Mock(spec=VisibilityScheduler)
            scheduler.refresh_user = AsyncMock(return_value={})
            scheduler.refresh_users_with_location = AsyncMock(return_value=0)
            scheduler.run_pass_now = AsyncMock()
            scheduler.get_status.return_value = {"is_running": False, "active_users": 0, "total_jobs": 0, "user_jobs": {}}
            scheduler.get_user_jobs.return_value = {}
            app.state.scheduler = scheduler
            yield test_client
    finally:
        app.dependency_overrides.clear()


def _login(client: TestClient, mock_redis, user: User, session_id: str) -> TestClient:
    csrf_token = f"csrf-{session_id}"
    mock_redis.setex(f"session:{session_id}", 3600, str(user.id))
    mock_redis.setex(f"csrf:{session_id}", 3600, csrf_token)
    client.cookies.set("session_id", session_id)
    client.headers.update({"X-CSRF-Token": csrf_token})
    return client


@pytest.fixture(scope="function")
def authenticated_client(client: TestClient, test_user: User, mock_redis) -> TestClient:
    """Client with a user session and matching CSRF header"""
    return _login(client, mock_redis, test_user, "user-session")


@pytest.fixture(scope="function")
def admin_client(client: TestClient, admin_user: User, mock_redis) -> TestClient:
    """Client with an admin session and matching CSRF header"""
    return _login(client, mock_redis, admin_user, "admin-session")
