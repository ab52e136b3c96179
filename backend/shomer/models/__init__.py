"""SQLAlchemy models package - imports all models so they register with Base.metadata"""
from shomer.models.base import Base
from shomer.models.user import User
from shomer.models.setting import Setting
from shomer.models.oauth_token import OAuthToken
from shomer.models.subscription import Subscription
from shomer.models.content_lock import ContentLock
from shomer.models.original_status import OriginalStatus
from shomer.models.history_entry import HistoryEntry
from shomer.models.system_setting import SystemSetting

# Export all for convenience
__all__ = [
    "Base", "User", "Setting", "OAuthToken", "Subscription",
    "ContentLock", "OriginalStatus", "HistoryEntry", "SystemSetting"
]
