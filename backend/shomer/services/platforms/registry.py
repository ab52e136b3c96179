"""Platform adapter registry"""

from typing import Dict, Optional

from shomer.services.platforms.base import BasePlatformAdapter
from shomer.services.platforms.youtube import YouTubeAdapter
from shomer.services.platforms.facebook import FacebookAdapter

PLATFORM_ADAPTERS: Dict[str, BasePlatformAdapter] = {
    "youtube": YouTubeAdapter(),
    "facebook": FacebookAdapter(),
}


def get_adapter(platform: str) -> Optional[BasePlatformAdapter]:
    """Get the adapter for a platform, or None if unsupported"""
    return PLATFORM_ADAPTERS.get(platform)
