"""Abstract base class for platform visibility adapters"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional


class PlatformAPIError(Exception):
    """A platform call failed (HTTP error, unexpected payload, network error)"""

    def __init__(self, platform: str, message: str, status_code: Optional[int] = None):
        self.platform = platform
        self.status_code = status_code
        super().__init__(f"{platform}: {message}" + (f" (HTTP {status_code})" if status_code else ""))


class TokenRefreshError(PlatformAPIError):
    """The platform rejected a credential refresh"""


@dataclass
class PlatformCredentials:
    """Decrypted credentials, held only for the duration of a pass"""
    access_token: str
    refresh_token: Optional[str] = None
    expires_at: Optional[datetime] = None
    extra_data: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ContentItem:
    """A toggle-able content item and its current visibility"""
    id: str
    visibility: Any
    title: Optional[str] = None


class BasePlatformAdapter(ABC):
    """Interface every platform adapter implements.
    
    Visibility values are opaque to callers: whatever list_content reports
    can be passed back to set_visibility unchanged.
    """

    platform: str = ""
    hidden_visibility: Any = None

    def is_hidden(self, visibility: Any) -> bool:
        """Whether a visibility value already counts as hidden"""
        return visibility == self.hidden_visibility

    @abstractmethod
    async def list_content(self, credentials: PlatformCredentials) -> List[ContentItem]:
        """List the user's toggle-able content with current visibility.
        
        Raises:
            PlatformAPIError: If the listing fails
        """

    @abstractmethod
    async def set_visibility(self, credentials: PlatformCredentials, content_id: str, visibility: Any) -> None:
        """Set the visibility of one content item.
        
        Raises:
            PlatformAPIError: If the platform rejects the update
        """

    @abstractmethod
    async def refresh_token(self, credentials: PlatformCredentials) -> PlatformCredentials:
        """Exchange the stored credentials for fresh ones.
        
        Raises:
            TokenRefreshError: If the platform rejects the refresh
        """
