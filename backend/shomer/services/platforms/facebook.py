"""Facebook visibility adapter (Graph API posts)"""

import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List

import httpx

from shomer.core.config import settings, FACEBOOK_GRAPH_URL
from shomer.services.platforms.base import (
    BasePlatformAdapter, ContentItem, PlatformAPIError, PlatformCredentials, TokenRefreshError
)

facebook_logger = logging.getLogger("facebook")

HIDDEN_PRIVACY_VALUES = ("SELF", "ONLY_ME")
MAX_PAGES = 20


def _graph_error(response: httpx.Response) -> str:
    try:
        return response.json().get("error", {}).get("message") or response.text
    except ValueError:
        return response.text


class FacebookAdapter(BasePlatformAdapter):
    """Posts on the user's timeline; visibility is the Graph privacy object"""

    platform = "facebook"
    hidden_visibility = {"value": "SELF"}

    def is_hidden(self, visibility: Any) -> bool:
        if not isinstance(visibility, dict):
            return False
        return visibility.get("value") in HIDDEN_PRIVACY_VALUES

    async def list_content(self, credentials: PlatformCredentials) -> List[ContentItem]:
        items = []
        url = f"{FACEBOOK_GRAPH_URL}/me/posts"
        params = {
            "fields": "id,message,privacy",
            "limit": 100,
            "access_token": credentials.access_token,
        }
        async with httpx.AsyncClient(timeout=settings.PLATFORM_HTTP_TIMEOUT_SECONDS) as client:
            for _ in range(MAX_PAGES):
                try:
                    response = await client.get(url, params=params)
                except httpx.HTTPError as e:
                    raise PlatformAPIError(self.platform, f"Listing posts failed: {e}")
                if response.status_code != 200:
                    raise PlatformAPIError(self.platform, f"Listing posts failed: {_graph_error(response)}", response.status_code)

                data = response.json()
                for post in data.get("data", []):
                    items.append(ContentItem(
                        id=post["id"],
                        visibility=post.get("privacy") or {"value": "EVERYONE"},
                        title=(post.get("message") or "")[:80] or None,
                    ))

                next_url = data.get("paging", {}).get("next")
                if not next_url:
                    break
                # The next link already carries every query parameter
                url, params = next_url, None

        facebook_logger.debug(f"Listed {len(items)} posts")
        return items

    async def set_visibility(self, credentials: PlatformCredentials, content_id: str, visibility: Any) -> None:
        privacy = self._writable_privacy(visibility)
        async with httpx.AsyncClient(timeout=settings.PLATFORM_HTTP_TIMEOUT_SECONDS) as client:
            try:
                response = await client.post(
                    f"{FACEBOOK_GRAPH_URL}/{content_id}",
                    data={
                        "privacy": json.dumps(privacy),
                        "access_token": credentials.access_token,
                    },
                )
            except httpx.HTTPError as e:
                raise PlatformAPIError(self.platform, f"Updating post {content_id} failed: {e}")

        if response.status_code != 200:
            raise PlatformAPIError(self.platform, f"Updating post {content_id} failed: {_graph_error(response)}", response.status_code)

    def _writable_privacy(self, visibility: Any) -> Dict[str, Any]:
        """Reduce a privacy object read from the API to the fields the API accepts on write"""
        if isinstance(visibility, str):
            return {"value": visibility}
        if not isinstance(visibility, dict) or not visibility.get("value"):
            raise PlatformAPIError(self.platform, f"Unusable privacy value: {visibility!r}")
        privacy = {"value": visibility["value"]}
        if visibility["value"] == "CUSTOM":
            for key in ("allow", "deny", "friends"):
                if visibility.get(key):
                    privacy[key] = visibility[key]
        return privacy

    async def refresh_token(self, credentials: PlatformCredentials) -> PlatformCredentials:
        """Exchange the current token for a new long-lived token"""
        async with httpx.AsyncClient(timeout=settings.PLATFORM_HTTP_TIMEOUT_SECONDS) as client:
            try:
                response = await client.get(
                    f"{FACEBOOK_GRAPH_URL}/oauth/access_token",
                    params={
                        "grant_type": "fb_exchange_token",
                        "client_id": settings.FACEBOOK_APP_ID,
                        "client_secret": settings.FACEBOOK_APP_SECRET,
                        "fb_exchange_token": credentials.access_token,
                    },
                )
            except httpx.HTTPError as e:
                raise TokenRefreshError(self.platform, f"Token exchange failed: {e}")

        if response.status_code != 200:
            raise TokenRefreshError(self.platform, f"Token exchange failed: {_graph_error(response)}", response.status_code)

        data = response.json()
        access_token = data.get("access_token")
        if not access_token:
            raise TokenRefreshError(self.platform, "No access token in exchange response")

        expires_in = data.get("expires_in")
        expires_at = datetime.now(timezone.utc) + timedelta(seconds=int(expires_in)) if expires_in else None
        return PlatformCredentials(
            access_token=access_token,
            refresh_token=credentials.refresh_token,
            expires_at=expires_at,
            extra_data=credentials.extra_data,
        )
