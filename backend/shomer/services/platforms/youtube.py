"""YouTube visibility adapter (YouTube Data API v3)"""

import asyncio
import logging
from datetime import timezone
from typing import Any, List

from google.auth.exceptions import RefreshError
from google.auth.transport.requests import Request as GoogleRequest
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from shomer.core.config import settings, YOUTUBE_SCOPES
from shomer.services.platforms.base import (
    BasePlatformAdapter, ContentItem, PlatformAPIError, PlatformCredentials, TokenRefreshError
)

youtube_logger = logging.getLogger("youtube")

PAGE_SIZE = 50  # API maximum for playlistItems.list and videos.list


def to_google_credentials(credentials: PlatformCredentials) -> Credentials:
    """Build google-auth Credentials from stored platform credentials"""
    return Credentials(
        token=credentials.access_token,
        refresh_token=credentials.refresh_token,
        token_uri=settings.GOOGLE_TOKEN_URI,
        client_id=settings.GOOGLE_CLIENT_ID,
        client_secret=settings.GOOGLE_CLIENT_SECRET,
        scopes=YOUTUBE_SCOPES,
    )


class YouTubeAdapter(BasePlatformAdapter):
    """Videos in the channel's uploads playlist; hidden means 'private'"""

    platform = "youtube"
    hidden_visibility = "private"

    def _client(self, credentials: PlatformCredentials):
        return build('youtube', 'v3', credentials=to_google_credentials(credentials), cache_discovery=False)

    async def list_content(self, credentials: PlatformCredentials) -> List[ContentItem]:
        return await asyncio.to_thread(self._list_content_sync, credentials)

    def _list_content_sync(self, credentials: PlatformCredentials) -> List[ContentItem]:
        youtube = self._client(credentials)
        try:
            channels = youtube.channels().list(part="contentDetails", mine=True).execute()
            channel_items = channels.get("items") or []
            if not channel_items:
                raise PlatformAPIError(self.platform, "No channel found for the connected account")
            uploads_playlist_id = channel_items[0]["contentDetails"]["relatedPlaylists"]["uploads"]

            video_ids = []
            page_token = None
            while True:
                playlist = youtube.playlistItems().list(
                    part="contentDetails",
                    playlistId=uploads_playlist_id,
                    maxResults=PAGE_SIZE,
                    pageToken=page_token,
                ).execute()
                video_ids.extend(
                    item["contentDetails"]["videoId"] for item in playlist.get("items", [])
                )
                page_token = playlist.get("nextPageToken")
                if not page_token:
                    break

            items = []
            for start in range(0, len(video_ids), PAGE_SIZE):
                batch = video_ids[start:start + PAGE_SIZE]
                response = youtube.videos().list(part="snippet,status", id=",".join(batch)).execute()
                for video in response.get("items", []):
                    items.append(ContentItem(
                        id=video["id"],
                        visibility=video.get("status", {}).get("privacyStatus", "public"),
                        title=video.get("snippet", {}).get("title"),
                    ))
        except HttpError as e:
            raise PlatformAPIError(self.platform, f"Listing videos failed: {e.reason}", e.resp.status)

        youtube_logger.debug(f"Listed {len(items)} videos")
        return items

    async def set_visibility(self, credentials: PlatformCredentials, content_id: str, visibility: Any) -> None:
        await asyncio.to_thread(self._set_visibility_sync, credentials, content_id, visibility)

    def _set_visibility_sync(self, credentials: PlatformCredentials, content_id: str, visibility: Any) -> None:
        youtube = self._client(credentials)
        try:
            # videos.update resets omitted status fields, so send the full current status back
            current = youtube.videos().list(part="status", id=content_id).execute()
            current_items = current.get("items") or []
            if not current_items:
                raise PlatformAPIError(self.platform, f"Video {content_id} not found", 404)
            status = dict(current_items[0].get("status", {}))
            status["privacyStatus"] = visibility
            # Read-only fields are rejected by videos.update
            for read_only in ("uploadStatus", "failureReason", "rejectionReason"):
                status.pop(read_only, None)

            youtube.videos().update(
                part="status",
                body={"id": content_id, "status": status},
            ).execute()
        except HttpError as e:
            raise PlatformAPIError(self.platform, f"Updating video {content_id} failed: {e.reason}", e.resp.status)

    async def refresh_token(self, credentials: PlatformCredentials) -> PlatformCredentials:
        if not credentials.refresh_token:
            raise TokenRefreshError(self.platform, "Refresh token is missing. Please disconnect and reconnect YouTube.")
        return await asyncio.to_thread(self._refresh_token_sync, credentials)

    def _refresh_token_sync(self, credentials: PlatformCredentials) -> PlatformCredentials:
        google_creds = to_google_credentials(credentials)
        try:
            google_creds.refresh(GoogleRequest())
        except RefreshError as e:
            raise TokenRefreshError(self.platform, f"Failed to refresh token: {e}")

        if not google_creds.token:
            raise TokenRefreshError(self.platform, "No access token returned after refresh")

        # google-auth reports expiry as naive UTC
        expires_at = google_creds.expiry.replace(tzinfo=timezone.utc) if google_creds.expiry else None
        return PlatformCredentials(
            access_token=google_creds.token,
            refresh_token=google_creds.refresh_token or credentials.refresh_token,
            expires_at=expires_at,
            extra_data=credentials.extra_data,
        )
