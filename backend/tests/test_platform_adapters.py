"""Platform adapter tests with mocked platform APIs"""
import json
from unittest.mock import MagicMock, patch

import httpx
import pytest
import respx

from shomer.core.config import FACEBOOK_GRAPH_URL
from shomer.services.platforms.base import PlatformAPIError, PlatformCredentials, TokenRefreshError
from shomer.services.platforms.facebook import FacebookAdapter
from shomer.services.platforms.registry import get_adapter
from shomer.services.platforms.youtube import YouTubeAdapter

CREDENTIALS = PlatformCredentials(access_token="token", refresh_token="refresh")


@pytest.mark.critical
class TestFacebookAdapter:

    @pytest.mark.asyncio
    @respx.mock
    async def test_list_content_follows_paging(self):
        next_url = f"{FACEBOOK_GRAPH_URL}/me/posts?after=abc"
        respx.get(next_url).mock(return_value=httpx.Response(200, json={
            "data": [{"id": "p2", "privacy": {"value": "SELF"}}],
        }))
        respx.get(f"{FACEBOOK_GRAPH_URL}/me/posts").mock(return_value=httpx.Response(200, json={
            "data": [{"id": "p1", "message": "Shabbat shalom", "privacy": {"value": "EVERYONE"}}],
            "paging": {"next": next_url},
        }))

        items = await FacebookAdapter().list_content(CREDENTIALS)

        assert [(item.id, item.visibility) for item in items] == [
            ("p1", {"value": "EVERYONE"}),
            ("p2", {"value": "SELF"}),
        ]
        assert items[0].title == "Shabbat shalom"

    @pytest.mark.asyncio
    @respx.mock
    async def test_listing_error_raises(self):
        respx.get(f"{FACEBOOK_GRAPH_URL}/me/posts").mock(
            return_value=httpx.Response(400, json={"error": {"message": "Invalid OAuth access token"}})
        )

        with pytest.raises(PlatformAPIError, match="Invalid OAuth access token"):
            await FacebookAdapter().list_content(CREDENTIALS)

    @pytest.mark.asyncio
    @respx.mock
    async def test_set_visibility_sends_writable_privacy(self):
        route = respx.post(f"{FACEBOOK_GRAPH_URL}/p1").mock(return_value=httpx.Response(200, json={"success": True}))

        await FacebookAdapter().set_visibility(
            CREDENTIALS, "p1", {"value": "ALL_FRIENDS", "description": "Your friends"}
        )

        body = dict(httpx.QueryParams(route.calls.last.request.content.decode()))
        assert json.loads(body["privacy"]) == {"value": "ALL_FRIENDS"}

    @pytest.mark.asyncio
    @respx.mock
    async def test_refresh_token_exchange(self):
        respx.get(f"{FACEBOOK_GRAPH_URL}/oauth/access_token").mock(
            return_value=httpx.Response(200, json={"access_token": "long-lived", "expires_in": 5184000})
        )

        refreshed = await FacebookAdapter().refresh_token(CREDENTIALS)

        assert refreshed.access_token == "long-lived"
        assert refreshed.expires_at is not None

    @pytest.mark.asyncio
    @respx.mock
    async def test_refresh_rejected(self):
        respx.get(f"{FACEBOOK_GRAPH_URL}/oauth/access_token").mock(
            return_value=httpx.Response(400, json={"error": {"message": "Session has expired"}})
        )

        with pytest.raises(TokenRefreshError):
            await FacebookAdapter().refresh_token(CREDENTIALS)

    def test_hidden_values(self):
        adapter = FacebookAdapter()
        assert adapter.is_hidden({"value": "SELF"})
        assert adapter.is_hidden({"value": "ONLY_ME"})
        assert not adapter.is_hidden({"value": "EVERYONE"})


def _youtube_client(videos):
    client = MagicMock()
    client.channels().list().execute.return_value = {
        "items": [{"contentDetails": {"relatedPlaylists": {"uploads": "UU1"}}}]
    }
    client.playlistItems().list().execute.return_value = {
        "items": [{"contentDetails": {"videoId": video["id"]}} for video in videos]
    }
    client.videos().list().execute.return_value = {"items": videos}
    return client


@pytest.mark.critical
class TestYouTubeAdapter:

    @pytest.mark.asyncio
    async def test_list_content(self):
        client = _youtube_client([
            {"id": "v1", "snippet": {"title": "Intro"}, "status": {"privacyStatus": "public"}},
            {"id": "v2", "snippet": {"title": "Draft"}, "status": {"privacyStatus": "unlisted"}},
        ])

        with patch.object(YouTubeAdapter, "_client", return_value=client):
            items = await YouTubeAdapter().list_content(CREDENTIALS)

        assert [(item.id, item.visibility) for item in items] == [("v1", "public"), ("v2", "unlisted")]

    @pytest.mark.asyncio
    async def test_set_visibility_keeps_other_status_fields(self):
        client = _youtube_client([
            {"id": "v1", "status": {"privacyStatus": "public", "embeddable": False, "uploadStatus": "processed"}},
        ])

        with patch.object(YouTubeAdapter, "_client", return_value=client):
            await YouTubeAdapter().set_visibility(CREDENTIALS, "v1", "private")

        body = client.videos().update.call_args.kwargs["body"]
        assert body == {"id": "v1", "status": {"privacyStatus": "private", "embeddable": False}}

    @pytest.mark.asyncio
    async def test_missing_video_raises(self):
        client = _youtube_client([])

        with patch.object(YouTubeAdapter, "_client", return_value=client):
            with pytest.raises(PlatformAPIError, match="not found"):
                await YouTubeAdapter().set_visibility(CREDENTIALS, "gone", "private")

    @pytest.mark.asyncio
    async def test_refresh_without_refresh_token(self):
        with pytest.raises(TokenRefreshError):
            await YouTubeAdapter().refresh_token(PlatformCredentials(access_token="token"))


def test_registry():
    assert get_adapter("youtube").platform == "youtube"
    assert get_adapter("facebook").platform == "facebook"
    assert get_adapter("myspace") is None
