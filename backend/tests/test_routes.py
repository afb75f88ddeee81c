"""Route tests for the REST surface.

Most tests use ``api`` (TestClient) with the ``fake_imai`` double; the
end-to-end tests at the bottom run a real ImaiClient against respx-mocked
upstream traffic through an in-process ASGI transport.
"""

import httpx
import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

from app import create_app
from config import Settings
from conftest import BASE_URL, TEST_API_KEY, imai_url
from dependencies import get_image_http_client, get_imai_client
from errors import RateLimitedError, UpstreamClientError, UpstreamServerError
from services.imai_client import ImaiClient


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


def test_root(api):
    response = api.get("/")
    assert response.status_code == 200
    assert response.json() == "Instagram Profile Viewer API"


def test_health(api, fake_imai):
    response = api.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
    fake_imai.get_user_info.assert_not_called()


def test_security_headers(api):
    response = api.get("/health")
    assert response.headers["X-Content-Type-Options"] == "nosniff"
    assert response.headers["X-Frame-Options"] == "DENY"


def test_ready_before_lifespan(api):
    assert api.get("/ready").json()["status"] == "starting"


def test_lifespan_builds_clients():
    with TestClient(create_app()) as client:
        body = client.get("/ready").json()
        assert body["status"] == "ok"
        assert body["service"] == "ig-profile-viewer-api"
        assert isinstance(client.app.state.imai_client, ImaiClient)


def test_startup_fails_without_api_key():
    settings = Settings()
    settings.imai_api_key = ""

    with pytest.raises(RuntimeError, match="IMAI_API_KEY"):
        with TestClient(create_app(settings)):
            pass


# ---------------------------------------------------------------------------
# Search
# ---------------------------------------------------------------------------


def test_search(api, fake_imai):
    fake_imai.search_users.return_value = {
        "status": "ok",
        "users": [{"username": "alice", "is_verified": True}],
    }

    response = api.get("/search", params={"query": " alice "})

    assert response.status_code == 200
    assert response.json() == {"users": [{"username": "alice", "isVerified": True}]}
    fake_imai.search_users.assert_awaited_once_with("alice")


@pytest.mark.parametrize("query", ["", "   "])
def test_blank_search_skips_upstream(api, fake_imai, query):
    response = api.get("/search", params={"query": query})

    assert response.status_code == 200
    assert response.json() == {"users": []}
    fake_imai.search_users.assert_not_called()


def test_search_without_query_param(api, fake_imai):
    assert api.get("/search").json() == {"users": []}
    fake_imai.search_users.assert_not_called()


# ---------------------------------------------------------------------------
# Profile
# ---------------------------------------------------------------------------


def test_profile(api, fake_imai):
    fake_imai.get_user_info.return_value = {
        "status": "ok",
        "user": {"username": "alice", "full_name": "Alice", "follower_count": 10},
    }

    response = api.get("/profile/alice")

    assert response.status_code == 200
    assert response.json() == {
        "username": "alice",
        "fullName": "Alice",
        "bio": "",
        "profilePicUrl": "",
        "posts": 0,
        "followers": 10,
        "following": 0,
    }
    fake_imai.get_user_info.assert_awaited_once_with("alice")


def test_blank_username_is_400(api, fake_imai):
    response = api.get("/profile/%20")

    assert response.status_code == 400
    assert response.json() == {"message": "Username is required"}
    fake_imai.get_user_info.assert_not_called()


def test_highlights(api, fake_imai):
    fake_imai.get_user_highlights.return_value = {
        "status": "ok",
        "tray": [{"id": "highlight:1", "title": "Trip", "media_count": 2}],
    }

    response = api.get("/profile/alice/highlights")

    assert response.json() == {"highlights": [{"id": "highlight:1", "title": "Trip", "itemsCount": 2}]}


def test_no_stories_is_not_an_error(api, fake_imai):
    fake_imai.get_user_stories.return_value = {"status": "ok", "reel": None}

    response = api.get("/profile/nostories/stories")

    assert response.status_code == 200
    assert response.json() == {
        "status": "ok",
        "user": {"username": "nostories", "profilePicUrl": ""},
        "items": [],
    }


@pytest.mark.parametrize(
    "feed, method",
    [
        ("posts", "get_user_feed"),
        ("reels", "get_user_reels"),
        ("tagged", "get_user_tagged"),
        ("reposts", "get_user_reposts"),
    ],
)
def test_post_feeds_pass_cursor(api, fake_imai, feed, method):
    getattr(fake_imai, method).return_value = {
        "status": "ok",
        "items": [{"code": "P2"}],
        "end_cursor": None,
        "more_available": False,
    }

    response = api.get(f"/profile/alice/{feed}", params={"after": "CURSOR_1"})

    assert response.status_code == 200
    assert response.json()["items"][0]["code"] == "P2"
    assert response.json()["endCursor"] is None
    getattr(fake_imai, method).assert_awaited_once_with("alice", "CURSOR_1")


def test_first_page_has_no_cursor(api, fake_imai):
    fake_imai.get_user_reels.return_value = {"status": "ok", "items": [], "end_cursor": "CURSOR_1", "more_available": True}

    body = api.get("/profile/alice/reels", params={"after": ""}).json()

    assert body == {"status": "ok", "items": [], "endCursor": "CURSOR_1", "moreAvailable": True}
    fake_imai.get_user_reels.assert_awaited_once_with("alice", None)


# ---------------------------------------------------------------------------
# Hashtag feed
# ---------------------------------------------------------------------------


def test_hashtag_feed(api, fake_imai):
    fake_imai.get_hashtag_feed.return_value = {"status": "ok", "items": [], "more_available": False}

    response = api.get("/ig/hashtag-feed", params={"hashtag": "#sunset", "type": "top", "after": "NEXT"})

    assert response.status_code == 200
    assert response.json() == {"items": [], "more_available": False, "end_cursor": None}
    fake_imai.get_hashtag_feed.assert_awaited_once_with("sunset", "top", "NEXT")


def test_hashtag_feed_unknown_type_falls_back_to_recent(api, fake_imai):
    api.get("/ig/hashtag-feed", params={"hashtag": "sunset", "type": "popular"})
    fake_imai.get_hashtag_feed.assert_awaited_once_with("sunset", "recent", None)


@pytest.mark.parametrize("params", [{}, {"hashtag": ""}, {"hashtag": "#"}])
def test_hashtag_required(api, fake_imai, params):
    response = api.get("/ig/hashtag-feed", params=params)

    assert response.status_code == 400
    assert response.json()["message"] == "Hashtag is required"
    fake_imai.get_hashtag_feed.assert_not_called()


# ---------------------------------------------------------------------------
# Media and highlights
# ---------------------------------------------------------------------------


def test_media(api, fake_imai):
    fake_imai.get_media_info.return_value = {
        "status": "ok",
        "items": [{"code": "ABC", "media_type": 2, "user": {"username": "alice"}}],
    }

    response = api.get("/media/ABC")

    assert response.status_code == 200
    assert response.json()["mediaType"] == "video"
    assert response.json()["user"]["username"] == "alice"


def test_media_upstream_404_is_404(api, fake_imai):
    fake_imai.get_media_info.side_effect = UpstreamClientError(
        "Upstream API rejected the request (status 404)", path="raw/ig/media/info/", upstream_status=404
    )

    response = api.get("/media/GONE")

    assert response.status_code == 404
    assert response.json() == {"message": "Media GONE not found"}


def test_media_empty_payload_is_404(api, fake_imai):
    fake_imai.get_media_info.return_value = {"status": "ok", "items": []}
    assert api.get("/media/EMPTY").status_code == 404


def test_media_other_client_error_is_502(api, fake_imai):
    fake_imai.get_media_info.side_effect = UpstreamClientError(
        "Upstream API rejected the request (status 400)", path="raw/ig/media/info/", upstream_status=400
    )

    response = api.get("/media/BAD")

    assert response.status_code == 502
    assert response.json()["details"]["kind"] == "client_error"


def test_media_comments(api, fake_imai):
    fake_imai.get_media_comments.return_value = {
        "status": "ok",
        "comments": [{"pk": 1, "text": "hi", "user": {"username": "bob"}}],
        "has_more_comments": False,
    }

    response = api.get("/media/ABC/comments", params={"after": "C1"})

    assert response.status_code == 200
    assert response.json()["comments"][0]["text"] == "hi"
    fake_imai.get_media_comments.assert_awaited_once_with("ABC", "C1")


def test_highlight_items(api, fake_imai):
    fake_imai.get_highlight_items.return_value = {
        "status": "ok",
        "reels": {"highlight:9": {"title": "Food", "items": [{"id": "i1"}]}},
    }

    response = api.get("/highlights/highlight:9")

    assert response.status_code == 200
    assert response.json()["title"] == "Food"
    fake_imai.get_highlight_items.assert_awaited_once_with("highlight:9")


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------


def test_rate_limited_maps_to_502_with_retry_after(api, fake_imai):
    fake_imai.get_user_info.side_effect = RateLimitedError(
        "Rate limit exceeded. Please try again later.",
        path="raw/ig/user/info/",
        upstream_status=429,
        headers={"retry-after": "30"},
    )

    response = api.get("/profile/alice")

    assert response.status_code == 502
    assert response.headers["Retry-After"] == "30"
    body = response.json()
    assert "Rate limit" in body["message"]
    assert body["details"]["kind"] == "rate_limited"
    assert body["details"]["upstreamStatus"] == 429


def test_server_error_maps_to_502(api, fake_imai):
    fake_imai.get_user_feed.side_effect = UpstreamServerError(
        "Upstream service unavailable", path="raw/ig/user/feed/", upstream_status=503
    )

    response = api.get("/profile/alice/posts")

    assert response.status_code == 502
    assert response.json()["message"] == "Upstream service unavailable"


def test_unexpected_error_maps_to_500(app, fake_imai):
    fake_imai.get_user_info.side_effect = KeyError("boom")

    with TestClient(app, raise_server_exceptions=False) as client:
        response = client.get("/profile/alice")

    assert response.status_code == 500
    assert response.json() == {"message": "Internal server error"}


def test_proxy_rejects_disallowed_host(api, image_http):
    response = api.get("/proxy/image", params={"url": "https://evil.example.com/a.jpg"})

    assert response.status_code == 400
    assert "allowlist" in response.json()["message"]
    image_http.get.assert_not_called()


def test_proxy_requires_url(api, image_http):
    response = api.get("/proxy/image")

    assert response.status_code == 400
    assert response.json() == {"message": "URL parameter is required"}
    image_http.get.assert_not_called()


def test_proxy_relays_image(api, image_http):
    image_url = "https://scontent.cdninstagram.com/v/pic.jpg"
    image_http.get.return_value = httpx.Response(
        200,
        content=b"\xff\xd8jpeg",
        headers={"Content-Type": "image/jpeg"},
        request=httpx.Request("GET", image_url),
    )

    response = api.get("/proxy/image", params={"url": image_url})

    assert response.status_code == 200
    assert response.content == b"\xff\xd8jpeg"
    assert response.headers["cache-control"] == "public, max-age=300"
    image_http.get.assert_awaited_once()


# ---------------------------------------------------------------------------
# End to end: real ImaiClient, mocked upstream
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def live(upstream):
    imai = ImaiClient(TEST_API_KEY, BASE_URL, min_interval=0)
    image_http = httpx.AsyncClient(follow_redirects=True)
    application = create_app()
    application.dependency_overrides[get_imai_client] = lambda: imai
    application.dependency_overrides[get_image_http_client] = lambda: image_http
    transport = httpx.ASGITransport(app=application)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as http:
        yield http, imai
    await imai.aclose()
    await image_http.aclose()


async def test_upstream_429_end_to_end(live, upstream):
    http, imai = live
    upstream.get(imai_url("raw/ig/user/info/")).mock(
        return_value=httpx.Response(429, json={"message": "Too many requests"})
    )

    response = await http.get("/profile/alice")

    assert response.status_code == 502
    assert "Rate limit" in response.json()["message"]
    assert len(imai.caches["user_info"]) == 0


async def test_profile_is_cached_end_to_end(live, upstream):
    http, _ = live
    route = upstream.get(imai_url("raw/ig/user/info/")).mock(
        return_value=httpx.Response(200, json={"status": "ok", "user": {"username": "alice"}})
    )

    first = await http.get("/profile/alice")
    second = await http.get("/profile/alice")

    assert first.json() == second.json()
    assert route.call_count == 1


async def test_reels_pagination_end_to_end(live, upstream):
    http, imai = live
    upstream.get(imai_url("raw/ig/user/reels/")).mock(
        side_effect=[
            httpx.Response(
                200,
                json={"status": "ok", "items": [{"media": {"code": "R1"}}], "end_cursor": "CURSOR_1", "more_available": True},
            ),
            httpx.Response(
                200,
                json={"status": "ok", "items": [{"media": {"code": "R2"}}], "end_cursor": None, "more_available": False},
            ),
        ]
    )

    page_one = (await http.get("/profile/alice/reels")).json()
    page_two = (await http.get("/profile/alice/reels", params={"after": "CURSOR_1"})).json()

    assert [item["code"] for item in page_one["items"]] == ["R1"]
    assert page_one["endCursor"] == "CURSOR_1"
    assert [item["code"] for item in page_two["items"]] == ["R2"]
    assert page_two["endCursor"] is None
    assert "user_reels:alice:first" in imai.caches["user_reels"]
    assert "user_reels:alice:CURSOR_1" in imai.caches["user_reels"]


async def test_image_proxy_end_to_end(live, upstream):
    http, _ = live
    image_url = "https://scontent.cdninstagram.com/v/pic.jpg"
    upstream.get(image_url).mock(
        return_value=httpx.Response(200, content=b"\xff\xd8jpeg", headers={"Content-Type": "image/jpeg"})
    )

    response = await http.get("/proxy/image", params={"url": image_url})

    assert response.status_code == 200
    assert response.content == b"\xff\xd8jpeg"
    assert response.headers["content-type"] == "image/jpeg"
    assert response.headers["cache-control"] == "public, max-age=300"
