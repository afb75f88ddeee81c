"""IMAI API client: the single authenticated gateway to the Instagram data API.

Every operation follows the same path: cache lookup → on miss, enqueue the
network call on the shared rate-limited queue → classify the HTTP response →
validate the ``status`` envelope → cache on success → return.

Auth:
    Static ``authkey: <IMAI_API_KEY>`` header on every request.

Errors are always an :class:`errors.UpstreamError` subclass; nothing is
retried here, the caller decides what to do.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

import httpx

from config import Settings
from errors import (
    AuthFailedError,
    MalformedResponseError,
    NetworkFailureError,
    NonOkEnvelopeError,
    RateLimitedError,
    UpstreamClientError,
    UpstreamServerError,
)
from services.cache import TTLCache, cache_key
from services.request_queue import RequestQueue

logger = logging.getLogger(__name__)

SUCCESS_STATUS = "ok"

# Paginated and search-like data goes stale quickly; single entities less so.
SHORT_TTL_SECONDS = 30
LONG_TTL_SECONDS = 60

SAFE_HEADER_PREFIXES = ("x-", "ratelimit-")
SAFE_HEADER_NAMES = {"retry-after"}


@dataclass(frozen=True)
class Operation:
    """One upstream endpoint and how its responses are cached and validated.

    ``require_status_field``: when True, an envelope with no ``status`` at
    all is rejected as :class:`NonOkEnvelopeError`. When False it is returned
    to the caller but never cached.
    """

    name: str
    path: str
    ttl_seconds: float
    require_status_field: bool = False


SEARCH_USERS = Operation("search_users", "raw/ig/search/users/", SHORT_TTL_SECONDS)
USER_INFO = Operation("user_info", "raw/ig/user/info/", LONG_TTL_SECONDS, require_status_field=True)
USER_HIGHLIGHTS = Operation("user_highlights", "raw/ig/user/highlights/", LONG_TTL_SECONDS)
HASHTAG_FEED = Operation("hashtag_feed", "raw/ig/hashtag/feed/", SHORT_TTL_SECONDS)
USER_FEED = Operation("user_feed", "raw/ig/user/feed/", SHORT_TTL_SECONDS)
USER_REELS = Operation("user_reels", "raw/ig/user/reels/", SHORT_TTL_SECONDS)
USER_TAGGED = Operation("user_tagged", "raw/ig/usertags/feed/", SHORT_TTL_SECONDS)
USER_REPOSTS = Operation("user_reposts", "raw/ig/user/reposted_feed/", SHORT_TTL_SECONDS)
MEDIA_INFO = Operation("media_info", "raw/ig/media/info/", LONG_TTL_SECONDS, require_status_field=True)
MEDIA_COMMENTS = Operation("media_comments", "raw/ig/media/comments/", SHORT_TTL_SECONDS)
USER_STORIES = Operation("user_stories", "raw/ig/user/stories/", SHORT_TTL_SECONDS)
HIGHLIGHT_ITEMS = Operation("highlight_items", "raw/ig/highlight/info/", LONG_TTL_SECONDS)

OPERATIONS = (
    SEARCH_USERS,
    USER_INFO,
    USER_HIGHLIGHTS,
    HASHTAG_FEED,
    USER_FEED,
    USER_REELS,
    USER_TAGGED,
    USER_REPOSTS,
    MEDIA_INFO,
    MEDIA_COMMENTS,
    USER_STORIES,
    HIGHLIGHT_ITEMS,
)


def safe_headers(headers: httpx.Headers) -> dict[str, str]:
    """Keep only rate-limit style headers (``x-*``, ``ratelimit-*``, ``retry-after``)."""
    return {
        name.lower(): value
        for name, value in headers.items()
        if name.lower().startswith(SAFE_HEADER_PREFIXES) or name.lower() in SAFE_HEADER_NAMES
    }


def _parse_body(response: httpx.Response) -> Any:
    """JSON if possible, raw text otherwise. Diagnostics only."""
    try:
        return response.json()
    except ValueError:
        return response.text


class ImaiClient:
    def __init__(
        self,
        api_key: str,
        base_url: str = "https://imai.co/api/",
        *,
        min_interval: float = 0.2,
        timeout: float = 15.0,
        cache_max_entries: int | None = None,
        http_client: httpx.AsyncClient | None = None,
        queue: RequestQueue | None = None,
    ):
        if not api_key:
            raise ValueError("IMAI_API_KEY environment variable is required")

        self._owns_http_client = http_client is None
        self._http = http_client or httpx.AsyncClient(
            base_url=base_url,
            headers={"authkey": api_key},
            timeout=timeout,
        )
        self._queue = queue or RequestQueue(min_interval=min_interval)
        self.caches: dict[str, TTLCache] = {
            op.name: TTLCache(op.ttl_seconds, max_entries=cache_max_entries) for op in OPERATIONS
        }
        self._in_flight: dict[str, asyncio.Task] = {}

    @classmethod
    def from_settings(cls, settings: Settings) -> "ImaiClient":
        return cls(
            settings.imai_api_key,
            settings.imai_base_url,
            min_interval=settings.min_request_interval,
            timeout=settings.request_timeout,
            cache_max_entries=settings.cache_max_entries,
        )

    async def aclose(self) -> None:
        await self._queue.close()
        if self._owns_http_client:
            await self._http.aclose()

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def search_users(self, keyword: str) -> dict:
        """Search Instagram users by keyword."""
        keyword = _arg(keyword)
        return await self._fetch(SEARCH_USERS, (keyword,), {"keyword": keyword})

    async def get_user_info(self, username: str) -> dict:
        """Profile information for a username, user ID or profile URL."""
        username = _arg(username)
        return await self._fetch(USER_INFO, (username,), {"url": username})

    async def get_user_highlights(self, username: str) -> dict:
        """Story highlight tray for a user."""
        username = _arg(username)
        return await self._fetch(USER_HIGHLIGHTS, (username,), {"url": username})

    async def get_hashtag_feed(self, hashtag: str, feed_type: str = "recent", after: str | None = None) -> dict:
        hashtag, feed_type, after = _arg(hashtag), _arg(feed_type), _cursor(after)
        params = {"hashtag": hashtag, "type": feed_type}
        return await self._fetch(HASHTAG_FEED, (hashtag, feed_type, after), _with_cursor(params, after))

    async def get_user_feed(self, username: str, after: str | None = None) -> dict:
        return await self._paged(USER_FEED, username, after)

    async def get_user_reels(self, username: str, after: str | None = None) -> dict:
        return await self._paged(USER_REELS, username, after)

    async def get_user_tagged(self, username: str, after: str | None = None) -> dict:
        return await self._paged(USER_TAGGED, username, after)

    async def get_user_reposts(self, username: str, after: str | None = None) -> dict:
        return await self._paged(USER_REPOSTS, username, after)

    async def get_media_info(self, code: str) -> dict:
        """Post details by shortcode."""
        code = _arg(code)
        return await self._fetch(MEDIA_INFO, (code,), {"code": code})

    async def get_media_comments(self, code: str, after: str | None = None) -> dict:
        code, after = _arg(code), _cursor(after)
        return await self._fetch(MEDIA_COMMENTS, (code, after), _with_cursor({"code": code}, after))

    async def get_user_stories(self, username: str) -> dict:
        username = _arg(username)
        return await self._fetch(USER_STORIES, (username,), {"url": username})

    async def get_highlight_items(self, highlight_id: str) -> dict:
        """Items of one highlight, e.g. ``highlight:18029499352961095``."""
        highlight_id = _arg(highlight_id)
        return await self._fetch(HIGHLIGHT_ITEMS, (highlight_id,), {"highlight_id": highlight_id})

    # ------------------------------------------------------------------
    # Cache / queue plumbing
    # ------------------------------------------------------------------

    async def _paged(self, op: Operation, username: str, after: str | None) -> dict:
        username, after = _arg(username), _cursor(after)
        return await self._fetch(op, (username, after), _with_cursor({"url": username}, after))

    async def _fetch(self, op: Operation, key_args: tuple, params: dict[str, str]) -> dict:
        key = cache_key(op.name, *key_args)
        cached = self.caches[op.name].get(key)
        if cached is not None:
            logger.debug("Cache hit: %s", key)
            return cached

        # Concurrent callers for the same key share one upstream call.
        task = self._in_flight.get(key)
        if task is None:
            task = asyncio.get_running_loop().create_task(self._load(op, key, params))
            self._in_flight[key] = task
            task.add_done_callback(lambda t: self._forget(key, t))
        return await asyncio.shield(task)

    def _forget(self, key: str, task: asyncio.Task) -> None:
        if self._in_flight.get(key) is task:
            del self._in_flight[key]
        if not task.cancelled():
            # Mark the exception retrieved even if every waiter went away.
            task.exception()

    async def _load(self, op: Operation, key: str, params: dict[str, str]) -> dict:
        data = await self._queue.enqueue(lambda: self._request(op, params))
        if data.get("status") == SUCCESS_STATUS:
            self.caches[op.name].set(key, data)
        return data

    async def _request(self, op: Operation, params: dict[str, str]) -> dict:
        """Perform one GET against the upstream and classify the outcome."""
        path = op.path
        try:
            response = await self._http.get(path, params=params)
        except httpx.HTTPError as exc:
            logger.warning("IMAI request to %s failed: %s", path, type(exc).__name__)
            raise NetworkFailureError(
                "Failed to connect to upstream service", path=path, params=params
            ) from exc

        status = response.status_code
        context = {"path": path, "params": params, "upstream_status": status, "headers": safe_headers(response.headers)}

        if status == 429:
            raise RateLimitedError(
                "Rate limit exceeded. Please try again later.", body=_parse_body(response), **context
            )
        if status in (401, 403):
            logger.error("IMAI authentication failed (status %d) - check IMAI_API_KEY", status)
            raise AuthFailedError(
                "Upstream API authentication failed. Please verify IMAI_API_KEY.",
                body=_parse_body(response),
                **context,
            )
        if 400 <= status < 500:
            raise UpstreamClientError(
                f"Upstream API rejected the request (status {status})", body=_parse_body(response), **context
            )
        if not response.is_success:
            raise UpstreamServerError("Upstream service unavailable", body=_parse_body(response), **context)

        try:
            data = response.json()
        except ValueError as exc:
            raise MalformedResponseError(
                f"Upstream API returned invalid JSON (status: {status})", body=response.text, **context
            ) from exc
        if not isinstance(data, dict):
            raise MalformedResponseError(
                f"Upstream API returned an unexpected payload (status: {status})", body=response.text, **context
            )

        if "status" in data:
            if data["status"] != SUCCESS_STATUS:
                raise NonOkEnvelopeError(
                    f"Upstream returned non-ok status: {data['status']}", body=data, **context
                )
        elif op.require_status_field:
            raise NonOkEnvelopeError("Upstream response is missing its status field", body=data, **context)

        return data


def _with_cursor(params: dict[str, str], after: str | None) -> dict[str, str]:
    if after:
        params["after"] = after
    return params


def _arg(value: str) -> str:
    return value.strip()


def _cursor(after: str | None) -> str | None:
    """Blank cursors mean the first page."""
    if after is None:
        return None
    return after.strip() or None
