"""Shared pytest fixtures.

Fixture summary
---------------
clock: controllable monotonic clock with a matching async ``sleep``.
upstream: respx router for mocking IMAI traffic (use ``imai_url``).
imai_client: real ImaiClient (no pacing) talking to ``upstream``.
fake_imai: MagicMock with AsyncMock operations, for route tests.
image_http: MagicMock standing in for the image-proxy httpx client.
app: FastAPI app with both client dependencies overridden.
api: TestClient for ``app``.

No network access is needed: upstream traffic is mocked with respx.
"""

import asyncio
import os
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
import pytest_asyncio
import respx
from fastapi.testclient import TestClient

# Settings are read at import time; set the key before importing the app.
os.environ.setdefault("IMAI_API_KEY", "test-imai-key")

from app import create_app  # noqa: E402
from dependencies import get_image_http_client, get_imai_client  # noqa: E402
from services.imai_client import ImaiClient  # noqa: E402

TEST_API_KEY = "test-imai-key"
BASE_URL = "https://imai.test/api/"


def imai_url(path: str) -> str:
    return BASE_URL + path


IMAI_OPERATIONS = (
    "search_users",
    "get_user_info",
    "get_user_highlights",
    "get_hashtag_feed",
    "get_user_feed",
    "get_user_reels",
    "get_user_tagged",
    "get_user_reposts",
    "get_media_info",
    "get_media_comments",
    "get_user_stories",
    "get_highlight_items",
)


class FakeClock:
    """Monotonic clock that only moves when told to (or when ``sleep`` is awaited)."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, seconds: float) -> None:
        # Yield first so tasks dispatched before the pause start at the current time.
        await asyncio.sleep(0)
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def upstream():
    with respx.mock(assert_all_called=False) as router:
        yield router


@pytest_asyncio.fixture
async def imai_client(upstream):
    client = ImaiClient(TEST_API_KEY, BASE_URL, min_interval=0)
    yield client
    await client.aclose()


@pytest.fixture
def fake_imai() -> MagicMock:
    fake = MagicMock(spec=ImaiClient)
    for name in IMAI_OPERATIONS:
        setattr(fake, name, AsyncMock(return_value={"status": "ok"}))
    return fake


@pytest.fixture
def image_http() -> MagicMock:
    fake = MagicMock(spec=httpx.AsyncClient)
    fake.get = AsyncMock()
    return fake


@pytest.fixture
def app(fake_imai, image_http):
    application = create_app()
    application.dependency_overrides[get_imai_client] = lambda: fake_imai
    application.dependency_overrides[get_image_http_client] = lambda: image_http
    return application


@pytest.fixture
def api(app) -> TestClient:
    return TestClient(app)
