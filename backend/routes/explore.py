"""Discovery routes: user search autocomplete and hashtag feeds."""

import logging

from fastapi import APIRouter, Query

from dependencies import ImaiClientDep
from errors import require_param
from services import normalizer

logger = logging.getLogger(__name__)

router = APIRouter()

FEED_TYPES = {"recent", "top"}


@router.get("/search")
async def search(client: ImaiClientDep, query: str | None = Query(None)) -> dict:
    """Autocomplete search. A blank query never reaches the upstream."""
    if not query or not query.strip():
        return {"users": []}

    response = await client.search_users(query.strip())
    return {"users": normalizer.normalize_search_users(response)}


@router.get("/ig/hashtag-feed")
async def hashtag_feed(
    client: ImaiClientDep,
    hashtag: str | None = Query(None),
    feed_type: str | None = Query(None, alias="type"),
    after: str | None = Query(None),
) -> dict:
    hashtag = require_param((hashtag or "").strip().lstrip("#"), "Hashtag is required")
    # Anything unrecognised falls back to the recent feed.
    feed_type = feed_type if feed_type in FEED_TYPES else "recent"

    response = await client.get_hashtag_feed(hashtag, feed_type, after or None)
    return normalizer.normalize_hashtag_feed(response)
