"""Profile routes: user info, highlights, stories and the four post feeds."""

import logging

from fastapi import APIRouter, Query

from dependencies import ImaiClientDep
from errors import require_param
from services import normalizer

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/profile")

USERNAME_REQUIRED = "Username is required"


@router.get("/{username}")
async def get_profile(username: str, client: ImaiClientDep) -> dict:
    username = require_param(username, USERNAME_REQUIRED)
    response = await client.get_user_info(username)
    return normalizer.normalize_profile(response, username)


@router.get("/{username}/highlights")
async def get_highlights(username: str, client: ImaiClientDep) -> dict:
    username = require_param(username, USERNAME_REQUIRED)
    response = await client.get_user_highlights(username)
    return {"highlights": normalizer.normalize_highlights(response)}


@router.get("/{username}/stories")
async def get_stories(username: str, client: ImaiClientDep) -> dict:
    """Active stories. A user without stories gets an empty list, not a 404."""
    username = require_param(username, USERNAME_REQUIRED)
    response = await client.get_user_stories(username)
    return normalizer.normalize_stories(response, username)


@router.get("/{username}/posts")
async def get_posts(username: str, client: ImaiClientDep, after: str | None = Query(None)) -> dict:
    username = require_param(username, USERNAME_REQUIRED)
    response = await client.get_user_feed(username, after or None)
    return normalizer.normalize_post_page(response)


@router.get("/{username}/reels")
async def get_reels(username: str, client: ImaiClientDep, after: str | None = Query(None)) -> dict:
    username = require_param(username, USERNAME_REQUIRED)
    response = await client.get_user_reels(username, after or None)
    return normalizer.normalize_post_page(response)


@router.get("/{username}/tagged")
async def get_tagged(username: str, client: ImaiClientDep, after: str | None = Query(None)) -> dict:
    username = require_param(username, USERNAME_REQUIRED)
    response = await client.get_user_tagged(username, after or None)
    return normalizer.normalize_post_page(response)


@router.get("/{username}/reposts")
async def get_reposts(username: str, client: ImaiClientDep, after: str | None = Query(None)) -> dict:
    username = require_param(username, USERNAME_REQUIRED)
    response = await client.get_user_reposts(username, after or None)
    return normalizer.normalize_post_page(response)
