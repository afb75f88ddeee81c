"""Media routes: single post details, its comments, and highlight contents."""

import logging

from fastapi import APIRouter, Query

from dependencies import ImaiClientDep
from errors import NotFoundError, UpstreamClientError, require_param
from services import normalizer

logger = logging.getLogger(__name__)

router = APIRouter()

CODE_REQUIRED = "Media code is required"


@router.get("/media/{code}")
async def get_media(code: str, client: ImaiClientDep) -> dict:
    code = require_param(code, CODE_REQUIRED)
    try:
        response = await client.get_media_info(code)
    except UpstreamClientError as e:
        if e.upstream_status == 404:
            logger.info("Media %s not found upstream", code)
            raise NotFoundError(f"Media {code} not found") from e
        raise

    media = normalizer.normalize_media_info(response)
    if media is None:
        raise NotFoundError(f"Media {code} not found")
    return media


@router.get("/media/{code}/comments")
async def get_media_comments(code: str, client: ImaiClientDep, after: str | None = Query(None)) -> dict:
    code = require_param(code, CODE_REQUIRED)
    response = await client.get_media_comments(code, after or None)
    return normalizer.normalize_comments(response)


@router.get("/highlights/{highlight_id}")
async def get_highlight_items(highlight_id: str, client: ImaiClientDep) -> dict:
    """Stories inside one highlight (ids look like ``highlight:1802...``)."""
    highlight_id = require_param(highlight_id, "Highlight id is required")
    response = await client.get_highlight_items(highlight_id)
    return normalizer.normalize_highlight_items(response, highlight_id)
