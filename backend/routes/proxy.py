"""Image proxy route: relays allow-listed Instagram CDN images."""

from fastapi import APIRouter, Query, Response

from dependencies import ImageHttpClientDep
from services.image_proxy import CACHE_CONTROL, fetch_image, validate_image_url

router = APIRouter()


@router.get("/proxy/image")
async def proxy_image(http_client: ImageHttpClientDep, url: str | None = Query(None)) -> Response:
    image_url = validate_image_url(url)
    image = await fetch_image(http_client, image_url)
    return Response(
        content=image.content,
        media_type=image.content_type,
        headers={"Cache-Control": CACHE_CONTROL},
    )
