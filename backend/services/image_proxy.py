"""Allow-listed image fetch-and-relay for Instagram CDN URLs.

Browsers can't hotlink most Instagram CDN images (referrer/CORP checks), so
the web client loads them through ``/proxy/image``. Stateless: nothing is
cached server-side; the response carries a short ``Cache-Control`` instead.
"""

import logging
from dataclasses import dataclass
from urllib.parse import urlsplit

import httpx

from errors import BadRequestError, ImageProxyError

logger = logging.getLogger(__name__)

ALLOWED_DOMAINS = (
    "instagram.com",
    "cdninstagram.com",
    "fbcdn.net",
)

CACHE_CONTROL = "public, max-age=300"

REQUEST_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept": "image/avif,image/webp,image/*,*/*",
}


@dataclass
class ProxiedImage:
    content: bytes
    content_type: str


def is_allowed_host(hostname: str) -> bool:
    hostname = hostname.lower().rstrip(".")
    return any(hostname == domain or hostname.endswith(f".{domain}") for domain in ALLOWED_DOMAINS)


def validate_image_url(url: str | None) -> str:
    """Return the URL if it is HTTPS and on an allowed CDN host, else raise 400."""
    if not url or not url.strip():
        raise BadRequestError("URL parameter is required")
    url = url.strip()
    if not url.lower().startswith("https://"):
        raise BadRequestError("Only HTTPS URLs are allowed")
    try:
        hostname = urlsplit(url).hostname
    except ValueError as exc:
        raise BadRequestError("Invalid URL format") from exc
    if not hostname:
        raise BadRequestError("Invalid URL format")
    if not is_allowed_host(hostname):
        raise BadRequestError("URL hostname not in allowlist. Only Instagram CDN domains are allowed.")
    return url


async def fetch_image(client: httpx.AsyncClient, url: str) -> ProxiedImage:
    """Fetch ``url`` and make sure it really is an image."""
    try:
        response = await client.get(url, headers=REQUEST_HEADERS)
    except httpx.HTTPError as e:
        logger.warning("Image fetch failed for %s: %s", url, e)
        raise ImageProxyError("Failed to fetch image from upstream") from e

    # Redirects are followed; the final host must still be allow-listed.
    if not is_allowed_host(response.url.host):
        logger.warning("Image redirect left the allowlist: %s -> %s", url, response.url.host)
        raise ImageProxyError("Upstream redirected outside the allowed domains")

    if not response.is_success:
        logger.warning("Image upstream returned %d for %s", response.status_code, url)
        raise ImageProxyError(f"Upstream image server returned {response.status_code}")

    content_type = response.headers.get("content-type", "")
    if not content_type.startswith("image/"):
        logger.warning("Invalid content-type %r for %s", content_type, url)
        raise ImageProxyError("Upstream did not return an image")

    return ProxiedImage(content=response.content, content_type=content_type)
