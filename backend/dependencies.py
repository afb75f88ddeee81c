"""FastAPI dependency providers.

The IMAI client and the image-proxy HTTP client are built once in the app
lifespan and live on ``app.state``. Routes receive them through these
providers; tests swap them via ``app.dependency_overrides``.
"""

from typing import Annotated

import httpx
from fastapi import Depends, Request

from services.imai_client import ImaiClient


def get_imai_client(request: Request) -> ImaiClient:
    return request.app.state.imai_client


def get_image_http_client(request: Request) -> httpx.AsyncClient:
    return request.app.state.image_http_client


ImaiClientDep = Annotated[ImaiClient, Depends(get_imai_client)]
ImageHttpClientDep = Annotated[httpx.AsyncClient, Depends(get_image_http_client)]
