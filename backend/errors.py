"""Custom exceptions and centralized FastAPI error handlers.

Hierarchy::

    ProxyError
    ├── BadRequestError          (400)
    ├── NotFoundError            (404)
    ├── ImageProxyError          (502)
    └── UpstreamError            (502)
        ├── RateLimitedError
        ├── AuthFailedError
        ├── UpstreamClientError
        ├── UpstreamServerError
        ├── MalformedResponseError
        ├── NonOkEnvelopeError
        └── NetworkFailureError
"""

import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class ProxyError(Exception):
    """Base exception with HTTP status code."""

    def __init__(self, message: str, status_code: int = 500):
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    def details(self) -> Any:
        return None


class BadRequestError(ProxyError):
    def __init__(self, message: str):
        super().__init__(message, status_code=400)


def require_param(value: str | None, message: str) -> str:
    """Strip a required path/query parameter; blank or missing raises 400."""
    if value is None or not value.strip():
        raise BadRequestError(message)
    return value.strip()


class NotFoundError(ProxyError):
    def __init__(self, message: str):
        super().__init__(message, status_code=404)


class ImageProxyError(ProxyError):
    def __init__(self, message: str):
        super().__init__(message, status_code=502)


class UpstreamError(ProxyError):
    """A classified failure talking to the IMAI API.

    Carries only sanitized context: allowlisted response headers, the request
    path and the query params. The API key travels in a request header and is
    never part of any of these.
    """

    kind = "upstream_error"

    def __init__(
        self,
        message: str,
        *,
        path: str,
        params: dict[str, str] | None = None,
        upstream_status: int | None = None,
        body: Any = None,
        headers: dict[str, str] | None = None,
    ):
        super().__init__(message, status_code=502)
        self.path = path
        self.params = dict(params or {})
        self.upstream_status = upstream_status
        self.body = body
        self.headers = dict(headers or {})

    def details(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "upstreamStatus": self.upstream_status,
            "path": self.path,
            "headers": self.headers,
        }


class RateLimitedError(UpstreamError):
    kind = "rate_limited"


class AuthFailedError(UpstreamError):
    kind = "auth_failed"


class UpstreamClientError(UpstreamError):
    kind = "client_error"


class UpstreamServerError(UpstreamError):
    kind = "server_error"


class MalformedResponseError(UpstreamError):
    kind = "malformed_response"

    @property
    def raw_body(self) -> Any:
        return self.body


class NonOkEnvelopeError(UpstreamError):
    kind = "non_ok_envelope"


class NetworkFailureError(UpstreamError):
    kind = "network_failure"


def _error_body(message: str, details: Any = None) -> dict:
    body: dict[str, Any] = {"message": message}
    if details is not None:
        body["details"] = details
    return body


def register_error_handlers(app: FastAPI) -> None:
    """Register centralized exception handlers on the FastAPI app."""

    @app.exception_handler(ProxyError)
    async def handle_proxy_error(_request: Request, exc: ProxyError):
        headers = None
        if isinstance(exc, UpstreamError):
            logger.warning(
                "Upstream %s on %s (status=%s)", exc.kind, exc.path, exc.upstream_status
            )
            retry_after = exc.headers.get("retry-after")
            if isinstance(exc, RateLimitedError) and retry_after:
                headers = {"Retry-After": retry_after}
        return JSONResponse(
            _error_body(exc.message, exc.details()),
            status_code=exc.status_code,
            headers=headers,
        )

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(_request: Request, exc: RequestValidationError):
        return JSONResponse(
            _error_body("Invalid request parameters", jsonable_encoder(exc.errors())),
            status_code=400,
        )

    @app.exception_handler(Exception)
    async def handle_unexpected(_request: Request, exc: Exception):
        logger.exception("Unhandled error: %s", exc)
        return JSONResponse(
            _error_body("Internal server error"),
            status_code=500,
        )
