"""FastAPI application entry point for the Instagram profile viewer API."""

import logging
import sys
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from config import Settings, settings
from errors import register_error_handlers
from services.imai_client import ImaiClient

# Structured logging: JSON for production, human-readable for local
if settings.is_production:
    logging.basicConfig(
        level=logging.INFO,
        format='{"time":"%(asctime)s","level":"%(levelname)s","logger":"%(name)s","message":"%(message)s"}',
        stream=sys.stdout,
    )
else:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

logger = logging.getLogger(__name__)


def create_app(app_settings: Settings | None = None) -> FastAPI:
    app_settings = app_settings or settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        missing = app_settings.validate()
        if missing:
            raise RuntimeError(f"Missing required env vars: {', '.join(missing)}")

        app.state.imai_client = ImaiClient.from_settings(app_settings)
        app.state.image_http_client = httpx.AsyncClient(
            timeout=app_settings.image_proxy_timeout,
            follow_redirects=True,
        )
        logger.info(
            "IMAI client ready (base=%s, min interval=%.0fms)",
            app_settings.imai_base_url,
            app_settings.min_request_interval * 1000,
        )
        try:
            yield
        finally:
            await app.state.imai_client.aclose()
            await app.state.image_http_client.aclose()

    app = FastAPI(title="Instagram Profile Viewer API", version="1.0.0", lifespan=lifespan)

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.cors_origins,
        allow_methods=["GET", "OPTIONS"],
        allow_headers=["*"],
        allow_credentials=True,
    )

    # Security headers
    @app.middleware("http")
    async def add_security_headers(request: Request, call_next):
        response: Response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        if app_settings.is_production:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        return response

    # Centralized error handlers
    register_error_handlers(app)

    from routes.health import router as health_router
    from routes.explore import router as explore_router
    from routes.profile import router as profile_router
    from routes.media import router as media_router
    from routes.proxy import router as proxy_router

    app.include_router(health_router)
    app.include_router(explore_router)
    app.include_router(profile_router)
    app.include_router(media_router)
    app.include_router(proxy_router)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=settings.port)
