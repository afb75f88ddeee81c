"""Centralized configuration. All env vars in one place."""

import os

DEFAULT_CORS_ORIGINS = "https://orzbirou.github.io,http://localhost:4200"


class Settings:
    """Application settings loaded from environment variables."""

    def __init__(self):
        self.cors_origins: list[str] = [
            origin.strip() for origin in os.getenv("CORS_ORIGINS", DEFAULT_CORS_ORIGINS).split(",") if origin.strip()
        ]
        self.git_sha: str = os.getenv("GIT_SHA", "unknown")
        self.environment: str = os.getenv("ENVIRONMENT", "local")
        self.port: int = int(os.getenv("PORT", "3000"))

        # IMAI upstream
        self.imai_api_key: str = os.getenv("IMAI_API_KEY", "")
        self.imai_base_url: str = os.getenv("IMAI_BASE_URL", "https://imai.co/api/")
        self.min_request_interval: float = float(os.getenv("IMAI_MIN_REQUEST_INTERVAL_MS", "200")) / 1000
        self.request_timeout: float = float(os.getenv("IMAI_TIMEOUT_SECONDS", "15"))

        # 0 disables the per-cache cap
        self.cache_max_entries: int = int(os.getenv("CACHE_MAX_ENTRIES", "1000"))

        self.image_proxy_timeout: float = float(os.getenv("IMAGE_PROXY_TIMEOUT_SECONDS", "15"))

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    def validate(self) -> list[str]:
        """Return list of missing required env vars."""
        required = ["IMAI_API_KEY"]
        return [var for var in required if not getattr(self, _attr_for(var))]


settings = Settings()


def _attr_for(env_var: str) -> str:
    """Map env var name to Settings attribute name."""
    mapping = {
        "IMAI_API_KEY": "imai_api_key",
    }
    return mapping.get(env_var, env_var.lower())
