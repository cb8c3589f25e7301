"""Application settings and CORS configuration."""

import json
import os
from functools import lru_cache

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_INVIDIOUS_INSTANCES = [
    "https://vid.puffyan.us",
    "https://invidious.nerdvpn.de",
    "https://invidious.privacyredirect.com",
    "https://invidious.protokolla.fi",
    "https://inv.nadeko.net",
]

DEFAULT_PIPED_INSTANCES = [
    "https://pipedapi.kavin.rocks",
    "https://pipedapi.adminforge.de",
    "https://api.piped.yt",
]


def _split_list(v: object, field_name: str) -> list[str]:
    """Allow list, CSV string, or JSON array string for list settings."""
    if isinstance(v, list):
        return [str(i).strip() for i in v]
    if isinstance(v, str):
        s = v.strip()
        if not s:
            return []
        if s.startswith("["):
            try:
                parsed = json.loads(s)
            except json.JSONDecodeError as e:
                raise ValueError(
                    f"{field_name} must be a CSV list or JSON array string"
                ) from e
            if not isinstance(parsed, list):
                raise ValueError(f"{field_name} JSON must be a list")
            return [str(i).strip() for i in parsed]
        # CSV fallback
        return [i.strip() for i in s.split(",") if i.strip()]
    raise ValueError(f"Invalid {field_name} type; expected str or list[str]")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=(".env"), env_file_encoding="utf-8")

    # App
    APP_NAME: str = "SetSmith"
    ENVIRONMENT: str = "development"  # development | production | test

    # CORS
    # Accept list or CSV/JSON string from env; normalized to list[str] by validators
    CORS_ORIGINS: list[str] | str = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]
    ALLOW_CREDENTIALS: bool = True

    # AI / LLM providers. A provider is raced only when its key is set.
    OPENAI_API_KEY: str | None = None
    ANTHROPIC_API_KEY: str | None = None
    GEMINI_API_KEY: str | None = None
    OPENAI_MODEL: str = "gpt-4o-mini"
    ANTHROPIC_MODEL: str = "claude-sonnet-4-20250514"
    GEMINI_MODEL: str = "gemini-2.0-flash"
    # None disables the per-provider timeout (calls stay cancellable)
    PROVIDER_TIMEOUT_SECONDS: float | None = 45.0

    # Streaming
    STREAM_HEARTBEAT_SECONDS: float = 5.0
    ENRICHMENT_BATCH_SIZE: int = 4
    ENRICHMENT_TIMEOUT_SECONDS: float = 20.0

    # Media resolution
    MIRROR_TIMEOUT_SECONDS: float = 3.0
    MIRROR_INSTANCES_PER_FAMILY: int = 2
    INVIDIOUS_INSTANCES: list[str] | str = DEFAULT_INVIDIOUS_INSTANCES
    PIPED_INSTANCES: list[str] | str = DEFAULT_PIPED_INSTANCES
    CATALOG_TIMEOUT_SECONDS: float = 4.0
    RESOLVE_CONCURRENCY: int = 2
    MEDIA_CACHE_TTL_SECONDS: int = 30 * 24 * 60 * 60

    # Paid video API (YouTube Data API v3)
    YOUTUBE_API_KEY: str | None = None
    PAID_API_TIMEOUT_SECONDS: float = 5.0
    PAID_API_DAILY_QUOTA: int = 10_000
    QUOTA_COUNTER_TTL_SECONDS: int = 25 * 60 * 60

    # Upstash Redis (cache, quota ledger, rate limiting)
    # REST URL and token for Upstash Redis; optional in development/test
    UPSTASH_REDIS_REST_URL: str | None = None
    UPSTASH_REDIS_REST_TOKEN: str | None = None

    # Rate limit settings (requests per window)
    RATE_LIMIT_REQUESTS: int = 30
    RATE_LIMIT_WINDOW_SECONDS: int = 60

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v: object) -> list[str]:
        """Allow list, CSV string, or JSON array string for CORS origins."""
        return _split_list(v, "CORS_ORIGINS")

    @field_validator("INVIDIOUS_INSTANCES", "PIPED_INSTANCES", mode="before")
    @classmethod
    def assemble_instances(cls, v: object) -> list[str]:
        """Mirror instance lists accept the same forms as CORS origins."""
        return [i.rstrip("/") for i in _split_list(v, "mirror instances")]

    @model_validator(mode="after")
    def _validate_cors_credentials(self) -> "Settings":
        """Ensure wildcard origins are not used when credentials are allowed."""
        # Normalize in case the union allows a stray string at runtime
        if isinstance(self.CORS_ORIGINS, str):
            self.CORS_ORIGINS = self.assemble_cors_origins(self.CORS_ORIGINS)
        if self.ALLOW_CREDENTIALS and any(
            o.strip() == "*" for o in (self.CORS_ORIGINS or [])
        ):
            raise ValueError(
                "CORS configuration error: ALLOW_CREDENTIALS=True but "
                "CORS_ORIGINS contains '*'. Use explicit origins when credentials "
                "are allowed."
            )
        return self

    def provider_api_key(self, provider: str) -> str | None:
        """Return the API key for a provider id, ignoring blank values."""
        key = {
            "openai": self.OPENAI_API_KEY,
            "claude": self.ANTHROPIC_API_KEY,
            "gemini": self.GEMINI_API_KEY,
        }.get(provider)
        if key is None or not key.strip():
            return None
        return key


@lru_cache
def get_settings() -> Settings:
    env = os.getenv("ENVIRONMENT", "development").lower()
    if env not in {"development", "production", "test"}:
        raise ValueError("ENVIRONMENT must be 'development', 'production', or 'test'")

    if env == "production":
        env_file = ".env.prod"
    elif env == "development":
        env_file = ".env.dev"
    else:
        # test environment - no env file needed, use defaults
        env_file = ""

    # The Settings initializer accepts a runtime-only `_env_file` kwarg used by
    # pydantic-settings; mypy's stub doesn't allow this call argument.
    return Settings(_env_file=env_file or None)  # type: ignore[call-arg]
