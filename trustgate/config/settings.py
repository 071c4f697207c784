"""Application settings using Pydantic BaseSettings."""

from functools import lru_cache
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Minimum signing secret length (bytes of text) accepted at startup.
CSRF_SECRET_MIN_LENGTH = 32

# Paths that never require an anti-forgery token.
TOKEN_ENDPOINT_PATH = "/api/csrf/token"
DEFAULT_EXEMPT_PATHS = frozenset({TOKEN_ENDPOINT_PATH, "/health", "/healthz"})


class Settings(BaseSettings):
    """Gateway configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Server
    # Explicit environment selector. Production mode is only ever
    # ENVIRONMENT=production, never inferred from other values.
    environment: str = Field(default="development")
    host: str = Field(default="127.0.0.1")
    port: int = Field(default=8000)
    debug: bool = Field(default=False)
    log_level: str = Field(default="INFO")
    log_file: Optional[str] = Field(default=None)

    # Anti-forgery tokens
    csrf_secret: str = Field(default="")
    csrf_token_ttl_seconds: int = Field(default=3600)
    csrf_header_name: str = Field(default="X-CSRF-Token")
    csrf_exempt_paths: str = Field(
        default="",
        description="Comma-separated paths whose mutations skip the token check (e.g. login).",
    )
    csrf_rate_limit_quota: int = Field(default=10)
    csrf_rate_limit_window_seconds: int = Field(default=60)

    # Rate limit counter store
    # "memory" = in-process (single worker only)
    # "redis" = shared across instances (requires redis_url)
    limits_backend: str = Field(default="memory")
    redis_url: str = Field(default="")
    limits_store_timeout_ms: int = Field(default=250)

    # Session cookie (written by the identity collaborator, shaped here)
    session_cookie_name: str = Field(default="trustgate_session")
    session_ttl_seconds: int = Field(default=604800)
    # None means "environment-based default" (strict/lax, secure in production)
    cookie_samesite: Optional[str] = Field(default=None)
    cookie_secure: Optional[bool] = Field(default=None)
    cookie_domain: str = Field(default="")

    # Cross-origin
    cors_origins: str = Field(default="")

    # Identity collaborator
    identity_header_name: str = Field(default="X-Authenticated-User")

    @property
    def csrf_exempt_paths_list(self) -> List[str]:
        """Parse extra exempt paths from comma-separated string."""
        if not self.csrf_exempt_paths:
            return []
        return [p.strip() for p in self.csrf_exempt_paths.split(",") if p.strip()]

    @property
    def exempt_paths(self) -> frozenset[str]:
        """All paths whose mutations are admitted without a token."""
        return DEFAULT_EXEMPT_PATHS | frozenset(self.csrf_exempt_paths_list)

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment == "production"

    @property
    def is_prod_like(self) -> bool:
        """Check if running in production or staging mode."""
        return self.environment in {"production", "staging"}

    @property
    def docs_url(self) -> str | None:
        """Return docs URL if not in prod-like environment, else None."""
        return None if self.is_prod_like else "/docs"

    @property
    def openapi_url(self) -> str | None:
        """Return openapi URL if not in prod-like environment, else None."""
        return None if self.is_prod_like else "/openapi.json"

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        upper = v.upper()
        if upper not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return upper

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        vv = (v or "").strip().lower()
        if vv not in {"development", "staging", "production", "test"}:
            raise ValueError("ENVIRONMENT must be one of: development, staging, production, test")
        return vv

    @field_validator("limits_backend")
    @classmethod
    def validate_limits_backend(cls, v: str) -> str:
        return (v or "").strip().lower()

    @field_validator("cookie_samesite", mode="before")
    @classmethod
    def normalize_cookie_samesite(cls, v: Optional[str]) -> Optional[str]:
        """Trim + lowercase the override; empty means unset.

        Membership in {strict, lax, none} is checked by the cookie policy
        resolver, which reports it as a fatal configuration error.
        """
        if v is None:
            return None
        vv = str(v).strip().lower()
        return vv or None


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
