"""Startup configuration checks.

Validates the settings that define the trust boundary before the app object
exists. Field-by-field checks collect every violation so an operator sees
all of them in one failed start instead of fixing them one per restart.
"""

import logging
from typing import List

from trustgate.config.settings import CSRF_SECRET_MIN_LENGTH, Settings
from trustgate.core.exceptions import ConfigurationError
from trustgate.core.limits.factory import SUPPORTED_BACKENDS

logger = logging.getLogger(__name__)


def validate_gateway_settings(settings: Settings) -> List[str]:
    """Validate trust-boundary configuration.

    Returns a list of error messages (empty if valid). SameSite and origin
    values are validated by their resolvers, which run right after this.
    """
    errors: List[str] = []

    if len(settings.csrf_secret or "") < CSRF_SECRET_MIN_LENGTH:
        errors.append(
            f"CSRF_SECRET must be set and at least {CSRF_SECRET_MIN_LENGTH} characters long"
        )

    if settings.csrf_token_ttl_seconds <= 0:
        errors.append("CSRF_TOKEN_TTL_SECONDS must be positive")

    if settings.csrf_rate_limit_quota <= 0:
        errors.append("CSRF_RATE_LIMIT_QUOTA must be positive")

    if settings.csrf_rate_limit_window_seconds <= 0:
        errors.append("CSRF_RATE_LIMIT_WINDOW_SECONDS must be positive")

    if settings.limits_store_timeout_ms <= 0:
        errors.append("LIMITS_STORE_TIMEOUT_MS must be positive")

    if settings.limits_backend not in SUPPORTED_BACKENDS:
        errors.append(
            f"LIMITS_BACKEND must be one of: {', '.join(SUPPORTED_BACKENDS)} "
            f"(got {settings.limits_backend!r})"
        )
    elif settings.limits_backend == "redis" and not settings.redis_url:
        errors.append("REDIS_URL is required when LIMITS_BACKEND=redis")

    if not settings.csrf_header_name.strip():
        errors.append("CSRF_HEADER_NAME must not be empty")

    if settings.session_ttl_seconds <= 0:
        errors.append("SESSION_TTL_SECONDS must be positive")

    return errors


def assert_gateway_settings(settings: Settings) -> None:
    """Raise ConfigurationError listing every violation, if any."""
    errors = validate_gateway_settings(settings)

    if errors:
        error_msg = "\n".join(f"  - {e}" for e in errors)
        logger.error(f"Gateway configuration validation failed:\n{error_msg}")
        raise ConfigurationError(errors)

    logger.info("Gateway configuration validation passed")
