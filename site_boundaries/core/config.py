"""Client configuration loaded from environment variables.

All values have defaults matching the production backend's resilience
contract (3 attempts, 1 s/2 s backoff, 10 s per attempt, breaker opens
after 3 failures for 30 s, 5 minute existence cache).

Fail-fast validation:
    ``from_env()`` raises ``ConfigValidationError`` if any numeric
    value is out of its valid range, so bad configuration surfaces at
    session start instead of mid-save.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from site_boundaries.core.constants import (
    DEFAULT_API_BASE_URL,
    DEFAULT_BREAKER_COOLDOWN_S,
    DEFAULT_BREAKER_FAILURE_THRESHOLD,
    DEFAULT_CACHE_TTL_S,
    DEFAULT_MAX_RETRIES,
    DEFAULT_REQUEST_TIMEOUT_S,
    DEFAULT_RETRY_BASE_DELAY_S,
    DEFAULT_VECTOR_LAYERS_URL,
)
from site_boundaries.core.exceptions import ValidationError


class ConfigValidationError(ValidationError):
    """Raised when configuration values are out of valid range.

    Attributes:
        key: The configuration key that failed validation.
        value: The invalid value.
    """

    default_stage = "config"
    default_code = "CONFIG_VALIDATION_FAILED"

    def __init__(self, key: str, value: object, message: str) -> None:
        self.key = key
        self.value = value
        super().__init__(f"Invalid configuration {key}={value!r}: {message}")


@dataclass(frozen=True, slots=True)
class BoundaryClientConfig:
    """Immutable client configuration.

    Constructed once per session and shared by the API client, the
    existence cache and the save controller.

    Attributes:
        api_base_url: Base URL of the boundaries API.
        vector_layers_url: Absolute URL of the all-layers listing.
        access_token: Bearer token for the ``Authorization`` header (optional).
        request_timeout_s: Hard timeout for a single HTTP attempt, in seconds.
        max_retries: Retries after the first attempt for retryable failures.
        retry_base_delay_s: Backoff base; attempt ``n`` waits ``base * 2**n``.
        breaker_failure_threshold: Failed calls that open a circuit breaker.
        breaker_cooldown_s: Seconds an open breaker short-circuits calls.
        cache_ttl_s: Lifetime of a boundary-existence cache entry, in seconds.
    """

    api_base_url: str = DEFAULT_API_BASE_URL
    vector_layers_url: str = DEFAULT_VECTOR_LAYERS_URL
    access_token: str = ""
    request_timeout_s: float = DEFAULT_REQUEST_TIMEOUT_S
    max_retries: int = DEFAULT_MAX_RETRIES
    retry_base_delay_s: float = DEFAULT_RETRY_BASE_DELAY_S
    breaker_failure_threshold: int = DEFAULT_BREAKER_FAILURE_THRESHOLD
    breaker_cooldown_s: float = DEFAULT_BREAKER_COOLDOWN_S
    cache_ttl_s: float = DEFAULT_CACHE_TTL_S

    @classmethod
    def from_env(cls) -> BoundaryClientConfig:
        """Load and validate configuration from environment variables.

        Raises:
            ConfigValidationError: If a numeric value is out of range
                or a required URL is empty.
            ValueError: If a numeric environment variable cannot be
                parsed (e.g. ``BOUNDARY_MAX_RETRIES=abc``).
        """
        config = cls(
            api_base_url=os.getenv("BOUNDARY_API_URL", DEFAULT_API_BASE_URL),
            vector_layers_url=os.getenv("BOUNDARY_VECTOR_LAYERS_URL", DEFAULT_VECTOR_LAYERS_URL),
            access_token=os.getenv("BOUNDARY_ACCESS_TOKEN", ""),
            request_timeout_s=float(os.getenv("BOUNDARY_REQUEST_TIMEOUT_S", "10")),
            max_retries=int(os.getenv("BOUNDARY_MAX_RETRIES", "2")),
            retry_base_delay_s=float(os.getenv("BOUNDARY_RETRY_BASE_DELAY_S", "1.0")),
            breaker_failure_threshold=int(os.getenv("BOUNDARY_BREAKER_FAILURE_THRESHOLD", "3")),
            breaker_cooldown_s=float(os.getenv("BOUNDARY_BREAKER_COOLDOWN_S", "30")),
            cache_ttl_s=float(os.getenv("BOUNDARY_CACHE_TTL_S", "300")),
        )
        validate_config(config)
        return config

    @property
    def auth_headers(self) -> dict[str, str]:
        """Headers sent with every request (JSON plus optional bearer token)."""
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"
        return headers


def validate_config(config: BoundaryClientConfig) -> None:
    """Validate configuration ranges.  Raises ``ConfigValidationError``."""
    if not config.api_base_url:
        raise ConfigValidationError("BOUNDARY_API_URL", config.api_base_url, "must not be empty")

    if not config.vector_layers_url:
        raise ConfigValidationError(
            "BOUNDARY_VECTOR_LAYERS_URL",
            config.vector_layers_url,
            "must not be empty",
        )

    if config.request_timeout_s <= 0:
        raise ConfigValidationError(
            "BOUNDARY_REQUEST_TIMEOUT_S",
            config.request_timeout_s,
            "must be > 0 (seconds)",
        )

    if config.max_retries < 0:
        raise ConfigValidationError("BOUNDARY_MAX_RETRIES", config.max_retries, "must be >= 0")

    if config.retry_base_delay_s < 0:
        raise ConfigValidationError(
            "BOUNDARY_RETRY_BASE_DELAY_S",
            config.retry_base_delay_s,
            "must be >= 0 (seconds)",
        )

    if config.breaker_failure_threshold < 1:
        raise ConfigValidationError(
            "BOUNDARY_BREAKER_FAILURE_THRESHOLD",
            config.breaker_failure_threshold,
            "must be >= 1",
        )

    if config.breaker_cooldown_s < 0:
        raise ConfigValidationError(
            "BOUNDARY_BREAKER_COOLDOWN_S",
            config.breaker_cooldown_s,
            "must be >= 0 (seconds)",
        )

    if config.cache_ttl_s <= 0:
        raise ConfigValidationError(
            "BOUNDARY_CACHE_TTL_S",
            config.cache_ttl_s,
            "must be > 0 (seconds)",
        )
