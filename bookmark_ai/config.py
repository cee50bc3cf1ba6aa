"""Global configuration constants and queue settings for bookmark AI."""

from __future__ import annotations

import os

from attrs import define, field, validators

# Queue defaults; the hosting process may override them through the environment.
DEFAULT_MAX_CONCURRENT: int = 5
DEFAULT_USER_RATE_LIMIT: int = 20
DEFAULT_RATE_LIMIT_WINDOW: float = 60.0
DEFAULT_REQUEST_TIMEOUT: float = 60.0

# LLM defaults (OpenAI-compatible endpoint, Groq by default).
DEFAULT_BASE_URL: str = "https://api.groq.com/openai/v1"
PRIMARY_MODEL: str = "llama-3.1-70b-versatile"
FAST_MODEL: str = "llama-3.1-8b-instant"
DEFAULT_MAX_TOKENS: int = 500
DEFAULT_TEMPERATURE: float = 0.3
DEFAULT_AI_TIMEOUT: float = 30.0
DEFAULT_MAX_RETRIES: int = 3
RETRY_BASE_DELAY: float = 1.0
RETRY_MAX_DELAY: float = 30.0

_ENV_PREFIX = "BOOKMARK_AI_"


def _positive(_instance: object, attribute: object, value: float) -> None:
    if value <= 0:
        name = getattr(attribute, "name", "value")
        msg = f"{name} must be positive, got {value!r}"
        raise ValueError(msg)


@define(frozen=True, slots=True)
class QueueConfig:
    """Immutable settings for the AI task queue and its rate limiter.

    ``request_timeout`` is advisory: the queue never enforces it, executors
    pass it on to the downstream LLM call.
    """

    max_concurrent: int = field(
        default=DEFAULT_MAX_CONCURRENT, validator=[validators.instance_of(int), _positive],
    )
    user_rate_limit: int = field(
        default=DEFAULT_USER_RATE_LIMIT, validator=[validators.instance_of(int), _positive],
    )
    rate_limit_window: float = field(default=DEFAULT_RATE_LIMIT_WINDOW, validator=_positive)
    request_timeout: float = field(default=DEFAULT_REQUEST_TIMEOUT, validator=_positive)

    @classmethod
    def from_env(cls) -> QueueConfig:
        """Build a config from ``BOOKMARK_AI_*`` variables, falling back to defaults."""
        return cls(
            max_concurrent=_env_number("MAX_CONCURRENT", DEFAULT_MAX_CONCURRENT, int),
            user_rate_limit=_env_number("USER_RATE_LIMIT", DEFAULT_USER_RATE_LIMIT, int),
            rate_limit_window=_env_number(
                "RATE_LIMIT_WINDOW", DEFAULT_RATE_LIMIT_WINDOW, float,
            ),
            request_timeout=_env_number("REQUEST_TIMEOUT", DEFAULT_REQUEST_TIMEOUT, float),
        )


def _env_number(suffix: str, default: float, cast: type) -> float:
    name = f"{_ENV_PREFIX}{suffix}"
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return cast(raw.strip())
    except ValueError as exc:
        msg = f"Invalid value for {name}: {raw!r}"
        raise ValueError(msg) from exc
