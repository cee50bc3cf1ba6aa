"""Chat completion client for an OpenAI-compatible LLM endpoint."""

from __future__ import annotations

import json
import logging
import os
import random
import re
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal, cast

from openai import OpenAI

from .config import (
    DEFAULT_AI_TIMEOUT,
    DEFAULT_BASE_URL,
    DEFAULT_MAX_RETRIES,
    DEFAULT_MAX_TOKENS,
    DEFAULT_TEMPERATURE,
    PRIMARY_MODEL,
    RETRY_BASE_DELAY,
    RETRY_MAX_DELAY,
)

if TYPE_CHECKING:  # pragma: no cover
    from collections.abc import Callable

    from openai.types.chat import ChatCompletion, ChatCompletionMessageParam

LOGGER = logging.getLogger(__name__)

_RETRYABLE_MARKERS = ("rate limit", "429", "500", "502", "503", "timeout", "network")
_FENCED_JSON = re.compile(r"```(?:json)?\s*([\s\S]*?)```")


class AIError(RuntimeError):
    """Failure in the AI layer, tagged with a machine-readable code."""

    def __init__(self, message: str, code: str, *, retryable: bool = False) -> None:
        """Initialise the error with its ``code`` and ``retryable`` flag."""
        super().__init__(message)
        self.code = code
        self.retryable = retryable

    @property
    def message(self) -> str:
        return str(self)


@dataclass(frozen=True, slots=True)
class TokenUsage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


@dataclass(frozen=True, slots=True)
class ChatCompletionResult:
    """Text content of a completion together with its token accounting."""

    content: str
    usage: TokenUsage
    model: str


def is_retryable_error(exc: BaseException) -> bool:
    """Rate limits, server errors and transport failures are worth another attempt."""
    message = str(exc).lower()
    return any(marker in message for marker in _RETRYABLE_MARKERS)


def retry_delay(attempt: int, base: float = RETRY_BASE_DELAY) -> float:
    """Exponential backoff with up to 25% jitter, capped."""
    delay = base * 2**attempt
    jitter = delay * 0.25 * random.random()  # noqa: S311
    return min(delay + jitter, RETRY_MAX_DELAY)


def parse_json_response(content: str) -> object | None:
    """Parse a JSON reply, accepting a fenced ```json block as a fallback.

    Returns None when nothing parseable is found.
    """
    try:
        return json.loads(content)
    except (TypeError, ValueError):
        match = _FENCED_JSON.search(content or "")
        if match and match.group(1).strip():
            try:
                return json.loads(match.group(1).strip())
            except ValueError:
                return None
        return None


class AIClient:
    """Wrapper around the OpenAI SDK with our own retry/backoff policy.

    The endpoint defaults to Groq's OpenAI-compatible API; ``AI_BASE_URL``
    overrides it. The API key comes from ``GROQ_API_KEY`` (else
    ``OPENAI_API_KEY``) and is only required when the first request is made.
    """

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float = DEFAULT_AI_TIMEOUT,
        max_retries: int = DEFAULT_MAX_RETRIES,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Initialise the client without contacting the provider."""
        self._api_key = api_key or os.getenv("GROQ_API_KEY") or os.getenv("OPENAI_API_KEY")
        self._base_url = base_url or os.getenv("AI_BASE_URL") or DEFAULT_BASE_URL
        self._timeout = timeout
        self._max_retries = max(0, max_retries)
        self._sleep = sleep
        self._client: OpenAI | None = None

    # Test/extension hook -----------------------------------------------------
    def set_client(self, client: object) -> None:  # pragma: no cover - test helper
        """Inject a mock / custom OpenAI-like client (testing only)."""
        self._client = client  # type: ignore[assignment]

    def _get_client(self) -> OpenAI:
        if self._client is not None:
            return self._client
        if not self._api_key:
            msg = "GROQ_API_KEY environment variable is not set"
            raise AIError(msg, "MISSING_API_KEY")
        # Retries are handled in create_chat_completion.
        self._client = OpenAI(
            api_key=self._api_key,
            base_url=self._base_url,
            timeout=self._timeout,
            max_retries=0,
        )
        return self._client

    def create_chat_completion(  # noqa: PLR0913
        self,
        system_prompt: str,
        user_message: str,
        model: str = PRIMARY_MODEL,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        temperature: float = DEFAULT_TEMPERATURE,
        response_format: Literal["text", "json"] = "text",
    ) -> ChatCompletionResult:
        """Run a single-turn chat completion, retrying transient failures."""
        client = self._get_client()
        messages: list[ChatCompletionMessageParam] = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_message},
        ]
        extra: dict[str, object] = {}
        if response_format == "json":
            extra["response_format"] = {"type": "json_object"}

        last_error: Exception | None = None
        for attempt in range(self._max_retries + 1):
            try:
                response = client.chat.completions.create(
                    model=model,
                    messages=messages,
                    max_tokens=max_tokens,
                    temperature=temperature,
                    **extra,
                )
                return self._to_result(cast("ChatCompletion", response), model)
            except Exception as exc:
                last_error = exc
                if is_retryable_error(exc) and attempt < self._max_retries:
                    delay = retry_delay(attempt)
                    LOGGER.warning(
                        "AI request failed, retrying in %.1fs (attempt %d/%d): %s",
                        delay,
                        attempt + 1,
                        self._max_retries,
                        exc,
                    )
                    self._sleep(delay)
                    continue
                msg = f"AI request failed: {exc}"
                raise AIError(msg, "REQUEST_FAILED") from exc

        msg = f"AI request failed after {self._max_retries} retries: {last_error}"
        raise AIError(msg, "MAX_RETRIES_EXCEEDED")

    @staticmethod
    def _to_result(response: ChatCompletion, requested_model: str) -> ChatCompletionResult:
        content = ""
        if response.choices:
            content = response.choices[0].message.content or ""
        usage = getattr(response, "usage", None)
        return ChatCompletionResult(
            content=content,
            usage=TokenUsage(
                prompt_tokens=getattr(usage, "prompt_tokens", 0) or 0,
                completion_tokens=getattr(usage, "completion_tokens", 0) or 0,
                total_tokens=getattr(usage, "total_tokens", 0) or 0,
            ),
            model=getattr(response, "model", None) or requested_model,
        )
