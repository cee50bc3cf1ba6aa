"""Shared pytest fixtures for bookmark AI tests."""

from __future__ import annotations

import json
from types import SimpleNamespace
from typing import TYPE_CHECKING, Any

import pytest

from bookmark_ai.client import ChatCompletionResult, TokenUsage
from bookmark_ai.config import QueueConfig
from bookmark_ai.models import BookmarkRecord
from bookmark_ai.queue import AITaskQueue, UserRateLimiter
from bookmark_ai.services import AISuggestionService
from bookmark_ai.store import InMemoryBookmarkStore

if TYPE_CHECKING:
    from pathlib import Path


class ScriptedLLM:
    """Stand-in for AIClient returning canned replies (or raising) in order."""

    def __init__(self, replies: list[str | Exception], tokens: int = 10) -> None:
        self._replies = list(replies)
        self._tokens = tokens
        self.calls: list[dict[str, Any]] = []

    def create_chat_completion(self, **kwargs: Any) -> ChatCompletionResult:
        self.calls.append(kwargs)
        if not self._replies:
            raise RuntimeError("No more scripted replies")
        reply = self._replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return ChatCompletionResult(
            content=reply,
            usage=TokenUsage(total_tokens=self._tokens),
            model=kwargs.get("model", "test-model"),
        )


class FakeCompletions:
    """Mimics ``client.chat.completions`` of the OpenAI SDK."""

    def __init__(self, outcomes: list[str | Exception]) -> None:
        self._outcomes = list(outcomes)
        self.calls: list[dict[str, Any]] = []

    def create(self, **kwargs: Any) -> SimpleNamespace:
        self.calls.append(kwargs)
        outcome = self._outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content=outcome))],
            usage=SimpleNamespace(prompt_tokens=7, completion_tokens=5, total_tokens=12),
            model=kwargs["model"],
        )


def fake_openai(outcomes: list[str | Exception]) -> SimpleNamespace:
    return SimpleNamespace(chat=SimpleNamespace(completions=FakeCompletions(outcomes)))


@pytest.fixture
def queue() -> AITaskQueue:
    return AITaskQueue(QueueConfig(max_concurrent=5))


@pytest.fixture
def limiter() -> UserRateLimiter:
    return UserRateLimiter(limit=20, window=60.0)


def make_service(llm: ScriptedLLM, limiter: UserRateLimiter | None = None) -> AISuggestionService:
    return AISuggestionService(llm, limiter or UserRateLimiter(limit=20, window=60.0))  # type: ignore[arg-type]


@pytest.fixture
def store() -> InMemoryBookmarkStore:
    """Two bookmarks for alice, one for bob."""
    return InMemoryBookmarkStore(
        [
            BookmarkRecord(
                id="bm-1",
                user_id="alice",
                title="Python Packaging Guide",
                url="https://packaging.python.org",
                description="How to package Python projects",
            ),
            BookmarkRecord(
                id="bm-2",
                user_id="alice",
                title="Sourdough basics",
                url="https://bread.example",
                ai_summary="Already summarised.",
            ),
            BookmarkRecord(
                id="bm-3",
                user_id="bob",
                title="Bob's page",
                url="https://bob.example",
            ),
        ],
        tags={"alice": ["python", "cooking"]},
        categories={"alice": ["Programming", "Food"]},
    )


@pytest.fixture
def library_file(tmp_path: Path) -> Path:
    """Write a minimal library JSON file."""
    payload = {
        "bookmarks": [
            {
                "id": "bm-1",
                "user_id": "alice",
                "title": "Example",
                "url": "https://example.com",
                "description": None,
            },
        ],
        "tags": {"alice": ["misc"]},
        "categories": {"alice": ["Reference"]},
    }
    path = tmp_path / "library.json"
    path.write_text(json.dumps(payload), encoding="utf-8")
    return path
