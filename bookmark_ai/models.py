"""Data models for the bookmark AI layer."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, IntEnum
from typing import Any

from pydantic import BaseModel, Field, field_validator


class TaskPriority(IntEnum):
    """AI task priorities; a smaller value is dequeued first."""

    HIGH = 1  # user-initiated (regenerate, manual request)
    NORMAL = 2  # background processing of a new bookmark
    LOW = 3  # batch processing


class AITaskType(str, Enum):
    """Kind of AI suggestion a task asks for."""

    SUMMARY = "summary"
    TAGS = "tags"
    CATEGORY = "category"
    SEARCH = "search"


@dataclass(frozen=True, slots=True)
class AITask:
    """A unit of AI work held by the queue. Never mutated after enqueue."""

    id: str
    user_id: str
    type: AITaskType
    data: Any
    priority: TaskPriority
    enqueued_at: datetime


@dataclass(frozen=True, slots=True)
class QueueStatus:
    """Point-in-time snapshot of the queue counters."""

    pending: int
    active: int
    max_concurrent: int


@dataclass(slots=True)
class AITaskResult:
    """Outcome of executing one dequeued task."""

    task_id: str
    success: bool
    result: Any = None
    error: str | None = None
    error_code: str | None = None
    processing_time: float = 0.0


@dataclass(frozen=True, slots=True)
class RateLimitStatus:
    """Answer of the per-user rate limiter.

    ``reset_at`` is a POSIX timestamp in seconds.
    """

    allowed: bool
    remaining: int
    reset_at: float


# --- Bookmark records ---------------------------------------------------------------------


def _empty_str_list() -> list[str]:
    return []


@dataclass(slots=True)
class BookmarkRecord:
    """Bookmark owned by a user, as seen by the AI layer."""

    id: str
    user_id: str
    title: str
    url: str
    description: str = ""
    ai_summary: str | None = None
    content: str = ""

    def to_model(self) -> BookmarkEntryModel:
        """Convert the record into a serialisable pydantic model."""
        return BookmarkEntryModel(
            id=self.id,
            user_id=self.user_id,
            title=self.title,
            url=self.url,
            description=self.description,
            ai_summary=self.ai_summary,
        )

    @classmethod
    def from_model(cls, model: BookmarkEntryModel) -> BookmarkRecord:
        """Create a record from a validated pydantic model."""
        return cls(
            id=model.id,
            user_id=model.user_id,
            title=model.title,
            url=model.url,
            description=model.description,
            ai_summary=model.ai_summary,
        )


@dataclass(slots=True)
class SearchBookmark:
    """Bookmark as presented to semantic search."""

    id: str
    title: str
    url: str
    description: str = ""
    tags: list[str] = field(default_factory=_empty_str_list)
    category: str | None = None


# --- Service inputs and results -----------------------------------------------------------


@dataclass(slots=True)
class SummaryInput:
    title: str
    url: str
    description: str = ""
    content: str = ""


@dataclass(slots=True)
class TagsInput:
    title: str
    url: str
    description: str = ""
    existing_tags: list[str] = field(default_factory=_empty_str_list)


@dataclass(slots=True)
class CategoryInput:
    title: str
    url: str
    description: str = ""
    categories: list[str] = field(default_factory=_empty_str_list)


@dataclass(slots=True)
class ProcessInput:
    """Everything needed to run summary, tags and category in one go."""

    title: str
    url: str
    description: str = ""
    content: str = ""
    existing_tags: list[str] = field(default_factory=_empty_str_list)
    categories: list[str] = field(default_factory=_empty_str_list)


@dataclass(slots=True)
class SummaryResult:
    summary: str
    tokens_used: int


@dataclass(slots=True)
class TagSuggestionsResult:
    tags: list[str]
    tokens_used: int
    reasoning: str | None = None


@dataclass(slots=True)
class CategorySuggestionResult:
    category: str
    confidence: float
    tokens_used: int
    reasoning: str | None = None


@dataclass(slots=True)
class SearchHit:
    id: str
    score: float
    reason: str | None = None


@dataclass(slots=True)
class SemanticSearchResult:
    results: list[SearchHit]
    tokens_used: int
    interpretation: str | None = None


@dataclass(slots=True)
class SuggestedCategory:
    name: str
    confidence: float


@dataclass(slots=True)
class ProcessResult:
    tokens_used: int
    summary: str | None = None
    suggested_tags: list[str] | None = None
    suggested_category: SuggestedCategory | None = None


# --- Persisted library file ---------------------------------------------------------------


class BookmarkEntryModel(BaseModel):
    """Pydantic model for a bookmark entry in the library file."""

    id: str
    user_id: str
    title: str
    url: str
    description: str = ""
    ai_summary: str | None = None

    @field_validator("description", mode="before")
    @classmethod
    def _none_to_empty(cls, value: object) -> object:
        return "" if value is None else value


class BookmarkLibraryModel(BaseModel):
    """Root model of the JSON library file consumed by the CLI."""

    bookmarks: list[BookmarkEntryModel] = Field(default_factory=list)
    tags: dict[str, list[str]] = Field(default_factory=dict)
    categories: dict[str, list[str]] = Field(default_factory=dict)


# --- LLM response payloads ----------------------------------------------------------------


class TagsPayloadModel(BaseModel):
    """Expected JSON shape of a tag suggestion response."""

    tags: list[str]
    reasoning: str | None = None

    @field_validator("tags", mode="before")
    @classmethod
    def _clean_tags(cls, value: object) -> object:
        if not isinstance(value, list):
            return value
        return [str(tag).strip().lower() for tag in value if str(tag).strip()]


class CategoryPayloadModel(BaseModel):
    """Expected JSON shape of a category suggestion response."""

    category: str
    confidence: float = 0.0
    reasoning: str | None = None


class SearchHitPayloadModel(BaseModel):
    id: str
    score: float
    reason: str | None = None


class SearchPayloadModel(BaseModel):
    """Expected JSON shape of a semantic search response."""

    results: list[SearchHitPayloadModel]
    interpretation: str | None = None
