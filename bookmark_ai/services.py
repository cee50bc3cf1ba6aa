"""High-level AI suggestion services: summaries, tags, categories, semantic search."""

from __future__ import annotations

import logging
import math
import re
import time
from typing import TYPE_CHECKING, TypeVar

from pydantic import BaseModel, ValidationError

from .client import AIError, parse_json_response
from .config import FAST_MODEL, PRIMARY_MODEL
from .models import (
    CategoryInput,
    CategoryPayloadModel,
    CategorySuggestionResult,
    ProcessInput,
    ProcessResult,
    SearchHit,
    SearchHitPayloadModel,
    SemanticSearchResult,
    SuggestedCategory,
    SummaryInput,
    SummaryResult,
    TagsInput,
    TagsPayloadModel,
    TagSuggestionsResult,
)
from .prompts import (
    CATEGORY_SYSTEM_PROMPT,
    SEMANTIC_SEARCH_SYSTEM_PROMPT,
    SUMMARY_SYSTEM_PROMPT,
    TAGS_SYSTEM_PROMPT,
    create_category_prompt,
    create_semantic_search_prompt,
    create_summary_prompt,
    create_tags_prompt,
)

if TYPE_CHECKING:  # pragma: no cover
    from collections.abc import Callable, Sequence

    from .client import AIClient
    from .models import SearchBookmark
    from .queue import UserRateLimiter

LOGGER = logging.getLogger(__name__)

MAX_SUGGESTED_TAGS = 5
MAX_TAG_LENGTH = 30
MAX_SEARCH_BOOKMARKS = 20
MIN_SEARCH_SCORE = 0.3
FALLBACK_CATEGORY = "Other"
FALLBACK_CATEGORY_CONFIDENCE = 0.3
# Batch processing keeps a suggested category only above this confidence.
PROCESS_CATEGORY_THRESHOLD = 0.5

_TAG_SPLIT = re.compile(r"[,\n]")

_ModelT = TypeVar("_ModelT", bound=BaseModel)
_ResultT = TypeVar("_ResultT")


def _clamp(value: float) -> float:
    return min(1.0, max(0.0, value))


def _validate_payload(content: str, model: type[_ModelT]) -> _ModelT | None:
    """Parse an LLM reply into ``model``; malformed replies yield None."""
    raw = parse_json_response(content)
    if not isinstance(raw, dict):
        return None
    try:
        return model.model_validate(raw)
    except ValidationError as exc:
        LOGGER.warning("Discarding malformed %s payload: %s", model.__name__, exc)
        return None


class AISuggestionService:
    """Rate-limited suggestion calls backed by :class:`AIClient`.

    Every operation first asks the per-user limiter for a slot and raises
    ``AIError`` with code ``RATE_LIMITED`` when refused. Unexpected failures
    are wrapped into an operation-specific ``*_FAILED`` code; ``AIError``
    passes through untouched.
    """

    def __init__(
        self,
        client: AIClient,
        rate_limiter: UserRateLimiter,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialise the service with its LLM client and per-user limiter."""
        self._client = client
        self._rate_limiter = rate_limiter
        self._clock = clock

    def _ensure_allowed(self, user_id: str) -> None:
        status = self._rate_limiter.check(user_id)
        if status.allowed:
            return
        wait = max(0, math.ceil(status.reset_at - self._clock()))
        msg = f"Rate limit exceeded. Try again in {wait} seconds."
        raise AIError(msg, "RATE_LIMITED", retryable=True)

    @staticmethod
    def _guard(code: str, action: str, call: Callable[[], _ResultT]) -> _ResultT:
        try:
            return call()
        except AIError:
            raise
        except Exception as exc:
            msg = f"Failed to {action}: {exc}"
            raise AIError(msg, code, retryable=True) from exc

    # --- summary --------------------------------------------------------------------------

    def generate_summary(self, user_id: str, data: SummaryInput) -> SummaryResult:
        """Summarise a bookmark in two or three sentences."""
        self._ensure_allowed(user_id)
        if not (data.title or data.description or data.content):
            return SummaryResult(summary="", tokens_used=0)

        def _call() -> SummaryResult:
            result = self._client.create_chat_completion(
                system_prompt=SUMMARY_SYSTEM_PROMPT,
                user_message=create_summary_prompt(
                    data.title, data.url, data.description, data.content,
                ),
                model=PRIMARY_MODEL,
                max_tokens=200,
                temperature=0.3,
            )
            return SummaryResult(
                summary=result.content.strip(), tokens_used=result.usage.total_tokens,
            )

        return self._guard("SUMMARY_FAILED", "generate summary", _call)

    # --- tags -----------------------------------------------------------------------------

    def suggest_tags(self, user_id: str, data: TagsInput) -> TagSuggestionsResult:
        """Suggest up to five lowercase tags for a bookmark."""
        self._ensure_allowed(user_id)

        def _call() -> TagSuggestionsResult:
            result = self._client.create_chat_completion(
                system_prompt=TAGS_SYSTEM_PROMPT,
                user_message=create_tags_prompt(
                    data.title, data.url, data.description, data.existing_tags,
                ),
                model=FAST_MODEL,
                max_tokens=150,
                temperature=0.4,
                response_format="json",
            )
            tokens = result.usage.total_tokens
            parsed = _validate_payload(result.content, TagsPayloadModel)
            if parsed is None:
                return TagSuggestionsResult(
                    tags=self._tags_from_text(result.content), tokens_used=tokens,
                )
            return TagSuggestionsResult(
                tags=parsed.tags[:MAX_SUGGESTED_TAGS],
                tokens_used=tokens,
                reasoning=parsed.reasoning,
            )

        return self._guard("TAGS_FAILED", "suggest tags", _call)

    @staticmethod
    def _tags_from_text(content: str) -> list[str]:
        """Fallback when the model ignored the JSON format: split plain text."""
        candidates = (part.strip().lower() for part in _TAG_SPLIT.split(content))
        tags = [tag for tag in candidates if 0 < len(tag) <= MAX_TAG_LENGTH]
        return tags[:MAX_SUGGESTED_TAGS]

    # --- category -------------------------------------------------------------------------

    def suggest_category(self, user_id: str, data: CategoryInput) -> CategorySuggestionResult:
        """Pick one of the user's categories for a bookmark."""
        self._ensure_allowed(user_id)
        categories = list(data.categories)
        if not categories:
            return CategorySuggestionResult(
                category=FALLBACK_CATEGORY, confidence=0.0, tokens_used=0,
            )

        def _call() -> CategorySuggestionResult:
            result = self._client.create_chat_completion(
                system_prompt=CATEGORY_SYSTEM_PROMPT,
                user_message=create_category_prompt(
                    data.title, data.url, data.description, categories,
                ),
                model=FAST_MODEL,
                max_tokens=150,
                temperature=0.2,
                response_format="json",
            )
            tokens = result.usage.total_tokens
            parsed = _validate_payload(result.content, CategoryPayloadModel)
            if parsed is None or not parsed.category:
                return CategorySuggestionResult(
                    category=categories[0],
                    confidence=FALLBACK_CATEGORY_CONFIDENCE,
                    tokens_used=tokens,
                )
            wanted = parsed.category.lower()
            matched = next((c for c in categories if c.lower() == wanted), categories[0])
            return CategorySuggestionResult(
                category=matched,
                confidence=_clamp(parsed.confidence),
                tokens_used=tokens,
                reasoning=parsed.reasoning,
            )

        return self._guard("CATEGORY_FAILED", "suggest category", _call)

    # --- semantic search ------------------------------------------------------------------

    def semantic_search(
        self, user_id: str, query: str, bookmarks: Sequence[SearchBookmark],
    ) -> SemanticSearchResult:
        """Rank up to twenty bookmarks by relevance to ``query``."""
        self._ensure_allowed(user_id)
        if not bookmarks:
            return SemanticSearchResult(results=[], tokens_used=0)
        candidates = list(bookmarks[:MAX_SEARCH_BOOKMARKS])
        known_ids = {b.id for b in candidates}

        def _call() -> SemanticSearchResult:
            result = self._client.create_chat_completion(
                system_prompt=SEMANTIC_SEARCH_SYSTEM_PROMPT,
                user_message=create_semantic_search_prompt(query, candidates),
                model=PRIMARY_MODEL,
                max_tokens=500,
                temperature=0.2,
                response_format="json",
            )
            tokens = result.usage.total_tokens
            raw = parse_json_response(result.content)
            if not isinstance(raw, dict) or not isinstance(raw.get("results"), list):
                return SemanticSearchResult(results=[], tokens_used=tokens)
            hits: list[SearchHit] = []
            for item in raw["results"]:
                try:
                    hit = SearchHitPayloadModel.model_validate(item)
                except ValidationError:
                    LOGGER.debug("Skipping malformed search hit %r", item)
                    continue
                if hit.id in known_ids and hit.score > MIN_SEARCH_SCORE:
                    hits.append(SearchHit(id=hit.id, score=_clamp(hit.score), reason=hit.reason))
            hits.sort(key=lambda h: h.score, reverse=True)
            interpretation = raw.get("interpretation")
            return SemanticSearchResult(
                results=hits,
                tokens_used=tokens,
                interpretation=interpretation if isinstance(interpretation, str) else None,
            )

        return self._guard("SEARCH_FAILED", "perform semantic search", _call)

    # --- combined -------------------------------------------------------------------------

    def process_bookmark(self, user_id: str, data: ProcessInput) -> ProcessResult:
        """Run summary, tags and category one after another.

        Each step fails independently: errors are logged and the step is
        skipped, the rest still run.
        """
        outcome = ProcessResult(tokens_used=0)

        try:
            summary = self.generate_summary(
                user_id,
                SummaryInput(data.title, data.url, data.description, data.content),
            )
        except AIError as exc:
            LOGGER.error("Summary generation failed for %s: %s", data.url, exc)
        else:
            outcome.summary = summary.summary or None
            outcome.tokens_used += summary.tokens_used

        try:
            tags = self.suggest_tags(
                user_id, TagsInput(data.title, data.url, data.description, data.existing_tags),
            )
        except AIError as exc:
            LOGGER.error("Tag suggestion failed for %s: %s", data.url, exc)
        else:
            outcome.suggested_tags = tags.tags or None
            outcome.tokens_used += tags.tokens_used

        if data.categories:
            try:
                category = self.suggest_category(
                    user_id,
                    CategoryInput(data.title, data.url, data.description, data.categories),
                )
            except AIError as exc:
                LOGGER.error("Category suggestion failed for %s: %s", data.url, exc)
            else:
                if category.confidence > PROCESS_CATEGORY_THRESHOLD:
                    outcome.suggested_category = SuggestedCategory(
                        name=category.category, confidence=category.confidence,
                    )
                outcome.tokens_used += category.tokens_used

        return outcome
