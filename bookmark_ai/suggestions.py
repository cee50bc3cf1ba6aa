"""AI suggestion request flow: ownership checks, queueing and partial success.

These are the bodies of the ``POST /bookmarks/{id}/ai/suggestions`` and
``POST /bookmarks/{id}/ai/summary`` endpoints, kept free of any web framework
so that a thin route can wrap them.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from .errors import BadRequestError, ForbiddenError, NotFoundError
from .models import (
    AITaskType,
    CategoryInput,
    SearchBookmark,
    SuggestedCategory,
    SummaryInput,
    TagsInput,
    TaskPriority,
)
from .worker import TaskRunner

if TYPE_CHECKING:  # pragma: no cover
    from .models import (
        AITask,
        AITaskResult,
        BookmarkRecord,
        CategorySuggestionResult,
        SemanticSearchResult,
        SummaryResult,
        TagSuggestionsResult,
    )
    from .queue import AITaskQueue
    from .services import AISuggestionService
    from .store import BookmarkStore

LOGGER = logging.getLogger(__name__)

# A suggested category is only surfaced above this confidence.
SUGGESTION_CATEGORY_THRESHOLD = 0.4


@dataclass(slots=True)
class SuggestionResponse:
    bookmark_id: str
    tokens_used: int
    tags: list[str] | None = None
    category: SuggestedCategory | None = None

    def to_dict(self) -> dict[str, object]:
        suggestions: dict[str, object] = {}
        if self.tags is not None:
            suggestions["tags"] = list(self.tags)
        if self.category is not None:
            suggestions["category"] = {
                "name": self.category.name,
                "confidence": self.category.confidence,
            }
        return {
            "bookmark_id": self.bookmark_id,
            "suggestions": suggestions,
            "tokens_used": self.tokens_used,
        }


@dataclass(slots=True)
class SummaryResponse:
    bookmark_id: str
    summary: str
    tokens_used: int

    def to_dict(self) -> dict[str, object]:
        return {
            "bookmark_id": self.bookmark_id,
            "summary": self.summary,
            "tokens_used": self.tokens_used,
        }


@dataclass(slots=True)
class SearchRequest:
    query: str
    bookmarks: list[SearchBookmark]


@dataclass(slots=True)
class BatchReport:
    processed: int = 0
    failed: int = 0
    tokens_used: int = 0


class SuggestionHandler:
    """Turns user requests into queued AI tasks and collects their results."""

    def __init__(
        self,
        store: BookmarkStore,
        service: AISuggestionService,
        queue: AITaskQueue,
    ) -> None:
        """Wire the handler to its store, suggestion service and shared queue."""
        self._store = store
        self._service = service
        self._runner = TaskRunner(
            queue,
            {
                AITaskType.SUMMARY: self._run_summary,
                AITaskType.TAGS: self._run_tags,
                AITaskType.CATEGORY: self._run_category,
                AITaskType.SEARCH: self._run_search,
            },
        )

    @property
    def runner(self) -> TaskRunner:
        return self._runner

    # --- task handlers --------------------------------------------------------------------

    def _run_summary(self, task: AITask) -> SummaryResult:
        return self._service.generate_summary(task.user_id, task.data)

    def _run_tags(self, task: AITask) -> TagSuggestionsResult:
        return self._service.suggest_tags(task.user_id, task.data)

    def _run_category(self, task: AITask) -> CategorySuggestionResult:
        return self._service.suggest_category(task.user_id, task.data)

    def _run_search(self, task: AITask) -> SemanticSearchResult:
        request: SearchRequest = task.data
        return self._service.semantic_search(task.user_id, request.query, request.bookmarks)

    # --- endpoints ------------------------------------------------------------------------

    def suggest(self, user_id: str, bookmark_id: str) -> SuggestionResponse:
        """Suggest tags and a category for one of the user's bookmarks.

        Tags and category are requested independently: a failure in one is
        logged and the other is still returned. A provider rate limit in
        either aborts the request with ``BadRequestError``.
        """
        bookmark = self._authorise(user_id, bookmark_id, action="access")
        existing_tags = self._store.list_tag_names(user_id)
        categories = self._store.list_category_names(user_id)
        response = SuggestionResponse(bookmark_id=bookmark_id, tokens_used=0)

        tags_result = self._run_one(
            user_id,
            AITaskType.TAGS,
            TagsInput(bookmark.title, bookmark.url, bookmark.description, existing_tags),
        )
        if tags_result.success:
            response.tags = tags_result.result.tags
            response.tokens_used += tags_result.result.tokens_used
        else:
            self._raise_if_rate_limited(tags_result)
            LOGGER.error("Tag suggestion failed for bookmark %s: %s", bookmark_id, tags_result.error)

        if categories:
            category_result = self._run_one(
                user_id,
                AITaskType.CATEGORY,
                CategoryInput(bookmark.title, bookmark.url, bookmark.description, categories),
            )
            if category_result.success:
                suggestion = category_result.result
                if suggestion.confidence > SUGGESTION_CATEGORY_THRESHOLD:
                    response.category = SuggestedCategory(
                        name=suggestion.category, confidence=suggestion.confidence,
                    )
                response.tokens_used += suggestion.tokens_used
            else:
                self._raise_if_rate_limited(category_result)
                LOGGER.error(
                    "Category suggestion failed for bookmark %s: %s",
                    bookmark_id,
                    category_result.error,
                )

        return response

    def regenerate_summary(self, user_id: str, bookmark_id: str) -> SummaryResponse:
        """Generate a fresh summary and store it on the bookmark."""
        bookmark = self._authorise(user_id, bookmark_id, action="modify")
        result = self._run_one(
            user_id,
            AITaskType.SUMMARY,
            SummaryInput(bookmark.title, bookmark.url, bookmark.description, bookmark.content),
        )
        if not result.success:
            self._raise_if_rate_limited(result)
            LOGGER.error("Summary generation failed for bookmark %s: %s", bookmark_id, result.error)
            msg = f"Failed to generate summary: {result.error}"
            raise BadRequestError(msg)
        summary: SummaryResult = result.result
        self._store.update_summary(bookmark_id, summary.summary or None)
        return SummaryResponse(
            bookmark_id=bookmark_id, summary=summary.summary, tokens_used=summary.tokens_used,
        )

    def search(self, user_id: str, query: str) -> SemanticSearchResult:
        """Semantic search over the user's bookmarks."""
        if not query.strip():
            msg = "Search query is required"
            raise BadRequestError(msg)
        bookmarks = [
            SearchBookmark(id=b.id, title=b.title, url=b.url, description=b.description)
            for b in self._store.list_bookmarks(user_id)
        ]
        result = self._run_one(user_id, AITaskType.SEARCH, SearchRequest(query, bookmarks))
        if not result.success:
            self._raise_if_rate_limited(result)
            msg = f"Semantic search failed: {result.error}"
            raise BadRequestError(msg)
        return result.result

    def process_library(self, user_id: str) -> BatchReport:
        """Summarise every bookmark of the user that has no summary yet.

        Runs as low-priority batch work; whatever succeeds is written back.
        """
        pending: dict[str, BookmarkRecord] = {}
        for bookmark in self._store.list_bookmarks(user_id):
            if bookmark.ai_summary:
                continue
            task_id = self._runner.submit(
                user_id,
                AITaskType.SUMMARY,
                SummaryInput(bookmark.title, bookmark.url, bookmark.description, bookmark.content),
                TaskPriority.LOW,
            )
            pending[task_id] = bookmark
        LOGGER.info("Queued %d bookmarks for batch summarisation", len(pending))

        self._runner.drain()
        report = BatchReport()
        for task_id, bookmark in pending.items():
            result = self._runner.pop_result(task_id)
            if result is None:
                self._runner.abandon(task_id)
            if result is None or not result.success:
                report.failed += 1
                continue
            summary: SummaryResult = result.result
            self._store.update_summary(bookmark.id, summary.summary or None)
            report.processed += 1
            report.tokens_used += summary.tokens_used
        return report

    # --- helpers --------------------------------------------------------------------------

    def _authorise(self, user_id: str, bookmark_id: str, *, action: str) -> BookmarkRecord:
        if not bookmark_id:
            msg = "Bookmark ID is required"
            raise BadRequestError(msg)
        bookmark = self._store.get_bookmark(bookmark_id)
        if bookmark is None:
            raise NotFoundError("Bookmark")
        if bookmark.user_id != user_id:
            msg = f"Not authorized to {action} this bookmark"
            raise ForbiddenError(msg)
        return bookmark

    def _run_one(self, user_id: str, task_type: AITaskType, data: object) -> AITaskResult:
        task_id = self._runner.submit(user_id, task_type, data, TaskPriority.HIGH)
        self._runner.drain(until=task_id)
        result = self._runner.pop_result(task_id)
        if result is None:
            self._runner.abandon(task_id)
            msg = "AI suggestions are busy, try again later"
            raise BadRequestError(msg)
        return result

    @staticmethod
    def _raise_if_rate_limited(result: AITaskResult) -> None:
        if result.error_code == "RATE_LIMITED":
            raise BadRequestError(result.error or "Rate limit exceeded")
