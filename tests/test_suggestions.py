"""Tests for the suggestion request flow over the shared queue."""

from __future__ import annotations

import json

import pytest

from bookmark_ai.config import QueueConfig
from bookmark_ai.errors import BadRequestError, ForbiddenError, NotFoundError
from bookmark_ai.queue import AITaskQueue, UserRateLimiter
from bookmark_ai.store import InMemoryBookmarkStore
from bookmark_ai.suggestions import SuggestionHandler
from conftest import ScriptedLLM, make_service


def _handler(
    store: InMemoryBookmarkStore,
    replies: list[str | Exception],
    limiter: UserRateLimiter | None = None,
) -> tuple[SuggestionHandler, ScriptedLLM, AITaskQueue]:
    llm = ScriptedLLM(replies)
    queue = AITaskQueue(QueueConfig(max_concurrent=2))
    return SuggestionHandler(store, make_service(llm, limiter), queue), llm, queue


def test_suggest_returns_tags_and_category(store: InMemoryBookmarkStore) -> None:
    handler, llm, queue = _handler(
        store,
        [
            json.dumps({"tags": ["python", "packaging"]}),
            json.dumps({"category": "Programming", "confidence": 0.8}),
        ],
    )
    response = handler.suggest("alice", "bm-1").to_dict()
    expected = {
        "bookmark_id": "bm-1",
        "suggestions": {
            "tags": ["python", "packaging"],
            "category": {"name": "Programming", "confidence": 0.8},
        },
        "tokens_used": 20,
    }
    if response != expected:
        msg = f"Unexpected response {response}"
        raise AssertionError(msg)
    if "python, cooking" not in llm.calls[0]["user_message"]:
        raise AssertionError("Existing tags should be offered to the model")
    status = queue.get_queue_status()
    if (status.pending, status.active) != (0, 0):
        raise AssertionError("Queue should be idle after the request")


def test_low_confidence_category_is_dropped(store: InMemoryBookmarkStore) -> None:
    handler, _llm, _queue = _handler(
        store,
        [json.dumps({"tags": ["a"]}), json.dumps({"category": "Food", "confidence": 0.4})],
    )
    response = handler.suggest("alice", "bm-1")
    if response.category is not None or response.tokens_used != 20:
        msg = f"Category at 0.4 should be dropped but tokens counted: {response}"
        raise AssertionError(msg)


def test_tag_failure_is_partial_success(store: InMemoryBookmarkStore) -> None:
    handler, _llm, _queue = _handler(
        store,
        [RuntimeError("boom"), json.dumps({"category": "Food", "confidence": 0.9})],
    )
    response = handler.suggest("alice", "bm-1")
    if response.tags is not None or response.category is None:
        msg = f"Tags should be missing and category present: {response}"
        raise AssertionError(msg)
    if "tags" in response.to_dict()["suggestions"]:  # type: ignore[operator]
        raise AssertionError("Failed tags should be omitted from the payload")


def test_rate_limit_short_circuits(store: InMemoryBookmarkStore) -> None:
    limiter = UserRateLimiter(limit=1, window=60.0)
    limiter.consume("alice")
    handler, llm, _queue = _handler(store, [], limiter)
    with pytest.raises(BadRequestError, match="Rate limit exceeded"):
        handler.suggest("alice", "bm-1")
    if llm.calls:
        raise AssertionError("No LLM call should be made once rate limited")


def test_user_without_categories_skips_category(store: InMemoryBookmarkStore) -> None:
    handler, llm, _queue = _handler(store, [json.dumps({"tags": ["bob"]})])
    response = handler.suggest("bob", "bm-3")
    if response.tags != ["bob"] or len(llm.calls) != 1:
        raise AssertionError("Only the tags request should run without categories")


def test_ownership_and_lookup_errors(store: InMemoryBookmarkStore) -> None:
    handler, _llm, _queue = _handler(store, [])
    with pytest.raises(NotFoundError, match="Bookmark not found"):
        handler.suggest("alice", "missing")
    with pytest.raises(ForbiddenError) as excinfo:
        handler.suggest("alice", "bm-3")
    if excinfo.value.status_code != 403 or excinfo.value.to_response()["code"] != "FORBIDDEN":
        raise AssertionError("Foreign bookmarks should be forbidden")
    with pytest.raises(BadRequestError, match="Bookmark ID is required"):
        handler.suggest("alice", "")


def test_busy_queue_is_reported(store: InMemoryBookmarkStore) -> None:
    handler, llm, queue = _handler(
        store,
        [
            json.dumps({"tags": ["python"]}),
            json.dumps({"category": "Programming", "confidence": 0.9}),
        ],
    )
    queue.mark_task_started()
    queue.mark_task_started()
    with pytest.raises(BadRequestError, match="busy"):
        handler.suggest("alice", "bm-1")
    if queue.get_queue_status().pending != 1:
        raise AssertionError("The admitted task stays pending")
    queue.mark_task_completed()
    queue.mark_task_completed()
    response = handler.suggest("alice", "bm-1")
    if response.tags != ["python"]:
        msg = f"Unexpected tags {response.tags}"
        raise AssertionError(msg)
    if len(llm.calls) != 2:
        msg = f"The rejected request must not reach the model, saw {len(llm.calls)} calls"
        raise AssertionError(msg)
    if handler.runner.uncollected != 0:
        raise AssertionError("No result should be left behind")
    status = queue.get_queue_status()
    if (status.pending, status.active) != (0, 0):
        raise AssertionError("Queue should be idle after the follow-up request")


def test_regenerate_summary_updates_store(store: InMemoryBookmarkStore) -> None:
    handler, _llm, _queue = _handler(store, ["Fresh summary."])
    response = handler.regenerate_summary("alice", "bm-1")
    if response.summary != "Fresh summary.":
        raise AssertionError("Summary should be returned")
    bookmark = store.get_bookmark("bm-1")
    if bookmark is None or bookmark.ai_summary != "Fresh summary.":
        raise AssertionError("Summary should be stored on the bookmark")


def test_process_library_summarises_missing_only(store: InMemoryBookmarkStore) -> None:
    handler, llm, _queue = _handler(store, ["Batch summary."])
    report = handler.process_library("alice")
    if (report.processed, report.failed, report.tokens_used) != (1, 0, 10):
        msg = f"Unexpected batch report {report}"
        raise AssertionError(msg)
    if len(llm.calls) != 1:
        raise AssertionError("Already summarised bookmarks should be skipped")
    bookmark = store.get_bookmark("bm-1")
    if bookmark is None or bookmark.ai_summary != "Batch summary.":
        raise AssertionError("Batch summary should be stored")


def test_search_over_user_bookmarks(store: InMemoryBookmarkStore) -> None:
    reply = json.dumps({"results": [{"id": "bm-2", "score": 0.7}, {"id": "bm-3", "score": 0.9}]})
    handler, llm, _queue = _handler(store, [reply])
    result = handler.search("alice", "bread")
    if [hit.id for hit in result.results] != ["bm-2"]:
        raise AssertionError("Only the user's own bookmarks may be returned")
    if "bm-3" in llm.calls[0]["user_message"]:
        raise AssertionError("Other users' bookmarks must not be sent")
    with pytest.raises(BadRequestError):
        handler.search("alice", "   ")
