"""Bookmark lookup used by the suggestion endpoints, backed by a JSON library file."""

from __future__ import annotations

import json
import logging
import threading
from typing import TYPE_CHECKING, Protocol

from .models import BookmarkLibraryModel, BookmarkRecord

if TYPE_CHECKING:  # pragma: no cover
    from collections.abc import Iterable
    from pathlib import Path

LOGGER = logging.getLogger(__name__)


class BookmarkStore(Protocol):
    """What the AI layer needs from bookmark persistence."""

    def get_bookmark(self, bookmark_id: str) -> BookmarkRecord | None: ...

    def list_bookmarks(self, user_id: str) -> list[BookmarkRecord]: ...

    def list_tag_names(self, user_id: str) -> list[str]: ...

    def list_category_names(self, user_id: str) -> list[str]: ...

    def update_summary(self, bookmark_id: str, summary: str | None) -> None: ...


class InMemoryBookmarkStore:
    """Dictionary-backed store; tags and categories are kept per user."""

    def __init__(
        self,
        bookmarks: Iterable[BookmarkRecord] = (),
        tags: dict[str, list[str]] | None = None,
        categories: dict[str, list[str]] | None = None,
    ) -> None:
        """Initialise the store from already-loaded records."""
        self._bookmarks: dict[str, BookmarkRecord] = {b.id: b for b in bookmarks}
        self._tags = {user: list(names) for user, names in (tags or {}).items()}
        self._categories = {user: list(names) for user, names in (categories or {}).items()}
        self._lock = threading.Lock()

    def get_bookmark(self, bookmark_id: str) -> BookmarkRecord | None:
        return self._bookmarks.get(bookmark_id)

    def list_bookmarks(self, user_id: str) -> list[BookmarkRecord]:
        return [b for b in self._bookmarks.values() if b.user_id == user_id]

    def list_tag_names(self, user_id: str) -> list[str]:
        return list(self._tags.get(user_id, []))

    def list_category_names(self, user_id: str) -> list[str]:
        return list(self._categories.get(user_id, []))

    def update_summary(self, bookmark_id: str, summary: str | None) -> None:
        with self._lock:
            record = self._bookmarks.get(bookmark_id)
            if record is None:
                msg = f"Unknown bookmark id: {bookmark_id}"
                raise KeyError(msg)
            record.ai_summary = summary

    def to_model(self) -> BookmarkLibraryModel:
        return BookmarkLibraryModel(
            bookmarks=[record.to_model() for record in self._bookmarks.values()],
            tags=self._tags,
            categories=self._categories,
        )


def load_library(path: Path) -> InMemoryBookmarkStore:
    """Load a library file; malformed content raises ``ValueError``."""
    try:
        model = BookmarkLibraryModel.model_validate_json(path.read_text(encoding="utf-8"))
    except ValueError as exc:
        msg = f"Invalid bookmark library file {path}: {exc}"
        raise ValueError(msg) from exc
    store = InMemoryBookmarkStore(
        (BookmarkRecord.from_model(entry) for entry in model.bookmarks),
        tags=model.tags,
        categories=model.categories,
    )
    LOGGER.info("Loaded %d bookmarks from %s", len(model.bookmarks), path)
    return store


def write_library(store: InMemoryBookmarkStore, path: Path) -> None:
    """Write the store back to a library file."""
    payload = store.to_model().model_dump(mode="json")
    path.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")
    LOGGER.info("Wrote %d bookmarks to %s", len(payload["bookmarks"]), path)
