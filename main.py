"""CLI entry point for the bookmark AI assistant.

Loads a JSON bookmark library, routes AI work through the shared task queue
and prints results as JSON. Modes: per-bookmark tag/category suggestions,
summary regeneration, batch summarisation, semantic search and queue status.
"""

from __future__ import annotations

# Standard library imports (alphabetical within groups)
import argparse
import json
import logging
import os
from dataclasses import asdict
from pathlib import Path
from typing import TYPE_CHECKING

# Third-party imports
from dotenv import load_dotenv

# Internal imports
from bookmark_ai.client import AIClient
from bookmark_ai.config import QueueConfig
from bookmark_ai.errors import ApiError
from bookmark_ai.metadata import enrich_bookmarks
from bookmark_ai.queue import AITaskQueue, UserRateLimiter
from bookmark_ai.services import AISuggestionService
from bookmark_ai.store import load_library, write_library
from bookmark_ai.suggestions import SuggestionHandler

if TYPE_CHECKING:  # pragma: no cover
    from bookmark_ai.store import InMemoryBookmarkStore

MODES = ("suggest", "summary", "process", "search", "status")

STAGES: dict[int, str] = {
    1: "Load bookmark library",
    2: "Enrich with page metadata",
    3: "AI processing",
    4: "Persist library",
}


def configure_logging(*, verbose: bool) -> None:
    """Configure root logging (debug when verbose)."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )


def log_stage(stage_number: int, message: str, *args: object) -> None:
    """Log a message prefixed with a stage label."""
    stage_label = STAGES.get(stage_number, f"Stage {stage_number}")
    logger = logging.getLogger("bookmark_ai")
    logger.info("[%s] %s", stage_label, message % args if args else message)


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="AI suggestions for a bookmark library")
    parser.add_argument(
        "--input",
        help=(
            "Path to the bookmark library JSON file. If omitted, the environment variable"
            " BOOKMARKS_LIBRARY_FILE is used."
        ),
    )
    parser.add_argument(
        "--user",
        default=os.getenv("BOOKMARKS_USER_ID"),
        help="User id whose bookmarks are processed (default: BOOKMARKS_USER_ID)",
    )
    parser.add_argument("--mode", choices=MODES, default="suggest", help="Operation to run")
    parser.add_argument("--bookmark-id", help="Bookmark to act on (suggest/summary modes)")
    parser.add_argument("--query", help="Search query (search mode)")
    parser.add_argument(
        "--output",
        help="Where to write the updated library (default: overwrite --input)",
    )
    parser.add_argument(
        "--enrich",
        action="store_true",
        help="Fetch page metadata before summarising",
    )
    parser.add_argument(
        "--no-rate-limit",
        action="store_true",
        help="Disable the per-user AI rate limit",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    args = parser.parse_args()
    if args.mode in {"suggest", "summary"} and not args.bookmark_id:
        parser.error(f"--bookmark-id is required for mode={args.mode}")
    if args.mode == "search" and not args.query:
        parser.error("--query is required for mode=search")
    if args.mode != "status" and not args.user:
        parser.error("--user (or BOOKMARKS_USER_ID) is required")
    return args


def _resolve_input(path_arg: str | None) -> Path:
    resolved = path_arg or os.getenv("BOOKMARKS_LIBRARY_FILE")
    if not resolved:
        msg = "No input file provided. Supply --input or set BOOKMARKS_LIBRARY_FILE in env."
        raise SystemExit(msg)
    path = Path(resolved)
    if not path.exists():
        msg = f"Bookmark library not found: {path}"
        raise FileNotFoundError(msg)
    return path


def build_handler(
    store: InMemoryBookmarkStore,
    config: QueueConfig,
    *,
    rate_limited: bool = True,
) -> SuggestionHandler:
    """Assemble queue, limiter, client and service around ``store``."""
    queue = AITaskQueue(config)
    limiter = UserRateLimiter.from_config(config, enabled=rate_limited)
    client = AIClient(timeout=config.request_timeout)
    service = AISuggestionService(client, limiter)
    return SuggestionHandler(store, service, queue)


def _emit(payload: object) -> None:
    print(json.dumps(payload, indent=2, ensure_ascii=False))  # noqa: T201


def _run_mode(args: argparse.Namespace, handler: SuggestionHandler) -> bool:
    """Execute the requested mode; returns True when the library changed."""
    if args.mode == "suggest":
        _emit(handler.suggest(args.user, args.bookmark_id).to_dict())
        return False
    if args.mode == "summary":
        _emit(handler.regenerate_summary(args.user, args.bookmark_id).to_dict())
        return True
    if args.mode == "search":
        _emit(asdict(handler.search(args.user, args.query)))
        return False
    report = handler.process_library(args.user)
    _emit(asdict(report))
    return report.processed > 0


def main() -> None:
    """Entry point for the bookmark AI CLI."""
    load_dotenv()
    args = _parse_args()
    configure_logging(verbose=args.verbose)
    config = QueueConfig.from_env()

    input_path = _resolve_input(args.input)
    log_stage(1, "Loading bookmarks from %s", input_path)
    store = load_library(input_path)
    handler = build_handler(store, config, rate_limited=not args.no_rate_limit)

    if args.mode == "status":
        _emit(asdict(handler.runner.queue.get_queue_status()))
        return

    if args.enrich:
        targets = store.list_bookmarks(args.user)
        if args.bookmark_id:
            targets = [b for b in targets if b.id == args.bookmark_id]
        log_stage(2, "Fetching metadata for %d bookmarks", len(targets))
        enrich_bookmarks(targets)

    log_stage(3, "Running %s", args.mode)
    try:
        changed = _run_mode(args, handler)
    except ApiError as exc:
        _emit(exc.to_response())
        raise SystemExit(1) from exc

    if changed:
        output = Path(args.output) if args.output else input_path
        log_stage(4, "Writing updated library to %s", output)
        write_library(store, output)


if __name__ == "__main__":
    main()
