"""In-memory admission queue and per-user rate limiter for AI requests.

The queue separates admission from execution: ``enqueue`` always succeeds and
hands back a task id, while ``dequeue`` is the only place where the global
concurrency ceiling is consulted. Counting in-flight work is the caller's job
through ``mark_task_started`` / ``mark_task_completed``.
"""

from __future__ import annotations

import heapq
import itertools
import logging
import secrets
import string
import threading
import time
from collections import deque
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from .config import QueueConfig
from .models import AITask, AITaskType, QueueStatus, RateLimitStatus, TaskPriority

if TYPE_CHECKING:  # pragma: no cover
    from collections.abc import Callable

LOGGER = logging.getLogger(__name__)

_ID_ALPHABET = string.ascii_lowercase + string.digits
_ID_SUFFIX_LENGTH = 7


def generate_task_id() -> str:
    """Return a fresh ``task_<millis>_<random>`` identifier."""
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(_ID_SUFFIX_LENGTH))
    return f"task_{int(time.time() * 1000)}_{suffix}"


class AITaskQueue:
    """Priority-then-FIFO queue with a global concurrency gate.

    Pending tasks live in a heap keyed on ``(priority, sequence)``; the
    sequence number is assigned at enqueue so equal priorities leave in
    insertion order even when two tasks share a timestamp. All state sits
    behind one lock and no operation waits for capacity.
    """

    def __init__(self, config: QueueConfig | None = None) -> None:
        """Initialise an empty queue with ``config`` (defaults when omitted)."""
        self._config = config or QueueConfig()
        self._lock = threading.Lock()
        self._pending: list[tuple[int, int, AITask]] = []
        self._sequence = itertools.count()
        self._active = 0

    @property
    def config(self) -> QueueConfig:
        return self._config

    @property
    def max_concurrent(self) -> int:
        return self._config.max_concurrent

    def enqueue(
        self,
        user_id: str,
        task_type: AITaskType | str,
        data: Any = None,
        priority: TaskPriority | int = TaskPriority.NORMAL,
    ) -> str:
        """Admit a task unconditionally and return its id."""
        task = AITask(
            id=generate_task_id(),
            user_id=user_id,
            type=AITaskType(task_type),
            data=data,
            priority=TaskPriority(priority),
            enqueued_at=datetime.now(UTC),
        )
        with self._lock:
            heapq.heappush(self._pending, (int(task.priority), next(self._sequence), task))
            depth = len(self._pending)
        LOGGER.debug(
            "Enqueued %s task %s for user %s (priority=%s, pending=%d)",
            task.type.value,
            task.id,
            user_id,
            task.priority.name,
            depth,
        )
        return task.id

    def dequeue(self) -> AITask | None:
        """Remove and return the most urgent task, or None when empty or saturated."""
        with self._lock:
            if not self._pending:
                return None
            if self._active >= self._config.max_concurrent:
                return None
            _priority, _seq, task = heapq.heappop(self._pending)
        return task

    def mark_task_started(self) -> None:
        with self._lock:
            self._active += 1

    def mark_task_completed(self) -> None:
        """Release one concurrency slot; a no-op once the counter reaches zero."""
        with self._lock:
            self._active = max(0, self._active - 1)

    def get_queue_status(self) -> QueueStatus:
        with self._lock:
            return QueueStatus(
                pending=len(self._pending),
                active=self._active,
                max_concurrent=self._config.max_concurrent,
            )

    def clear(self) -> None:
        """Drop every pending task and reset the active counter (administrative)."""
        with self._lock:
            dropped = len(self._pending)
            self._pending.clear()
            self._active = 0
        if dropped:
            LOGGER.info("Cleared AI queue (%d pending tasks dropped)", dropped)


class UserRateLimiter:
    """Sliding-window request limiter keyed by user id.

    Each allowed ``check`` records a hit; a user is refused once
    ``limit`` hits fall inside the trailing ``window`` seconds.
    """

    def __init__(
        self,
        limit: int,
        window: float,
        *,
        enabled: bool = True,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialise the limiter.

        Args:
            limit: Requests allowed per user per window.
            window: Window length in seconds.
            enabled: When False every check is allowed (no limiting backend).
            clock: Time source returning POSIX seconds; injectable for tests.

        """
        self._limit = limit
        self._window = window
        self._enabled = enabled
        self._clock = clock
        self._hits: dict[str, deque[float]] = {}
        self._last_sweep = clock()
        self._lock = threading.Lock()
        if not enabled:
            LOGGER.warning("AI rate limiting disabled; all requests will be allowed")

    @classmethod
    def from_config(cls, config: QueueConfig, *, enabled: bool = True) -> UserRateLimiter:
        return cls(config.user_rate_limit, config.rate_limit_window, enabled=enabled)

    def check(self, user_id: str) -> RateLimitStatus:
        """Admit one request for ``user_id`` if the window has room."""
        now = self._clock()
        if not self._enabled:
            return RateLimitStatus(allowed=True, remaining=self._limit, reset_at=now + self._window)
        with self._lock:
            hits = self._prune(user_id, now)
            if len(hits) >= self._limit:
                return RateLimitStatus(
                    allowed=False, remaining=0, reset_at=hits[0] + self._window,
                )
            hits = self._record(user_id, hits, now)
            return RateLimitStatus(
                allowed=True,
                remaining=self._limit - len(hits),
                reset_at=hits[0] + self._window,
            )

    def consume(self, user_id: str) -> None:
        """Record a request without checking the limit."""
        if not self._enabled:
            return
        now = self._clock()
        with self._lock:
            self._record(user_id, self._prune(user_id, now), now)

    def reset(self, user_id: str | None = None) -> None:
        with self._lock:
            if user_id is None:
                self._hits.clear()
            else:
                self._hits.pop(user_id, None)

    @property
    def tracked_users(self) -> int:
        """Users held in memory; idle ones are swept at most once per window."""
        with self._lock:
            self._sweep(self._clock())
            return len(self._hits)

    def _record(self, user_id: str, hits: deque[float], now: float) -> deque[float]:
        hits.append(now)
        self._hits[user_id] = hits
        self._sweep(now)
        return hits

    def _prune(self, user_id: str, now: float) -> deque[float]:
        hits = self._hits.get(user_id)
        if hits is None:
            return deque()
        cutoff = now - self._window
        while hits and hits[0] <= cutoff:
            hits.popleft()
        if not hits:
            del self._hits[user_id]
        return hits

    def _sweep(self, now: float) -> None:
        # Drop users whose newest hit has left the window, at most once per window.
        if now - self._last_sweep < self._window:
            return
        self._last_sweep = now
        cutoff = now - self._window
        idle = [user for user, hits in self._hits.items() if not hits or hits[-1] <= cutoff]
        for user in idle:
            del self._hits[user]
