"""Executes queued AI tasks while honouring the queue's concurrency gate."""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import TYPE_CHECKING

from .client import AIError
from .models import AITaskResult, TaskPriority

if TYPE_CHECKING:  # pragma: no cover
    from collections.abc import Callable, Mapping

    from .models import AITask, AITaskType
    from .queue import AITaskQueue

LOGGER = logging.getLogger(__name__)


class TaskRunner:
    """Consumer side of :class:`AITaskQueue`.

    Every dequeued task is bracketed by ``mark_task_started`` and
    ``mark_task_completed`` (the latter in a ``finally``), so the active
    counter always returns to its previous value. Handler failures become
    failed results and never escape the runner.

    Results are kept by id only for tasks admitted through :meth:`submit`
    and only until :meth:`pop_result` hands them over. Anything else a
    drain executes is returned from that drain and then forgotten.
    """

    def __init__(
        self,
        queue: AITaskQueue,
        handlers: Mapping[AITaskType, Callable[[AITask], object]],
    ) -> None:
        """Initialise the runner with one handler per task type."""
        self._queue = queue
        self._handlers = dict(handlers)
        self._results: dict[str, AITaskResult] = {}
        self._awaited: set[str] = set()
        self._abandoned: set[str] = set()
        self._results_lock = threading.Lock()

    @property
    def queue(self) -> AITaskQueue:
        return self._queue

    @property
    def uncollected(self) -> int:
        """Number of stored results nobody has popped yet."""
        with self._results_lock:
            return len(self._results)

    def submit(
        self,
        user_id: str,
        task_type: AITaskType | str,
        data: object = None,
        priority: TaskPriority | int = TaskPriority.NORMAL,
    ) -> str:
        """Enqueue a task whose result the caller will collect with ``pop_result``."""
        with self._results_lock:
            task_id = self._queue.enqueue(user_id, task_type, data, priority)
            self._awaited.add(task_id)
        return task_id

    def abandon(self, task_id: str) -> None:
        """Give up on a submitted task.

        A stored result is dropped; if the task has not finished yet its
        handler is skipped and its result discarded when it comes up.
        """
        with self._results_lock:
            self._awaited.discard(task_id)
            if self._results.pop(task_id, None) is None:
                self._abandoned.add(task_id)
        LOGGER.debug("Abandoned AI task %s", task_id)

    def run_next(self) -> AITaskResult | None:
        """Execute the next eligible task inline; None when nothing is eligible."""
        task = self._queue.dequeue()
        if task is None:
            return None
        self._queue.mark_task_started()
        return self._execute(task)

    def drain(self, until: str | None = None) -> list[AITaskResult]:
        """Run pending tasks on a thread pool sized to the concurrency ceiling.

        Dispatch happens from the calling thread only. When the queue reports
        no eligible task while work is in flight, the next completion frees a
        slot and dispatch resumes. With ``until`` set, dispatching stops once
        that task has a result; tasks already in flight still finish.
        """
        results: list[AITaskResult] = []
        in_flight: set[Future[AITaskResult]] = set()
        with ThreadPoolExecutor(max_workers=self._queue.max_concurrent) as executor:
            while not self._has_result(until):
                task = self._queue.dequeue()
                if task is not None:
                    self._queue.mark_task_started()
                    in_flight.add(executor.submit(self._execute, task))
                    continue
                if not in_flight:
                    break
                done, in_flight = wait(in_flight, return_when=FIRST_COMPLETED)
                results.extend(future.result() for future in done)
        results.extend(future.result() for future in in_flight)
        if results:
            status = self._queue.get_queue_status()
            LOGGER.info(
                "Drained %d AI tasks (%d failed); pending=%d active=%d",
                len(results),
                sum(1 for r in results if not r.success),
                status.pending,
                status.active,
            )
        return results

    def _has_result(self, task_id: str | None) -> bool:
        if task_id is None:
            return False
        with self._results_lock:
            return task_id in self._results

    def pop_result(self, task_id: str) -> AITaskResult | None:
        """Hand over (and forget) the stored result of ``task_id``."""
        with self._results_lock:
            self._awaited.discard(task_id)
            return self._results.pop(task_id, None)

    def _execute(self, task: AITask) -> AITaskResult:
        started = time.perf_counter()
        try:
            with self._results_lock:
                abandoned = task.id in self._abandoned
            handler = self._handlers.get(task.type)
            if abandoned:
                result = AITaskResult(
                    task_id=task.id, success=False, error="Task abandoned", error_code="ABANDONED",
                )
            elif handler is None:
                msg = f"No handler registered for task type {task.type.value!r}"
                result = AITaskResult(
                    task_id=task.id, success=False, error=msg, error_code="UNSUPPORTED_TASK",
                )
            else:
                result = self._invoke(handler, task)
        finally:
            self._queue.mark_task_completed()
        result.processing_time = time.perf_counter() - started
        with self._results_lock:
            if task.id in self._abandoned:
                self._abandoned.discard(task.id)
            elif task.id in self._awaited:
                self._results[task.id] = result
        return result

    @staticmethod
    def _invoke(handler: Callable[[AITask], object], task: AITask) -> AITaskResult:
        try:
            value = handler(task)
        except AIError as exc:
            LOGGER.warning(
                "AI %s task %s failed (%s): %s", task.type.value, task.id, exc.code, exc,
            )
            return AITaskResult(
                task_id=task.id, success=False, error=str(exc), error_code=exc.code,
            )
        except Exception as exc:  # noqa: BLE001
            LOGGER.exception("AI %s task %s raised unexpectedly", task.type.value, task.id)
            return AITaskResult(task_id=task.id, success=False, error=str(exc))
        return AITaskResult(task_id=task.id, success=True, result=value)
