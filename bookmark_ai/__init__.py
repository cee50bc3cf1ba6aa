"""AI suggestion layer for a personal bookmark manager."""

from __future__ import annotations

from .client import AIClient, AIError, parse_json_response
from .config import QueueConfig
from .models import AITask, AITaskResult, AITaskType, QueueStatus, TaskPriority
from .queue import AITaskQueue, UserRateLimiter, generate_task_id
from .services import AISuggestionService
from .suggestions import SuggestionHandler
from .worker import TaskRunner

__all__ = [
    "AIClient",
    "AIError",
    "AISuggestionService",
    "AITask",
    "AITaskQueue",
    "AITaskResult",
    "AITaskType",
    "QueueConfig",
    "QueueStatus",
    "SuggestionHandler",
    "TaskPriority",
    "TaskRunner",
    "UserRateLimiter",
    "generate_task_id",
    "parse_json_response",
]
