"""spec-workflow - task tracking for spec-driven development documents."""

from .models import (
    COMPLETED,
    IN_PROGRESS,
    PENDING,
    PromptSection,
    Task,
    TaskParseResult,
    TaskSummary,
)
from .task_parser import (
    find_next_pending_task,
    get_task_by_id,
    parse_structured_prompt,
    parse_task_progress,
    parse_tasks_from_markdown,
    update_task_status,
)

__all__ = [
    "COMPLETED",
    "IN_PROGRESS",
    "PENDING",
    "PromptSection",
    "Task",
    "TaskParseResult",
    "TaskSummary",
    "find_next_pending_task",
    "get_task_by_id",
    "parse_structured_prompt",
    "parse_task_progress",
    "parse_tasks_from_markdown",
    "update_task_status",
]
