"""Data models for spec-workflow task tracking.

This module contains the core data structures produced by the task parser
and consumed by the dashboard, IDE and agent tooling: parsed tasks, their
structured prompt sections, parse summaries and spec phase details.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple


PENDING = "pending"
IN_PROGRESS = "in-progress"
COMPLETED = "completed"

TASK_STATUSES = (PENDING, IN_PROGRESS, COMPLETED)

# Checkbox glyph <-> status, e.g. "- [-] 2.1 Build parser"
GLYPH_TO_STATUS = {" ": PENDING, "-": IN_PROGRESS, "x": COMPLETED}
STATUS_TO_GLYPH = {status: glyph for glyph, status in GLYPH_TO_STATUS.items()}


@dataclass(slots=True)
class PromptSection:
    """One ``Key: value`` section of a pipe-delimited ``_Prompt:`` field."""

    key: str
    value: str

    def to_dict(self) -> Dict[str, str]:
        """Convert to dictionary representation."""
        return {"key": self.key, "value": self.value}


@dataclass(frozen=True, slots=True)
class TaskMetadata:
    """Metadata collected from the lines between two checkbox lines."""

    requirements: Tuple[str, ...] = ()
    leverage: Tuple[str, ...] = ()
    files: Tuple[str, ...] = ()
    purposes: Tuple[str, ...] = ()
    implementation_details: Tuple[str, ...] = ()
    prompt: Optional[str] = None

    def is_empty(self) -> bool:
        """True when nothing at all was attributed to the task."""
        return not (
            self.requirements
            or self.leverage
            or self.files
            or self.purposes
            or self.implementation_details
            or self.prompt
        )


@dataclass(slots=True)
class Task:
    """Representation of a single tasks.md checklist entry."""

    task_id: str
    description: str
    status: str  # 'pending', 'in-progress', 'completed'
    line_number: int  # 0-based, for navigation only
    indent_level: float
    is_header: bool
    requirements: Optional[List[str]] = None
    leverage: Optional[str] = None
    files: Optional[List[str]] = None
    purposes: Optional[List[str]] = None
    implementation_details: Optional[List[str]] = None
    prompt: Optional[str] = None
    prompt_structured: Optional[List[PromptSection]] = None

    @property
    def completed(self) -> bool:
        return self.status == COMPLETED

    @property
    def in_progress(self) -> bool:
        return self.status == IN_PROGRESS

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the dictionary shape consumed by the dashboard.

        Optional metadata keys are omitted entirely when absent.
        """
        data: Dict[str, Any] = {
            "id": self.task_id,
            "description": self.description,
            "status": self.status,
            "lineNumber": self.line_number,
            "indentLevel": self.indent_level,
            "isHeader": self.is_header,
            "completed": self.completed,
            "inProgress": self.in_progress,
        }
        if self.requirements:
            data["requirements"] = list(self.requirements)
        if self.leverage:
            data["leverage"] = self.leverage
        if self.files:
            data["files"] = list(self.files)
        if self.purposes:
            data["purposes"] = list(self.purposes)
        if self.implementation_details:
            data["implementationDetails"] = list(self.implementation_details)
        if self.prompt:
            data["prompt"] = self.prompt
        if self.prompt_structured:
            data["promptStructured"] = [section.to_dict() for section in self.prompt_structured]
        return data


@dataclass(slots=True)
class TaskSummary:
    """Counts over a parsed task list."""

    total: int = 0
    completed: int = 0
    in_progress: int = 0
    pending: int = 0
    headers: int = 0

    @classmethod
    def from_tasks(cls, tasks: List[Task]) -> "TaskSummary":
        """Count tasks by status and header flag."""
        return cls(
            total=len(tasks),
            completed=sum(1 for task in tasks if task.status == COMPLETED),
            in_progress=sum(1 for task in tasks if task.status == IN_PROGRESS),
            pending=sum(1 for task in tasks if task.status == PENDING),
            headers=sum(1 for task in tasks if task.is_header),
        )

    def to_dict(self) -> Dict[str, int]:
        """Convert to dictionary representation."""
        return {
            "total": self.total,
            "completed": self.completed,
            "inProgress": self.in_progress,
            "pending": self.pending,
            "headers": self.headers,
        }

    def get_completion_rate(self) -> float:
        """Get task completion rate as percentage."""
        if self.total == 0:
            return 0.0
        return (self.completed / self.total) * 100


@dataclass(slots=True)
class TaskParseResult:
    """Everything extracted from one tasks.md document."""

    tasks: List[Task] = field(default_factory=list)
    in_progress_task_id: Optional[str] = None
    summary: TaskSummary = field(default_factory=TaskSummary)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "tasks": [task.to_dict() for task in self.tasks],
            "inProgressTask": self.in_progress_task_id,
            "summary": self.summary.to_dict(),
        }


@dataclass(slots=True)
class SpecPhase:
    """Status of one phase (requirements, design, tasks, implementation) of a spec."""

    name: str
    status: str  # 'missing', 'created', 'not-started', 'in-progress'
    last_modified: Optional[str] = None
    progress: Optional[Dict[str, int]] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        data: Dict[str, Any] = {"name": self.name, "status": self.status}
        if self.last_modified is not None:
            data["last_modified"] = self.last_modified
        if self.progress is not None:
            data["progress"] = dict(self.progress)
        return data
