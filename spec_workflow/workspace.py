"""Workspace management for spec-workflow documents.

This module is the document store for the task parser: it locates spec
directories under ``.spec-workflow/specs/``, reads ``tasks.md`` files,
writes status transitions back atomically and summarises spec progress.
"""

from __future__ import annotations

import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from .models import COMPLETED, IN_PROGRESS, TASK_STATUSES, SpecPhase, TaskParseResult
from .spec_workflow_logging import (
    log_error_with_context,
    log_operation,
    log_performance,
    log_task_status_update,
    log_tasks_parsed,
    observability_hooks,
)
from .task_parser import (
    find_next_pending_task,
    get_task_by_id,
    parse_task_progress,
    parse_tasks_from_markdown,
    update_task_status,
)

logger = logging.getLogger("spec_workflow.workspace")

SPEC_DOCUMENTS = ("requirements.md", "design.md", "tasks.md")


def _mtime(path: Path) -> str:
    return datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc).isoformat()


class Workspace:
    """Manage spec-workflow artifacts within a project."""

    WORKFLOW_DIR_ENV = "SPEC_WORKFLOW_DIR"
    DEFAULT_WORKFLOW_DIR = ".spec-workflow"

    def __init__(self, root: Path | str):
        """Initialize workspace with given project root."""
        try:
            self.root = Path(root).resolve()
            workflow_dir = os.getenv(self.WORKFLOW_DIR_ENV) or self.DEFAULT_WORKFLOW_DIR

            self.base_dir = self.root / workflow_dir
            self.specs_dir = self.base_dir / "specs"

            try:
                self.specs_dir.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                logger.error(f"Failed to create workspace directories: {e}")
                raise RuntimeError(f"Could not initialize workspace at {self.root}: {e}") from e

            logger.debug(f"Workspace initialized at {self.root}")
            observability_hooks.log_workflow_event(
                "workspace_initialized",
                root=str(self.root)
            )

        except Exception as e:
            log_error_with_context(e, {"operation": "workspace_init", "root": str(root)})
            raise

    # ------------------------------------------------------------------
    # Spec helpers
    # ------------------------------------------------------------------

    def spec_dir(self, spec_name: str) -> Path:
        """Get the directory for a spec, rejecting names that escape specs/."""
        if not spec_name or not spec_name.strip():
            raise ValueError("Spec name cannot be empty")
        if "/" in spec_name or "\\" in spec_name or spec_name in {".", ".."}:
            raise ValueError(f"Invalid spec name '{spec_name}'")
        return self.specs_dir / spec_name

    def tasks_path(self, spec_name: str) -> Path:
        """Get the tasks file path for a spec."""
        return self.spec_dir(spec_name) / "tasks.md"

    def list_specs(self) -> List[Dict[str, Any]]:
        """List all specs in the workspace with the documents they have."""
        specs: List[Dict[str, Any]] = []
        for path in sorted(p for p in self.specs_dir.iterdir() if p.is_dir()):
            entry: Dict[str, Any] = {"name": path.name}
            for document in SPEC_DOCUMENTS:
                doc_path = path / document
                entry[f"{document[:-3]}_path"] = str(doc_path) if doc_path.exists() else None
            specs.append(entry)
        return specs

    # ------------------------------------------------------------------
    # Task reading
    # ------------------------------------------------------------------

    def read_tasks_text(self, spec_name: str) -> str:
        """Read tasks.md exactly as stored, line endings included."""
        path = self.tasks_path(spec_name)
        if not path.exists():
            raise FileNotFoundError(
                f"No tasks.md found for spec '{spec_name}'. Create tasks.md before reading tasks."
            )
        with path.open("r", encoding="utf-8", newline="") as handle:
            return handle.read()

    def read_tasks(self, spec_name: str) -> TaskParseResult:
        """Parse tasks.md for a spec."""
        result = parse_tasks_from_markdown(self.read_tasks_text(spec_name))
        log_tasks_parsed(spec_name, result.summary.total, result.in_progress_task_id)
        return result

    def list_tasks(self, spec_name: str) -> List[Dict[str, Any]]:
        """List all tasks for a spec."""
        return [task.to_dict() for task in self.read_tasks(spec_name).tasks]

    def get_task(self, spec_name: str, task_id: str) -> Optional[Dict[str, Any]]:
        """Get one task by id, or None."""
        task = get_task_by_id(self.read_tasks(spec_name).tasks, task_id)
        return task.to_dict() if task else None

    def next_task(self, spec_name: str) -> Optional[Dict[str, Any]]:
        """Get the next pending, non-header task for a spec."""
        task = find_next_pending_task(self.read_tasks(spec_name).tasks)
        return task.to_dict() if task else None

    def task_progress(self, spec_name: str) -> Dict[str, Any]:
        """Progress view of a spec's tasks, as the dashboard renders it."""
        result = self.read_tasks(spec_name)
        summary = result.summary
        return {
            "spec_name": spec_name,
            "total": summary.total,
            "completed": summary.completed,
            "in_progress": result.in_progress_task_id,
            "progress": summary.get_completion_rate(),
            "summary": summary.to_dict(),
            "task_list": [task.to_dict() for task in result.tasks],
            "last_modified": _mtime(self.tasks_path(spec_name)),
        }

    # ------------------------------------------------------------------
    # Task status updates
    # ------------------------------------------------------------------

    @log_performance("update_task_status")
    def update_task_status(self, spec_name: str, task_id: str, status: str) -> Dict[str, Any]:
        """Set a task's checkbox and persist tasks.md.

        Failures are logged by ``log_operation`` and re-raised; callers add
        their own context when they report them.
        """
        with log_operation("update_task_status", spec_name=spec_name, task_id=task_id, new_status=status):
            if not task_id or not task_id.strip():
                raise ValueError("Task ID cannot be empty")
            if status not in TASK_STATUSES:
                raise ValueError(
                    f"Invalid status '{status}'. Must be pending, in-progress, or completed"
                )

            content = self.read_tasks_text(spec_name)
            result = parse_tasks_from_markdown(content)
            task = get_task_by_id(result.tasks, task_id)
            if task is None:
                raise ValueError(f"Task '{task_id}' not found in spec '{spec_name}'")

            if task.status == status:
                return {
                    "success": True,
                    "message": f"Task {task_id} already has status {status}",
                    "task": task.to_dict(),
                    "tasks_path": str(self.tasks_path(spec_name)),
                }

            updated = update_task_status(content, task_id, status)
            if updated == content:
                raise RuntimeError(f"Failed to update task {task_id} in markdown content")

            tasks_path = self.tasks_path(spec_name)
            self._write_atomic(tasks_path, updated)

            old_status = task.status
            task.status = status
            log_task_status_update(spec_name, task_id, old_status, status)
            logger.info(f"Updated task '{task_id}' in spec '{spec_name}' to {status}")

            return {
                "success": True,
                "message": f"Task {task_id} status updated to {status}",
                "task": task.to_dict(),
                "tasks_path": str(tasks_path),
            }

    def _write_atomic(self, path: Path, content: str) -> None:
        """Write via a temp file in the same directory, then rename over the target."""
        fd, temp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8", newline="") as handle:
                handle.write(content)
            os.replace(temp_name, path)
        except BaseException:
            if os.path.exists(temp_name):
                os.unlink(temp_name)
            raise

    # ------------------------------------------------------------------
    # Spec status
    # ------------------------------------------------------------------

    def spec_status(self, spec_name: str) -> Dict[str, Any]:
        """Summarise phases, task progress and next steps for a spec."""
        spec_dir = self.spec_dir(spec_name)
        if not spec_dir.is_dir():
            raise FileNotFoundError(f"Specification '{spec_name}' not found")

        documents = {name[:-3]: spec_dir / name for name in SPEC_DOCUMENTS}
        exists = {name: path.exists() for name, path in documents.items()}

        progress: Optional[Dict[str, int]] = None
        if exists["tasks"]:
            progress = parse_task_progress(self.read_tasks_text(spec_name))

        if not exists["requirements"]:
            current_phase, overall_status = "requirements", "requirements-needed"
        elif not exists["design"]:
            current_phase, overall_status = "design", "design-needed"
        elif not exists["tasks"]:
            current_phase, overall_status = "tasks", "tasks-needed"
        elif progress and progress["pending"] > 0:
            current_phase, overall_status = "implementation", "implementing"
        elif progress and progress["total"] > 0 and progress["completed"] == progress["total"]:
            current_phase, overall_status = "completed", "completed"
        else:
            current_phase, overall_status = "implementation", "ready-for-implementation"

        phases = [
            SpecPhase(
                name=name.capitalize(),
                status="created" if exists[name] else "missing",
                last_modified=_mtime(documents[name]) if exists[name] else None,
            )
            for name in ("requirements", "design", "tasks")
        ]
        phases.append(
            SpecPhase(
                name="Implementation",
                status="in-progress" if progress and progress["completed"] > 0 else "not-started",
                progress=progress,
            )
        )

        return {
            "name": spec_name,
            "current_phase": current_phase,
            "overall_status": overall_status,
            "last_modified": _mtime(spec_dir),
            "phases": [phase.to_dict() for phase in phases],
            "task_progress": progress or {"total": 0, "completed": 0, "pending": 0},
            "next_steps": self._next_steps(spec_name, current_phase, progress),
        }

    def _next_steps(self, spec_name: str, current_phase: str, progress: Optional[Dict[str, int]]) -> List[str]:
        """Suggested actions for the phase a spec is in."""
        workflow_dir = self.base_dir.name
        spec_path = f"{workflow_dir}/specs/{spec_name}"
        if current_phase in {"requirements", "design", "tasks"}:
            return [
                f"Read template: {workflow_dir}/templates/{current_phase}-template-v*.md",
                f"Create: {spec_path}/{current_phase}.md",
                "Request approval",
            ]
        if current_phase == "implementation":
            if progress and progress["pending"] > 0:
                return [
                    f"Read tasks: {spec_path}/tasks.md",
                    f"Mark the task you start {IN_PROGRESS} ([-])",
                    "Implement the task code",
                    f"Mark the task {COMPLETED} ([x]) when done",
                ]
            return [
                f"Read tasks: {spec_path}/tasks.md",
                "Begin implementation by marking first task [-]",
            ]
        return ["All tasks completed (marked [x])", "Run tests"]
