"""Workflow management for spec-workflow.

This module wraps the workspace for tool consumers: every operation
returns a result dictionary, and failures come back as ``error`` entries
with a suggestion and the next step to take instead of raising.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from .models import PromptSection
from .spec_workflow_logging import log_error_with_context
from .workspace import Workspace

logger = logging.getLogger("spec_workflow.workflow")

# Sections of a structured prompt shown first, in this order
GUIDE_SECTION_ORDER = ("Role", "Task", "Restrictions", "Success")


class WorkflowManager:
    """Task-tracking operations for one project root."""

    def __init__(self, root: Path | str):
        """Initialize workflow manager with workspace root."""
        self.workspace = Workspace(root)

    def _error(self, operation: str, error: Exception, suggestion: str, next_step: str, **context) -> Dict[str, Any]:
        log_error_with_context(error, {"operation": operation, **context})
        return {
            "error": f"Failed to {operation.replace('_', ' ')}: {error}",
            "suggestion": suggestion,
            "next_suggested_step": next_step,
        }

    # ------------------------------------------------------------------
    # Spec overview
    # ------------------------------------------------------------------

    def list_specs(self) -> Dict[str, Any]:
        """List specs in the project."""
        try:
            return {"specs": self.workspace.list_specs()}
        except Exception as e:
            return self._error(
                "list_specs", e,
                "Check that the project root exists and is readable",
                "list_specs",
            )

    def spec_status(self, spec_name: str) -> Dict[str, Any]:
        """Get phase and task progress for a spec."""
        try:
            status = self.workspace.spec_status(spec_name)
            return {
                "success": True,
                "message": f"Specification '{spec_name}' status: {status['overall_status']}",
                "data": status,
                "next_steps": status["next_steps"],
            }
        except Exception as e:
            return self._error(
                "get_spec_status", e,
                f"Check the spec name '{spec_name}' or use list_specs for available specs",
                "list_specs",
                spec_name=spec_name,
            )

    # ------------------------------------------------------------------
    # Task execution
    # ------------------------------------------------------------------

    def get_tasks(self, spec_name: str) -> Dict[str, Any]:
        """Get the parsed task list and progress for a spec."""
        try:
            return self.workspace.task_progress(spec_name)
        except Exception as e:
            return self._error(
                "get_tasks", e,
                f"Create tasks.md for spec '{spec_name}' first",
                "spec_status",
                spec_name=spec_name,
            )

    def get_task(self, spec_name: str, task_id: str) -> Dict[str, Any]:
        """Get one task."""
        try:
            task = self.workspace.get_task(spec_name, task_id)
            if task is None:
                raise ValueError(f"Task '{task_id}' not found in spec '{spec_name}'")
            return {"spec_name": spec_name, "task": task}
        except Exception as e:
            return self._error(
                "get_task", e,
                f"Check that task '{task_id}' exists in spec '{spec_name}'",
                "get_tasks",
                spec_name=spec_name,
                task_id=task_id,
            )

    def next_task(self, spec_name: str) -> Dict[str, Any]:
        """Get the next pending task for a spec."""
        try:
            result = self.workspace.read_tasks(spec_name)
            task = self.workspace.next_task(spec_name)
            return {
                "spec_name": spec_name,
                "task": task,
                "in_progress_task": result.in_progress_task_id,
                "remaining": result.summary.pending + result.summary.in_progress,
            }
        except Exception as e:
            return self._error(
                "get_next_task", e,
                f"Create tasks.md for spec '{spec_name}' first",
                "spec_status",
                spec_name=spec_name,
            )

    def update_task_status(self, spec_name: str, task_id: str, status: str) -> Dict[str, Any]:
        """Update a task's status in tasks.md."""
        try:
            result = self.workspace.update_task_status(spec_name, task_id, status)
            progress = self.workspace.read_tasks(spec_name)
            next_task = self.workspace.next_task(spec_name)
            return {
                "spec_name": spec_name,
                **result,
                "summary": progress.summary.to_dict(),
                "next_task": next_task,
            }
        except Exception as e:
            return self._error(
                "update_task_status", e,
                f"Check that task '{task_id}' exists in spec '{spec_name}' and status is "
                "pending, in-progress, or completed",
                "get_tasks",
                spec_name=spec_name,
                task_id=task_id,
            )

    # ------------------------------------------------------------------
    # Implementation guidance
    # ------------------------------------------------------------------

    def implementation_guide(self, spec_name: str, task_id: Optional[str] = None) -> str:
        """Render agent instructions for one task (the next pending one by default)."""
        workflow_dir = self.workspace.base_dir.name
        tasks_file = f"{workflow_dir}/specs/{spec_name}/tasks.md"
        try:
            task = (
                self.workspace.get_task(spec_name, task_id)
                if task_id
                else self.workspace.next_task(spec_name)
            )
        except FileNotFoundError:
            return f"No tasks.md found for spec '{spec_name}'. Create {tasks_file} first."
        except ValueError as e:
            logger.warning(f"implementation guide unavailable for spec '{spec_name}': {e}")
            return f"Cannot build an implementation guide: {e}. Use list_specs for available specs."

        if task is None:
            if task_id:
                return f"Task '{task_id}' not found in {tasks_file}."
            return f"All tasks in {tasks_file} are complete."

        return render_implementation_guide(spec_name, task, tasks_file)


def _ordered_sections(sections: List[Dict[str, str]]) -> List[PromptSection]:
    by_key = [PromptSection(key=s["key"], value=s["value"]) for s in sections]
    known = [s for key in GUIDE_SECTION_ORDER for s in by_key if s.key.lower() == key.lower()]
    return known + [s for s in by_key if s not in known]


def render_implementation_guide(spec_name: str, task: Dict[str, Any], tasks_file: str) -> str:
    """Build the implement-task prompt text from a serialized task."""
    task_id = task["id"]
    lines = [
        f'Implement task {task_id} for the "{spec_name}" feature: {task["description"]}',
        "",
        "**Start the task:**",
        f"- Mark task {task_id} in-progress ([-]) in {tasks_file} (use update_task_status)",
        "- Only one task should be in-progress at a time",
        "",
    ]

    if task.get("promptStructured"):
        lines.append("**Task guidance:**")
        for section in _ordered_sections(task["promptStructured"]):
            lines.append(f"- {section.key}: {section.value}")
        lines.append("")
    elif task.get("prompt"):
        lines.extend(["**Task guidance:**", task["prompt"], ""])

    if task.get("leverage"):
        lines.append(f"**Leverage:** {task['leverage']}")
    if task.get("requirements"):
        lines.append(f"**Requirements:** {', '.join(task['requirements'])}")
    if task.get("files"):
        lines.append(f"**Files:** {', '.join(task['files'])}")
    for purpose in task.get("purposes", []):
        lines.append(f"**Purpose:** {purpose}")
    if task.get("implementationDetails"):
        lines.append("**Details:**")
        lines.extend(f"- {detail}" for detail in task["implementationDetails"])

    lines.extend([
        "",
        "**Complete the task:**",
        "- Verify the success criteria are met and relevant tests pass",
        f"- Mark task {task_id} completed ([x]) in {tasks_file}",
    ])
    return "\n".join(lines)
