"""MCP server exposing spec-workflow task tracking tools."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from mcp.server.fastmcp import FastMCP

from spec_workflow.spec_workflow_logging import setup_logging
from spec_workflow.workflow import WorkflowManager
from spec_workflow.workspace import Workspace

mcp = FastMCP("spec-workflow")


PROJECT_ROOT_ENV = "SPEC_WORKFLOW_PROJECT_ROOT"
LOG_LEVEL_ENV = "SPEC_WORKFLOW_LOG_LEVEL"


def _workflow_dir_name() -> str:
    return os.getenv(Workspace.WORKFLOW_DIR_ENV) or Workspace.DEFAULT_WORKFLOW_DIR


def _candidate_bases() -> List[Path]:
    cwd = Path.cwd().resolve()
    return [cwd, *cwd.parents]


def _locate_workspace_root() -> Optional[Path]:
    marker = _workflow_dir_name()
    for base in _candidate_bases():
        if (base / marker).is_dir():
            return base
    return None


def _resolve_root(root: Optional[str]) -> Path:
    if root:
        resolved = Path(root).expanduser().resolve()
        if not resolved.exists():
            raise ValueError(f"Provided root '{root}' does not exist.")
        return resolved

    env_root = os.getenv(PROJECT_ROOT_ENV)
    if env_root:
        env_path = Path(env_root).expanduser().resolve()
        if not env_path.exists():
            raise ValueError(
                f"Environment variable {PROJECT_ROOT_ENV} points to '{env_root}', which does not exist."
            )
        return env_path

    detected_root = _locate_workspace_root()
    if detected_root:
        return detected_root

    raise ValueError(
        "Unable to determine project root automatically. Provide the 'root' argument when calling the tool "
        f"or set the {PROJECT_ROOT_ENV} environment variable."
    )


def _manager(root: Optional[str]) -> WorkflowManager:
    return WorkflowManager(_resolve_root(root))


@mcp.tool()
def list_specs(root: Optional[str] = None) -> Dict[str, Any]:
    """List the specs under .spec-workflow/specs/ and which documents each one has."""

    return _manager(root).list_specs()


@mcp.resource("spec-workflow://specs")
def resource_specs() -> str:
    """Resource view of the specs in the detected project."""

    try:
        manager = _manager(None)
    except ValueError:
        return f"No project root detected. Launch tools with a 'root' argument or set {PROJECT_ROOT_ENV}."

    specs = manager.workspace.list_specs()
    if not specs:
        return "No specs have been created yet."

    lines = ["Specs"]
    for spec in specs:
        lines.append("")
        lines.append(f"- {spec['name']}")
        for document in ("requirements", "design", "tasks"):
            if spec.get(f"{document}_path"):
                lines.append(f"  {document.capitalize()}: {spec[f'{document}_path']}")
    return "\n".join(lines)


@mcp.tool()
def spec_status(spec_name: str, root: Optional[str] = None) -> Dict[str, Any]:
    """Display a spec's progress overview: which phases exist and task implementation progress.
    Call when resuming work on a spec. Task markers in tasks.md are [ ] pending, [-] in-progress, [x] completed."""

    return _manager(root).spec_status(spec_name)


@mcp.tool()
def get_tasks(spec_name: str, root: Optional[str] = None) -> Dict[str, Any]:
    """Return every task parsed from tasks.md with status, metadata and a progress summary."""

    return _manager(root).get_tasks(spec_name)


@mcp.tool()
def get_task(spec_name: str, task_id: str, root: Optional[str] = None) -> Dict[str, Any]:
    """Return one task (e.g. "2.1") including its _Prompt guidance, _Leverage_ and _Requirements_."""

    return _manager(root).get_task(spec_name, task_id)


@mcp.tool()
def next_task(spec_name: str, root: Optional[str] = None) -> Dict[str, Any]:
    """Retrieve the next pending task (section headers are skipped) to guide sequential execution."""

    return _manager(root).next_task(spec_name)


@mcp.tool()
def update_task_status(
    spec_name: str,
    task_id: str,
    status: str,
    root: Optional[str] = None,
) -> Dict[str, Any]:
    """Set a task to pending, in-progress or completed. Only that task's checkbox in tasks.md changes.
    Mark a task in-progress before starting it and completed once its success criteria are met."""

    return _manager(root).update_task_status(spec_name, task_id, status)


@mcp.prompt()
def implement_task(spec_name: str, task_id: Optional[str] = None, root: Optional[str] = None) -> str:
    """Guide for implementing a task from tasks.md, built from its _Prompt, _Leverage_ and _Requirements_ fields."""

    return _manager(root).implementation_guide(spec_name, task_id)


def main() -> None:
    setup_logging(os.getenv(LOG_LEVEL_ENV, "INFO").upper())
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
