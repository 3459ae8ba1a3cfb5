"""Unit tests for spec-workflow workspace functionality.

This module tests spec discovery, reading tasks.md, persisting status
updates and the spec status overview.
"""

import pytest

from spec_workflow.workspace import Workspace


TASKS_MD = (
    "# Tasks\n"
    "\n"
    "- [ ] 1. Setup\n"
    "- [ ] 1.1 Create config\n"
    "  - Add settings file\n"
    "  - _Requirements: 1.1_\n"
    "\n"
    "Some hand-written notes that must survive.\n"
    "\n"
    "- [ ] 2. Build parser\n"
    "  - _Prompt: Role: dev | Task: build it | Success: tests pass_\n"
)


def _write_spec(root, name="user-auth", **documents):
    spec_dir = root / ".spec-workflow" / "specs" / name
    spec_dir.mkdir(parents=True, exist_ok=True)
    for document, content in documents.items():
        (spec_dir / f"{document}.md").write_bytes(content.encode("utf-8"))
    return spec_dir


@pytest.fixture
def workspace(tmp_path, monkeypatch):
    monkeypatch.delenv("SPEC_WORKFLOW_DIR", raising=False)
    return Workspace(tmp_path)


class TestWorkspaceInitialization:
    """Test cases for workspace initialization."""

    def test_workspace_creation(self, tmp_path, monkeypatch):
        """Test creating a new workspace."""
        monkeypatch.delenv("SPEC_WORKFLOW_DIR", raising=False)
        workspace = Workspace(tmp_path)

        assert workspace.root == tmp_path.resolve()
        assert workspace.base_dir == tmp_path.resolve() / ".spec-workflow"
        assert workspace.specs_dir.is_dir()

    def test_workspace_with_custom_workflow_dir(self, tmp_path, monkeypatch):
        """The workflow directory name can be overridden."""
        monkeypatch.setenv("SPEC_WORKFLOW_DIR", ".custom-workflow")
        workspace = Workspace(tmp_path)

        assert workspace.base_dir == tmp_path.resolve() / ".custom-workflow"
        assert workspace.specs_dir.is_dir()

    def test_workspace_with_string_path(self, tmp_path, monkeypatch):
        """Test workspace creation with string path."""
        monkeypatch.delenv("SPEC_WORKFLOW_DIR", raising=False)
        workspace = Workspace(str(tmp_path))

        assert workspace.root == tmp_path.resolve()


class TestSpecDiscovery:
    """Test cases for listing specs."""

    def test_list_specs_empty(self, workspace):
        """No specs yet."""
        assert workspace.list_specs() == []

    def test_list_specs(self, workspace, tmp_path):
        """Specs report which documents exist."""
        _write_spec(tmp_path, "b-spec", requirements="# R")
        _write_spec(tmp_path, "a-spec", requirements="# R", design="# D", tasks=TASKS_MD)

        specs = workspace.list_specs()

        assert [spec["name"] for spec in specs] == ["a-spec", "b-spec"]
        assert specs[0]["tasks_path"].endswith("tasks.md")
        assert specs[1]["design_path"] is None

    @pytest.mark.parametrize("name", ["", "  ", "../escape", "a/b", ".."])
    def test_invalid_spec_names(self, workspace, name):
        """Spec names cannot be empty or leave the specs directory."""
        with pytest.raises(ValueError):
            workspace.spec_dir(name)


class TestTaskReading:
    """Test cases for reading tasks.md."""

    def test_read_tasks(self, workspace, tmp_path):
        """tasks.md is parsed into tasks."""
        _write_spec(tmp_path, tasks=TASKS_MD)

        result = workspace.read_tasks("user-auth")

        assert [task.task_id for task in result.tasks] == ["1", "1.1", "2"]
        assert result.summary.headers == 1

    def test_read_tasks_missing(self, workspace, tmp_path):
        """A spec without tasks.md raises FileNotFoundError."""
        _write_spec(tmp_path, requirements="# R")

        with pytest.raises(FileNotFoundError, match="No tasks.md found"):
            workspace.read_tasks("user-auth")

    def test_get_task(self, workspace, tmp_path):
        """Single tasks come back serialized."""
        _write_spec(tmp_path, tasks=TASKS_MD)

        task = workspace.get_task("user-auth", "2")

        assert task["promptStructured"][0] == {"key": "Role", "value": "dev"}
        assert workspace.get_task("user-auth", "9") is None

    def test_next_task_skips_header(self, workspace, tmp_path):
        """The header task 1 is not the next task."""
        _write_spec(tmp_path, tasks=TASKS_MD)

        assert workspace.next_task("user-auth")["id"] == "1.1"

    def test_task_progress(self, workspace, tmp_path):
        """The progress view carries counts and the task list."""
        _write_spec(tmp_path, tasks=TASKS_MD.replace("- [ ] 1.1", "- [x] 1.1"))

        progress = workspace.task_progress("user-auth")

        assert progress["total"] == 3
        assert progress["completed"] == 1
        assert progress["in_progress"] is None
        assert progress["progress"] == pytest.approx(100 / 3)
        assert len(progress["task_list"]) == 3
        assert progress["last_modified"]


class TestTaskStatusUpdates:
    """Test cases for persisting status changes."""

    def test_update_persists_single_line_change(self, workspace, tmp_path):
        """Only the task's checkbox changes on disk."""
        spec_dir = _write_spec(tmp_path, tasks=TASKS_MD)

        result = workspace.update_task_status("user-auth", "1.1", "in-progress")

        assert result["success"] is True
        assert result["message"] == "Task 1.1 status updated to in-progress"
        assert result["task"]["status"] == "in-progress"
        on_disk = (spec_dir / "tasks.md").read_text(encoding="utf-8")
        assert on_disk == TASKS_MD.replace("- [ ] 1.1", "- [-] 1.1")

    def test_update_preserves_crlf(self, workspace, tmp_path):
        """Windows line endings survive a status update."""
        spec_dir = _write_spec(tmp_path, tasks="- [ ] 1. A\r\n  - step\r\n- [ ] 2. B\r\n")

        workspace.update_task_status("user-auth", "2", "completed")

        assert (spec_dir / "tasks.md").read_bytes() == b"- [ ] 1. A\r\n  - step\r\n- [x] 2. B\r\n"

    def test_update_preserves_byte_order_mark(self, workspace, tmp_path):
        """A tasks.md saved with a BOM keeps it and its first task is found."""
        spec_dir = _write_spec(tmp_path, tasks="\ufeff- [ ] 1. A\n  - step\n")

        result = workspace.update_task_status("user-auth", "1", "completed")

        assert result["task"]["status"] == "completed"
        assert (spec_dir / "tasks.md").read_bytes() == b"\xef\xbb\xbf- [x] 1. A\n  - step\n"

    def test_update_same_status_does_not_write(self, workspace, tmp_path):
        """Setting the current status reports it and leaves the file alone."""
        spec_dir = _write_spec(tmp_path, tasks=TASKS_MD)
        before = (spec_dir / "tasks.md").stat().st_mtime_ns

        result = workspace.update_task_status("user-auth", "1", "pending")

        assert result["message"] == "Task 1 already has status pending"
        assert (spec_dir / "tasks.md").stat().st_mtime_ns == before

    def test_update_unknown_task(self, workspace, tmp_path):
        """Unknown task ids are an error at the store level."""
        _write_spec(tmp_path, tasks=TASKS_MD)

        with pytest.raises(ValueError, match="Task '9' not found"):
            workspace.update_task_status("user-auth", "9", "completed")

    def test_update_invalid_status(self, workspace, tmp_path):
        """Only the three statuses are accepted."""
        _write_spec(tmp_path, tasks=TASKS_MD)

        with pytest.raises(ValueError, match="Invalid status"):
            workspace.update_task_status("user-auth", "1", "blocked")

    def test_update_empty_task_id(self, workspace, tmp_path):
        """Empty task ids are rejected."""
        _write_spec(tmp_path, tasks=TASKS_MD)

        with pytest.raises(ValueError, match="Task ID cannot be empty"):
            workspace.update_task_status("user-auth", " ", "completed")

    def test_update_leaves_no_temp_files(self, workspace, tmp_path):
        """The atomic write cleans up after itself."""
        spec_dir = _write_spec(tmp_path, tasks=TASKS_MD)

        workspace.update_task_status("user-auth", "2", "completed")

        assert sorted(p.name for p in spec_dir.iterdir()) == ["tasks.md"]


class TestSpecStatus:
    """Test cases for the spec status overview."""

    def test_requirements_needed(self, workspace, tmp_path):
        """An empty spec directory needs requirements."""
        _write_spec(tmp_path)

        status = workspace.spec_status("user-auth")

        assert status["current_phase"] == "requirements"
        assert status["overall_status"] == "requirements-needed"
        assert status["task_progress"] == {"total": 0, "completed": 0, "pending": 0}
        assert "Create: .spec-workflow/specs/user-auth/requirements.md" in status["next_steps"]

    def test_design_needed(self, workspace, tmp_path):
        """Requirements alone means design is next."""
        _write_spec(tmp_path, requirements="# R")

        status = workspace.spec_status("user-auth")

        assert status["overall_status"] == "design-needed"
        phases = {phase["name"]: phase for phase in status["phases"]}
        assert phases["Requirements"]["status"] == "created"
        assert phases["Design"]["status"] == "missing"

    def test_tasks_needed(self, workspace, tmp_path):
        """Requirements and design mean tasks are next."""
        _write_spec(tmp_path, requirements="# R", design="# D")

        assert workspace.spec_status("user-auth")["overall_status"] == "tasks-needed"

    def test_implementing(self, workspace, tmp_path):
        """Pending tasks mean implementation is under way."""
        _write_spec(tmp_path, requirements="# R", design="# D", tasks=TASKS_MD)

        status = workspace.spec_status("user-auth")

        assert status["current_phase"] == "implementation"
        assert status["overall_status"] == "implementing"
        assert status["task_progress"] == {"total": 3, "completed": 0, "pending": 3}
        implementation = status["phases"][-1]
        assert implementation["status"] == "not-started"

    def test_completed(self, workspace, tmp_path):
        """All tasks done completes the spec."""
        _write_spec(
            tmp_path,
            requirements="# R",
            design="# D",
            tasks="- [x] 1. A\n- [x] 2. B\n",
        )

        status = workspace.spec_status("user-auth")

        assert status["overall_status"] == "completed"
        assert status["phases"][-1]["status"] == "in-progress"
        assert status["next_steps"] == ["All tasks completed (marked [x])", "Run tests"]

    def test_ready_for_implementation(self, workspace, tmp_path):
        """A tasks.md without numbered tasks is ready to implement."""
        _write_spec(tmp_path, requirements="# R", design="# D", tasks="# Tasks\n")

        assert workspace.spec_status("user-auth")["overall_status"] == "ready-for-implementation"

    def test_missing_spec(self, workspace):
        """Unknown specs raise FileNotFoundError."""
        with pytest.raises(FileNotFoundError, match="not found"):
            workspace.spec_status("nope")
