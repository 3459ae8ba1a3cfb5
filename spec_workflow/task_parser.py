"""Task parsing for spec-workflow ``tasks.md`` documents.

Every consumer (dashboard, IDE extension, agent tools) reads task state
through this module so that checkbox and metadata semantics stay identical
everywhere. The functions here are pure: they take markdown text and return
parsed tasks or updated text, and never raise on malformed markdown.

A task is a checkbox line carrying a dotted numeric id::

    - [-] 2.1 Build parser
      - _Requirements: R1, R2, NFR_
      - _Leverage: utils.ts_
      - Files: src/parser.ts (new)
      - _Prompt: Role: dev | Task: build x | Success: works_

Metadata belongs to the nearest checkbox line above it; the lines between
two checkbox lines form that task's metadata span.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .models import (
    COMPLETED,
    GLYPH_TO_STATUS,
    IN_PROGRESS,
    PENDING,
    STATUS_TO_GLYPH,
    PromptSection,
    Task,
    TaskMetadata,
    TaskParseResult,
    TaskSummary,
)


# Keys recognised at the start of a structured prompt. Changing this list
# changes how existing documents parse.
KNOWN_PROMPT_KEYS = (
    "Role",
    "Task",
    "Context",
    "Instructions",
    "Requirements",
    "Leverage",
    "Success",
    "Restrictions",
)

# A byte-order mark before the first line counts as leading whitespace.
_CHECKBOX_PATTERN = re.compile(r"^[\s\ufeff]*-\s+\[([ x\-])\]")
_CHECKBOX_LINE_PATTERN = re.compile(r"^([\s\ufeff]*)-\s+\[([ x\-])\]\s+(.+)")
# Ids are ASCII digits only; other Unicode digits leave the line unlabelled.
_TASK_ID_PATTERN = re.compile(r"^([0-9]+(?:\.[0-9]+)*)\s*\.?\s+(.+)")

_PROMPT_SINGLE_LINE_PATTERN = re.compile(r"_Prompt:\s*(.+)_$")
_PROMPT_START_PATTERN = re.compile(r"_Prompt:\s*(.+)$")
_REQUIREMENTS_PATTERN = re.compile(r"_Requirements:\s*([^_]+?)_")
_LEVERAGE_PATTERN = re.compile(r"_Leverage:\s*([^_]+?)_")
_FILES_MARKER_PATTERN = re.compile(r"Files?:")
_FILES_PATTERN = re.compile(r"Files?:\s*(.+)$")
_FILE_ANNOTATION_PATTERN = re.compile(r"\(.*?\)")
_NESTED_CHECKBOX_PATTERN = re.compile(r"^-\s+\[")
_BULLET_PATTERN = re.compile(r"^-\s")
_FILES_PREFIX_PATTERN = re.compile(r"^Files?:", re.IGNORECASE)
_PURPOSE_PREFIX_PATTERN = re.compile(r"^Purpose:", re.IGNORECASE)
_EDGE_UNDERSCORES_PATTERN = re.compile(r"^_+|_+$")
_TRAILING_UNDERSCORE_PATTERN = re.compile(r"_$")
_BULLET_FILES_PATTERN = re.compile(r"^Files?:")
_BULLET_PURPOSE_PATTERN = re.compile(r"^Purpose:")
_KEY_PATTERNS = tuple(
    re.compile(rf"\b{key}:", re.IGNORECASE) for key in KNOWN_PROMPT_KEYS
)

_BOM = "\ufeff"
_PURPOSE_PREFIX = "Purpose:"
_EXCLUDED_REQUIREMENTS = {"NFR"}


class LineKind(Enum):
    """What a single metadata line contributes to its task."""

    BLANK = "blank"
    PROMPT = "prompt"
    REQUIREMENTS = "requirements"
    LEVERAGE = "leverage"
    FILES = "files"
    PURPOSE = "purpose"
    BULLET = "bullet"
    OTHER = "other"


@dataclass(frozen=True, slots=True)
class ClassifiedLine:
    kind: LineKind
    text: str  # trimmed source line


def is_checkbox_line(line: str) -> bool:
    """True for ``- [ ]``, ``- [-]`` and ``- [x]`` lines at any indentation."""
    return _CHECKBOX_PATTERN.match(line) is not None


def classify_line(line: str) -> ClassifiedLine:
    """Classify one line of a metadata span.

    Rules are checked in priority order and the first match wins. ``_Prompt:``
    comes first because a prompt may itself mention ``_Requirements:`` or
    ``_Leverage:``.
    """
    text = line.strip().strip(_BOM).strip()
    if not text:
        return ClassifiedLine(LineKind.BLANK, text)
    if "_Prompt:" in text:
        return ClassifiedLine(LineKind.PROMPT, text)
    if "_Requirements:" in text:
        return ClassifiedLine(LineKind.REQUIREMENTS, text)
    if "_Leverage:" in text:
        return ClassifiedLine(LineKind.LEVERAGE, text)
    if _FILES_MARKER_PATTERN.search(text):
        return ClassifiedLine(LineKind.FILES, text)
    if text.startswith("- ") and not _NESTED_CHECKBOX_PATTERN.match(text):
        content = text[2:].strip()
        if content.startswith(_PURPOSE_PREFIX):
            return ClassifiedLine(LineKind.PURPOSE, text)
        if _BULLET_FILES_PATTERN.match(content) or _BULLET_PURPOSE_PATTERN.match(content):
            return ClassifiedLine(LineKind.OTHER, text)
        return ClassifiedLine(LineKind.BULLET, text)
    return ClassifiedLine(LineKind.OTHER, text)


def _split_list(text: str) -> List[str]:
    return [item.strip() for item in text.split(",") if item.strip()]


def _ends_prompt(text: str) -> bool:
    return (
        not text
        or _BULLET_PATTERN.match(text) is not None
        or _FILES_PREFIX_PATTERN.match(text) is not None
        or _PURPOSE_PREFIX_PATTERN.match(text) is not None
    )


def _read_prompt(span: Sequence[ClassifiedLine], start: int) -> Tuple[Optional[str], int]:
    """Read a prompt starting at ``span[start]``.

    Returns the prompt text and the index of the last line consumed.
    """
    text = span[start].text
    single = _PROMPT_SINGLE_LINE_PATTERN.search(text)
    if single:
        return single.group(1).strip(), start

    opening = _PROMPT_START_PATTERN.search(text)
    parts = [_TRAILING_UNDERSCORE_PATTERN.sub("", opening.group(1) if opening else "").strip()]
    end = start + 1
    while end < len(span) and not _ends_prompt(span[end].text):
        parts.append(_TRAILING_UNDERSCORE_PATTERN.sub("", span[end].text).strip())
        end += 1
    return " ".join(parts), end - 1


def collect_metadata(lines: Iterable[str]) -> TaskMetadata:
    """Fold the lines of one metadata span into a :class:`TaskMetadata`."""
    span = [classify_line(line) for line in lines]
    requirements: List[str] = []
    leverage: List[str] = []
    files: List[str] = []
    purposes: List[str] = []
    details: List[str] = []
    prompt: Optional[str] = None

    index = 0
    while index < len(span):
        line = span[index]
        if line.kind is LineKind.PROMPT:
            prompt, index = _read_prompt(span, index)
        elif line.kind is LineKind.REQUIREMENTS:
            match = _REQUIREMENTS_PATTERN.search(line.text)
            if match:
                requirements.extend(
                    item for item in _split_list(match.group(1))
                    if item not in _EXCLUDED_REQUIREMENTS
                )
        elif line.kind is LineKind.LEVERAGE:
            match = _LEVERAGE_PATTERN.search(line.text)
            if match:
                leverage.extend(_split_list(match.group(1)))
        elif line.kind is LineKind.FILES:
            match = _FILES_PATTERN.search(line.text)
            if match:
                for piece in match.group(1).split(","):
                    path = _FILE_ANNOTATION_PATTERN.sub("", piece.strip(), count=1).strip()
                    if path:
                        files.append(path)
        elif line.kind is LineKind.PURPOSE:
            purposes.append(line.text[2:].strip()[len(_PURPOSE_PREFIX):].strip())
        elif line.kind is LineKind.BULLET:
            details.append(line.text[2:].strip())
        index += 1

    return TaskMetadata(
        requirements=tuple(requirements),
        leverage=tuple(leverage),
        files=tuple(files),
        purposes=tuple(purposes),
        implementation_details=tuple(details),
        prompt=prompt or None,
    )


def _strip_underscores(value: str) -> str:
    return _EDGE_UNDERSCORES_PATTERN.sub("", value)


def _make_section(text: str) -> Optional[PromptSection]:
    colon = text.find(":")
    if colon <= 0 or colon >= len(text) - 1:
        return None
    key = _strip_underscores(text[:colon].strip())
    value = _strip_underscores(text[colon + 1:].strip())
    if not key or not value:
        return None
    return PromptSection(key=key, value=value)


def parse_structured_prompt(prompt_text: Optional[str]) -> Optional[List[PromptSection]]:
    """Split a pipe-delimited prompt into ordered ``Key: value`` sections.

    ``"Role: dev | Task: build x | Success: works"`` yields three sections.
    The first segment may carry preamble text, so it is read from the
    rightmost known key onwards. Later segments without a usable colon are
    appended to the previous section's value. Returns ``None`` when the
    prompt is not structured.
    """
    if not prompt_text or "|" not in prompt_text:
        return None

    parts = [part.strip() for part in prompt_text.split("|")]
    parts = [part for part in parts if part]
    if not parts:
        return None

    sections: List[PromptSection] = []

    first = parts[0]
    key_index = -1
    for pattern in _KEY_PATTERNS:
        match = pattern.search(first)
        if match and match.start() > key_index:
            key_index = match.start()
    if key_index > -1:
        section = _make_section(first[key_index:])
        if section:
            sections.append(section)

    for part in parts[1:]:
        colon = part.find(":")
        if 0 < colon < len(part) - 1:
            section = _make_section(part)
            if section:
                sections.append(section)
        elif sections:
            continuation = _strip_underscores(part).strip()
            if continuation:
                sections[-1].value += " | " + continuation

    return sections or None


def parse_tasks_from_markdown(content: str) -> TaskParseResult:
    """Parse every numbered checkbox task out of a tasks.md document.

    Checkbox lines without a numeric id are not tasks and are skipped, but
    they still end the metadata span of the task above them.
    """
    lines = content.split("\n")
    checkbox_indices = [index for index, line in enumerate(lines) if is_checkbox_line(line)]

    tasks: List[Task] = []
    in_progress_task_id: Optional[str] = None

    for position, line_number in enumerate(checkbox_indices):
        end = (
            checkbox_indices[position + 1]
            if position + 1 < len(checkbox_indices)
            else len(lines)
        )
        checkbox = _CHECKBOX_LINE_PATTERN.match(lines[line_number].rstrip("\r"))
        if not checkbox:
            continue
        indent, glyph, task_text = checkbox.groups()

        labelled = _TASK_ID_PATTERN.match(task_text)
        if not labelled:
            continue
        task_id, description = labelled.groups()
        status = GLYPH_TO_STATUS[glyph]

        metadata = collect_metadata(lines[line_number + 1:end])
        prompt_structured = parse_structured_prompt(metadata.prompt)

        tasks.append(
            Task(
                task_id=task_id,
                description=description,
                status=status,
                line_number=line_number,
                indent_level=len(indent.replace(_BOM, "")) / 2,
                is_header=metadata.is_empty(),
                requirements=list(metadata.requirements) or None,
                leverage=", ".join(metadata.leverage) or None,
                files=list(metadata.files) or None,
                purposes=list(metadata.purposes) or None,
                implementation_details=list(metadata.implementation_details) or None,
                prompt=metadata.prompt,
                prompt_structured=prompt_structured,
            )
        )

        if status == IN_PROGRESS and in_progress_task_id is None:
            in_progress_task_id = task_id

    return TaskParseResult(
        tasks=tasks,
        in_progress_task_id=in_progress_task_id,
        summary=TaskSummary.from_tasks(tasks),
    )


def update_task_status(content: str, task_id: str, new_status: str) -> str:
    """Set the checkbox of the first task with ``task_id`` to ``new_status``.

    Only that one line is rewritten; every other line is returned untouched.
    When no task has the id the content is returned unchanged.
    """
    if new_status not in STATUS_TO_GLYPH:
        raise ValueError(
            f"Invalid status '{new_status}'. Must be one of: {', '.join(STATUS_TO_GLYPH)}"
        )
    glyph = STATUS_TO_GLYPH[new_status]

    lines = content.split("\n")
    for index, line in enumerate(lines):
        checkbox = _CHECKBOX_LINE_PATTERN.match(line)
        if not checkbox:
            continue
        indent, _, task_text = checkbox.groups()
        labelled = _TASK_ID_PATTERN.match(task_text)
        if labelled and labelled.group(1) == task_id:
            lines[index] = f"{indent}- [{glyph}] {task_text}"
            return "\n".join(lines)

    return content


def find_next_pending_task(tasks: Iterable[Task]) -> Optional[Task]:
    """First pending task that is actual work (headers are skipped)."""
    for task in tasks:
        if task.status == PENDING and not task.is_header:
            return task
    return None


def get_task_by_id(tasks: Iterable[Task], task_id: str) -> Optional[Task]:
    """First task with the given id; duplicates resolve to document order."""
    for task in tasks:
        if task.task_id == task_id:
            return task
    return None


def parse_task_progress(content: str) -> Dict[str, int]:
    """Total/completed/pending counts for progress bars."""
    summary = parse_tasks_from_markdown(content).summary
    return {
        "total": summary.total,
        "completed": summary.completed,
        "pending": summary.pending,
    }


__all__ = [
    "COMPLETED",
    "IN_PROGRESS",
    "KNOWN_PROMPT_KEYS",
    "PENDING",
    "ClassifiedLine",
    "LineKind",
    "classify_line",
    "collect_metadata",
    "find_next_pending_task",
    "get_task_by_id",
    "is_checkbox_line",
    "parse_structured_prompt",
    "parse_task_progress",
    "parse_tasks_from_markdown",
    "update_task_status",
]
