"""
Markdown Task Checklist

Reads and writes the ``tasks.md`` checklist that mirrors a workflow's tasks:

    ### user-stories

    - [ ] Define problem statement and business value (ID: task_1a2b3c4d5e6f)
    - [x] Define functional specifications (ID: task_0f9e8d7c6b5a) ✅ (Completed: 2024-05-02)

Lines are matched by the ``(ID: <task_id>)`` marker, so that exact shape
must be preserved. All writes take a file lock next to the checklist.
Helpers return ``False`` instead of raising when the file, line or phase
heading is missing; the record store stays authoritative.
"""

import logging
import re
from datetime import date
from pathlib import Path
from typing import Iterable, Optional

from filelock import FileLock

from .models import Workflow, WorkflowTask
from .progress import order_tasks, ordered_phases

logger = logging.getLogger(__name__)


CHECKLIST_FILENAME = "tasks.md"

_CHECKBOX_RE = re.compile(r"^(\s*)- \[[ xX]\]\s?(.*?)\s*$")
_COMPLETED_RE = re.compile(r"\s*(?:✅\s*)?\(Completed:[^)]*\)")
_HEADING_RE = re.compile(r"^(#+)\s+(.+?)\s*$")
_CHECKED_LINE_RE = re.compile(r"^\s*- \[[xX]\]", re.MULTILINE)
_ANY_LINE_RE = re.compile(r"^\s*- \[[ xX]\]", re.MULTILINE)


def _lock_for(path: Path) -> FileLock:
    return FileLock(str(path) + ".lock", timeout=10)


def single_line(text: str) -> str:
    """Collapse whitespace runs, newlines included, to single spaces."""
    return " ".join(str(text).split())


def format_task_line(task_id: str, description: str, completed: bool = False,
                     completed_on: Optional[date] = None) -> str:
    box = "[x]" if completed else "[ ]"
    line = f"- {box} {single_line(description)} (ID: {task_id})"
    if completed:
        line += f" ✅ (Completed: {(completed_on or date.today()).isoformat()})"
    return line


def render_checklist(workflow: Workflow, tasks: Iterable[WorkflowTask]) -> str:
    tasks = order_tasks(tasks)
    lines = [
        f"# {single_line(workflow.feature_name)} - Task Checklist",
        "",
        f"- **Workflow ID**: {workflow.id}",
        f"- **Project ID**: {workflow.project_id}",
        f"- **Created**: {workflow.created_at}",
        "",
    ]

    for phase in ordered_phases(tasks):
        lines.append(f"### {phase}")
        lines.append("")
        for task in tasks:
            if task.phase != phase:
                continue
            completed_on = date.fromisoformat(task.completed_at[:10]) if task.completed_at else None
            lines.append(format_task_line(task.id, task.description, task.completed, completed_on))
        lines.append("")

    return "\n".join(lines)


def write_checklist(path: Path, workflow: Workflow, tasks: Iterable[WorkflowTask]) -> bool:
    path = Path(path)
    try:
        with _lock_for(path):
            path.write_text(render_checklist(workflow, tasks), encoding="utf-8")
        return True
    except OSError as e:
        logger.warning(f"Could not write checklist {path}: {e}")
        return False


def read_checklist(path: Path) -> Optional[str]:
    path = Path(path)
    if not path.exists():
        return None
    return path.read_text(encoding="utf-8")


def set_task_checked(
    path: Path,
    task_id: str,
    completed: bool,
    completed_on: Optional[date] = None
) -> bool:
    """Rewrite the checkbox of the single line carrying ``(ID: task_id)``."""
    path = Path(path)
    if not path.exists():
        logger.warning(f"Checklist not found: {path}")
        return False

    marker = f"(ID: {task_id})"
    try:
        with _lock_for(path):
            lines = path.read_text(encoding="utf-8").splitlines(keepends=True)
            for i, line in enumerate(lines):
                if marker not in line:
                    continue
                match = _CHECKBOX_RE.match(line)
                if not match:
                    continue
                indent, body = match.groups()
                body = _COMPLETED_RE.sub("", body).rstrip()
                box = "[x]" if completed else "[ ]"
                new_line = f"{indent}- {box} {body}"
                if completed:
                    new_line += f" ✅ (Completed: {(completed_on or date.today()).isoformat()})"
                lines[i] = new_line + ("\n" if line.endswith("\n") else "")
                path.write_text("".join(lines), encoding="utf-8")
                return True
    except OSError as e:
        logger.warning(f"Could not update checklist {path}: {e}")
        return False

    logger.warning(f"Task {task_id} not found in checklist {path}")
    return False


def append_task_line(path: Path, phase: str, task_id: str, description: str) -> bool:
    """Add an unchecked task line at the end of the ``### <phase>`` section."""
    path = Path(path)
    if not path.exists():
        logger.warning(f"Checklist not found: {path}")
        return False

    try:
        with _lock_for(path):
            lines = path.read_text(encoding="utf-8").splitlines()

            heading_idx = None
            for i, line in enumerate(lines):
                match = _HEADING_RE.match(line)
                if match and match.group(1) == "###" and match.group(2).lower() == phase.lower():
                    heading_idx = i
                    break
            if heading_idx is None:
                logger.warning(f"Phase section '{phase}' not found in checklist {path}")
                return False

            section_end = len(lines)
            for i in range(heading_idx + 1, len(lines)):
                if _HEADING_RE.match(lines[i]):
                    section_end = i
                    break

            insert_at = heading_idx + 1
            for i in range(heading_idx + 1, section_end):
                if lines[i].strip():
                    insert_at = i + 1

            new_line = format_task_line(task_id, description)
            if insert_at == heading_idx + 1:
                lines[insert_at:insert_at] = ["", new_line]
            else:
                lines.insert(insert_at, new_line)

            path.write_text("\n".join(lines) + "\n", encoding="utf-8")
            return True
    except OSError as e:
        logger.warning(f"Could not append to checklist {path}: {e}")
        return False


def count_checkboxes(path: Path) -> tuple[int, int]:
    """Return ``(completed, total)`` checkbox counts of a checklist file."""
    content = read_checklist(path)
    if content is None:
        return 0, 0
    return len(_CHECKED_LINE_RE.findall(content)), len(_ANY_LINE_RE.findall(content))
