"""
Progress & Phase Derivation for Feature Workflows

Pure functions that compute a workflow's progress percentage, status and
current phase from its tasks. Nothing here touches the record store or the
filesystem.

State machine:

    draft -> user-stories -> architecture -> implementation -> testing -> completed

The current phase is always the phase of the earliest incomplete task in
template order, so uncompleting an earlier task moves the workflow back.
"""

from typing import Any, Iterable, Optional

from .models import WorkflowState, WorkflowTask


PHASE_ORDER = [
    "user-stories",
    "architecture",
    "implementation",
    "testing",
]

DRAFT = "draft"
COMPLETED = "completed"

WORKFLOW_STATUSES = [DRAFT, *PHASE_ORDER, COMPLETED]

PHASE_NAMES = {
    "user-stories": "User Stories",
    "architecture": "Architecture",
    "implementation": "Implementation",
    "testing": "Testing",
}

DEFAULT_TASKS = [
    ("user-stories", "Define problem statement and business value"),
    ("user-stories", "Write primary user stories with acceptance criteria"),
    ("user-stories", "Define functional specifications"),
    ("user-stories", "Specify quality requirements (performance, security, reliability)"),
    ("user-stories", "Identify constraints and dependencies"),
    ("user-stories", "Define success metrics and exclusions"),

    ("architecture", "Design high-level system architecture"),
    ("architecture", "Define component architecture (frontend/backend)"),
    ("architecture", "Design data architecture and database schema"),
    ("architecture", "Specify API endpoints and data flow"),
    ("architecture", "Define security and performance architecture"),
    ("architecture", "Plan deployment and integration strategy"),

    ("implementation", "Set up basic project structure"),
    ("implementation", "Implement core backend functionality"),
    ("implementation", "Create frontend components and UI"),
    ("implementation", "Integrate frontend with backend APIs"),
    ("implementation", "Implement error handling and validation"),
    ("implementation", "Add logging and monitoring"),

    ("testing", "Write and execute unit tests"),
    ("testing", "Implement integration tests"),
    ("testing", "Perform end-to-end testing"),
    ("testing", "Conduct performance and security testing"),
    ("testing", "User acceptance testing"),
    ("testing", "Final validation and documentation"),
]


def calculate_progress(completed: int, total: int) -> int:
    """Percentage of completed tasks, rounded half up."""
    if total <= 0:
        return 0
    return (200 * completed + total) // (2 * total)


def normalize_phase(phase: str) -> str:
    return "-".join(phase.strip().lower().replace("_", "-").split())


def phase_display_name(phase: str) -> str:
    return PHASE_NAMES.get(phase, phase.replace("-", " ").title())


def ordered_phases(
    tasks: Iterable[WorkflowTask],
    phase_order: Optional[list[str]] = None
) -> list[str]:
    """Distinct phases of ``tasks``, template phases first, then others by first appearance."""
    phase_order = phase_order or PHASE_ORDER
    present = []
    for task in sorted(tasks, key=lambda t: t.position):
        if task.phase not in present:
            present.append(task.phase)
    known = [p for p in phase_order if p in present]
    extra = [p for p in present if p not in phase_order]
    return known + extra


def order_tasks(
    tasks: Iterable[WorkflowTask],
    phase_order: Optional[list[str]] = None
) -> list[WorkflowTask]:
    tasks = list(tasks)
    phases = ordered_phases(tasks, phase_order)
    return sorted(tasks, key=lambda t: (phases.index(t.phase), t.position))


def derive_state(
    tasks: Iterable[WorkflowTask],
    phase_order: Optional[list[str]] = None
) -> WorkflowState:
    phase_order = phase_order or PHASE_ORDER
    ordered = order_tasks(tasks, phase_order)

    total = len(ordered)
    if total == 0:
        return WorkflowState(status=DRAFT, current_phase=phase_order[0], progress=0)

    completed = sum(1 for t in ordered if t.completed)
    progress = calculate_progress(completed, total)

    next_task = next((t for t in ordered if not t.completed), None)
    if next_task is not None:
        return WorkflowState(
            status=next_task.phase,
            current_phase=next_task.phase,
            progress=progress
        )

    return WorkflowState(status=COMPLETED, current_phase=COMPLETED, progress=progress)


def group_by_phase(
    tasks: Iterable[WorkflowTask],
    phase_order: Optional[list[str]] = None
) -> dict[str, dict[str, Any]]:
    ordered = order_tasks(tasks, phase_order)
    groups: dict[str, dict[str, Any]] = {}
    for task in ordered:
        group = groups.setdefault(task.phase, {"total": 0, "completed": 0, "tasks": []})
        group["total"] += 1
        if task.completed:
            group["completed"] += 1
        group["tasks"].append(task)
    return groups


def next_actions(
    tasks: Iterable[WorkflowTask],
    limit: int = 3,
    phase_order: Optional[list[str]] = None
) -> list[WorkflowTask]:
    return [t for t in order_tasks(tasks, phase_order) if not t.completed][:limit]
