"""
Domain records for feature workflows.

Rows come out of the record store as plain dicts; these dataclasses give the
orchestrator and the deriver typed values to pass around.
"""

from dataclasses import dataclass, field, asdict
from typing import Any, Optional


@dataclass
class WorkflowTask:
    id: str
    workflow_id: str
    phase: str
    description: str
    completed: bool = False
    position: int = 0
    priority: str = "medium"
    completed_at: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[str] = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "WorkflowTask":
        return cls(
            id=row["id"],
            workflow_id=row["workflow_id"],
            phase=row["phase"],
            description=row["description"],
            completed=bool(row.get("completed")),
            position=row.get("position") or 0,
            priority=row.get("priority") or "medium",
            completed_at=row.get("completed_at"),
            notes=row.get("notes"),
            created_at=row.get("created_at"),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class Workflow:
    id: str
    project_id: str
    feature_name: str
    status: str
    current_phase: str
    progress: int = 0
    description: Optional[str] = None
    directory: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Workflow":
        return cls(
            id=row["id"],
            project_id=row["project_id"],
            feature_name=row["feature_name"],
            status=row["status"],
            current_phase=row["current_phase"],
            progress=row.get("progress") or 0,
            description=row.get("description"),
            directory=row.get("directory"),
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class WorkflowState:
    """Derived status, phase and progress of a workflow."""
    status: str
    current_phase: str
    progress: int


@dataclass
class WorkflowSummary:
    workflow: Workflow
    tasks_by_phase: dict[str, dict[str, Any]]
    total_tasks: int
    completed_tasks: int
    progress: int
    current_phase: str
    next_actions: list[WorkflowTask] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "workflow": self.workflow.to_dict(),
            "tasks_by_phase": {
                phase: {
                    "total": group["total"],
                    "completed": group["completed"],
                    "tasks": [t.to_dict() for t in group["tasks"]],
                }
                for phase, group in self.tasks_by_phase.items()
            },
            "total_tasks": self.total_tasks,
            "completed_tasks": self.completed_tasks,
            "progress": self.progress,
            "current_phase": self.current_phase,
            "next_actions": [t.to_dict() for t in self.next_actions],
        }


@dataclass
class TaskSyncResult:
    """Outcome of a task update mirrored into the checklist document.

    ``database_updated`` and ``markdown_updated`` are reported separately;
    the checklist is a best-effort mirror of the store.
    """
    task_id: str
    markdown_updated: bool
    database_updated: bool
    message: str
    error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class DeleteResult:
    """Outcome of a workflow delete. The store rows are gone even if the directory stayed."""
    workflow: Workflow
    deleted_tasks: int
    directory_removed: bool = False
    directory_error: Optional[str] = None


@dataclass
class CheckpointResult:
    workflow_id: str
    phase: str
    message: str
    phase_complete: bool = False
    checkpoint_file: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
