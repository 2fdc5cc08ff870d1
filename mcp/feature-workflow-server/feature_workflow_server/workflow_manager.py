"""
Feature Workflow Orchestrator

Public operations over feature workflows: create, complete/uncomplete task,
add task, summarize, delete. Composes the record store, the directory
allocator, the progress deriver and the markdown checklist.

Every task mutation recomputes the owning workflow's status, current phase
and progress inside the same store transaction, so the derived columns never
drift from task state. The checklist file is mirrored afterwards on a best
effort basis.
"""

import logging
import uuid
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Optional

from .checklist import (
    CHECKLIST_FILENAME,
    append_task_line,
    count_checkboxes,
    set_task_checked,
    single_line,
    write_checklist,
)
from .directory_allocator import DirectoryAllocator
from .errors import FileSystemError, NotFoundError, StorageError, ValidationError
from .models import DeleteResult, Workflow, WorkflowSummary, WorkflowTask
from .progress import (
    DEFAULT_TASKS,
    DRAFT,
    PHASE_ORDER,
    calculate_progress,
    derive_state,
    group_by_phase,
    next_actions,
    normalize_phase,
    order_tasks,
)
from .store import StoreTransaction, WorkflowStore

logger = logging.getLogger(__name__)


TASK_PRIORITIES = ["low", "medium", "high", "critical"]


def _new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _require(value: Optional[str], field: str) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(f"{field} is required")
    return str(value).strip()


class WorkflowManager:

    def __init__(
        self,
        store: WorkflowStore,
        allocator: DirectoryAllocator,
        checklist_filename: str = CHECKLIST_FILENAME
    ):
        self.store = store
        self.allocator = allocator
        self.checklist_filename = checklist_filename

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _load_workflow(self, tx: StoreTransaction, workflow_id: str) -> Workflow:
        row = tx.get("workflows", workflow_id)
        if row is None:
            raise NotFoundError(f"Workflow {workflow_id} not found")
        return Workflow.from_row(row)

    def _load_tasks(self, tx: StoreTransaction, workflow_id: str) -> list[WorkflowTask]:
        rows = tx.query("workflow_tasks", {"workflow_id": workflow_id}, order_by=["position"])
        return [WorkflowTask.from_row(r) for r in rows]

    def _load_task(self, tx: StoreTransaction, task_id: str) -> WorkflowTask:
        row = tx.get("workflow_tasks", task_id)
        if row is None:
            raise NotFoundError(f"Task {task_id} not found")
        return WorkflowTask.from_row(row)

    def get_workflow(self, workflow_id: str) -> Workflow:
        with self.store.transaction() as tx:
            return self._load_workflow(tx, workflow_id)

    def list_workflows(self, project_id: str) -> list[Workflow]:
        rows = self.store.query("workflows", {"project_id": project_id}, order_by=["-created_at"])
        return [Workflow.from_row(r) for r in rows]

    def get_task(self, task_id: str) -> WorkflowTask:
        with self.store.transaction() as tx:
            return self._load_task(tx, task_id)

    def get_workflow_tasks(
        self,
        workflow_id: str,
        phase: Optional[str] = None,
        completed: Optional[bool] = None
    ) -> list[WorkflowTask]:
        with self.store.transaction() as tx:
            self._load_workflow(tx, workflow_id)
            tasks = order_tasks(self._load_tasks(tx, workflow_id))

        if phase is not None:
            phase = normalize_phase(phase)
            tasks = [t for t in tasks if t.phase == phase]
        if completed is not None:
            tasks = [t for t in tasks if t.completed == completed]
        return tasks

    def checklist_path(self, workflow: Workflow) -> Optional[Path]:
        if not workflow.directory:
            return None
        return Path(workflow.directory) / self.checklist_filename

    # ------------------------------------------------------------------
    # Derivation
    # ------------------------------------------------------------------

    def _recompute(self, tx: StoreTransaction, workflow_id: str) -> Workflow:
        state = derive_state(self._load_tasks(tx, workflow_id))
        tx.update("workflows", workflow_id, {
            "status": state.status,
            "current_phase": state.current_phase,
            "progress": state.progress,
        })
        return self._load_workflow(tx, workflow_id)

    def recompute_workflow(self, workflow_id: str) -> Workflow:
        with self.store.transaction() as tx:
            self._load_workflow(tx, workflow_id)
            return self._recompute(tx, workflow_id)

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def create_feature_workflow(
        self,
        project_id: str,
        feature_name: str,
        description: Optional[str] = None,
        workflow_type: str = "feat"
    ) -> Workflow:
        project_id = _require(project_id, "project_id")
        feature_name = single_line(_require(feature_name, "feature_name"))

        feature_dir = self.allocator.allocate(project_id, feature_name, workflow_type)

        workflow_id = _new_id("workflow")
        try:
            with self.store.transaction() as tx:
                tx.insert("workflows", {
                    "id": workflow_id,
                    "project_id": project_id,
                    "feature_name": feature_name,
                    "description": description,
                    "status": DRAFT,
                    "current_phase": PHASE_ORDER[0],
                    "progress": 0,
                    "directory": str(feature_dir),
                })
                for position, (phase, task_description) in enumerate(DEFAULT_TASKS):
                    tx.insert("workflow_tasks", {
                        "id": _new_id("task"),
                        "workflow_id": workflow_id,
                        "position": position,
                        "phase": phase,
                        "description": task_description,
                        "completed": False,
                    })
                workflow = self._load_workflow(tx, workflow_id)
                tasks = self._load_tasks(tx, workflow_id)
        except StorageError:
            try:
                self.allocator.remove(feature_dir)
            except FileSystemError as e:
                logger.warning(f"Could not clean up {feature_dir} after failed create: {e}")
            raise

        write_checklist(feature_dir / self.checklist_filename, workflow, tasks)
        logger.info(f"Created workflow {workflow_id} for '{feature_name}' in project {project_id}")
        return workflow

    # ------------------------------------------------------------------
    # Task completion
    # ------------------------------------------------------------------

    def apply_task_completion(
        self,
        task_id: str,
        completed: bool,
        notes: Optional[str] = None,
        workflow_id: Optional[str] = None
    ) -> tuple[WorkflowTask, Workflow]:
        """Toggle a task in the store and recompute its workflow. No checklist write."""
        task_id = _require(task_id, "task_id")
        with self.store.transaction() as tx:
            task = self._load_task(tx, task_id)
            if workflow_id is not None and task.workflow_id != workflow_id:
                raise NotFoundError(f"Task {task_id} not found in workflow {workflow_id}")

            if completed:
                changes = {"completed": True, "completed_at": _utc_now(), "notes": notes}
            else:
                changes = {"completed": False, "completed_at": None, "notes": None}
            tx.update("workflow_tasks", task_id, changes)

            workflow = self._recompute(tx, task.workflow_id)
            task = self._load_task(tx, task_id)
        return task, workflow

    def _mirror_completion(self, workflow: Workflow, task: WorkflowTask) -> bool:
        path = self.checklist_path(workflow)
        if path is None:
            return False
        completed_on = date.fromisoformat(task.completed_at[:10]) if task.completed_at else None
        return set_task_checked(path, task.id, task.completed, completed_on)

    def complete_task(self, task_id: str, notes: Optional[str] = None) -> Workflow:
        task, workflow = self.apply_task_completion(task_id, True, notes)
        self._mirror_completion(workflow, task)
        return workflow

    def uncomplete_task(self, task_id: str) -> Workflow:
        task, workflow = self.apply_task_completion(task_id, False)
        self._mirror_completion(workflow, task)
        return workflow

    # ------------------------------------------------------------------
    # Custom tasks
    # ------------------------------------------------------------------

    def insert_task(
        self,
        workflow_id: str,
        phase: str,
        description: str,
        priority: str = "medium",
        task_id: Optional[str] = None
    ) -> tuple[WorkflowTask, Workflow]:
        """Insert a task row and recompute the workflow. No checklist write."""
        workflow_id = _require(workflow_id, "workflow_id")
        description = single_line(_require(description, "description"))
        phase = normalize_phase(_require(phase, "phase"))
        if phase not in PHASE_ORDER:
            raise ValidationError(
                f"Invalid phase '{phase}'. Valid phases: {', '.join(PHASE_ORDER)}"
            )
        if priority not in TASK_PRIORITIES:
            raise ValidationError(
                f"Invalid priority '{priority}'. Valid priorities: {', '.join(TASK_PRIORITIES)}"
            )

        task_id = task_id or _new_id("task")
        with self.store.transaction() as tx:
            self._load_workflow(tx, workflow_id)
            positions = [t.position for t in self._load_tasks(tx, workflow_id)]
            tx.insert("workflow_tasks", {
                "id": task_id,
                "workflow_id": workflow_id,
                "position": max(positions, default=-1) + 1,
                "phase": phase,
                "description": description,
                "priority": priority,
                "completed": False,
            })
            workflow = self._recompute(tx, workflow_id)
            task = self._load_task(tx, task_id)
        return task, workflow

    def _mirror_new_task(self, workflow: Workflow, task: WorkflowTask) -> bool:
        path = self.checklist_path(workflow)
        if path is None:
            return False
        return append_task_line(path, task.phase, task.id, task.description)

    def add_custom_task(
        self,
        workflow_id: str,
        phase: str,
        description: str,
        priority: str = "medium"
    ) -> str:
        task, workflow = self.insert_task(workflow_id, phase, description, priority)
        self._mirror_new_task(workflow, task)
        return task.id

    # ------------------------------------------------------------------
    # Summary
    # ------------------------------------------------------------------

    def get_workflow_summary(self, workflow_id: str) -> WorkflowSummary:
        with self.store.transaction() as tx:
            workflow = self._load_workflow(tx, workflow_id)
            tasks = self._load_tasks(tx, workflow_id)

        return WorkflowSummary(
            workflow=workflow,
            tasks_by_phase=group_by_phase(tasks),
            total_tasks=len(tasks),
            completed_tasks=sum(1 for t in tasks if t.completed),
            progress=workflow.progress,
            current_phase=workflow.current_phase,
            next_actions=next_actions(tasks),
        )

    # ------------------------------------------------------------------
    # Delete
    # ------------------------------------------------------------------

    def delete_workflow(self, workflow_id: str, remove_directory: bool = False) -> DeleteResult:
        workflow_id = _require(workflow_id, "workflow_id")
        with self.store.transaction() as tx:
            workflow = self._load_workflow(tx, workflow_id)
            deleted_tasks = tx.delete_where("workflow_tasks", {"workflow_id": workflow_id})
            tx.delete("workflows", workflow_id)

        logger.info(f"Deleted workflow {workflow_id} ({deleted_tasks} tasks)")

        result = DeleteResult(workflow=workflow, deleted_tasks=deleted_tasks)
        if remove_directory and workflow.directory:
            # the rows are already gone; a leftover directory does not fail the delete
            try:
                result.directory_removed = self.allocator.remove(Path(workflow.directory))
            except (FileSystemError, ValidationError) as e:
                logger.warning(f"Workflow {workflow_id} deleted but its directory was kept: {e}")
                result.directory_error = str(e)
        return result

    # ------------------------------------------------------------------
    # Feature directories
    # ------------------------------------------------------------------

    def list_project_features(self, project_id: str) -> list[dict]:
        """Feature directories of a project with checklist progress and linked workflow."""
        project_id = _require(project_id, "project_id")
        by_directory = {w.directory: w for w in self.list_workflows(project_id) if w.directory}

        features = []
        for entry in self.allocator.list_feature_directories(project_id):
            completed, total = count_checkboxes(Path(entry["path"]) / self.checklist_filename)
            workflow = by_directory.get(entry["path"])
            features.append({
                **entry,
                "workflow_id": workflow.id if workflow else None,
                "total_tasks": total,
                "completed_tasks": completed,
                "progress": calculate_progress(completed, total),
            })
        return features
