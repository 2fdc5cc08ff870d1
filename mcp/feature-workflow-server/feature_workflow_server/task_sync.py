"""
Task Checklist Synchronization

Keeps the ``tasks.md`` checklist and the record store's task rows in step,
and reports the two outcomes separately:

    TaskSyncResult(database_updated=True, markdown_updated=False, ...)

The store write and the file write are independent. A failed store write
does not stop the checklist write and vice versa, so callers can detect a
partial sync from the flags. Unknown workflow/task ids and invalid arguments
are raised before either write happens.

Also builds the chat-style progress summaries and phase checkpoints shown to
the user. Those messages are presentation only.
"""

import logging
from datetime import date, datetime
from pathlib import Path
from typing import Optional

from .checklist import append_task_line, set_task_checked, single_line
from .errors import NotFoundError, StorageError, ValidationError
from .models import CheckpointResult, TaskSyncResult, Workflow, WorkflowSummary, WorkflowTask
from .progress import COMPLETED, PHASE_ORDER, normalize_phase, phase_display_name
from .workflow_manager import WorkflowManager, _new_id

logger = logging.getLogger(__name__)


def _check(flag: bool) -> str:
    return "✓" if flag else "✗"


class TaskChecklistSync:

    def __init__(self, manager: WorkflowManager, write_checkpoint_files: bool = True):
        self.manager = manager
        self.write_checkpoint_files = write_checkpoint_files

    # ------------------------------------------------------------------
    # Task updates
    # ------------------------------------------------------------------

    def update_task(
        self,
        workflow_id: str,
        task_id: str,
        completed: bool,
        notes: Optional[str] = None
    ) -> TaskSyncResult:
        workflow = self.manager.get_workflow(workflow_id)
        task = self.manager.get_task(task_id)
        if task.workflow_id != workflow.id:
            raise NotFoundError(f"Task {task_id} not found in workflow {workflow_id}")

        database_updated = False
        error = None
        try:
            task, workflow = self.manager.apply_task_completion(
                task_id, completed, notes, workflow_id=workflow_id
            )
            database_updated = True
        except StorageError as e:
            logger.error(f"Store update failed for task {task_id}: {e}")
            error = str(e)

        markdown_updated = False
        path = self.manager.checklist_path(workflow)
        if path is not None:
            completed_on = date.fromisoformat(task.completed_at[:10]) if task.completed_at else None
            markdown_updated = set_task_checked(path, task_id, completed, completed_on)

        message = self._task_update_message(
            workflow, task, completed, notes, database_updated, markdown_updated
        )
        return TaskSyncResult(
            task_id=task_id,
            markdown_updated=markdown_updated,
            database_updated=database_updated,
            message=message,
            error=error,
        )

    def add_task(
        self,
        workflow_id: str,
        phase: str,
        description: str,
        priority: str = "medium"
    ) -> TaskSyncResult:
        workflow = self.manager.get_workflow(workflow_id)
        task_id = _new_id("task")

        database_updated = False
        error = None
        try:
            _, workflow = self.manager.insert_task(
                workflow_id, phase, description, priority, task_id=task_id
            )
            database_updated = True
        except StorageError as e:
            logger.error(f"Store insert failed for new task in {workflow_id}: {e}")
            error = str(e)

        markdown_updated = False
        path = self.manager.checklist_path(workflow)
        if path is not None:
            markdown_updated = append_task_line(
                path, normalize_phase(phase), task_id, single_line(description)
            )

        message = self._task_add_message(
            workflow, task_id, description, phase, priority, database_updated, markdown_updated
        )
        return TaskSyncResult(
            task_id=task_id,
            markdown_updated=markdown_updated,
            database_updated=database_updated,
            message=message,
            error=error,
        )

    def _task_update_message(
        self,
        workflow: Workflow,
        task: WorkflowTask,
        completed: bool,
        notes: Optional[str],
        database_updated: bool,
        markdown_updated: bool
    ) -> str:
        status = "✅ Completed" if completed else "⏳ Reopened"
        icon = "🎉" if completed else "🔄"

        message = f"\n{icon} **Task Update**\n\n"
        message += f"📋 **Task:** {task.description} ({task.id})\n"
        message += f"📊 **Status:** {status}\n"
        if notes and completed:
            message += f"📝 **Notes:** {notes}\n"
        message += (
            f"🧭 **Workflow:** {workflow.feature_name}: "
            f"{phase_display_name(workflow.current_phase)} ({workflow.progress}%)\n"
        )
        message += f"🔁 **Synced:** database {_check(database_updated)}, checklist {_check(markdown_updated)}\n"
        message += f"🕒 **Updated:** {datetime.now().strftime('%Y-%m-%d %H:%M')}\n"
        return message

    def _task_add_message(
        self,
        workflow: Workflow,
        task_id: str,
        description: str,
        phase: str,
        priority: str,
        database_updated: bool,
        markdown_updated: bool
    ) -> str:
        message = "\n➕ **New Task Added**\n\n"
        message += f"📋 **Task ID:** {task_id}\n"
        message += f"📝 **Description:** {single_line(description)}\n"
        message += f"🏷️ **Phase:** {phase_display_name(normalize_phase(phase))}\n"
        message += f"⚡ **Priority:** {priority}\n"
        message += "📊 **Status:** Todo\n"
        message += f"🧭 **Workflow:** {workflow.feature_name} ({workflow.progress}%)\n"
        message += f"🔁 **Synced:** database {_check(database_updated)}, checklist {_check(markdown_updated)}\n"
        message += f"🕒 **Created:** {datetime.now().strftime('%Y-%m-%d %H:%M')}\n"
        return message

    # ------------------------------------------------------------------
    # Summaries and checkpoints
    # ------------------------------------------------------------------

    def _format_summary(self, summary: WorkflowSummary) -> str:
        workflow = summary.workflow
        remaining = summary.total_tasks - summary.completed_tasks

        message = f"\n📈 **Progress Summary: {workflow.feature_name}**\n\n"
        message += (
            f"📊 **Overall Progress:** {summary.completed_tasks}/{summary.total_tasks} "
            f"tasks complete ({summary.progress}%)\n"
        )
        message += f"🧭 **Current Phase:** {phase_display_name(summary.current_phase)}\n\n"

        for phase, group in summary.tasks_by_phase.items():
            if group["completed"] == group["total"]:
                icon = "✅"
            elif group["completed"] > 0 or phase == summary.current_phase:
                icon = "🔄"
            else:
                icon = "⬜"
            message += f"   {icon} {phase_display_name(phase)}: {group['completed']}/{group['total']}\n"

        message += f"\n✅ **Completed:** {summary.completed_tasks} tasks\n"
        message += f"⏳ **Remaining:** {remaining} tasks\n\n"

        if summary.total_tasks and remaining == 0:
            message += "🎯 **Status:** All tasks completed! Ready for release.\n"
        else:
            message += f"⏳ **Status:** {remaining} tasks remaining\n"
            if summary.next_actions:
                message += "➡️ **Next up:**\n"
                for task in summary.next_actions:
                    message += f"   • {task.description}\n"

        return message

    def progress_summary(self, workflow_id: str) -> str:
        return self._format_summary(self.manager.get_workflow_summary(workflow_id))

    def create_checkpoint(self, workflow_id: str, phase: Optional[str] = None) -> CheckpointResult:
        summary = self.manager.get_workflow_summary(workflow_id)
        workflow = summary.workflow

        phase = normalize_phase(phase) if phase else workflow.current_phase
        if phase not in PHASE_ORDER and phase != COMPLETED:
            raise ValidationError(
                f"Invalid phase '{phase}'. Valid phases: {', '.join(PHASE_ORDER + [COMPLETED])}"
            )

        if phase == COMPLETED:
            phase_tasks = [t for g in summary.tasks_by_phase.values() for t in g["tasks"]]
        else:
            phase_tasks = summary.tasks_by_phase.get(phase, {}).get("tasks", [])
        open_tasks = [t for t in phase_tasks if not t.completed]

        message = f"\n🛑 **Checkpoint: {phase_display_name(phase)} Review**\n"
        message += self._format_summary(summary)
        message += f"\n📋 **{phase_display_name(phase)} Tasks:**\n"
        for task in phase_tasks:
            message += f"   {'[x]' if task.completed else '[ ]'} {task.description}\n"

        message += "\n🔍 **Validation Required:**\n"
        message += "   • All phase tasks completed\n"
        message += "   • Quality standards met\n"
        message += "   • Documentation updated\n"
        message += "   • Ready for next phase\n\n"

        if open_tasks:
            message += f"⚠️ **{len(open_tasks)} task(s) still open in this phase**\n"
        else:
            message += "✅ **Phase complete, ready for review**\n"

        checkpoint_file = None
        if self.write_checkpoint_files and workflow.directory:
            checkpoint_file = self._write_checkpoint_file(Path(workflow.directory), phase, message)

        return CheckpointResult(
            workflow_id=workflow.id,
            phase=phase,
            message=message,
            phase_complete=not open_tasks,
            checkpoint_file=checkpoint_file,
        )

    def _write_checkpoint_file(self, feature_dir: Path, phase: str, message: str) -> Optional[str]:
        now = datetime.now()
        path = feature_dir / f"checkpoint-{phase}-{now.strftime('%Y%m%d-%H%M%S')}.md"
        content = f"# Checkpoint: {phase_display_name(phase)}\n\n**Date:** {now.isoformat()}\n{message}"
        try:
            path.write_text(content, encoding="utf-8")
        except OSError as e:
            logger.warning(f"Could not write checkpoint file {path}: {e}")
            return None
        return str(path)
