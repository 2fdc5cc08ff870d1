"""
Feature Workflow Tools

The tool surface of the MCP server. Each tool is a handler taking the
service context and a validated request model, returning a JSON-able dict:

    {"success": True, ...payload}
    {"success": False, "error": "...", "error_type": "not_found"}

Routing is an explicit ToolName -> ToolSpec mapping; tool names are never
matched by prefix or substring.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Optional

import pydantic

from .config_tools import _deep_merge, config_get_effective, config_get_paths, get_project_root
from .directory_allocator import DirectoryAllocator
from .errors import StorageError, ValidationError, WorkflowError
from .models import TaskSyncResult
from .schemas import (
    AddTaskInput,
    AddTaskSyncInput,
    CheckpointInput,
    CompleteTaskInput,
    ConfigInput,
    CreateWorkflowInput,
    DeleteWorkflowInput,
    GetTasksInput,
    ProjectIdInput,
    UncompleteTaskInput,
    UpdateTaskSyncInput,
    WorkflowIdInput,
)
from .store import WorkflowStore
from .task_sync import TaskChecklistSync
from .workflow_manager import WorkflowManager

logger = logging.getLogger(__name__)


# ============================================================================
# Service context
# ============================================================================

@dataclass
class WorkflowContext:
    project_root: Path
    config: dict[str, Any]
    store: WorkflowStore
    allocator: DirectoryAllocator
    manager: WorkflowManager
    sync: TaskChecklistSync

    def close(self) -> None:
        self.store.close()


def build_context(
    project_dir: Optional[str] = None,
    overrides: Optional[dict[str, Any]] = None
) -> WorkflowContext:
    """Build store, allocator, manager and synchronizer from the effective config."""
    project_root = get_project_root(project_dir)
    config = config_get_effective(str(project_root))["config"]
    if overrides:
        config = _deep_merge(config, overrides)

    paths = config_get_paths(config, project_root)
    database = ":memory:" if config.get("database") == ":memory:" else paths["database"]

    store = WorkflowStore(database)
    allocator = DirectoryAllocator(paths["features_dir"], paths["templates_dir"])
    manager = WorkflowManager(store, allocator, checklist_filename=config["checklist_file"])
    sync = TaskChecklistSync(manager, write_checkpoint_files=config["checkpoints"]["write_files"])

    return WorkflowContext(
        project_root=project_root,
        config=config,
        store=store,
        allocator=allocator,
        manager=manager,
        sync=sync,
    )


_context: Optional[WorkflowContext] = None


def get_context() -> WorkflowContext:
    global _context
    if _context is None:
        _context = build_context()
    return _context


# ============================================================================
# Handlers
# ============================================================================

def create_feature_workflow(ctx: WorkflowContext, request: CreateWorkflowInput) -> dict[str, Any]:
    workflow_type = request.workflow_type or ctx.config.get("workflow_type", "feat")
    workflow = ctx.manager.create_feature_workflow(
        request.project_id,
        request.feature_name,
        description=request.description,
        workflow_type=workflow_type,
    )
    return {
        "success": True,
        "workflow_id": workflow.id,
        "workflow": workflow.to_dict(),
        "directory": workflow.directory,
        "message": f"Feature workflow created successfully: {request.feature_name}"
    }


def get_feature_workflow(ctx: WorkflowContext, request: WorkflowIdInput) -> dict[str, Any]:
    workflow = ctx.manager.get_workflow(request.workflow_id)
    return {
        "success": True,
        "workflow": workflow.to_dict()
    }


def list_feature_workflows(ctx: WorkflowContext, request: ProjectIdInput) -> dict[str, Any]:
    workflows = ctx.manager.list_workflows(request.project_id)
    return {
        "success": True,
        "project_id": request.project_id,
        "workflows": [w.to_dict() for w in workflows],
        "count": len(workflows)
    }


def complete_workflow_task(ctx: WorkflowContext, request: CompleteTaskInput) -> dict[str, Any]:
    workflow = ctx.manager.complete_task(request.task_id, request.notes)
    return {
        "success": True,
        "task_id": request.task_id,
        "workflow_id": workflow.id,
        "status": workflow.status,
        "current_phase": workflow.current_phase,
        "progress": workflow.progress,
        "message": "Task marked as completed"
    }


def uncomplete_workflow_task(ctx: WorkflowContext, request: UncompleteTaskInput) -> dict[str, Any]:
    workflow = ctx.manager.uncomplete_task(request.task_id)
    return {
        "success": True,
        "task_id": request.task_id,
        "workflow_id": workflow.id,
        "status": workflow.status,
        "current_phase": workflow.current_phase,
        "progress": workflow.progress,
        "message": "Task marked as incomplete"
    }


def add_workflow_task(ctx: WorkflowContext, request: AddTaskInput) -> dict[str, Any]:
    task_id = ctx.manager.add_custom_task(request.workflow_id, request.phase, request.description)
    return {
        "success": True,
        "task_id": task_id,
        "workflow_id": request.workflow_id,
        "message": "Custom task added to workflow"
    }


def get_workflow_tasks(ctx: WorkflowContext, request: GetTasksInput) -> dict[str, Any]:
    tasks = ctx.manager.get_workflow_tasks(
        request.workflow_id, phase=request.phase, completed=request.completed
    )
    return {
        "success": True,
        "workflow_id": request.workflow_id,
        "tasks": [t.to_dict() for t in tasks],
        "count": len(tasks)
    }


def delete_feature_workflow(ctx: WorkflowContext, request: DeleteWorkflowInput) -> dict[str, Any]:
    result = ctx.manager.delete_workflow(request.workflow_id, remove_directory=request.remove_directory)
    payload = {
        "success": True,
        "workflow_id": result.workflow.id,
        "directory": result.workflow.directory,
        "directory_removed": result.directory_removed,
        "deleted_tasks": result.deleted_tasks,
        "message": "Workflow deleted successfully"
    }
    if result.directory_error:
        payload["directory_error"] = result.directory_error
        payload["message"] = "Workflow deleted; feature directory could not be removed"
    return payload


def get_workflow_summary(ctx: WorkflowContext, request: WorkflowIdInput) -> dict[str, Any]:
    summary = ctx.manager.get_workflow_summary(request.workflow_id)
    return {
        "success": True,
        "summary": summary.to_dict()
    }


def _sync_result(result: TaskSyncResult) -> dict[str, Any]:
    # a checklist miss alone is still a success
    payload = {"success": result.database_updated, **result.to_dict()}
    if not result.database_updated:
        payload["error_type"] = StorageError.error_type
    return payload


def update_task_with_sync(ctx: WorkflowContext, request: UpdateTaskSyncInput) -> dict[str, Any]:
    result = ctx.sync.update_task(request.workflow_id, request.task_id, request.completed, request.notes)
    return _sync_result(result)


def add_task_with_sync(ctx: WorkflowContext, request: AddTaskSyncInput) -> dict[str, Any]:
    result = ctx.sync.add_task(request.workflow_id, request.phase, request.description, request.priority)
    return _sync_result(result)


def generate_progress_summary(ctx: WorkflowContext, request: WorkflowIdInput) -> dict[str, Any]:
    return {
        "success": True,
        "workflow_id": request.workflow_id,
        "summary": ctx.sync.progress_summary(request.workflow_id)
    }


def create_checkpoint(ctx: WorkflowContext, request: CheckpointInput) -> dict[str, Any]:
    result = ctx.sync.create_checkpoint(request.workflow_id, request.phase)
    return {"success": True, **result.to_dict()}


def list_project_features(ctx: WorkflowContext, request: ProjectIdInput) -> dict[str, Any]:
    features = ctx.manager.list_project_features(request.project_id)
    return {
        "success": True,
        "project_id": request.project_id,
        "features": features,
        "count": len(features)
    }


def get_effective_config(ctx: WorkflowContext, request: ConfigInput) -> dict[str, Any]:
    effective = config_get_effective(request.project_dir or str(ctx.project_root))
    return {"success": True, **effective}


# ============================================================================
# Routing
# ============================================================================

class ToolName(str, Enum):
    CREATE_FEATURE_WORKFLOW = "create_feature_workflow"
    GET_FEATURE_WORKFLOW = "get_feature_workflow"
    LIST_FEATURE_WORKFLOWS = "list_feature_workflows"
    COMPLETE_WORKFLOW_TASK = "complete_workflow_task"
    UNCOMPLETE_WORKFLOW_TASK = "uncomplete_workflow_task"
    ADD_WORKFLOW_TASK = "add_workflow_task"
    GET_WORKFLOW_TASKS = "get_workflow_tasks"
    DELETE_FEATURE_WORKFLOW = "delete_feature_workflow"
    GET_WORKFLOW_SUMMARY = "get_workflow_summary"
    UPDATE_TASK_WITH_SYNC = "update_task_with_sync"
    ADD_TASK_WITH_SYNC = "add_task_with_sync"
    GENERATE_PROGRESS_SUMMARY = "generate_progress_summary"
    CREATE_CHECKPOINT = "create_checkpoint"
    LIST_PROJECT_FEATURES = "list_project_features"
    CONFIG_GET_EFFECTIVE = "config_get_effective"


@dataclass(frozen=True)
class ToolSpec:
    handler: Callable[[WorkflowContext, Any], dict[str, Any]]
    input_model: type[pydantic.BaseModel]
    description: str


TOOL_SPECS: dict[ToolName, ToolSpec] = {
    ToolName.CREATE_FEATURE_WORKFLOW: ToolSpec(
        create_feature_workflow, CreateWorkflowInput,
        "Create a new feature workflow. Allocates a numbered .features/<project>/<n>-<type>-<slug> "
        "directory seeded with phase templates and a tasks.md checklist, and creates 24 default tasks."
    ),
    ToolName.GET_FEATURE_WORKFLOW: ToolSpec(
        get_feature_workflow, WorkflowIdInput,
        "Get a feature workflow by ID, including status, current phase and progress."
    ),
    ToolName.LIST_FEATURE_WORKFLOWS: ToolSpec(
        list_feature_workflows, ProjectIdInput,
        "List all feature workflows for a project, newest first."
    ),
    ToolName.COMPLETE_WORKFLOW_TASK: ToolSpec(
        complete_workflow_task, CompleteTaskInput,
        "Mark a workflow task as completed. Recomputes workflow phase and progress."
    ),
    ToolName.UNCOMPLETE_WORKFLOW_TASK: ToolSpec(
        uncomplete_workflow_task, UncompleteTaskInput,
        "Mark a workflow task as incomplete. The workflow moves back to that task's phase if needed."
    ),
    ToolName.ADD_WORKFLOW_TASK: ToolSpec(
        add_workflow_task, AddTaskInput,
        "Add a custom task to a phase of a workflow."
    ),
    ToolName.GET_WORKFLOW_TASKS: ToolSpec(
        get_workflow_tasks, GetTasksInput,
        "Get the tasks of a workflow in phase order, optionally filtered by phase or completion."
    ),
    ToolName.DELETE_FEATURE_WORKFLOW: ToolSpec(
        delete_feature_workflow, DeleteWorkflowInput,
        "Delete a feature workflow and its tasks. The feature directory is kept unless remove_directory is true."
    ),
    ToolName.GET_WORKFLOW_SUMMARY: ToolSpec(
        get_workflow_summary, WorkflowIdInput,
        "Get a workflow summary with tasks grouped by phase, totals and next actions."
    ),
    ToolName.UPDATE_TASK_WITH_SYNC: ToolSpec(
        update_task_with_sync, UpdateTaskSyncInput,
        "Complete or reopen a task in both the database and the tasks.md checklist. "
        "Reports database_updated and markdown_updated separately."
    ),
    ToolName.ADD_TASK_WITH_SYNC: ToolSpec(
        add_task_with_sync, AddTaskSyncInput,
        "Add a task to both the database and the tasks.md checklist under the phase heading."
    ),
    ToolName.GENERATE_PROGRESS_SUMMARY: ToolSpec(
        generate_progress_summary, WorkflowIdInput,
        "Generate a human-readable progress summary for a workflow."
    ),
    ToolName.CREATE_CHECKPOINT: ToolSpec(
        create_checkpoint, CheckpointInput,
        "Create a phase review checkpoint and record it in the feature directory."
    ),
    ToolName.LIST_PROJECT_FEATURES: ToolSpec(
        list_project_features, ProjectIdInput,
        "List the feature directories of a project with checklist progress."
    ),
    ToolName.CONFIG_GET_EFFECTIVE: ToolSpec(
        get_effective_config, ConfigInput,
        "Get the fully merged effective configuration (defaults, global and project YAML)."
    ),
}


def _failure(error: str, error_type: str) -> dict[str, Any]:
    return {"success": False, "error": error, "error_type": error_type}


def _format_validation_error(e: pydantic.ValidationError) -> str:
    parts = []
    for err in e.errors():
        field = ".".join(str(p) for p in err["loc"]) or "arguments"
        parts.append(f"{field}: {err['msg']}")
    return "Invalid arguments: " + "; ".join(parts)


def dispatch_tool(
    name: str,
    arguments: Optional[dict[str, Any]] = None,
    context: Optional[WorkflowContext] = None
) -> dict[str, Any]:
    try:
        tool = ToolName(name)
    except ValueError:
        return _failure(f"Unknown tool: {name}", "unknown_tool")

    spec = TOOL_SPECS[tool]
    try:
        request = spec.input_model.model_validate(arguments or {})
    except pydantic.ValidationError as e:
        return _failure(_format_validation_error(e), ValidationError.error_type)

    try:
        return spec.handler(context or get_context(), request)
    except StorageError as e:
        logger.error(f"Storage error in tool {name}: {e}")
        return _failure(str(e), e.error_type)
    except WorkflowError as e:
        logger.info(f"Tool {name} failed: {e}")
        return _failure(str(e), e.error_type)
    except Exception as e:
        logger.exception(f"Error executing tool {name}")
        return _failure(str(e), "internal_error")
