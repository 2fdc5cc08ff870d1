"""
Request models for the feature workflow tools.

One pydantic model per tool. Arguments are validated here, at the tool
boundary, before anything reaches the workflow manager. The same models
produce the JSON input schemas advertised by the MCP server.
"""

from typing import Literal, Optional

from pydantic import BaseModel, Field


Priority = Literal["low", "medium", "high", "critical"]


class CreateWorkflowInput(BaseModel):
    """Input for creating a feature workflow."""
    project_id: str = Field(..., min_length=1, description="Project ID")
    feature_name: str = Field(..., min_length=1, description="Name of the feature")
    description: Optional[str] = Field(None, description="Optional description")
    workflow_type: Optional[str] = Field(
        None, min_length=1, pattern=r"^[a-z0-9]+$",
        description="Conventional commit type used in the directory name (feat, fix, chore). "
                    "Defaults to the configured workflow_type."
    )


class WorkflowIdInput(BaseModel):
    workflow_id: str = Field(..., min_length=1, description="Workflow ID")


class ProjectIdInput(BaseModel):
    project_id: str = Field(..., min_length=1, description="Project ID")


class CompleteTaskInput(BaseModel):
    task_id: str = Field(..., min_length=1, description="Task ID")
    notes: Optional[str] = Field(None, description="Optional completion notes")


class UncompleteTaskInput(BaseModel):
    task_id: str = Field(..., min_length=1, description="Task ID")


class AddTaskInput(BaseModel):
    workflow_id: str = Field(..., min_length=1, description="Workflow ID")
    phase: str = Field(
        ..., min_length=1,
        description="Phase: user-stories, architecture, implementation or testing"
    )
    description: str = Field(..., min_length=1, description="Task description")


class GetTasksInput(BaseModel):
    workflow_id: str = Field(..., min_length=1, description="Workflow ID")
    phase: Optional[str] = Field(None, description="Only tasks of this phase")
    completed: Optional[bool] = Field(None, description="Only completed (true) or open (false) tasks")


class DeleteWorkflowInput(BaseModel):
    workflow_id: str = Field(..., min_length=1, description="Workflow ID")
    remove_directory: bool = Field(
        False, description="Also delete the feature directory. Off by default."
    )


class UpdateTaskSyncInput(BaseModel):
    workflow_id: str = Field(..., min_length=1, description="Workflow ID")
    task_id: str = Field(..., min_length=1, description="Task ID")
    completed: bool = Field(..., description="Whether the task is completed")
    notes: Optional[str] = Field(None, description="Optional notes about the update")


class AddTaskSyncInput(BaseModel):
    workflow_id: str = Field(..., min_length=1, description="Workflow ID")
    phase: str = Field(..., min_length=1, description="Phase the task belongs to")
    description: str = Field(..., min_length=1, description="Task description")
    priority: Priority = Field("medium", description="Task priority")


class CheckpointInput(BaseModel):
    workflow_id: str = Field(..., min_length=1, description="Workflow ID")
    phase: Optional[str] = Field(
        None, description="Phase to review. Defaults to the workflow's current phase."
    )


class ConfigInput(BaseModel):
    project_dir: Optional[str] = Field(
        None, description="Project directory. Defaults to the server's project root."
    )
