"""
MCP Resources for Feature Workflow Server

Provides URI-based access to workflow state and configuration data.

Resource URIs:
  - workflow://projects/{project_id}/workflows   - Workflows of a project
  - workflow://workflows/{workflow_id}/summary   - Phase-grouped summary
  - workflow://workflows/{workflow_id}/checklist - Raw tasks.md checklist
  - config://effective                           - Fully merged effective config
"""

import json
import re
from typing import Any, Optional

from .checklist import read_checklist
from .config_tools import config_get_effective
from .errors import WorkflowError
from .workflow_tools import WorkflowContext, get_context

_PROJECT_WORKFLOWS_RE = re.compile(r"^workflow://projects/([^/]+)/workflows$")
_WORKFLOW_RESOURCE_RE = re.compile(r"^workflow://workflows/([^/]+)/(summary|checklist)$")


def get_project_workflows(ctx: WorkflowContext, project_id: str) -> dict[str, Any]:
    workflows = ctx.manager.list_workflows(project_id)
    return {
        "project_id": project_id,
        "workflows": [w.to_dict() for w in workflows],
        "count": len(workflows),
        "active_count": sum(1 for w in workflows if w.status != "completed"),
        "completed_count": sum(1 for w in workflows if w.status == "completed")
    }


def get_workflow_summary(ctx: WorkflowContext, workflow_id: str) -> dict[str, Any]:
    return ctx.manager.get_workflow_summary(workflow_id).to_dict()


def get_workflow_checklist(ctx: WorkflowContext, workflow_id: str) -> Optional[str]:
    workflow = ctx.manager.get_workflow(workflow_id)
    path = ctx.manager.checklist_path(workflow)
    if path is None:
        return None
    return read_checklist(path)


def get_effective_config(ctx: WorkflowContext) -> dict[str, Any]:
    return config_get_effective(str(ctx.project_root))


def resolve_resource(uri: str, context: Optional[WorkflowContext] = None) -> str:
    ctx = context or get_context()
    try:
        if uri == "config://effective":
            return json.dumps(get_effective_config(ctx), indent=2)

        match = _PROJECT_WORKFLOWS_RE.match(uri)
        if match:
            return json.dumps(get_project_workflows(ctx, match.group(1)), indent=2)

        match = _WORKFLOW_RESOURCE_RE.match(uri)
        if match:
            workflow_id, kind = match.groups()
            if kind == "summary":
                return json.dumps(get_workflow_summary(ctx, workflow_id), indent=2)
            checklist = get_workflow_checklist(ctx, workflow_id)
            if checklist is None:
                return json.dumps({"error": f"No checklist for workflow {workflow_id}"})
            return checklist
    except WorkflowError as e:
        return json.dumps({"error": str(e), "error_type": e.error_type})

    return json.dumps({"error": f"Unknown resource URI: {uri}"})


RESOURCE_DESCRIPTIONS = {
    "config://effective": {
        "name": "Effective configuration",
        "description": "Fully merged feature workflow configuration from all sources",
        "mimeType": "application/json"
    }
}


RESOURCE_TEMPLATES = {
    "workflow://projects/{project_id}/workflows": {
        "name": "Project workflows",
        "description": "All feature workflows of a project, newest first",
        "mimeType": "application/json"
    },
    "workflow://workflows/{workflow_id}/summary": {
        "name": "Workflow summary",
        "description": "Tasks grouped by phase with totals, progress and next actions",
        "mimeType": "application/json"
    },
    "workflow://workflows/{workflow_id}/checklist": {
        "name": "Workflow checklist",
        "description": "The tasks.md markdown checklist of a workflow",
        "mimeType": "text/markdown"
    }
}
