"""
Tests for resources.py: URI-based resource resolution.

Run with: pytest tests/test_resources.py -v
"""

import json
import pytest
from pathlib import Path

import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from feature_workflow_server.resources import (
    RESOURCE_DESCRIPTIONS,
    RESOURCE_TEMPLATES,
    get_project_workflows,
    resolve_resource,
)
from feature_workflow_server.workflow_tools import build_context


@pytest.fixture
def ctx(tmp_path):
    context = build_context(str(tmp_path), overrides={"database": ":memory:"})
    yield context
    context.close()


@pytest.fixture
def login(ctx):
    return ctx.manager.create_feature_workflow("proj", "Login")


class TestProjectWorkflows:
    """Test the per-project workflow list resource."""

    def test_counts(self, ctx, login):
        for task in ctx.manager.get_workflow_tasks(login.id):
            ctx.manager.complete_task(task.id)
        ctx.manager.create_feature_workflow("proj", "Signup")

        result = get_project_workflows(ctx, "proj")
        assert result["count"] == 2
        assert result["completed_count"] == 1
        assert result["active_count"] == 1

    def test_resolve(self, ctx, login):
        data = json.loads(resolve_resource("workflow://projects/proj/workflows", ctx))
        assert data["workflows"][0]["id"] == login.id

    def test_empty_project(self, ctx):
        data = json.loads(resolve_resource("workflow://projects/none/workflows", ctx))
        assert data["count"] == 0


class TestWorkflowResources:
    """Test single-workflow resources."""

    def test_summary(self, ctx, login):
        data = json.loads(resolve_resource(f"workflow://workflows/{login.id}/summary", ctx))
        assert data["total_tasks"] == 24
        assert data["current_phase"] == "user-stories"

    def test_checklist_is_markdown(self, ctx, login):
        content = resolve_resource(f"workflow://workflows/{login.id}/checklist", ctx)
        assert content.startswith("# Login - Task Checklist")

    def test_missing_checklist(self, ctx, login):
        (Path(login.directory) / "tasks.md").unlink()
        data = json.loads(resolve_resource(f"workflow://workflows/{login.id}/checklist", ctx))
        assert "error" in data

    def test_unknown_workflow(self, ctx):
        data = json.loads(resolve_resource("workflow://workflows/workflow_missing/summary", ctx))
        assert data["error_type"] == "not_found"


class TestConfigAndUnknown:
    """Test the config resource and unknown URIs."""

    def test_effective_config(self, ctx, tmp_path):
        data = json.loads(resolve_resource("config://effective", ctx))
        assert data["project_root"] == str(tmp_path.resolve())
        assert "features_dir" in data["config"]

    def test_unknown_uri(self, ctx):
        data = json.loads(resolve_resource("workflow://nope", ctx))
        assert "Unknown resource URI" in data["error"]


class TestDescriptions:
    """Test resource listing and descriptions."""

    def test_all_have_required_fields(self):
        for info in list(RESOURCE_DESCRIPTIONS.values()) + list(RESOURCE_TEMPLATES.values()):
            assert {"name", "description", "mimeType"} <= set(info)

    def test_templates(self):
        assert "workflow://workflows/{workflow_id}/summary" in RESOURCE_TEMPLATES
        assert "workflow://projects/{project_id}/workflows" in RESOURCE_TEMPLATES
