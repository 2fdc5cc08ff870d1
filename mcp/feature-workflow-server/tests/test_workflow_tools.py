"""
Tests for workflow_tools.py: tool routing, request validation and result envelopes.

Run with: pytest tests/test_workflow_tools.py -v
"""

import pytest
from pathlib import Path
from unittest.mock import patch

import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from feature_workflow_server.errors import StorageError
from feature_workflow_server.workflow_tools import (
    TOOL_SPECS,
    ToolName,
    build_context,
    dispatch_tool,
)


@pytest.fixture
def ctx(tmp_path):
    context = build_context(str(tmp_path), overrides={"database": ":memory:"})
    yield context
    context.close()


@pytest.fixture
def workflow_id(ctx):
    result = dispatch_tool("create_feature_workflow", {"project_id": "proj", "feature_name": "Login"}, ctx)
    assert result["success"] is True
    return result["workflow_id"]


def first_task_id(ctx, workflow_id):
    result = dispatch_tool("get_workflow_tasks", {"workflow_id": workflow_id}, ctx)
    return result["tasks"][0]["id"]


class TestRouting:
    """Test tool name routing."""

    def test_every_tool_is_routed(self):
        assert set(TOOL_SPECS) == set(ToolName)

    def test_unknown_tool(self, ctx):
        result = dispatch_tool("create_feature", {}, ctx)
        assert result == {
            "success": False,
            "error": "Unknown tool: create_feature",
            "error_type": "unknown_tool",
        }

    def test_no_prefix_matching(self, ctx):
        result = dispatch_tool("create_feature_workflow_extra", {"project_id": "p", "feature_name": "x"}, ctx)
        assert result["error_type"] == "unknown_tool"


class TestValidation:
    """Test request validation at the tool boundary."""

    def test_missing_required_argument(self, ctx):
        result = dispatch_tool("create_feature_workflow", {"project_id": "proj"}, ctx)
        assert result["success"] is False
        assert result["error_type"] == "validation_error"
        assert "feature_name" in result["error"]

    def test_wrong_type(self, ctx, workflow_id):
        result = dispatch_tool(
            "update_task_with_sync",
            {"workflow_id": workflow_id, "task_id": "t", "completed": [1, 2]},
            ctx
        )
        assert result["error_type"] == "validation_error"

    def test_invalid_priority(self, ctx, workflow_id):
        result = dispatch_tool(
            "add_task_with_sync",
            {"workflow_id": workflow_id, "phase": "testing", "description": "x", "priority": "urgent"},
            ctx
        )
        assert result["error_type"] == "validation_error"

    def test_workflow_type_with_dash_rejected(self, ctx):
        result = dispatch_tool(
            "create_feature_workflow",
            {"project_id": "proj", "feature_name": "Login", "workflow_type": "hot-fix"},
            ctx
        )
        assert result["success"] is False
        assert result["error_type"] == "validation_error"
        assert not (ctx.allocator.features_dir / "proj").exists()

    def test_domain_validation_error(self, ctx, workflow_id):
        result = dispatch_tool(
            "add_workflow_task",
            {"workflow_id": workflow_id, "phase": "deployment", "description": "Ship"},
            ctx
        )
        assert result["success"] is False
        assert result["error_type"] == "validation_error"


class TestWorkflowTools:
    """Test the workflow CRUD tools."""

    def test_create(self, ctx, workflow_id):
        result = dispatch_tool("get_feature_workflow", {"workflow_id": workflow_id}, ctx)
        assert result["success"] is True
        assert result["workflow"]["status"] == "draft"
        assert result["workflow"]["progress"] == 0
        assert Path(result["workflow"]["directory"]).name == "1-feat-login"

    def test_create_uses_project_root(self, ctx, workflow_id, tmp_path):
        workflow = dispatch_tool("get_feature_workflow", {"workflow_id": workflow_id}, ctx)["workflow"]
        assert Path(workflow["directory"]).parent == tmp_path / ".features" / "proj"

    def test_list(self, ctx, workflow_id):
        result = dispatch_tool("list_feature_workflows", {"project_id": "proj"}, ctx)
        assert result["count"] == 1
        assert result["workflows"][0]["id"] == workflow_id

    def test_complete_and_uncomplete(self, ctx, workflow_id):
        task_id = first_task_id(ctx, workflow_id)
        result = dispatch_tool("complete_workflow_task", {"task_id": task_id}, ctx)
        assert result["success"] is True
        assert result["progress"] == 4
        assert result["status"] == "user-stories"

        result = dispatch_tool("uncomplete_workflow_task", {"task_id": task_id}, ctx)
        assert result["progress"] == 0

    def test_add_task(self, ctx, workflow_id):
        result = dispatch_tool(
            "add_workflow_task",
            {"workflow_id": workflow_id, "phase": "testing", "description": "Load test"},
            ctx
        )
        assert result["success"] is True
        tasks = dispatch_tool("get_workflow_tasks", {"workflow_id": workflow_id, "phase": "testing"}, ctx)
        assert result["task_id"] in [t["id"] for t in tasks["tasks"]]

    def test_summary(self, ctx, workflow_id):
        result = dispatch_tool("get_workflow_summary", {"workflow_id": workflow_id}, ctx)
        assert result["summary"]["total_tasks"] == 24
        assert len(result["summary"]["next_actions"]) == 3

    def test_delete(self, ctx, workflow_id):
        result = dispatch_tool("delete_feature_workflow", {"workflow_id": workflow_id}, ctx)
        assert result["success"] is True
        assert result["directory_removed"] is False
        result = dispatch_tool("get_feature_workflow", {"workflow_id": workflow_id}, ctx)
        assert result["error_type"] == "not_found"

    def test_delete_keeps_going_when_directory_removal_fails(self, ctx, workflow_id):
        with patch("feature_workflow_server.directory_allocator.shutil.rmtree", side_effect=OSError("busy")):
            result = dispatch_tool(
                "delete_feature_workflow", {"workflow_id": workflow_id, "remove_directory": True}, ctx
            )
        assert result["success"] is True
        assert result["directory_removed"] is False
        assert "busy" in result["directory_error"]
        assert Path(result["directory"]).exists()

        result = dispatch_tool("get_feature_workflow", {"workflow_id": workflow_id}, ctx)
        assert result["error_type"] == "not_found"

    def test_delete_with_directory(self, ctx, workflow_id):
        result = dispatch_tool(
            "delete_feature_workflow", {"workflow_id": workflow_id, "remove_directory": True}, ctx
        )
        assert result["success"] is True
        assert result["directory_removed"] is True
        assert "directory_error" not in result
        assert not Path(result["directory"]).exists()

    def test_delete_unknown(self, ctx):
        result = dispatch_tool("delete_feature_workflow", {"workflow_id": "workflow_missing"}, ctx)
        assert result["success"] is False
        assert result["error_type"] == "not_found"

    def test_list_project_features(self, ctx, workflow_id):
        result = dispatch_tool("list_project_features", {"project_id": "proj"}, ctx)
        assert result["count"] == 1
        assert result["features"][0]["workflow_id"] == workflow_id


class TestSyncTools:
    """Test the sync, summary and checkpoint tools."""

    def test_update_task_with_sync(self, ctx, workflow_id):
        task_id = first_task_id(ctx, workflow_id)
        result = dispatch_tool(
            "update_task_with_sync",
            {"workflow_id": workflow_id, "task_id": task_id, "completed": True},
            ctx
        )
        assert result["success"] is True
        assert result["database_updated"] is True
        assert result["markdown_updated"] is True

    def test_partial_sync_reports_failure(self, ctx, workflow_id):
        task_id = first_task_id(ctx, workflow_id)
        with patch.object(ctx.manager, "apply_task_completion", side_effect=StorageError("locked")):
            result = dispatch_tool(
                "update_task_with_sync",
                {"workflow_id": workflow_id, "task_id": task_id, "completed": True},
                ctx
            )
        assert result["success"] is False
        assert result["error_type"] == "storage_error"
        assert result["database_updated"] is False
        assert result["markdown_updated"] is True
        assert "locked" in result["error"]

    def test_add_task_with_sync(self, ctx, workflow_id):
        result = dispatch_tool(
            "add_task_with_sync",
            {"workflow_id": workflow_id, "phase": "architecture", "description": "Threat model", "priority": "high"},
            ctx
        )
        assert result["success"] is True
        assert result["task_id"].startswith("task_")

    def test_add_task_with_multiline_description(self, ctx, workflow_id):
        result = dispatch_tool(
            "add_task_with_sync",
            {"workflow_id": workflow_id, "phase": "testing", "description": "a\n- [x] fake (ID: zzz)"},
            ctx
        )
        assert result["success"] is True
        assert result["markdown_updated"] is True

        directory = dispatch_tool("get_feature_workflow", {"workflow_id": workflow_id}, ctx)["workflow"]["directory"]
        lines = (Path(directory) / "tasks.md").read_text().splitlines()
        assert f"- [ ] a - [x] fake (ID: zzz) (ID: {result['task_id']})" in lines
        assert not any(line.startswith("- [x]") for line in lines)

    def test_progress_summary(self, ctx, workflow_id):
        result = dispatch_tool("generate_progress_summary", {"workflow_id": workflow_id}, ctx)
        assert result["success"] is True
        assert "0/24" in result["summary"]

    def test_checkpoint(self, ctx, workflow_id):
        result = dispatch_tool("create_checkpoint", {"workflow_id": workflow_id}, ctx)
        assert result["success"] is True
        assert result["phase"] == "user-stories"
        assert Path(result["checkpoint_file"]).exists()

    def test_unknown_workflow(self, ctx):
        result = dispatch_tool("generate_progress_summary", {"workflow_id": "workflow_missing"}, ctx)
        assert result["error_type"] == "not_found"


class TestErrorEnvelopes:
    """Test error envelopes for failing tools."""

    def test_storage_error(self, ctx, workflow_id):
        with patch.object(ctx.manager, "get_workflow", side_effect=StorageError("disk I/O error")):
            result = dispatch_tool("get_feature_workflow", {"workflow_id": workflow_id}, ctx)
        assert result == {"success": False, "error": "disk I/O error", "error_type": "storage_error"}

    def test_unexpected_error(self, ctx, workflow_id):
        with patch.object(ctx.manager, "get_workflow", side_effect=RuntimeError("boom")):
            result = dispatch_tool("get_feature_workflow", {"workflow_id": workflow_id}, ctx)
        assert result["success"] is False
        assert result["error_type"] == "internal_error"


class TestConfigTool:
    """Test the effective config tool."""

    def test_effective_config(self, ctx, tmp_path):
        config_dir = tmp_path / ".claude"
        config_dir.mkdir()
        (config_dir / "feature-workflow.yaml").write_text("workflow_type: chore\n")

        result = dispatch_tool("config_get_effective", {}, ctx)
        assert result["success"] is True
        assert result["config"]["workflow_type"] == "chore"
        assert result["has_project"] is True

    def test_context_uses_configured_workflow_type(self, tmp_path):
        context = build_context(
            str(tmp_path), overrides={"database": ":memory:", "workflow_type": "chore"}
        )
        try:
            result = dispatch_tool(
                "create_feature_workflow", {"project_id": "proj", "feature_name": "Bump deps"}, context
            )
        finally:
            context.close()
        assert Path(result["directory"]).name == "1-chore-bump-deps"
