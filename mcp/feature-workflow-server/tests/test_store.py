"""
Tests for store.py: SQLite record store over SQLAlchemy.

Run with: pytest tests/test_store.py -v
"""

import pytest
from pathlib import Path

import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from feature_workflow_server.errors import StorageError, ValidationError
from feature_workflow_server.store import WorkflowStore


@pytest.fixture
def store():
    s = WorkflowStore(":memory:")
    yield s
    s.close()


def add_workflow(store, workflow_id="wf_1", project_id="proj"):
    return store.insert("workflows", {
        "id": workflow_id,
        "project_id": project_id,
        "feature_name": "Login",
        "status": "draft",
        "current_phase": "user-stories",
    })


def add_task(store, task_id, workflow_id="wf_1", position=0, phase="user-stories"):
    return store.insert("workflow_tasks", {
        "id": task_id,
        "workflow_id": workflow_id,
        "position": position,
        "phase": phase,
        "description": f"Task {task_id}",
    })


class TestInsertAndGet:
    """Test row insertion and lookup."""

    def test_insert_returns_id(self, store):
        assert add_workflow(store) == "wf_1"

    def test_get_returns_row_dict(self, store):
        add_workflow(store)
        row = store.get("workflows", "wf_1")
        assert row["feature_name"] == "Login"
        assert row["progress"] == 0
        assert isinstance(row["created_at"], str)

    def test_get_missing_returns_none(self, store):
        assert store.get("workflows", "nope") is None

    def test_task_defaults(self, store):
        add_workflow(store)
        add_task(store, "t1")
        row = store.get("workflow_tasks", "t1")
        assert row["completed"] is False
        assert row["priority"] == "medium"
        assert row["completed_at"] is None

    def test_unknown_table(self, store):
        with pytest.raises(ValidationError):
            store.get("nope", "x")

    def test_unknown_column(self, store):
        with pytest.raises(ValidationError):
            store.insert("workflows", {"id": "wf", "bogus": 1})

    def test_duplicate_id_is_storage_error(self, store):
        add_workflow(store)
        with pytest.raises(StorageError):
            add_workflow(store)

    def test_task_requires_existing_workflow(self, store):
        with pytest.raises(StorageError):
            add_task(store, "t1", workflow_id="missing")


class TestQuery:
    """Test filtered and ordered queries."""

    def test_filters(self, store):
        add_workflow(store, "wf_1", "a")
        add_workflow(store, "wf_2", "b")
        rows = store.query("workflows", {"project_id": "a"})
        assert [r["id"] for r in rows] == ["wf_1"]

    def test_order_by(self, store):
        add_workflow(store)
        add_task(store, "t2", position=2)
        add_task(store, "t0", position=0)
        add_task(store, "t1", position=1)
        rows = store.query("workflow_tasks", {"workflow_id": "wf_1"}, order_by=["position"])
        assert [r["id"] for r in rows] == ["t0", "t1", "t2"]
        rows = store.query("workflow_tasks", {"workflow_id": "wf_1"}, order_by=["-position"])
        assert [r["id"] for r in rows] == ["t2", "t1", "t0"]


class TestUpdateAndDelete:
    """Test row updates and deletes."""

    def test_update_partial(self, store):
        add_workflow(store)
        assert store.update("workflows", "wf_1", {"progress": 50, "status": "architecture"})
        row = store.get("workflows", "wf_1")
        assert row["progress"] == 50
        assert row["status"] == "architecture"
        assert row["feature_name"] == "Login"

    def test_update_parses_iso_timestamps(self, store):
        add_workflow(store)
        add_task(store, "t1")
        store.update("workflow_tasks", "t1", {"completed": True, "completed_at": "2024-05-02T10:00:00+00:00"})
        assert store.get("workflow_tasks", "t1")["completed_at"].startswith("2024-05-02")

    def test_update_missing_returns_false(self, store):
        assert store.update("workflows", "nope", {"progress": 1}) is False

    def test_delete(self, store):
        add_workflow(store)
        assert store.delete("workflows", "wf_1") is True
        assert store.get("workflows", "wf_1") is None
        assert store.delete("workflows", "wf_1") is False

    def test_delete_where(self, store):
        add_workflow(store)
        for i in range(3):
            add_task(store, f"t{i}", position=i)
        assert store.delete_where("workflow_tasks", {"workflow_id": "wf_1"}) == 3
        assert store.query("workflow_tasks", {"workflow_id": "wf_1"}) == []

    def test_foreign_key_cascade(self, store):
        add_workflow(store)
        add_task(store, "t1")
        store.delete("workflows", "wf_1")
        assert store.get("workflow_tasks", "t1") is None


class TestTransaction:
    """Test commit and rollback of store transactions."""

    def test_rolls_back_on_error(self, store):
        add_workflow(store)
        with pytest.raises(StorageError):
            with store.transaction() as tx:
                tx.update("workflows", "wf_1", {"progress": 75})
                tx.insert("workflows", {
                    "id": "wf_1",
                    "project_id": "proj",
                    "feature_name": "dup",
                    "status": "draft",
                    "current_phase": "user-stories",
                })
        assert store.get("workflows", "wf_1")["progress"] == 0

    def test_file_backed_store(self, tmp_path):
        db_path = tmp_path / "nested" / "workflows.db"
        s = WorkflowStore(db_path)
        add_workflow(s)
        s.close()

        reopened = WorkflowStore(db_path)
        assert reopened.get("workflows", "wf_1")["feature_name"] == "Login"
        reopened.close()
