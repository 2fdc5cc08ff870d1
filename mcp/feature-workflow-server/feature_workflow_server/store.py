"""
Workflow Record Store

SQLite persistence for feature workflows and their tasks, built on the
SQLAlchemy ORM. The store is pure data access: rows go in and come out as
plain dicts and no phase or progress logic lives here.

Tables:
  - workflows       -> feature_workflows
  - workflow_tasks  -> workflow_tasks (FK to feature_workflows, ON DELETE CASCADE)

Every public method runs in its own transaction. Use ``transaction()`` to
group several operations atomically:

    with store.transaction() as tx:
        tx.delete_where("workflow_tasks", {"workflow_id": wf_id})
        tx.delete("workflows", wf_id)
"""

import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator, Optional, Union

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    create_engine,
    delete,
    event,
    select,
)
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker

from .errors import StorageError, ValidationError

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class WorkflowRecord(Base):
    __tablename__ = "feature_workflows"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    project_id: Mapped[str] = mapped_column(String, index=True)
    feature_name: Mapped[str] = mapped_column(String)
    description: Mapped[Optional[str]] = mapped_column(Text, default=None)
    status: Mapped[str] = mapped_column(String, default="draft")
    current_phase: Mapped[str] = mapped_column(String, default="user-stories")
    progress: Mapped[int] = mapped_column(Integer, default=0)
    directory: Mapped[Optional[str]] = mapped_column(String, default=None)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utc_now)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, onupdate=_utc_now
    )


class WorkflowTaskRecord(Base):
    __tablename__ = "workflow_tasks"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    workflow_id: Mapped[str] = mapped_column(
        ForeignKey("feature_workflows.id", ondelete="CASCADE"), index=True
    )
    position: Mapped[int] = mapped_column(Integer, default=0)
    phase: Mapped[str] = mapped_column(String)
    description: Mapped[str] = mapped_column(Text)
    priority: Mapped[str] = mapped_column(String, default="medium")
    completed: Mapped[bool] = mapped_column(Boolean, default=False)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), default=None)
    notes: Mapped[Optional[str]] = mapped_column(Text, default=None)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utc_now)


TABLES: dict[str, type[Base]] = {
    "workflows": WorkflowRecord,
    "workflow_tasks": WorkflowTaskRecord,
}


def _model_for(table: str) -> type[Base]:
    model = TABLES.get(table)
    if model is None:
        raise ValidationError(f"Unknown table: {table}")
    return model


def _to_row(record: Base) -> dict[str, Any]:
    row = {}
    for column in record.__table__.columns:
        value = getattr(record, column.key)
        if isinstance(value, datetime):
            value = value.isoformat()
        row[column.key] = value
    return row


def _coerce(model: type[Base], values: dict[str, Any]) -> dict[str, Any]:
    """Parse ISO timestamps for DateTime columns and reject unknown columns."""
    columns = model.__table__.columns
    coerced = {}
    for key, value in values.items():
        if key not in columns:
            raise ValidationError(f"Unknown column '{key}' for {model.__tablename__}")
        if isinstance(value, str) and isinstance(columns[key].type, DateTime):
            value = datetime.fromisoformat(value)
        coerced[key] = value
    return coerced


class StoreTransaction:
    """Record store operations bound to one open session."""

    def __init__(self, session: Session):
        self.session = session

    def insert(self, table: str, row: dict[str, Any]) -> str:
        model = _model_for(table)
        record = model(**_coerce(model, row))
        self.session.add(record)
        self.session.flush()
        return record.id

    def get(self, table: str, row_id: str) -> Optional[dict[str, Any]]:
        record = self.session.get(_model_for(table), row_id)
        return _to_row(record) if record is not None else None

    def query(
        self,
        table: str,
        filters: Optional[dict[str, Any]] = None,
        order_by: Optional[list[str]] = None
    ) -> list[dict[str, Any]]:
        """Select rows matching all ``filters``; ``order_by`` entries may start with '-' for descending."""
        model = _model_for(table)
        stmt = select(model)
        for key, value in _coerce(model, filters or {}).items():
            stmt = stmt.where(getattr(model, key) == value)
        for key in order_by or []:
            descending = key.startswith("-")
            column = getattr(model, key.lstrip("-"))
            stmt = stmt.order_by(column.desc() if descending else column.asc())
        return [_to_row(r) for r in self.session.scalars(stmt)]

    def update(self, table: str, row_id: str, partial: dict[str, Any]) -> bool:
        record = self.session.get(_model_for(table), row_id)
        if record is None:
            return False
        for key, value in _coerce(type(record), partial).items():
            setattr(record, key, value)
        self.session.flush()
        return True

    def delete(self, table: str, row_id: str) -> bool:
        record = self.session.get(_model_for(table), row_id)
        if record is None:
            return False
        self.session.delete(record)
        self.session.flush()
        return True

    def delete_where(self, table: str, filters: dict[str, Any]) -> int:
        model = _model_for(table)
        stmt = delete(model)
        for key, value in _coerce(model, filters).items():
            stmt = stmt.where(getattr(model, key) == value)
        result = self.session.execute(stmt)
        return result.rowcount or 0


class WorkflowStore:
    """SQLite-backed record store for workflows and workflow tasks."""

    def __init__(self, db_path: Union[str, Path] = ":memory:"):
        if str(db_path) == ":memory:":
            url = "sqlite://"
        else:
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
            url = f"sqlite:///{db_path}"

        self.db_path = str(db_path)
        self.engine = create_engine(url)
        event.listen(self.engine, "connect", _enable_foreign_keys)
        try:
            Base.metadata.create_all(self.engine)
        except SQLAlchemyError as e:
            raise StorageError(f"Could not initialize record store at {db_path}: {e}") from e
        self._session_factory = sessionmaker(self.engine, expire_on_commit=False)

    @contextmanager
    def transaction(self) -> Iterator[StoreTransaction]:
        session = self._session_factory()
        try:
            with session.begin():
                yield StoreTransaction(session)
        except SQLAlchemyError as e:
            logger.error(f"Record store transaction failed: {e}")
            raise StorageError(f"Record store error: {e}") from e
        finally:
            session.close()

    def insert(self, table: str, row: dict[str, Any]) -> str:
        with self.transaction() as tx:
            return tx.insert(table, row)

    def get(self, table: str, row_id: str) -> Optional[dict[str, Any]]:
        with self.transaction() as tx:
            return tx.get(table, row_id)

    def query(
        self,
        table: str,
        filters: Optional[dict[str, Any]] = None,
        order_by: Optional[list[str]] = None
    ) -> list[dict[str, Any]]:
        with self.transaction() as tx:
            return tx.query(table, filters, order_by)

    def update(self, table: str, row_id: str, partial: dict[str, Any]) -> bool:
        with self.transaction() as tx:
            return tx.update(table, row_id, partial)

    def delete(self, table: str, row_id: str) -> bool:
        with self.transaction() as tx:
            return tx.delete(table, row_id)

    def delete_where(self, table: str, filters: dict[str, Any]) -> int:
        with self.transaction() as tx:
            return tx.delete_where(table, filters)

    def close(self) -> None:
        self.engine.dispose()


def _enable_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()
