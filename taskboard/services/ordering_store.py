"""Ordering store — the storage boundary for ordered columns and cards.

Everything that leaves this module is a typed, validated record
(BoardRecord / ColumnRecord / CardRecord); a row missing a required field
raises MalformedRow instead of leaking None into the engine.

Writes are upserts keyed by primary key: insert if absent, replace every
supplied column if present. upsert_batch() only flushes; wrap it in
transaction() to get an all-or-nothing commit.

The store is constructed once in create_app() and lives in
app.extensions["ordering_store"]; use get_ordering_store() to reach it.
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass, fields
from datetime import datetime, timezone
from typing import Optional

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from taskboard.errors import MalformedRow, PersistenceFailure
from taskboard.models.board import Board, BoardColumn, Card

logger = logging.getLogger(__name__)


# ──────────────────────────────────────────────
# Typed records
# ──────────────────────────────────────────────

@dataclass(frozen=True)
class BoardRecord:
    id: str
    name: str
    owner_id: str
    revision: int
    description: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class ColumnRecord:
    id: str
    board_id: str
    name: str
    position: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class CardRecord:
    id: str
    column_id: str
    title: str
    position: int
    content: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class EntityKind:
    """How one orderable entity type maps onto storage."""

    name: str
    model: type
    record: type
    parent_field: str
    carried: tuple
    required: tuple

    @property
    def parent_column(self):
        return getattr(self.model, self.parent_field)


COLUMNS = EntityKind(
    name="column",
    model=BoardColumn,
    record=ColumnRecord,
    parent_field="board_id",
    carried=("name",),
    required=("id", "board_id", "name", "position"),
)

CARDS = EntityKind(
    name="card",
    model=Card,
    record=CardRecord,
    parent_field="column_id",
    carried=("title", "content"),
    required=("id", "column_id", "title", "position"),
)

_BOARD_REQUIRED = ("id", "name", "owner_id", "revision")


def _missing(values, required):
    return [name for name in required if values.get(name) is None]


def to_record(kind, row):
    """Convert an ORM row or a plain dict into the kind's record."""
    names = [f.name for f in fields(kind.record)]
    if isinstance(row, dict):
        values = {name: row.get(name) for name in names}
    else:
        values = {name: getattr(row, name, None) for name in names}
    missing = _missing(values, kind.required)
    if missing:
        raise MalformedRow(kind.name, values.get("id"), missing)
    return kind.record(**values)


def board_record(board):
    names = [f.name for f in fields(BoardRecord)]
    values = {name: getattr(board, name, None) for name in names}
    missing = _missing(values, _BOARD_REQUIRED)
    if missing:
        raise MalformedRow("board", values.get("id"), missing)
    return BoardRecord(**values)


# ──────────────────────────────────────────────
# Store
# ──────────────────────────────────────────────

class OrderingStore:
    """SQLAlchemy-backed ordering store bound to a Flask-SQLAlchemy db."""

    def __init__(self, db):
        self.db = db

    @property
    def session(self):
        return self.db.session

    # --- Reads ---

    def list_children(self, kind, container_id):
        """Children of a container, position ascending."""
        rows = (
            kind.model.query
            .filter(kind.parent_column == container_id)
            .order_by(kind.model.position, kind.model.created_at, kind.model.id)
            .all()
        )
        return [to_record(kind, row) for row in rows]

    def fetch(self, kind, ids):
        """Records for the given ids that exist, keyed by id."""
        ids = list(ids)
        if not ids:
            return {}
        rows = kind.model.query.filter(kind.model.id.in_(ids)).all()
        return {row.id: to_record(kind, row) for row in rows}

    def get(self, kind, entity_id):
        row = self.session.get(kind.model, entity_id)
        return to_record(kind, row) if row is not None else None

    def get_board(self, board_id):
        board = self.session.get(Board, board_id)
        return board_record(board) if board is not None else None

    def max_position(self, kind, container_id):
        return (
            self.session.query(self.db.func.max(kind.model.position))
            .filter(kind.parent_column == container_id)
            .scalar()
        )

    def board_id_for(self, kind, container_id):
        """The board that owns a container (a board, or a column)."""
        if kind is COLUMNS:
            return container_id
        column = self.session.get(BoardColumn, container_id)
        return column.board_id if column is not None else None

    # --- Writes ---

    def upsert_batch(self, kind, rows):
        """Insert-or-replace rows by primary key. Flushes, does not commit.

        Each row must carry id, parent and position plus the kind's carried
        fields; anything else on an existing row is left as stored.
        """
        validated = []
        for row in rows:
            missing = [name for name in kind.required if row.get(name) is None]
            missing += [name for name in kind.carried if name not in row]
            if missing:
                raise MalformedRow(kind.name, row.get("id"), missing)
            validated.append(dict(row))

        now = datetime.now(timezone.utc)
        written = []
        for row in validated:
            obj = self.session.get(kind.model, row["id"])
            if obj is None:
                obj = kind.model(**row)
                self.session.add(obj)
            else:
                for key, value in row.items():
                    setattr(obj, key, value)
                obj.updated_at = now
            written.append(obj)

        self.session.flush()
        return [to_record(kind, obj) for obj in written]

    def delete_cascade(self, model, entity_id):
        """Hard delete an entity and its descendants. Returns False if absent."""
        obj = self.session.get(model, entity_id)
        if obj is None:
            return False
        self.session.delete(obj)
        self.session.flush()
        return True

    def touch_board(self, board_id):
        """Mark a board's detail view stale by bumping its revision."""
        if board_id is None:
            return
        board = self.session.get(Board, board_id)
        if board is None:
            return
        board.revision = (board.revision or 0) + 1
        board.updated_at = datetime.now(timezone.utc)

    @contextmanager
    def transaction(self, action):
        """Commit the enclosed writes together or not at all.

        Store errors become PersistenceFailure; anything else (UnknownChild,
        MalformedRow, ...) rolls back and propagates unchanged.
        """
        try:
            yield self
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error(f"Failed to {action}: {e}")
            raise PersistenceFailure(f"Failed to {action}: {e}") from e
        except Exception:
            self.session.rollback()
            raise


def get_ordering_store():
    """The store registered on the current app."""
    return current_app.extensions["ordering_store"]
