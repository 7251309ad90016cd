"""Board service — boards, columns and cards CRUD plus the dashboard summary.

Names, titles and card content are sanitized with bleach.clean() to strip
HTML tags. New columns and cards are appended (max position + 1000) unless
the caller passes an explicit integer position.
Edits to names/titles/content never touch position; reordering lives in
reorder_service.py.

Every change to a board's subtree bumps the board revision so the detail
view is refetched.

Functions flush but do NOT commit. The caller commits.
"""

import bleach

from taskboard.errors import (
    BoardNotFound,
    CardNotFound,
    ContainerNotFound,
    ValidationError,
)
from taskboard.extensions import db
from taskboard.models.audit import AuditEvent
from taskboard.models.board import Board, BoardColumn, Card
from taskboard.services.ordering_store import CARDS, COLUMNS, get_ordering_store
from taskboard.services.positions import next_position


def _sanitize(text):
    """Strip all HTML tags from user input."""
    if text is None:
        return text
    return bleach.clean(text, tags=[], strip=True).strip()


def _required(text, label):
    value = _sanitize(text)
    if not value:
        raise ValidationError(f"{label} is required.")
    return value


def _position(value):
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError("Position must be an integer.")
    return value


def _audit(board_id, actor_id, action, **metadata):
    db.session.add(AuditEvent(
        board_id=board_id,
        actor_user_id=actor_id,
        action=action,
        metadata_=metadata,
    ))


def _isoformat(value):
    return value.isoformat() if value else None


# ─── Boards ──────────────────────────────────────────────────────

def list_boards(owner_id):
    return (
        Board.query
        .filter_by(owner_id=owner_id)
        .order_by(Board.created_at, Board.id)
        .all()
    )


def get_board(board_id, owner_id):
    """Load a board owned by `owner_id`.

    Raises:
        BoardNotFound: missing, or owned by someone else.
    """
    board = db.session.get(Board, board_id)
    if board is None or board.owner_id != owner_id:
        raise BoardNotFound(f"Board {board_id} not found.")
    return board


def board_dict(board):
    return {
        "id": board.id,
        "name": board.name,
        "description": board.description,
        "owner_id": board.owner_id,
        "revision": board.revision,
        "created_at": _isoformat(board.created_at),
        "updated_at": _isoformat(board.updated_at),
    }


def column_dict(column):
    return {
        "id": column.id,
        "board_id": column.board_id,
        "name": column.name,
        "position": column.position,
        "created_at": _isoformat(column.created_at),
        "updated_at": _isoformat(column.updated_at),
    }


def card_dict(card):
    return {
        "id": card.id,
        "column_id": card.column_id,
        "title": card.title,
        "content": card.content,
        "position": card.position,
        "created_at": _isoformat(card.created_at),
        "updated_at": _isoformat(card.updated_at),
    }


def get_board_tree(board_id, owner_id):
    """Board with its columns and their cards, all sorted by position."""
    board = get_board(board_id, owner_id)
    store = get_ordering_store()
    columns = []
    for column in store.list_children(COLUMNS, board.id):
        data = column_dict(column)
        data["cards"] = [card_dict(c) for c in store.list_children(CARDS, column.id)]
        columns.append(data)
    tree = board_dict(board)
    tree["columns"] = columns
    return tree


def create_board(owner_id, name, description=None):
    """Create a board for `owner_id`.

    Raises:
        ValidationError: if the name is empty.
    """
    name = _required(name, "Board name")
    board = Board(
        name=name,
        description=_sanitize(description) or None,
        owner_id=owner_id,
    )
    db.session.add(board)
    db.session.flush()

    _audit(board.id, owner_id, "board.created", name=name)
    db.session.flush()
    return board


def update_board(board_id, owner_id, name=None, description=None):
    board = get_board(board_id, owner_id)
    changes = {}
    if name is not None:
        board.name = changes["name"] = _required(name, "Board name")
    if description is not None:
        board.description = changes["description"] = _sanitize(description) or None
    if changes:
        _touch(board.id)
        _audit(board.id, owner_id, "board.updated", **changes)
    db.session.flush()
    return board


def delete_board(board_id, owner_id):
    """Hard delete a board with all its columns and cards."""
    board = get_board(board_id, owner_id)
    name = board.name
    get_ordering_store().delete_cascade(Board, board.id)
    _audit(board_id, owner_id, "board.deleted", name=name)
    db.session.flush()


def _touch(board_id):
    get_ordering_store().touch_board(board_id)


# ─── Columns ─────────────────────────────────────────────────────

def get_column(board_id, column_id):
    """Load a column that belongs to `board_id`.

    Raises:
        ContainerNotFound: missing, or on another board.
    """
    column = db.session.get(BoardColumn, column_id)
    if column is None or column.board_id != board_id:
        raise ContainerNotFound(f"Column {column_id} not found.")
    return column


def create_column(board_id, name, position=None):
    """Create a column; appended unless an explicit position is given."""
    name = _required(name, "Column name")
    store = get_ordering_store()
    if position is None:
        position = next_position(store.max_position(COLUMNS, board_id))
    column = BoardColumn(
        board_id=board_id,
        name=name,
        position=_position(position),
    )
    db.session.add(column)
    _touch(board_id)
    db.session.flush()
    return column


def update_column(board_id, column_id, name):
    column = get_column(board_id, column_id)
    column.name = _required(name, "Column name")
    _touch(board_id)
    db.session.flush()
    return column


def delete_column(board_id, column_id):
    """Hard delete a column and its cards. Siblings keep their positions."""
    column = get_column(board_id, column_id)
    get_ordering_store().delete_cascade(BoardColumn, column.id)
    _touch(board_id)
    db.session.flush()


# ─── Cards ───────────────────────────────────────────────────────

def get_card(board_id, card_id):
    """Load a card whose column belongs to `board_id`.

    Raises:
        CardNotFound: missing, or on another board.
    """
    card = db.session.get(Card, card_id)
    if card is None or card.column is None or card.column.board_id != board_id:
        raise CardNotFound(f"Card {card_id} not found.")
    return card


def create_card(board_id, column_id, title, content=None, position=None):
    column = get_column(board_id, column_id)
    title = _required(title, "Card title")
    store = get_ordering_store()
    if position is None:
        position = next_position(store.max_position(CARDS, column.id))
    card = Card(
        column_id=column.id,
        title=title,
        content=_sanitize(content) or None,
        position=_position(position),
    )
    db.session.add(card)
    _touch(board_id)
    db.session.flush()
    return card


def update_card(board_id, card_id, title=None, content=None):
    """Edit a card's title/content. Position and column are untouched."""
    card = get_card(board_id, card_id)
    if title is not None:
        card.title = _required(title, "Card title")
    if content is not None:
        card.content = _sanitize(content) or None
    _touch(board_id)
    db.session.flush()
    return card


def delete_card(board_id, card_id):
    card = get_card(board_id, card_id)
    get_ordering_store().delete_cascade(Card, card.id)
    _touch(board_id)
    db.session.flush()


# ─── Dashboard ───────────────────────────────────────────────────

def dashboard_summary(owner_id):
    """Totals across the owner's boards plus the most recently created one."""
    boards = (
        Board.query
        .filter_by(owner_id=owner_id)
        .order_by(Board.created_at.desc(), Board.id.desc())
        .all()
    )
    board_ids = [b.id for b in boards]

    total_columns = 0
    total_cards = 0
    if board_ids:
        total_columns = (
            BoardColumn.query.filter(BoardColumn.board_id.in_(board_ids)).count()
        )
        total_cards = (
            Card.query
            .join(BoardColumn, Card.column_id == BoardColumn.id)
            .filter(BoardColumn.board_id.in_(board_ids))
            .count()
        )

    latest = boards[0] if boards else None
    return {
        "total_boards": len(boards),
        "total_columns": total_columns,
        "total_cards": total_cards,
        "latest_board": {
            "id": latest.id,
            "name": latest.name,
            "created_at": _isoformat(latest.created_at),
        } if latest else None,
    }
