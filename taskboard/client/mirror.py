"""Local mirror of a board tree (Board -> Columns -> Cards).

Built from the JSON of GET /api/boards/<id>. Rows missing required fields
raise MalformedRow. The mirror is plain data: the reconciler owns it and is
the only thing that mutates it.
"""

import copy
from dataclasses import dataclass, field
from typing import List, Optional

from taskboard.errors import MalformedRow


def _require(kind, data, names):
    missing = [name for name in names if data.get(name) is None]
    if missing:
        raise MalformedRow(kind, data.get("id"), missing)


@dataclass
class LocalCard:
    id: str
    column_id: str
    title: str
    position: int
    content: Optional[str] = None

    @classmethod
    def from_dict(cls, data):
        _require("card", data, ("id", "column_id", "title", "position"))
        return cls(
            id=data["id"],
            column_id=data["column_id"],
            title=data["title"],
            position=data["position"],
            content=data.get("content"),
        )


@dataclass
class LocalColumn:
    id: str
    board_id: str
    name: str
    position: int
    cards: List[LocalCard] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data):
        _require("column", data, ("id", "board_id", "name", "position"))
        cards = [LocalCard.from_dict(c) for c in data.get("cards") or []]
        cards.sort(key=lambda c: c.position)
        return cls(
            id=data["id"],
            board_id=data["board_id"],
            name=data["name"],
            position=data["position"],
            cards=cards,
        )

    @property
    def card_ids(self):
        return [card.id for card in self.cards]

    def index_of(self, card_id):
        for index, card in enumerate(self.cards):
            if card.id == card_id:
                return index
        return -1


@dataclass
class LocalBoard:
    id: str
    name: str
    revision: int = 0
    columns: List[LocalColumn] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data):
        _require("board", data, ("id", "name"))
        columns = [LocalColumn.from_dict(c) for c in data.get("columns") or []]
        columns.sort(key=lambda c: c.position)
        return cls(
            id=data["id"],
            name=data["name"],
            revision=data.get("revision") or 0,
            columns=columns,
        )

    @property
    def column_ids(self):
        return [column.id for column in self.columns]

    def column(self, column_id):
        for column in self.columns:
            if column.id == column_id:
                return column
        return None

    def column_of(self, card_id):
        """The column currently holding `card_id`, or None."""
        for column in self.columns:
            if column.index_of(card_id) != -1:
                return column
        return None

    def clone(self):
        return copy.deepcopy(self)


def array_move(items, from_index, to_index):
    """Return a copy of `items` with one element moved to `to_index`."""
    moved = list(items)
    item = moved.pop(from_index)
    moved.insert(to_index, item)
    return moved
