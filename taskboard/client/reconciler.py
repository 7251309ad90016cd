"""Optimistic reconciler for drag-and-drop on a board.

Holds a local mirror of the board, applies each drop to it immediately and
persists it in the background:

  IDLE --start_drag_*--> DRAGGING --drop--> IDLE
                                  --cancel_drag / invalid target--> IDLE

On drop:
  - same container, same index          -> nothing
  - same container, new index           -> array move, reorder call
  - different column                    -> remove + insert (append when no
                                           index), move_card call
  - no target / unknown target          -> cancelled, nothing

Persistence never blocks the next gesture. Local positions are left as they
were; list order is the mirror's order until the next sync().

What happens when a background write fails is a FailurePolicy:
  KEEP        report it, keep the optimistic state (server and mirror may
              differ until the next sync)
  REVERT      report it, restore the pre-drop snapshot if nothing was
              applied locally since, otherwise fall back to MARK_DIRTY
  MARK_DIRTY  report it, flag the mirror; the next drag refetches first
"""

import logging
import threading
from dataclasses import dataclass
from enum import Enum

from taskboard.client.dispatch import MutationDispatcher
from taskboard.client.mirror import LocalBoard, array_move
from taskboard.errors import ValidationError

logger = logging.getLogger(__name__)


class DragState(Enum):
    IDLE = "idle"
    DRAGGING = "dragging"


class FailurePolicy(Enum):
    KEEP = "keep"
    REVERT = "revert"
    MARK_DIRTY = "mark_dirty"


@dataclass(frozen=True)
class Drag:
    kind: str          # "column" | "card"
    entity_id: str
    source_id: str     # board id for columns, column id for cards
    source_index: int


def _log_error(message, exc):
    logger.error(f"{message}: {exc}")


def _clamp(index, last):
    if index is None:
        return last
    return max(0, min(index, last))


class Reconciler:
    """Owns the local board mirror; nothing else should mutate it."""

    def __init__(self, api, board, failure_policy=FailurePolicy.KEEP,
                 dispatcher=None, on_error=None):
        self.api = api
        self.failure_policy = FailurePolicy(failure_policy)
        self._owns_dispatcher = dispatcher is None
        self.dispatcher = dispatcher or MutationDispatcher()
        self.on_error = on_error or _log_error
        self._lock = threading.RLock()
        self._board = None
        self._version = 0
        self._dirty = False
        self._drag = None
        self.sync(board)

    # ─── State ───────────────────────────────────────────────────

    @property
    def board(self):
        return self._board

    @property
    def state(self):
        return DragState.DRAGGING if self._drag is not None else DragState.IDLE

    @property
    def drag(self):
        return self._drag

    @property
    def dirty(self):
        return self._dirty

    def snapshot(self):
        with self._lock:
            return self._board.clone()

    def sync(self, board):
        """Replace the mirror with a deep copy of an authoritative tree.

        Local edits made since the last sync are discarded.
        """
        mirror = board.clone() if isinstance(board, LocalBoard) else LocalBoard.from_dict(board)
        with self._lock:
            self._board = mirror
            self._version += 1
            self._dirty = False

    def refresh(self):
        """Refetch the board from the server and sync to it."""
        self.sync(self.api.fetch_board(self._board.id))

    def wait(self, timeout=None):
        self.dispatcher.wait(timeout=timeout)

    def close(self):
        """Finish pending writes and stop the worker threads we started.

        A dispatcher passed in by the caller is left running.
        """
        if self._owns_dispatcher:
            self.dispatcher.shutdown(wait=True)
        else:
            self.dispatcher.wait()

    # ─── Gestures ────────────────────────────────────────────────

    def start_drag_column(self, column_id):
        self._before_drag()
        with self._lock:
            ids = self._board.column_ids
            if column_id not in ids:
                raise ValidationError(f"Column {column_id} is not on this board.")
            self._drag = Drag("column", column_id, self._board.id, ids.index(column_id))
            return self._drag

    def start_drag_card(self, card_id):
        self._before_drag()
        with self._lock:
            column = self._board.column_of(card_id)
            if column is None:
                raise ValidationError(f"Card {card_id} is not on this board.")
            self._drag = Drag("card", card_id, column.id, column.index_of(card_id))
            return self._drag

    def cancel_drag(self):
        with self._lock:
            self._drag = None

    def drop(self, target_id=None, index=None):
        """Finish the current drag.

        Args:
            target_id: container dropped on (the board id for a column drag,
                a column id for a card drag). None means outside any target.
            index: final index in the target; None appends.

        Returns:
            The Future of the background write, or None if nothing changed.
        """
        with self._lock:
            drag, self._drag = self._drag, None
            if drag is None:
                return None
            if drag.kind == "column":
                return self._drop_column(drag, target_id, index)
            return self._drop_card(drag, target_id, index)

    def _before_drag(self):
        if self._drag is not None:
            raise RuntimeError("A drag is already in progress.")
        if self._dirty:
            logger.info("Mirror is dirty; refetching before the next drag")
            self.refresh()

    def _drop_column(self, drag, target_id, index):
        board = self._board
        if target_id != board.id or drag.entity_id not in board.column_ids:
            logger.debug(f"Column drag of {drag.entity_id} cancelled")
            return None

        current = board.column_ids.index(drag.entity_id)
        new_index = _clamp(index, len(board.columns) - 1)
        if new_index == current:
            return None

        snapshot = board.clone()
        board.columns = array_move(board.columns, current, new_index)
        version = self._bump()
        order = board.column_ids
        board_id = board.id
        return self._dispatch(
            lambda: self.api.reorder_columns(board_id, order),
            snapshot, version, "Failed to save column order",
        )

    def _drop_card(self, drag, target_id, index):
        board = self._board
        target = board.column(target_id) if target_id else None
        source = board.column_of(drag.entity_id)
        if target is None or source is None:
            logger.debug(f"Card drag of {drag.entity_id} cancelled")
            return None

        card_id = drag.entity_id
        current = source.index_of(card_id)
        snapshot = board.clone()
        board_id = board.id

        if source.id == target.id:
            new_index = _clamp(index, len(source.cards) - 1)
            if new_index == current:
                return None
            source.cards = array_move(source.cards, current, new_index)
            order = source.card_ids
            column_id = source.id
            version = self._bump()
            return self._dispatch(
                lambda: self.api.reorder_cards(board_id, column_id, order),
                snapshot, version, "Failed to save card order",
            )

        card = source.cards.pop(current)
        card.column_id = target.id
        target.cards.insert(_clamp(index, len(target.cards)), card)
        order = target.card_ids
        source_id, target_column_id = source.id, target.id
        version = self._bump()
        return self._dispatch(
            lambda: self.api.move_card(board_id, card_id, source_id, target_column_id, order),
            snapshot, version, "Failed to move card",
        )

    # ─── Persistence ─────────────────────────────────────────────

    def _bump(self):
        self._version += 1
        return self._version

    def _dispatch(self, call, snapshot, version, message):
        def on_failure(ticket, exc):
            self._handle_failure(ticket, exc, snapshot, version, message)

        return self.dispatcher.submit(self._board.id, call, on_failure=on_failure)

    def _handle_failure(self, ticket, exc, snapshot, version, message):
        self.on_error(message, exc)
        if self.failure_policy is FailurePolicy.KEEP:
            return
        with self._lock:
            if self.failure_policy is FailurePolicy.REVERT and self._version == version:
                logger.info(f"Reverting mirror after failed write #{ticket.sequence}")
                self._board = snapshot
                self._version += 1
                return
            logger.info(f"Marking mirror dirty after failed write #{ticket.sequence}")
            self._dirty = True
