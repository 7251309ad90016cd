"""Reorder / move engine.

Turns "this is the order I want" into one batch of position (and parent)
updates and applies it through the ordering store in a single transaction.

- reorder_siblings: columns of a board, or cards of a column.
- move_card: a card leaves one column for another at a given index.

After either call the affected container holds consecutive multiples of
1000 in the new order. The source column of a move is NOT renormalized;
its remaining cards keep their (now gapped) positions.

Child sets are always read fresh from the store, never from a cache.
Write failures surface as PersistenceFailure and are not retried here.
"""

import logging
from dataclasses import dataclass, field

from taskboard.errors import ContainerNotFound, UnknownChild
from taskboard.services.ordering_store import CARDS, COLUMNS, get_ordering_store
from taskboard.services.positions import allocate, dedupe

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MoveResult:
    card: object
    source_column_id: str
    target_column_id: str
    target_cards: list = field(default_factory=list)


def _build_rows(kind, order, children_by_id, container_id):
    positions = allocate(order)
    rows = []
    for entity_id, position in positions.items():
        current = children_by_id[entity_id]
        row = {
            "id": entity_id,
            kind.parent_field: container_id,
            "position": position,
        }
        # Full-row upsert: carry the current values so nothing is nulled out.
        for name in kind.carried:
            row[name] = getattr(current, name)
        rows.append(row)
    return rows


def _with_trailing(order, children):
    """Append children the caller left out, keeping their current order."""
    listed = set(order)
    return order + [child.id for child in children if child.id not in listed]


def reorder_siblings(kind, container_id, ordered_child_ids, store=None):
    """Renormalize a container's children into the requested order.

    Args:
        kind: COLUMNS (container is a board) or CARDS (container is a column).
        container_id: id of the board or column.
        ordered_child_ids: desired order; duplicates keep the first occurrence.
        store: OrderingStore, defaults to the app's.

    Returns:
        list: the container's records in their new order ([] for a no-op).

    Raises:
        UnknownChild: an id is not currently a child of the container.
            Nothing is written.
        PersistenceFailure: the batch could not be committed.
    """
    store = store or get_ordering_store()
    order = dedupe(ordered_child_ids)
    if not order:
        logger.debug(f"Empty {kind.name} reorder for {container_id}; nothing to do")
        return []

    children = store.list_children(kind, container_id)
    children_by_id = {child.id: child for child in children}
    unknown = [entity_id for entity_id in order if entity_id not in children_by_id]
    if unknown:
        raise UnknownChild(kind.name, container_id, unknown)

    order = _with_trailing(order, children)
    rows = _build_rows(kind, order, children_by_id, container_id)
    board_id = store.board_id_for(kind, container_id)

    with store.transaction(f"reorder {kind.name}s"):
        records = store.upsert_batch(kind, rows)
        store.touch_board(board_id)

    logger.info(f"Reordered {len(records)} {kind.name}s in {container_id}")
    return records


def reorder_columns(board_id, ordered_column_ids, store=None):
    return reorder_siblings(COLUMNS, board_id, ordered_column_ids, store=store)


def reorder_cards(column_id, ordered_card_ids, store=None):
    return reorder_siblings(CARDS, column_id, ordered_card_ids, store=store)


def move_card(card_id, source_column_id, target_column_id, target_ordered_ids, store=None):
    """Move a card into another column and renormalize that column.

    `target_ordered_ids` is the target column's order after the move. It
    may or may not contain `card_id`; when it doesn't, the card is appended.

    A card that already sits in the target column is reordered in place.
    A card found in neither the source nor the target column is still
    moved (last write wins).

    Raises:
        ContainerNotFound: the target column doesn't exist.
        UnknownChild: the card doesn't exist, or another listed id is not a
            card of the target column.
        PersistenceFailure: the batch could not be committed.
    """
    store = store or get_ordering_store()

    target = store.get(COLUMNS, target_column_id)
    if target is None:
        raise ContainerNotFound(f"Column {target_column_id} not found.")

    card = store.get(CARDS, card_id)
    if card is None:
        raise UnknownChild(CARDS.name, target_column_id, [card_id])

    if card.column_id == target_column_id:
        records = reorder_siblings(CARDS, target_column_id, target_ordered_ids, store=store)
        return MoveResult(
            card=next((r for r in records if r.id == card_id), card),
            source_column_id=source_column_id,
            target_column_id=target_column_id,
            target_cards=records,
        )

    if card.column_id != source_column_id:
        # Another move of this card landed first; last write wins.
        logger.warning(
            f"Card {card_id} is in column {card.column_id}, not {source_column_id}; "
            f"moving it to {target_column_id} anyway"
        )

    order = dedupe(target_ordered_ids)
    if card_id not in order:
        order.append(card_id)

    children = [c for c in store.list_children(CARDS, target_column_id) if c.id != card_id]
    children_by_id = {child.id: child for child in children}
    unknown = [i for i in order if i != card_id and i not in children_by_id]
    if unknown:
        raise UnknownChild(CARDS.name, target_column_id, unknown)

    order = _with_trailing(order, children)
    # Fresh carried fields for every card in the working set.
    current = store.fetch(CARDS, order)
    missing = [i for i in order if i not in current]
    if missing:
        raise UnknownChild(CARDS.name, target_column_id, missing)
    rows = _build_rows(CARDS, order, current, target_column_id)
    source_board_id = store.board_id_for(CARDS, card.column_id)

    with store.transaction("move card"):
        records = store.upsert_batch(CARDS, rows)
        store.touch_board(target.board_id)
        if source_board_id != target.board_id:
            store.touch_board(source_board_id)

    logger.info(
        f"Moved card {card_id} from {source_column_id} to {target_column_id} "
        f"at index {order.index(card_id)}"
    )
    moved = next(r for r in records if r.id == card_id)
    return MoveResult(
        card=moved,
        source_column_id=source_column_id,
        target_column_id=target_column_id,
        target_cards=records,
    )
