"""Position allocator — sparse integer keys for ordered siblings.

The Nth item (1-indexed) of a freshly normalized order gets N * 1000.
Appends take the current max + 1000. Pure functions, no database access.
"""

from taskboard.errors import InvalidInput

POSITION_STEP = 1000


def dedupe(ids):
    """Return ids in order with later duplicates dropped."""
    seen = set()
    unique = []
    for entity_id in ids:
        if entity_id in seen:
            continue
        seen.add(entity_id)
        unique.append(entity_id)
    return unique


def allocate(ordered_ids):
    """Map each id to its renormalized position.

    Duplicates keep the position of their first occurrence.

    Args:
        ordered_ids: ids in the desired final order.

    Returns:
        dict: {id: position}, in the same order as the input.

    Raises:
        InvalidInput: if there is nothing to allocate. Callers skip
            persistence for an empty order instead of calling this.
    """
    unique = dedupe(ordered_ids)
    if not unique:
        raise InvalidInput("Cannot allocate positions for an empty order.")
    return {
        entity_id: (index + 1) * POSITION_STEP
        for index, entity_id in enumerate(unique)
    }


def next_position(current_max):
    """Position for an item appended after `current_max` (None = empty)."""
    if current_max is None:
        return POSITION_STEP
    return current_max + POSITION_STEP
