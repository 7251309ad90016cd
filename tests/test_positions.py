"""Tests for the position allocator.

Covers:
- Renumbering to 1000, 2000, ... in input order
- Duplicate ids keep their first occurrence
- Empty input is rejected
- Append positions
"""

import pytest

from taskboard.errors import InvalidInput
from taskboard.services.positions import POSITION_STEP, allocate, dedupe, next_position


class TestAllocate:

    def test_positions_follow_input_order(self):
        positions = allocate(["c", "a", "b"])
        assert list(positions.items()) == [("c", 1000), ("a", 2000), ("b", 3000)]

    def test_positions_are_distinct_multiples_of_step(self):
        ids = [f"id-{i}" for i in range(25)]
        positions = allocate(ids)
        values = list(positions.values())
        assert values == [(i + 1) * POSITION_STEP for i in range(25)]
        assert len(set(values)) == len(values)

    def test_single_id(self):
        assert allocate(["only"]) == {"only": 1000}

    def test_duplicate_keeps_first_occurrence(self):
        positions = allocate(["x", "y", "x", "z"])
        assert positions == {"x": 1000, "y": 2000, "z": 3000}

    def test_empty_input_rejected(self):
        with pytest.raises(InvalidInput, match="empty order"):
            allocate([])

    def test_accepts_any_iterable(self):
        assert allocate(iter(["a", "b"])) == {"a": 1000, "b": 2000}


class TestHelpers:

    def test_dedupe_preserves_order(self):
        assert dedupe(["b", "a", "b", "c", "a"]) == ["b", "a", "c"]

    def test_next_position_empty_container(self):
        assert next_position(None) == 1000

    def test_next_position_appends_after_max(self):
        assert next_position(3000) == 4000

    def test_next_position_after_gapped_max(self):
        assert next_position(1500) == 2500
