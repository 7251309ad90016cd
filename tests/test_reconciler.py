"""Tests for the client-side optimistic reconciler and its dispatcher.

The board API is a MagicMock; background writes are real threads, so
tests call reconciler.wait() (or block on threading.Event) before
asserting on anything a write callback changes.
"""

import threading
from unittest.mock import MagicMock, patch

import pytest

from taskboard.client.dispatch import DispatchOrdering, MutationDispatcher, Ticket
from taskboard.client.mirror import LocalBoard, array_move
from taskboard.client.reconciler import DragState, FailurePolicy, Reconciler
from taskboard.errors import MalformedRow, PersistenceFailure, ValidationError


# ─── Helpers ──────────────────────────────────────────────────────

def _board_dict():
    """Board "b" with A [a1, a2, a3] and B [b1, b2], listed out of order."""
    return {
        "id": "b",
        "name": "Sprint 1",
        "revision": 4,
        "columns": [
            {"id": "B", "board_id": "b", "name": "B", "position": 2000, "cards": [
                {"id": "b2", "column_id": "B", "title": "b2", "position": 2000},
                {"id": "b1", "column_id": "B", "title": "b1", "position": 1000},
            ]},
            {"id": "A", "board_id": "b", "name": "A", "position": 1000, "cards": [
                {"id": "a1", "column_id": "A", "title": "a1", "position": 1000},
                {"id": "a2", "column_id": "A", "title": "a2", "position": 2000},
                {"id": "a3", "column_id": "A", "title": "a3", "position": 3000},
            ]},
        ],
    }


def _reconciler(policy=FailurePolicy.KEEP, api=None, **kwargs):
    api = api or MagicMock()
    errors = []
    reconciler = Reconciler(
        api,
        _board_dict(),
        failure_policy=policy,
        on_error=lambda message, exc: errors.append((message, exc)),
        **kwargs,
    )
    return reconciler, api, errors


def _cards(reconciler, column_id):
    return reconciler.board.column(column_id).card_ids


class TestMirror:

    def test_from_dict_sorts_by_position(self):
        board = LocalBoard.from_dict(_board_dict())
        assert board.column_ids == ["A", "B"]
        assert board.column("B").card_ids == ["b1", "b2"]
        assert board.revision == 4

    def test_missing_field_is_malformed(self):
        data = _board_dict()
        del data["columns"][0]["cards"][0]["title"]
        with pytest.raises(MalformedRow) as exc_info:
            LocalBoard.from_dict(data)
        assert exc_info.value.missing == ["title"]

    def test_column_of(self):
        board = LocalBoard.from_dict(_board_dict())
        assert board.column_of("b2").id == "B"
        assert board.column_of("zz") is None

    def test_clone_is_deep(self):
        board = LocalBoard.from_dict(_board_dict())
        copy = board.clone()
        copy.column("A").cards.pop()
        assert board.column("A").card_ids == ["a1", "a2", "a3"]

    def test_array_move(self):
        assert array_move(["a", "b", "c"], 0, 2) == ["b", "c", "a"]
        assert array_move(["a", "b", "c"], 2, 0) == ["c", "a", "b"]


class TestDragStateMachine:

    def test_idle_dragging_idle(self):
        reconciler, _, _ = _reconciler()
        assert reconciler.state is DragState.IDLE

        drag = reconciler.start_drag_card("a2")
        assert reconciler.state is DragState.DRAGGING
        assert (drag.kind, drag.source_id, drag.source_index) == ("card", "A", 1)

        reconciler.drop("A", 0)
        assert reconciler.state is DragState.IDLE

    def test_cancel_drag(self):
        reconciler, api, _ = _reconciler()
        reconciler.start_drag_column("A")
        reconciler.cancel_drag()
        assert reconciler.state is DragState.IDLE
        assert reconciler.drop("b", 1) is None
        api.reorder_columns.assert_not_called()

    def test_cancel_drag_waits_for_the_lock(self):
        reconciler, _, _ = _reconciler()
        reconciler.start_drag_card("a1")
        cancelled = threading.Event()

        def cancel():
            reconciler.cancel_drag()
            cancelled.set()

        with reconciler._lock:
            worker = threading.Thread(target=cancel)
            worker.start()
            assert not cancelled.wait(0.1)
            assert reconciler.state is DragState.DRAGGING
        worker.join(5)
        assert cancelled.is_set()
        assert reconciler.state is DragState.IDLE

    def test_one_drag_at_a_time(self):
        reconciler, _, _ = _reconciler()
        reconciler.start_drag_card("a1")
        with pytest.raises(RuntimeError):
            reconciler.start_drag_card("a2")

    def test_unknown_entity(self):
        reconciler, _, _ = _reconciler()
        with pytest.raises(ValidationError):
            reconciler.start_drag_card("zz")
        with pytest.raises(ValidationError):
            reconciler.start_drag_column("zz")

    def test_drop_outside_any_target(self):
        reconciler, api, _ = _reconciler()
        before = reconciler.snapshot()
        reconciler.start_drag_card("a1")
        assert reconciler.drop(None) is None
        assert reconciler.board == before
        assert api.method_calls == []

    def test_drop_on_unknown_column(self):
        reconciler, api, _ = _reconciler()
        reconciler.start_drag_card("a1")
        assert reconciler.drop("nowhere", 0) is None
        assert api.method_calls == []


class TestOptimisticDrops:

    def test_same_index_is_a_no_op(self):
        reconciler, api, _ = _reconciler()
        reconciler.start_drag_card("a2")
        assert reconciler.drop("A", 1) is None
        reconciler.start_drag_column("B")
        assert reconciler.drop("b", 1) is None
        assert api.method_calls == []

    def test_reorder_columns(self):
        reconciler, api, _ = _reconciler()
        reconciler.start_drag_column("B")
        reconciler.drop("b", 0)
        assert reconciler.board.column_ids == ["B", "A"]

        reconciler.wait()
        api.reorder_columns.assert_called_once_with("b", ["B", "A"])

    def test_column_drop_on_a_column_is_cancelled(self):
        reconciler, api, _ = _reconciler()
        reconciler.start_drag_column("B")
        assert reconciler.drop("A", 0) is None
        assert reconciler.board.column_ids == ["A", "B"]

    def test_reorder_cards_within_column(self):
        reconciler, api, _ = _reconciler()
        reconciler.start_drag_card("a1")
        reconciler.drop("A", 2)
        assert _cards(reconciler, "A") == ["a2", "a3", "a1"]

        reconciler.wait()
        api.reorder_cards.assert_called_once_with("b", "A", ["a2", "a3", "a1"])

    def test_index_past_the_end_is_clamped(self):
        reconciler, api, _ = _reconciler()
        reconciler.start_drag_card("a1")
        reconciler.drop("A", 99)
        assert _cards(reconciler, "A") == ["a2", "a3", "a1"]

    def test_move_to_other_column_at_index(self):
        reconciler, api, _ = _reconciler()
        reconciler.start_drag_card("a2")
        reconciler.drop("B", 1)

        assert _cards(reconciler, "A") == ["a1", "a3"]
        assert _cards(reconciler, "B") == ["b1", "a2", "b2"]
        assert reconciler.board.column("B").cards[1].column_id == "B"

        reconciler.wait()
        api.move_card.assert_called_once_with("b", "a2", "A", "B", ["b1", "a2", "b2"])

    def test_move_without_index_appends(self):
        reconciler, api, _ = _reconciler()
        reconciler.start_drag_card("a1")
        reconciler.drop("B")
        assert _cards(reconciler, "B") == ["b1", "b2", "a1"]

        reconciler.wait()
        api.move_card.assert_called_once_with("b", "a1", "A", "B", ["b1", "b2", "a1"])

    def test_drop_does_not_wait_for_the_server(self):
        release = threading.Event()
        api = MagicMock()
        api.reorder_columns.side_effect = lambda *args: release.wait(5)
        reconciler, _, _ = _reconciler(api=api)

        reconciler.start_drag_column("B")
        future = reconciler.drop("b", 0)
        assert not future.done()

        reconciler.start_drag_card("a1")
        reconciler.drop("B", 0)
        assert _cards(reconciler, "B") == ["a1", "b1", "b2"]

        release.set()
        reconciler.wait()


class TestFailurePolicies:

    def _fail_move(self, policy):
        api = MagicMock()
        api.move_card.side_effect = PersistenceFailure("db down")
        reconciler, _, errors = _reconciler(policy, api=api)
        reconciler.start_drag_card("a1")
        reconciler.drop("B", 0)
        reconciler.wait()
        return reconciler, api, errors

    def test_keep_reports_and_keeps_optimistic_state(self):
        reconciler, _, errors = self._fail_move(FailurePolicy.KEEP)
        assert [message for message, _ in errors] == ["Failed to move card"]
        assert isinstance(errors[0][1], PersistenceFailure)
        assert _cards(reconciler, "B") == ["a1", "b1", "b2"]
        assert not reconciler.dirty

    def test_revert_restores_snapshot(self):
        reconciler, _, errors = self._fail_move(FailurePolicy.REVERT)
        assert len(errors) == 1
        assert _cards(reconciler, "A") == ["a1", "a2", "a3"]
        assert _cards(reconciler, "B") == ["b1", "b2"]
        assert not reconciler.dirty

    def test_revert_after_newer_drop_marks_dirty(self):
        release = threading.Event()
        api = MagicMock()

        def fail_later(*args):
            release.wait(5)
            raise PersistenceFailure("db down")

        api.reorder_columns.side_effect = fail_later
        reconciler, _, errors = _reconciler(FailurePolicy.REVERT, api=api)

        reconciler.start_drag_column("B")
        reconciler.drop("b", 0)
        reconciler.start_drag_card("a1")
        reconciler.drop("A", 2)
        release.set()
        reconciler.wait()

        assert [message for message, _ in errors] == ["Failed to save column order"]
        assert reconciler.dirty
        assert _cards(reconciler, "A") == ["a2", "a3", "a1"]

    def test_mark_dirty_refetches_before_next_drag(self):
        reconciler, api, errors = self._fail_move(FailurePolicy.MARK_DIRTY)
        assert reconciler.dirty
        api.fetch_board.return_value = _board_dict()

        reconciler.start_drag_card("a2")

        api.fetch_board.assert_called_once_with("b")
        assert not reconciler.dirty
        assert _cards(reconciler, "A") == ["a1", "a2", "a3"]

    def test_policy_from_string(self):
        reconciler, _, _ = _reconciler("mark_dirty")
        assert reconciler.failure_policy is FailurePolicy.MARK_DIRTY


class TestSync:

    def test_sync_replaces_mirror(self):
        reconciler, _, _ = _reconciler()
        reconciler.start_drag_card("a1")
        reconciler.drop("B", 0)
        reconciler.wait()

        reconciler.sync(_board_dict())
        assert _cards(reconciler, "A") == ["a1", "a2", "a3"]

    def test_sync_copies_its_input(self):
        reconciler, _, _ = _reconciler()
        board = LocalBoard.from_dict(_board_dict())
        reconciler.sync(board)
        board.columns.pop()
        assert reconciler.board.column_ids == ["A", "B"]

    def test_snapshot_is_a_copy(self):
        reconciler, _, _ = _reconciler()
        snap = reconciler.snapshot()
        reconciler.start_drag_column("B")
        reconciler.drop("b", 0)
        assert snap.column_ids == ["A", "B"]
        reconciler.wait()


class TestDispatcher:

    def test_sequences_are_per_key(self):
        dispatcher = MutationDispatcher()
        dispatcher.submit("b1", lambda: None)
        dispatcher.submit("b1", lambda: None)
        dispatcher.submit("b2", lambda: None)
        dispatcher.wait()

        assert dispatcher.latest_sequence("b1") == 2
        assert dispatcher.latest_sequence("b2") == 1
        assert not dispatcher.is_latest(Ticket("b1", 1))
        assert dispatcher.is_latest(Ticket("b1", 2))
        dispatcher.shutdown()

    def test_callbacks_run_before_future_resolves(self):
        dispatcher = MutationDispatcher()
        seen = []
        future = dispatcher.submit(
            "b1", lambda: "ok", on_success=lambda ticket, result: seen.append((ticket, result))
        )
        assert future.result(timeout=5) == "ok"
        assert seen == [(Ticket("b1", 1), "ok")]

        def boom():
            raise PersistenceFailure("down")

        failed = dispatcher.submit("b1", boom, on_failure=lambda t, e: seen.append((t, e)))
        assert failed.result(timeout=5) is None
        assert seen[-1][0] == Ticket("b1", 2)
        assert isinstance(seen[-1][1], PersistenceFailure)
        dispatcher.shutdown()

    def test_last_issued_applies_in_issue_order(self):
        dispatcher = MutationDispatcher(DispatchOrdering.LAST_ISSUED)
        first_started = threading.Event()
        release = threading.Event()
        applied = []

        def first():
            first_started.set()
            release.wait(5)
            applied.append("first")

        dispatcher.submit("b1", first)
        first_started.wait(5)
        dispatcher.submit("b1", lambda: applied.append("second"))
        release.set()
        dispatcher.wait(timeout=5)

        assert applied == ["first", "second"]
        dispatcher.shutdown()

    def test_last_completed_lets_later_call_finish_first(self):
        dispatcher = MutationDispatcher(DispatchOrdering.LAST_COMPLETED, max_workers=2)
        first_started = threading.Event()
        release = threading.Event()
        applied = []

        def first():
            first_started.set()
            release.wait(5)
            applied.append("first")

        dispatcher.submit("b1", first)
        first_started.wait(5)
        dispatcher.submit("b1", lambda: applied.append("second")).result(timeout=5)
        release.set()
        dispatcher.wait(timeout=5)

        assert applied == ["second", "first"]
        dispatcher.shutdown()

    def test_in_flight(self):
        dispatcher = MutationDispatcher()
        release = threading.Event()
        future = dispatcher.submit("b1", lambda: release.wait(5))
        assert dispatcher.in_flight == 1
        release.set()
        dispatcher.wait(timeout=5)
        assert future.done()
        dispatcher.shutdown()


class TestClose:

    def test_close_shuts_down_its_own_dispatcher(self):
        reconciler, api, _ = _reconciler()
        reconciler.start_drag_column("B")
        reconciler.drop("b", 0)

        reconciler.close()

        api.reorder_columns.assert_called_once_with("b", ["B", "A"])
        assert reconciler.dispatcher.in_flight == 0

    def test_close_leaves_a_shared_dispatcher_running(self):
        dispatcher = MagicMock()
        reconciler, _, _ = _reconciler(dispatcher=dispatcher)

        reconciler.close()

        dispatcher.wait.assert_called_once_with()
        dispatcher.shutdown.assert_not_called()

    def test_close_stops_owned_dispatcher(self):
        reconciler, _, _ = _reconciler()
        with patch.object(reconciler.dispatcher, "shutdown") as shutdown:
            reconciler.close()
        shutdown.assert_called_once_with(wait=True)
