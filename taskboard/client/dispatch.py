"""Background dispatch of persistence calls.

Every call is tagged with a per-board sequence number as it is issued.

DispatchOrdering.LAST_COMPLETED (default) runs calls concurrently on a
shared pool. Overlapping writes for the same board race, and whichever
completes last wins on the server.

DispatchOrdering.LAST_ISSUED runs each board's calls one at a time in issue
order, so the last call the user issued is also the last one applied. A
move touches two columns, so the queue is per board rather than per column.

Calls cannot be cancelled once submitted.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass
from enum import Enum

logger = logging.getLogger(__name__)


class DispatchOrdering(Enum):
    LAST_COMPLETED = "last_completed"
    LAST_ISSUED = "last_issued"


@dataclass(frozen=True)
class Ticket:
    key: str
    sequence: int


class MutationDispatcher:
    def __init__(self, ordering=DispatchOrdering.LAST_COMPLETED, max_workers=4):
        self.ordering = DispatchOrdering(ordering)
        self.max_workers = max_workers
        self._lock = threading.Lock()
        self._sequences = {}
        self._pending = set()
        self._pool = None
        self._queues = {}

    def _executor_for(self, key):
        if self.ordering is DispatchOrdering.LAST_ISSUED:
            if key not in self._queues:
                self._queues[key] = ThreadPoolExecutor(
                    max_workers=1, thread_name_prefix=f"taskboard-sync-{key[:8]}"
                )
            return self._queues[key]
        if self._pool is None:
            self._pool = ThreadPoolExecutor(
                max_workers=self.max_workers, thread_name_prefix="taskboard-sync"
            )
        return self._pool

    def submit(self, key, call, on_success=None, on_failure=None):
        """Run `call()` in the background.

        on_success(ticket, result) / on_failure(ticket, exc) run on the
        worker thread before the returned future resolves, so wait() also
        waits for them.
        """
        with self._lock:
            sequence = self._sequences.get(key, 0) + 1
            self._sequences[key] = sequence
            executor = self._executor_for(key)
        ticket = Ticket(key=key, sequence=sequence)

        def run():
            try:
                result = call()
            except Exception as e:
                logger.error(f"Background write #{ticket.sequence} for {key} failed: {e}")
                if on_failure is not None:
                    on_failure(ticket, e)
                return None
            if on_success is not None:
                on_success(ticket, result)
            return result

        future = executor.submit(run)
        with self._lock:
            self._pending.add(future)
        future.add_done_callback(self._forget)
        return future

    def _forget(self, future):
        with self._lock:
            self._pending.discard(future)

    def latest_sequence(self, key):
        with self._lock:
            return self._sequences.get(key, 0)

    def is_latest(self, ticket):
        """False when a newer call for the same key was issued after this one."""
        return self.latest_sequence(ticket.key) == ticket.sequence

    @property
    def in_flight(self):
        with self._lock:
            return len(self._pending)

    def wait(self, timeout=None):
        """Block until everything submitted so far has finished."""
        with self._lock:
            pending = list(self._pending)
        if pending:
            wait(pending, timeout=timeout)

    def shutdown(self, wait=True):
        with self._lock:
            executors = list(self._queues.values())
            if self._pool is not None:
                executors.append(self._pool)
            self._queues = {}
            self._pool = None
        for executor in executors:
            executor.shutdown(wait=wait)
