"""Deduplicating, rate-limited work queue.

Guarantees:
- a key is handed to at most one worker at a time
- a key added any number of times before a worker picks it up is processed once
- a key added while it is being processed is queued again once ``done`` is called
- delayed adds keep the earliest requested time per key
- ``add_rate_limited`` backs a key off exponentially until ``forget`` resets it
"""

from __future__ import annotations

import heapq
import itertools
import threading
import time
from collections import deque
from collections.abc import Callable, Hashable


class WorkQueue[K: Hashable]:
    def __init__(
        self,
        *,
        name: str = "queue",
        base_delay: float = 1.0,
        max_delay: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.name = name
        self._base_delay = base_delay
        self._max_delay = max_delay
        self._clock = clock
        self._condition = threading.Condition()
        self._queue: deque[K] = deque()
        self._dirty: set[K] = set()
        self._processing: set[K] = set()
        self._waiting: dict[K, float] = {}
        self._heap: list[tuple[float, int, K]] = []
        self._sequence = itertools.count()
        self._failures: dict[K, int] = {}
        self._shutting_down = False

    # ------------------------------------------------------------------
    # Adding
    # ------------------------------------------------------------------

    def add(self, key: K) -> None:
        with self._condition:
            self._add_locked(key)

    def add_after(self, key: K, delay: float) -> None:
        if delay <= 0:
            self.add(key)
            return
        with self._condition:
            if self._shutting_down:
                return
            ready_at = self._clock() + delay
            current = self._waiting.get(key)
            if current is not None and current <= ready_at:
                return
            self._waiting[key] = ready_at
            heapq.heappush(self._heap, (ready_at, next(self._sequence), key))
            self._condition.notify()

    def add_rate_limited(self, key: K) -> float:
        """Requeue ``key`` after its next backoff delay and return that delay."""

        with self._condition:
            failures = self._failures.get(key, 0)
            self._failures[key] = failures + 1
        delay = self.backoff_delay(failures)
        self.add_after(key, delay)
        return delay

    def backoff_delay(self, failures: int) -> float:
        try:
            delay = self._base_delay * (2**failures)
        except OverflowError:
            return self._max_delay
        return min(delay, self._max_delay)

    def forget(self, key: K) -> None:
        with self._condition:
            self._failures.pop(key, None)

    def num_requeues(self, key: K) -> int:
        with self._condition:
            return self._failures.get(key, 0)

    # ------------------------------------------------------------------
    # Consuming
    # ------------------------------------------------------------------

    def get(self, timeout: float | None = None) -> K | None:
        """Block until a key is ready; ``None`` on timeout or shutdown."""

        deadline = None if timeout is None else self._clock() + timeout
        with self._condition:
            while True:
                self._promote_due_locked()
                if self._queue:
                    key = self._queue.popleft()
                    self._processing.add(key)
                    self._dirty.discard(key)
                    return key
                if self._shutting_down:
                    return None
                now = self._clock()
                if deadline is not None and deadline <= now:
                    return None
                self._condition.wait(self._next_wait_locked(now, deadline))

    def done(self, key: K) -> None:
        with self._condition:
            self._processing.discard(key)
            if key in self._dirty:
                self._queue.append(key)
                self._condition.notify()

    def shut_down(self) -> None:
        with self._condition:
            self._shutting_down = True
            self._condition.notify_all()

    @property
    def shutting_down(self) -> bool:
        with self._condition:
            return self._shutting_down

    def __len__(self) -> int:
        with self._condition:
            return len(self._queue)

    def pending_delayed(self) -> int:
        with self._condition:
            return len(self._waiting)

    # ------------------------------------------------------------------
    # Internals (caller holds the condition)
    # ------------------------------------------------------------------

    def _add_locked(self, key: K) -> None:
        if self._shutting_down or key in self._dirty:
            return
        self._dirty.add(key)
        if key in self._processing:
            return
        self._queue.append(key)
        self._condition.notify()

    def _promote_due_locked(self) -> None:
        now = self._clock()
        while self._heap and self._heap[0][0] <= now:
            ready_at, _seq, key = heapq.heappop(self._heap)
            if self._waiting.get(key) != ready_at:
                continue
            del self._waiting[key]
            self._add_locked(key)

    def _next_wait_locked(self, now: float, deadline: float | None) -> float | None:
        wait = None if deadline is None else deadline - now
        if self._heap:
            until_ready = max(self._heap[0][0] - now, 0.0)
            wait = until_ready if wait is None else min(wait, until_ready)
        return wait
