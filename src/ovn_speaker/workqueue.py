"""Per-key coalescing work queue with rate-limited retries.

Semantics follow the controller work queue most Kubernetes agents use:

* a key is queued at most once no matter how often it is added;
* a key handed to a worker is not handed out again until :meth:`done` is
  called for it; adds in the meantime are remembered and replayed on
  :meth:`done`, so one key never runs on two workers at once;
* failed keys come back through :meth:`add_rate_limited` with a per-key
  backoff; :meth:`forget` resets that backoff after a success.
"""

from __future__ import annotations

import heapq
import itertools
import logging
import threading
import time
from collections import deque
from typing import Callable, Deque, Dict, Hashable, List, Optional, Set, Tuple

LOG = logging.getLogger(__name__)

Clock = Callable[[], float]


class RateLimiter:
    """Decides how long a key waits before its next attempt."""

    def when(self, item: Hashable) -> float:
        raise NotImplementedError

    def forget(self, item: Hashable) -> None:
        raise NotImplementedError

    def num_requeues(self, item: Hashable) -> int:
        raise NotImplementedError


class ItemExponentialFailureRateLimiter(RateLimiter):
    """``base_delay * 2**failures`` per key, capped at ``max_delay``."""

    def __init__(self, base_delay: float = 0.005, max_delay: float = 1000.0) -> None:
        self._base_delay = base_delay
        self._max_delay = max_delay
        self._failures: Dict[Hashable, int] = {}
        self._lock = threading.Lock()

    def when(self, item: Hashable) -> float:
        with self._lock:
            exp = self._failures.get(item, 0)
            self._failures[item] = exp + 1
        # avoid float overflow for keys that keep failing
        if exp > 64:
            return self._max_delay
        return min(self._base_delay * (2 ** exp), self._max_delay)

    def forget(self, item: Hashable) -> None:
        with self._lock:
            self._failures.pop(item, None)

    def num_requeues(self, item: Hashable) -> int:
        with self._lock:
            return self._failures.get(item, 0)


class BucketRateLimiter(RateLimiter):
    """Token bucket shared by all keys; bounds the overall retry rate."""

    def __init__(self, qps: float = 10.0, burst: int = 100, clock: Clock = time.monotonic) -> None:
        self._qps = qps
        self._burst = burst
        self._clock = clock
        self._tokens = float(burst)
        self._last = clock()
        self._lock = threading.Lock()

    def when(self, item: Hashable) -> float:
        with self._lock:
            now = self._clock()
            self._tokens = min(self._burst, self._tokens + (now - self._last) * self._qps)
            self._last = now
            self._tokens -= 1
            if self._tokens >= 0:
                return 0.0
            return -self._tokens / self._qps

    def forget(self, item: Hashable) -> None:
        pass

    def num_requeues(self, item: Hashable) -> int:
        return 0


class MaxOfRateLimiter(RateLimiter):
    """Use the longest delay any of the wrapped limiters asks for."""

    def __init__(self, *limiters: RateLimiter) -> None:
        self._limiters = limiters

    def when(self, item: Hashable) -> float:
        return max(limiter.when(item) for limiter in self._limiters)

    def forget(self, item: Hashable) -> None:
        for limiter in self._limiters:
            limiter.forget(item)

    def num_requeues(self, item: Hashable) -> int:
        return max(limiter.num_requeues(item) for limiter in self._limiters)


def default_controller_rate_limiter() -> RateLimiter:
    return MaxOfRateLimiter(
        ItemExponentialFailureRateLimiter(0.005, 1000.0),
        BucketRateLimiter(qps=10.0, burst=100),
    )


class RateLimitingQueue:
    """Thread-safe queue of keys for a bounded pool of workers."""

    def __init__(
        self,
        rate_limiter: Optional[RateLimiter] = None,
        name: str = "",
        clock: Clock = time.monotonic,
    ) -> None:
        self.name = name
        self._rate_limiter = rate_limiter or default_controller_rate_limiter()
        self._clock = clock
        self._cond = threading.Condition()
        self._queue: Deque[Hashable] = deque()
        self._dirty: Set[Hashable] = set()
        self._processing: Set[Hashable] = set()
        # delayed adds: key -> ready time, heap holds (ready, seq, key)
        self._waiting: Dict[Hashable, float] = {}
        self._heap: List[Tuple[float, int, Hashable]] = []
        self._seq = itertools.count()
        self._shutting_down = False

    # ------------------------------------------------------------------
    # Producers
    # ------------------------------------------------------------------
    def add(self, item: Hashable) -> None:
        with self._cond:
            self._add_locked(item)

    def _add_locked(self, item: Hashable) -> None:
        if self._shutting_down or item in self._dirty:
            return
        self._dirty.add(item)
        if item in self._processing:
            return
        self._queue.append(item)
        self._cond.notify()

    def add_after(self, item: Hashable, delay: float) -> None:
        """Add ``item`` once ``delay`` seconds have passed.

        A key already waiting keeps the earlier of the two ready times.
        """

        if delay <= 0:
            self.add(item)
            return
        with self._cond:
            if self._shutting_down:
                return
            ready_at = self._clock() + delay
            current = self._waiting.get(item)
            if current is not None and current <= ready_at:
                return
            self._waiting[item] = ready_at
            heapq.heappush(self._heap, (ready_at, next(self._seq), item))
            self._cond.notify()

    def add_rate_limited(self, item: Hashable) -> None:
        self.add_after(item, self._rate_limiter.when(item))

    def forget(self, item: Hashable) -> None:
        self._rate_limiter.forget(item)

    def num_requeues(self, item: Hashable) -> int:
        return self._rate_limiter.num_requeues(item)

    # ------------------------------------------------------------------
    # Consumers
    # ------------------------------------------------------------------
    def get(self, timeout: Optional[float] = None) -> Tuple[Optional[Hashable], bool]:
        """Block for the next key.

        Returns ``(key, False)``, or ``(None, True)`` once the queue is shut
        down and empty.  With ``timeout`` set, ``(None, False)`` signals that
        nothing arrived in time.
        """

        deadline = None if timeout is None else self._clock() + timeout
        with self._cond:
            while True:
                self._promote_due_locked()
                if self._queue:
                    item = self._queue.popleft()
                    self._processing.add(item)
                    self._dirty.discard(item)
                    return item, False
                if self._shutting_down:
                    return None, True
                wait_for = self._next_ready_in_locked()
                if deadline is not None:
                    remaining = deadline - self._clock()
                    if remaining <= 0:
                        return None, False
                    wait_for = remaining if wait_for is None else min(wait_for, remaining)
                self._cond.wait(wait_for)

    def done(self, item: Hashable) -> None:
        with self._cond:
            self._processing.discard(item)
            if item in self._dirty:
                self._queue.append(item)
            self._cond.notify_all()

    def _promote_due_locked(self) -> None:
        now = self._clock()
        while self._heap and self._heap[0][0] <= now:
            ready_at, _, item = heapq.heappop(self._heap)
            if self._waiting.get(item) != ready_at:
                continue
            del self._waiting[item]
            self._add_locked(item)

    def _next_ready_in_locked(self) -> Optional[float]:
        while self._heap:
            ready_at, _, item = self._heap[0]
            if self._waiting.get(item) != ready_at:
                heapq.heappop(self._heap)
                continue
            return max(0.0, ready_at - self._clock())
        return None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def __len__(self) -> int:
        with self._cond:
            return len(self._queue)

    def waiting(self) -> int:
        """Number of keys parked behind a delay."""

        with self._cond:
            return len(self._waiting)

    def shutting_down(self) -> bool:
        with self._cond:
            return self._shutting_down

    def shut_down(self) -> None:
        """Stop accepting keys; workers drain what is already queued."""

        with self._cond:
            self._shutting_down = True
            self._waiting.clear()
            self._heap.clear()
            self._cond.notify_all()
        LOG.debug("work queue %s shutting down", self.name)

    def shut_down_with_drain(self, timeout: Optional[float] = None) -> bool:
        """Shut down and wait for queued and in-flight keys to finish.

        Returns False if ``timeout`` expired first.
        """

        self.shut_down()
        deadline = None if timeout is None else self._clock() + timeout
        with self._cond:
            while self._queue or self._processing:
                remaining = None
                if deadline is not None:
                    remaining = deadline - self._clock()
                    if remaining <= 0:
                        return False
                self._cond.wait(remaining)
        return True
