from __future__ import annotations

import heapq
import itertools
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Protocol


class Clock(Protocol):
    """Monotonic clock abstraction.

    Core logic depends on this interface rather than calling real time directly.
    """

    def now(self) -> float:
        """Return monotonic seconds."""


class RealClock:
    """Production clock backed by time.monotonic()."""

    def now(self) -> float:
        return time.monotonic()


@dataclass(order=True, slots=True)
class _PendingCall:
    due_s: float
    seq: int
    callback: Callable[[], None] = field(compare=False)


class CallScheduler:
    """Cancellable delayed callbacks driven by an injected Clock.

    Nothing runs on its own: the owner calls ``run_due()`` from its update
    loop and every callback whose due time has passed runs in due order.
    """

    def __init__(self, clock: Clock) -> None:
        self._clock = clock
        self._heap: list[_PendingCall] = []
        self._live: dict[int, _PendingCall] = {}
        self._seq = itertools.count(1)

    @property
    def pending(self) -> int:
        return len(self._live)

    def call_later(self, delay_s: float, callback: Callable[[], None]) -> int:
        if delay_s < 0:
            raise ValueError("delay_s must be >= 0")
        call = _PendingCall(due_s=self._clock.now() + float(delay_s), seq=next(self._seq), callback=callback)
        heapq.heappush(self._heap, call)
        self._live[call.seq] = call
        return call.seq

    def cancel(self, handle: int) -> None:
        # Lazy removal; the heap entry is skipped when popped.
        self._live.pop(handle, None)

    def cancel_all(self) -> None:
        self._live.clear()
        self._heap.clear()

    def run_due(self) -> int:
        now = self._clock.now()
        # Only calls already queued when the pass started are eligible.
        horizon = next(self._seq)
        ran = 0
        while self._heap and self._heap[0].due_s <= now and self._heap[0].seq < horizon:
            call = heapq.heappop(self._heap)
            if self._live.pop(call.seq, None) is None:
                continue
            call.callback()
            ran += 1
        return ran
