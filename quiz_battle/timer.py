from __future__ import annotations

import logging
from collections.abc import Callable

from .clock import Clock

logger = logging.getLogger(__name__)

TICK_INTERVAL_S = 1.0


class CountdownTimer:
    """Per-question countdown, one tick per second.

    Time comes from the injected Clock; ``update()`` delivers whatever ticks
    are due. Remaining goes ``d, d-1, ..., 0, -1``; reaching -1 fires the
    tick, then ``on_timeout`` once, and stops the timer.

    Paused time is dropped: ``resume()`` restarts the one-second interval
    from the resume instant without delivering the ticks missed while paused.
    """

    def __init__(
        self,
        *,
        clock: Clock,
        on_tick: Callable[[int], None] | None = None,
        on_timeout: Callable[[], None] | None = None,
    ) -> None:
        self._clock = clock
        self._on_tick = on_tick
        self._on_timeout = on_timeout

        self._remaining = 0
        self._running = False
        self._paused = False
        self._next_tick_at_s: float | None = None

    @property
    def remaining(self) -> int:
        return self._remaining

    @property
    def running(self) -> bool:
        return self._running

    @property
    def paused(self) -> bool:
        return self._paused

    def start(self, duration_s: int) -> None:
        if duration_s < 0:
            raise ValueError("duration_s must be >= 0")
        # A restart replaces the previous countdown; there is only one tick source.
        self._remaining = int(duration_s)
        self._running = True
        self._paused = False
        self._next_tick_at_s = self._clock.now() + TICK_INTERVAL_S

    def cancel(self) -> None:
        self._running = False
        self._paused = False
        self._next_tick_at_s = None

    def pause(self) -> None:
        if not self._running or self._paused:
            return
        self._paused = True
        self._next_tick_at_s = None

    def resume(self) -> None:
        if not self._running or not self._paused:
            return
        self._paused = False
        self._next_tick_at_s = self._clock.now() + TICK_INTERVAL_S

    def update(self) -> None:
        now = self._clock.now()
        while self._running and not self._paused:
            assert self._next_tick_at_s is not None
            if now < self._next_tick_at_s:
                return
            self._next_tick_at_s += TICK_INTERVAL_S
            self._remaining -= 1
            if self._on_tick is not None:
                self._on_tick(self._remaining)
            # The tick handler may have cancelled or paused us.
            if not self._running or self._paused:
                return
            if self._remaining < 0:
                self.cancel()
                logger.debug("countdown timed out")
                if self._on_timeout is not None:
                    self._on_timeout()
                return
