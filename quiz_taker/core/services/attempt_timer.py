"""Countdown for a timed attempt, driven by an absolute deadline."""

from __future__ import annotations

from collections.abc import Callable
import logging
import math
from threading import RLock, Timer
import time

from quiz_taker.constants.attempt_constants import TICK_INTERVAL_SECONDS

logger = logging.getLogger(__name__)


class AttemptTimer:
    """Produces remaining-seconds ticks and a single expiry signal.

    Remaining time is always recomputed as ``deadline - now`` so a timer
    rebuilt after a reload never drifts from the original deadline. Callbacks
    run outside the timer lock, so :meth:`cancel` never waits for them; once it
    returns no new ``on_tick`` or ``on_expire`` call starts.
    """

    def __init__(
        self,
        deadline: float | None,
        *,
        on_tick: Callable[[int], None] | None = None,
        on_expire: Callable[[], None] | None = None,
        clock: Callable[[], float] = time.time,
        interval: float = TICK_INTERVAL_SECONDS,
    ) -> None:
        self._deadline = deadline
        self._on_tick = on_tick
        self._on_expire = on_expire
        self._clock = clock
        self._interval = interval
        self._lock = RLock()
        self._thread_timer: Timer | None = None
        self._running: bool = False
        self._cancelled: bool = False
        self._expired: bool = False

    @property
    def deadline(self) -> float | None:
        return self._deadline

    def has_time_limit(self) -> bool:
        return self._deadline is not None

    def remaining_seconds(self) -> int | None:
        if self._deadline is None:
            return None
        return max(0, math.ceil(self._deadline - self._clock()))

    def is_expired(self) -> bool:
        remaining = self.remaining_seconds()
        return remaining is not None and remaining <= 0

    def is_running(self) -> bool:
        with self._lock:
            return self._running

    def is_cancelled(self) -> bool:
        with self._lock:
            return self._cancelled

    def start(self) -> None:
        """Begin ticking every interval until expiry or cancellation."""
        with self._lock:
            if self._cancelled or self._running or self._deadline is None:
                return
            self._running = True
            self._schedule()

    def cancel(self) -> None:
        with self._lock:
            self._cancelled = True
            self._running = False
            if self._thread_timer is not None:
                self._thread_timer.cancel()
                self._thread_timer = None

    def tick(self) -> int | None:
        """Recompute the remaining time, notify listeners and fire expiry once."""
        with self._lock:
            if self._cancelled:
                return None
            remaining = self.remaining_seconds()
            if remaining is None:
                return None
            expiring = remaining <= 0 and not self._expired
            if expiring:
                self._expired = True
                self._running = False

        if self._on_tick is not None and not self.is_cancelled():
            self._on_tick(remaining)
        if expiring:
            logger.info("Attempt timer expired")
            if self._on_expire is not None and not self.is_cancelled():
                self._on_expire()
        return remaining

    def _schedule(self) -> None:
        self._thread_timer = Timer(self._interval, self._run_tick)
        self._thread_timer.name = "AttemptTimer"
        self._thread_timer.daemon = True
        self._thread_timer.start()

    def _run_tick(self) -> None:
        try:
            self.tick()
        except Exception:
            logger.exception("Attempt timer callback failed")
        with self._lock:
            if self._running and not self._cancelled and not self._expired:
                self._schedule()
