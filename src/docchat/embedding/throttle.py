"""Cooperative pacing between provider batches."""

from __future__ import annotations

import threading
import time
from typing import Callable


class BatchThrottle:
    """Keeps consecutive batches at least ``delay`` seconds apart.

    The first call to ``wait`` never sleeps. Clock and sleep are injectable
    so tests can drive the throttle without real time passing.
    """

    def __init__(
        self,
        delay: float,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if delay < 0:
            raise ValueError("delay must be >= 0")
        self.delay = delay
        self._clock = clock
        self._sleep = sleep
        self._last: float | None = None
        self._lock = threading.Lock()

    def wait(self) -> float:
        """Block until the next batch may start; return the time slept."""
        with self._lock:
            slept = 0.0
            if self._last is not None and self.delay > 0:
                remaining = self.delay - (self._clock() - self._last)
                if remaining > 0:
                    self._sleep(remaining)
                    slept = remaining
            self._last = self._clock()
            return slept
