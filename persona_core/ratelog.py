from __future__ import annotations

import logging
import time
from typing import Callable, Optional


class RateLimitedLogger:
    """Emit a given log line at most once per ``interval_sec``.

    State lives on the instance, so each engine (and each test) gets its own
    throttle window.
    """

    def __init__(
        self,
        logger: logging.Logger,
        interval_sec: float,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.logger = logger
        self.interval_sec = float(interval_sec)
        self._clock = clock
        self._last: Optional[float] = None
        self.suppressed = 0

    def log(self, level: int, msg: str, *args: object) -> bool:
        now = self._clock()
        if self._last is not None and now - self._last < self.interval_sec:
            self.suppressed += 1
            return False
        if self.suppressed:
            msg = msg + " (%d similar suppressed)"
            args = args + (self.suppressed,)
        self.logger.log(level, msg, *args)
        self._last = now
        self.suppressed = 0
        return True

    def info(self, msg: str, *args: object) -> bool:
        return self.log(logging.INFO, msg, *args)
