"""Timer-based scheduler for backoff delays."""

import threading
from typing import Any, Callable

from .interfaces import Scheduler


class ThreadingScheduler(Scheduler):
    """Schedules calls on daemon ``threading.Timer`` threads."""

    def __init__(self, name_prefix: str = "s3-retry-backoff"):
        self.name_prefix = name_prefix

    def call_later(self, delay: float, fn: Callable[..., None], *args: Any) -> threading.Timer:
        timer = threading.Timer(max(delay, 0.0), fn, args=args)
        timer.daemon = True
        timer.name = f"{self.name_prefix}-{timer.name}"
        timer.start()
        return timer
