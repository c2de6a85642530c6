"""Time-limit watcher for running processes."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass

from execbox.model import Process

DEFAULT_TICK_INTERVAL = 0.1
_POLL = 0.01


def _wait_any(deadline: float, events: tuple[threading.Event, ...]) -> bool:
    """Wait until one event is set (True) or the deadline passes (False)."""
    while True:
        if any(e.is_set() for e in events):
            return True
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            return False
        events[0].wait(min(remaining, _POLL))


@dataclass
class Waiter:
    """Checks CPU and wall-clock time of a process every tick (all in seconds)."""

    time_limit: float = 0.0
    real_time_limit: float = 0.0
    tick_interval: float = 0.0

    def wait(self, cancel: threading.Event, process: Process) -> bool:
        """Return True once a time limit is exceeded, False if the run ends first."""
        real_limit = max(self.real_time_limit, self.time_limit)
        tick = self.tick_interval or DEFAULT_TICK_INTERVAL
        start = time.monotonic()
        events = (process.done(), cancel)
        while True:
            if _wait_any(time.monotonic() + tick, events):
                return False
            if time.monotonic() - start > real_limit:
                return True
            if process.usage().time > self.time_limit:
                return True