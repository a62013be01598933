"""Clock abstraction — the single source of "now" for expiry and sessions."""

from __future__ import annotations

import time
from typing import Protocol


class Clock(Protocol):
    """Anything that can report the current time in seconds."""

    def now(self) -> float: ...


class SystemClock:
    """Wall-clock time via :func:`time.time`."""

    def now(self) -> float:
        return time.time()
