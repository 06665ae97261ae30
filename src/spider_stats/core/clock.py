"""Time sources for the counter stores.

``started_at`` and ``exited_at`` are stamped through an injected clock so
tests can pin them.  ``WallClock`` is used when serving, ``SimClock`` in
tests.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Protocol

_EPOCH = datetime(2024, 1, 1, tzinfo=timezone.utc)


class IClock(Protocol):
    def now(self) -> datetime:
        """Timezone-aware UTC now."""
        ...


class WallClock:
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class SimClock:
    """Manually driven clock; it only moves forward."""

    def __init__(self, start: datetime | None = None) -> None:
        self._now = start or _EPOCH

    def now(self) -> datetime:
        return self._now

    def set_time(self, t: datetime) -> None:
        if t < self._now:
            raise ValueError(f"SimClock cannot go backwards: {t} < {self._now}")
        self._now = t

    def advance(self, seconds: float) -> None:
        self.set_time(self._now + timedelta(seconds=seconds))
