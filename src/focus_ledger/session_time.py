"""Per-day counter of how long the tracker itself was in use."""

from __future__ import annotations

from typing import Callable, Mapping, Optional

from .clock import today_key


class SessionClock:
    """Accumulates seconds per calendar day while the tracker is active."""

    def __init__(
        self,
        seconds_by_day: Optional[Mapping[str, int]] = None,
        today: Callable[[], str] = today_key,
    ) -> None:
        self._seconds: dict[str, int] = dict(seconds_by_day or {})
        self._today = today
        self.active = True

    def tick(self, seconds: int = 1) -> Optional[int]:
        """Count ``seconds`` toward today; returns the new total, or None when paused."""
        if not self.active:
            return None
        key = self._today()
        self._seconds[key] = self._seconds.get(key, 0) + seconds
        return self._seconds[key]

    def pause(self) -> None:
        self.active = False

    def resume(self) -> None:
        self.active = True

    @property
    def today_seconds(self) -> int:
        return self._seconds.get(self._today(), 0)

    def seconds_for(self, day: str) -> int:
        return self._seconds.get(day, 0)

    def snapshot(self) -> dict[str, int]:
        return dict(self._seconds)

    def reset(self) -> None:
        self._seconds.clear()
