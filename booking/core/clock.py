from datetime import UTC, datetime, timedelta
from typing import Protocol


class Clock(Protocol):
    def now(self) -> datetime:
        """Current instant as naive UTC."""
        ...


class SystemClock:
    def now(self) -> datetime:
        return datetime.now(UTC).replace(tzinfo=None)


class FixedClock:
    """Clock pinned to one instant; tests move it explicitly."""

    def __init__(self, at: datetime) -> None:
        if at.tzinfo is not None:
            at = at.astimezone(UTC).replace(tzinfo=None)
        self._at = at

    def now(self) -> datetime:
        return self._at

    def advance(self, **kwargs: float) -> None:
        self._at += timedelta(**kwargs)


system_clock = SystemClock()
