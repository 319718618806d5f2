"""Injectable clock so "now" is a dependency rather than a global."""

from datetime import datetime, timedelta, timezone
from typing import Protocol
from zoneinfo import ZoneInfo


class Clock(Protocol):
    def now(self, time_zone: str = "UTC") -> datetime:
        """Current instant as an aware datetime in time_zone."""


class SystemClock:
    def now(self, time_zone: str = "UTC") -> datetime:
        return datetime.now(ZoneInfo(time_zone))


class FrozenClock:
    """Fixed instant; advance() moves it forward explicitly."""

    def __init__(self, instant: datetime):
        if instant.tzinfo is None:
            raise ValueError("FrozenClock needs an aware datetime")
        self._instant = instant.astimezone(timezone.utc)

    def now(self, time_zone: str = "UTC") -> datetime:
        return self._instant.astimezone(ZoneInfo(time_zone))

    def advance(self, **kwargs) -> None:
        self._instant += timedelta(**kwargs)

    def set(self, instant: datetime) -> None:
        self._instant = instant.astimezone(timezone.utc)
