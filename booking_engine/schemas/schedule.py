# booking_engine/schemas/schedule.py
"""
Staff schedule value objects.

Stored shape (staff_members.availability JSON):

    {
        "monday": [{"start": "09:00", "end": "12:00"}, {"start": "13:00", "end": "17:00"}],
        "tuesday": [],
        ...
        "exceptions": {"2024-05-15": []}          # [] = closed that day
    }

Numeric weekday keys ("0" = Monday) and ["09:00", "17:00"] pairs are
accepted as well. Anything else is rejected at construction time.
"""

from datetime import date, time
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator, model_validator

from ..errors import InvalidScheduleError
from ..services.slots.config import minutes_to_time_str, time_str_to_minutes


WEEKDAY_NAMES = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")
EXCEPTIONS_KEY = "exceptions"


class TimeWindow(BaseModel):
    """Half-open time-of-day window [start, end)."""
    start: time
    end: time

    model_config = ConfigDict(frozen=True)

    @field_validator("start", "end", mode="before")
    @classmethod
    def parse_hhmm(cls, value: Any) -> Any:
        if isinstance(value, str):
            minutes = time_str_to_minutes(value)
            return time(minutes // 60, minutes % 60)
        return value

    @model_validator(mode="after")
    def check_order(self) -> "TimeWindow":
        if self.start >= self.end:
            raise ValueError(f"window start {self.start} must be before end {self.end}")
        return self

    @property
    def start_minutes(self) -> int:
        return self.start.hour * 60 + self.start.minute

    @property
    def end_minutes(self) -> int:
        return self.end.hour * 60 + self.end.minute

    def contains(self, start_minutes: int, end_minutes: int) -> bool:
        return self.start_minutes <= start_minutes and end_minutes <= self.end_minutes

    def to_dict(self) -> dict[str, str]:
        return {
            "start": minutes_to_time_str(self.start_minutes),
            "end": minutes_to_time_str(self.end_minutes),
        }


def _normalize_windows(windows: tuple[TimeWindow, ...], label: str) -> tuple[TimeWindow, ...]:
    ordered = tuple(sorted(windows, key=lambda w: w.start))
    for previous, current in zip(ordered, ordered[1:]):
        if current.start < previous.end:
            raise ValueError(f"overlapping windows on {label}: {previous.to_dict()} / {current.to_dict()}")
    return ordered


class ScheduleTemplate(BaseModel):
    """
    Weekly recurring availability plus date-specific exceptions.

    weekly: weekday (0 = Monday) -> windows, always all seven days present
    exceptions: date -> windows; an empty tuple means closed that day
    """
    weekly: dict[int, tuple[TimeWindow, ...]] = {}
    exceptions: dict[date, tuple[TimeWindow, ...]] = {}

    model_config = ConfigDict(frozen=True)

    @field_validator("weekly")
    @classmethod
    def check_weekly(cls, value: dict[int, tuple[TimeWindow, ...]]) -> dict[int, tuple[TimeWindow, ...]]:
        unknown = [day for day in value if day not in range(7)]
        if unknown:
            raise ValueError(f"weekday keys must be 0..6, got {sorted(unknown)}")
        return {
            day: _normalize_windows(tuple(value.get(day, ())), WEEKDAY_NAMES[day])
            for day in range(7)
        }

    @field_validator("exceptions")
    @classmethod
    def check_exceptions(cls, value: dict[date, tuple[TimeWindow, ...]]) -> dict[date, tuple[TimeWindow, ...]]:
        return {
            day: _normalize_windows(tuple(windows), day.isoformat())
            for day, windows in value.items()
        }

    def windows_for(self, target_date: date) -> tuple[TimeWindow, ...]:
        """Exception windows when the date has one (even if empty), else the weekly template."""
        if target_date in self.exceptions:
            return self.exceptions[target_date]
        return self.weekly.get(target_date.weekday(), ())

    def is_closed(self, target_date: date) -> bool:
        return not self.windows_for(target_date)

    # ── Stored shape ─────────────────────────────────────────────────────

    @classmethod
    def from_availability(cls, data: Mapping[str, Any] | None) -> "ScheduleTemplate":
        """
        Build a template from the stored availability mapping.

        Raises:
            InvalidScheduleError: unknown weekday key, malformed time or window.
        """
        if not data:
            return cls()
        if not isinstance(data, Mapping):
            raise InvalidScheduleError(f"availability must be a mapping, got {type(data).__name__}")

        weekly: dict[int, list[Any]] = {}
        exceptions: dict[Any, list[Any]] = {}

        for key, value in data.items():
            key_str = str(key).strip().lower()
            if key_str == EXCEPTIONS_KEY:
                if value is None:
                    continue
                if not isinstance(value, Mapping):
                    raise InvalidScheduleError("exceptions must map ISO dates to window lists")
                for day, windows in value.items():
                    exceptions[day] = _parse_windows(windows, str(day))
                continue

            weekday = _parse_weekday(key_str)
            weekly[weekday] = _parse_windows(value, key_str)

        try:
            return cls(weekly=weekly, exceptions=exceptions)
        except ValidationError as e:
            raise InvalidScheduleError(str(e)) from e

    def to_availability(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            WEEKDAY_NAMES[day]: [w.to_dict() for w in windows]
            for day, windows in self.weekly.items()
        }
        result[EXCEPTIONS_KEY] = {
            day.isoformat(): [w.to_dict() for w in windows]
            for day, windows in sorted(self.exceptions.items())
        }
        return result


# ── Helpers ──────────────────────────────────────────────────────────────


def _parse_weekday(key: str) -> int:
    if key in WEEKDAY_NAMES:
        return WEEKDAY_NAMES.index(key)
    if key.isdigit() and int(key) in range(7):
        return int(key)
    raise InvalidScheduleError(f"unknown weekday key: {key!r}")


def _parse_windows(value: Any, label: str) -> list[Any]:
    """Normalize a day's value to a list of {"start", "end"} dicts."""
    if value is None:
        return []
    if isinstance(value, Mapping):
        value = [value]
    if not isinstance(value, (list, tuple)):
        raise InvalidScheduleError(f"windows for {label} must be a list")

    windows = []
    for item in value:
        if isinstance(item, Mapping):
            start, end = item.get("start"), item.get("end")
        elif isinstance(item, (list, tuple)) and len(item) == 2:
            start, end = item
        else:
            raise InvalidScheduleError(f"malformed window for {label}: {item!r}")
        if not start or not end:
            raise InvalidScheduleError(f"window for {label} needs start and end: {item!r}")
        windows.append({"start": start, "end": end})
    return windows
