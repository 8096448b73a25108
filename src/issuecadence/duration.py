"""Exact time spans.

A :class:`Duration` stores a single signed integer count of milliseconds.
Every other unit (seconds through years) is a floor-divided projection of
that count, so two durations are equal exactly when their millisecond
values are equal, regardless of the unit they were built from.

Years are approximated as 365 days and weeks as 7 days. These projections
are lossy and are not calendar-accurate.

Usage::

    from issuecadence.duration import Duration, now

    threshold = Duration.of_days(2)
    age = Duration.between(item.updated_at, now())
    if threshold.less_than(age):
        ...
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from functools import total_ordering
from typing import Any

MS_PER_SECOND = 1000
MS_PER_MINUTE = MS_PER_SECOND * 60
MS_PER_HOUR = MS_PER_MINUTE * 60
MS_PER_DAY = MS_PER_HOUR * 24
MS_PER_WEEK = MS_PER_DAY * 7
MS_PER_YEAR = MS_PER_DAY * 365

# Shorthand suffixes accepted by Duration.parse, mapped to milliseconds per unit
_UNIT_ALIASES: dict[str, int] = {
    "ms": 1,
    "millisecond": 1,
    "milliseconds": 1,
    "s": MS_PER_SECOND,
    "sec": MS_PER_SECOND,
    "second": MS_PER_SECOND,
    "seconds": MS_PER_SECOND,
    "m": MS_PER_MINUTE,
    "min": MS_PER_MINUTE,
    "minute": MS_PER_MINUTE,
    "minutes": MS_PER_MINUTE,
    "h": MS_PER_HOUR,
    "hour": MS_PER_HOUR,
    "hours": MS_PER_HOUR,
    "d": MS_PER_DAY,
    "day": MS_PER_DAY,
    "days": MS_PER_DAY,
    "w": MS_PER_WEEK,
    "week": MS_PER_WEEK,
    "weeks": MS_PER_WEEK,
    "y": MS_PER_YEAR,
    "year": MS_PER_YEAR,
    "years": MS_PER_YEAR,
}

_RE_SHORTHAND = re.compile(r"(-?\d+)\s*([a-z]+)")


def _require_int(value: Any, unit: str) -> int:
    # bool is an int subclass; reject it along with floats and Decimals
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"Duration {unit} must be an integer, got {type(value).__name__}")
    return value


def now() -> datetime:
    """Current instant as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def parse_instant(value: str | datetime) -> datetime:
    """Parse an ISO-8601 instant (``Z`` suffix accepted).

    Date-only and offset-less values are read as UTC.
    """
    if isinstance(value, datetime):
        parsed = value
    else:
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _timedelta_ms(delta: timedelta) -> int:
    # Integer-only conversion; timedelta.total_seconds() would go through float
    return (delta.days * 86_400 + delta.seconds) * MS_PER_SECOND + delta.microseconds // 1000


@total_ordering
@dataclass(frozen=True)
class Duration:
    """Immutable span of time with millisecond precision."""

    milliseconds: int

    def __post_init__(self) -> None:
        _require_int(self.milliseconds, "milliseconds")

    # ---- factories ----------------------------------------------------
    @classmethod
    def of_milliseconds(cls, ms: int) -> Duration:
        return cls(_require_int(ms, "milliseconds"))

    @classmethod
    def of_seconds(cls, s: int) -> Duration:
        return cls(_require_int(s, "seconds") * MS_PER_SECOND)

    @classmethod
    def of_minutes(cls, m: int) -> Duration:
        return cls(_require_int(m, "minutes") * MS_PER_MINUTE)

    @classmethod
    def of_hours(cls, h: int) -> Duration:
        return cls(_require_int(h, "hours") * MS_PER_HOUR)

    @classmethod
    def of_days(cls, d: int) -> Duration:
        return cls(_require_int(d, "days") * MS_PER_DAY)

    @classmethod
    def of_weeks(cls, w: int) -> Duration:
        return cls(_require_int(w, "weeks") * MS_PER_WEEK)

    @classmethod
    def of_years(cls, y: int) -> Duration:
        return cls(_require_int(y, "years") * MS_PER_YEAR)

    @classmethod
    def between(cls, start: datetime | str, end: datetime | str) -> Duration:
        """Span from ``start`` to ``end``; negative when ``end`` precedes ``start``."""
        return cls(_timedelta_ms(parse_instant(end) - parse_instant(start)))

    @classmethod
    def parse(cls, value: Any) -> Duration:
        """Build a Duration from configuration input.

        Accepts an existing Duration, an int (milliseconds), a shorthand
        string such as ``"2d"`` or ``"1d 12h"``, or a mapping of unit names
        to integer counts such as ``{"days": 2, "hours": 12}``.
        """
        if isinstance(value, Duration):
            return value
        if isinstance(value, int) and not isinstance(value, bool):
            return cls(value)
        if isinstance(value, Mapping):
            total = 0
            for unit, count in value.items():
                per_unit = _UNIT_ALIASES.get(str(unit).strip().lower())
                if per_unit is None:
                    raise ValueError(f"Unknown duration unit: {unit!r}")
                total += _require_int(count, str(unit)) * per_unit
            return cls(total)
        if isinstance(value, str):
            text = value.strip().lower()
            matches = list(_RE_SHORTHAND.finditer(text))
            # Every non-space character must belong to a "<int><unit>" token
            if not matches or "".join(m.group(0) for m in matches).replace(" ", "") != text.replace(" ", ""):
                raise ValueError(f"Invalid duration: {value!r}")
            total = 0
            for m in matches:
                per_unit = _UNIT_ALIASES.get(m.group(2))
                if per_unit is None:
                    raise ValueError(f"Unknown duration unit in {value!r}: {m.group(2)!r}")
                total += int(m.group(1)) * per_unit
            return cls(total)
        raise TypeError(f"Cannot interpret {type(value).__name__} as a Duration")

    # ---- projections --------------------------------------------------
    @property
    def seconds(self) -> int:
        return self.milliseconds // MS_PER_SECOND

    @property
    def minutes(self) -> int:
        return self.milliseconds // MS_PER_MINUTE

    @property
    def hours(self) -> int:
        return self.milliseconds // MS_PER_HOUR

    @property
    def days(self) -> int:
        return self.milliseconds // MS_PER_DAY

    @property
    def weeks(self) -> int:
        return self.milliseconds // MS_PER_WEEK

    @property
    def years(self) -> int:
        return self.milliseconds // MS_PER_YEAR

    def to_timedelta(self) -> timedelta:
        return timedelta(milliseconds=self.milliseconds)

    # ---- comparison ---------------------------------------------------
    def less_than(self, other: Duration) -> bool:
        return self.milliseconds < other.milliseconds

    def greater_than(self, other: Duration) -> bool:
        return self.milliseconds > other.milliseconds

    def equals(self, other: Duration) -> bool:
        return self.milliseconds == other.milliseconds

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Duration):
            return NotImplemented
        return self.less_than(other)

    def __add__(self, other: object) -> Duration:
        if not isinstance(other, Duration):
            return NotImplemented
        return Duration(self.milliseconds + other.milliseconds)

    def __neg__(self) -> Duration:
        return Duration(-self.milliseconds)

    def __bool__(self) -> bool:
        return self.milliseconds != 0

    def __str__(self) -> str:
        ms = self.milliseconds
        for suffix, per_unit in (("w", MS_PER_WEEK), ("d", MS_PER_DAY), ("h", MS_PER_HOUR),
                                 ("m", MS_PER_MINUTE), ("s", MS_PER_SECOND)):
            if ms and ms % per_unit == 0:
                return f"{ms // per_unit}{suffix}"
        return f"{ms}ms"


__all__ = [
    "Duration",
    "MS_PER_SECOND",
    "MS_PER_MINUTE",
    "MS_PER_HOUR",
    "MS_PER_DAY",
    "MS_PER_WEEK",
    "MS_PER_YEAR",
    "now",
    "parse_instant",
]
