"""Calendar recurrence rules.

A :class:`Schedule` answers one question: does this recurrence fire on a
given calendar date? Schedules are frozen rule descriptions (allowed
weekdays, week-of-month bucket, fixed day of month) evaluated by a single
function, so they are stateless, restartable and serializable by name.

Week-of-month buckets follow day-of-month ranges rather than calendar
weeks: the first week is days 1-7, the second 8-14, the third 15-21 and the
fourth 22-28. The last week is any day with ``day >= days_in_month - 7``,
which overlaps the fourth week in every month. ``LAST_FRIDAY_OF_THE_MONTH``
and ``FOURTH_FRIDAY_OF_THE_MONTH`` can therefore fire on the same day.

Dates are plain local calendar dates; no timezone arithmetic happens here.
"""

from __future__ import annotations

import calendar
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date
from enum import Enum

MONDAY, TUESDAY, WEDNESDAY, THURSDAY, FRIDAY, SATURDAY, SUNDAY = range(7)
WEEKDAY_NAMES = ("MONDAY", "TUESDAY", "WEDNESDAY", "THURSDAY", "FRIDAY", "SATURDAY", "SUNDAY")


class UnknownScheduleError(KeyError):
    """Raised when a schedule name is not in the registry."""

    def __init__(self, name: str):
        super().__init__(name)
        self.name = name

    def __str__(self) -> str:
        return f"Unknown schedule: {self.name!r}"


# ---- primitives ------------------------------------------------------


def days_in_month(day: date) -> int:
    return calendar.monthrange(day.year, day.month)[1]


def is_weekday(day: date) -> bool:
    return day.weekday() < SATURDAY


def is_weekend(day: date) -> bool:
    return not is_weekday(day)


def is_monday(day: date) -> bool:
    return day.weekday() == MONDAY


def is_tuesday(day: date) -> bool:
    return day.weekday() == TUESDAY


def is_wednesday(day: date) -> bool:
    return day.weekday() == WEDNESDAY


def is_thursday(day: date) -> bool:
    return day.weekday() == THURSDAY


def is_friday(day: date) -> bool:
    return day.weekday() == FRIDAY


def is_saturday(day: date) -> bool:
    return day.weekday() == SATURDAY


def is_sunday(day: date) -> bool:
    return day.weekday() == SUNDAY


def is_first_week_of_month(day: date) -> bool:
    return day.day < 8


def is_second_week_of_month(day: date) -> bool:
    return 7 < day.day < 15


def is_third_week_of_month(day: date) -> bool:
    return 14 < day.day < 22


def is_fourth_week_of_month(day: date) -> bool:
    return 21 < day.day < 29


def is_last_week_of_month(day: date) -> bool:
    return day.day >= days_in_month(day) - 7


class WeekOfMonth(Enum):
    FIRST = "first"
    SECOND = "second"
    THIRD = "third"
    FOURTH = "fourth"
    LAST = "last"

    def contains(self, day: date) -> bool:
        return _WEEK_TESTS[self](day)


_WEEK_TESTS = {
    WeekOfMonth.FIRST: is_first_week_of_month,
    WeekOfMonth.SECOND: is_second_week_of_month,
    WeekOfMonth.THIRD: is_third_week_of_month,
    WeekOfMonth.FOURTH: is_fourth_week_of_month,
    WeekOfMonth.LAST: is_last_week_of_month,
}


# ---- rules -----------------------------------------------------------


@dataclass(frozen=True)
class Schedule:
    """Named recurrence rule.

    Every constraint that is set must hold; a rule with no constraints fires
    every day. ``alternatives`` turns the rule into a union: it fires when
    any alternative fires.
    """

    name: str
    weekdays: frozenset[int] | None = None
    week: WeekOfMonth | None = None
    day_of_month: int | None = None
    alternatives: tuple[Schedule, ...] = ()

    def matches(self, day: date) -> bool:
        if self.alternatives:
            return any(alt.matches(day) for alt in self.alternatives)
        if self.weekdays is not None and day.weekday() not in self.weekdays:
            return False
        if self.week is not None and not self.week.contains(day):
            return False
        if self.day_of_month is not None and day.day != self.day_of_month:
            return False
        return True

    def __call__(self, day: date | None = None) -> bool:
        return self.matches(day if day is not None else date.today())

    def __str__(self) -> str:
        return self.name


EVERY_DAY = Schedule("EVERY_DAY")
EVERY_WEEKDAY = Schedule("EVERY_WEEKDAY", weekdays=frozenset(range(MONDAY, SATURDAY)))
EVERY_WEEKEND_DAY = Schedule("EVERY_WEEKEND_DAY", weekdays=frozenset((SATURDAY, SUNDAY)))

EVERY_MONDAY = Schedule("EVERY_MONDAY", weekdays=frozenset((MONDAY,)))
EVERY_TUESDAY = Schedule("EVERY_TUESDAY", weekdays=frozenset((TUESDAY,)))
EVERY_WEDNESDAY = Schedule("EVERY_WEDNESDAY", weekdays=frozenset((WEDNESDAY,)))
EVERY_THURSDAY = Schedule("EVERY_THURSDAY", weekdays=frozenset((THURSDAY,)))
EVERY_FRIDAY = Schedule("EVERY_FRIDAY", weekdays=frozenset((FRIDAY,)))
EVERY_SATURDAY = Schedule("EVERY_SATURDAY", weekdays=frozenset((SATURDAY,)))
EVERY_SUNDAY = Schedule("EVERY_SUNDAY", weekdays=frozenset((SUNDAY,)))

FIRST_OF_THE_MONTH = Schedule("FIRST_OF_THE_MONTH", day_of_month=1)


def nth_weekday_of_month(week: WeekOfMonth, weekday: int) -> Schedule:
    """Rule firing on ``weekday`` within the ``week`` bucket of every month."""
    name = f"{week.name}_{WEEKDAY_NAMES[weekday]}_OF_THE_MONTH"
    return Schedule(name, weekdays=frozenset((weekday,)), week=week)


_REGISTRY: dict[str, Schedule] = {
    s.name: s
    for s in (
        EVERY_DAY,
        EVERY_WEEKDAY,
        EVERY_WEEKEND_DAY,
        EVERY_MONDAY,
        EVERY_TUESDAY,
        EVERY_WEDNESDAY,
        EVERY_THURSDAY,
        EVERY_FRIDAY,
        EVERY_SATURDAY,
        EVERY_SUNDAY,
        FIRST_OF_THE_MONTH,
    )
}
_REGISTRY.update(
    (rule.name, rule)
    for rule in (nth_weekday_of_month(week, weekday) for week in WeekOfMonth for weekday in range(7))
)


def __getattr__(name: str) -> Schedule:
    """Expose the nth-weekday rules (``FIRST_MONDAY_OF_THE_MONTH`` ...) as module attributes."""
    rule = _REGISTRY.get(name)
    if rule is None:
        raise AttributeError(f"module '{__name__}' has no attribute '{name}'")
    return rule


def _normalize_name(name: str) -> str:
    return "_".join(name.replace("-", " ").replace("_", " ").upper().split())


def get_schedule(name: str) -> Schedule:
    """Look up a named rule.

    Accepts the constant spelling (``FIRST_MONDAY_OF_THE_MONTH``) as well as
    relaxed forms such as ``"first monday of the month"``.
    """
    try:
        return _REGISTRY[_normalize_name(name)]
    except KeyError:
        raise UnknownScheduleError(name) from None


def any_of(*schedules: Schedule) -> Schedule:
    if len(schedules) == 1:
        return schedules[0]
    if not schedules:
        raise ValueError("any_of() requires at least one schedule")
    return Schedule(" | ".join(s.name for s in schedules), alternatives=tuple(schedules))


def resolve_schedule(value: str | Schedule | Iterable[str | Schedule]) -> Schedule:
    """Resolve configuration input (a name, a Schedule, or a list of either)."""
    if isinstance(value, Schedule):
        return value
    if isinstance(value, str):
        return get_schedule(value)
    return any_of(*(resolve_schedule(v) for v in value))


def named_schedules() -> dict[str, Schedule]:
    return dict(_REGISTRY)


__all__ = [
    "Schedule",
    "WeekOfMonth",
    "UnknownScheduleError",
    "days_in_month",
    "is_weekday",
    "is_weekend",
    "is_monday",
    "is_tuesday",
    "is_wednesday",
    "is_thursday",
    "is_friday",
    "is_saturday",
    "is_sunday",
    "is_first_week_of_month",
    "is_second_week_of_month",
    "is_third_week_of_month",
    "is_fourth_week_of_month",
    "is_last_week_of_month",
    "nth_weekday_of_month",
    "get_schedule",
    "any_of",
    "resolve_schedule",
    "named_schedules",
    "EVERY_DAY",
    "EVERY_WEEKDAY",
    "EVERY_WEEKEND_DAY",
    "EVERY_MONDAY",
    "EVERY_TUESDAY",
    "EVERY_WEDNESDAY",
    "EVERY_THURSDAY",
    "EVERY_FRIDAY",
    "EVERY_SATURDAY",
    "EVERY_SUNDAY",
    "FIRST_OF_THE_MONTH",
    *(f"{w.name}_{d}_OF_THE_MONTH" for w in WeekOfMonth for d in WEEKDAY_NAMES),
]
