from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any

from .duration import Duration, now, parse_instant
from .schedule import Schedule


@dataclass(frozen=True)
class CatalogEntry:
    """A named tracker object (workflow state, team, project, label)."""

    id: str
    name: str


@dataclass
class TrackedItem:
    """Snapshot of an item as reported by the tracker.

    The tracker owns the item lifecycle; IssueCadence only reads these and
    requests mutations.
    """

    id: str
    identifier: str
    title: str
    updated_at: datetime
    description: str | None = None
    state: CatalogEntry | None = None
    completed_at: datetime | None = None
    canceled_at: datetime | None = None
    archived_at: datetime | None = None
    snoozed_until: datetime | None = None
    due_date: date | None = None

    @property
    def is_open(self) -> bool:
        return self.completed_at is None and self.canceled_at is None and self.archived_at is None

    @property
    def is_snoozed(self) -> bool:
        # Any snooze marker counts, even one whose instant has already passed
        return self.snoozed_until is not None

    def is_stale(self, threshold: Duration, at: datetime | None = None) -> bool:
        return threshold.less_than(Duration.between(self.updated_at, at or now()))

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> TrackedItem:
        """Build from a tracker API node (camelCase keys)."""

        def _instant(key: str) -> datetime | None:
            raw = payload.get(key)
            return parse_instant(raw) if isinstance(raw, str) and raw else None

        state_payload = payload.get("state")
        state = None
        if isinstance(state_payload, Mapping) and state_payload.get("id"):
            state = CatalogEntry(id=str(state_payload["id"]), name=str(state_payload.get("name", "")))
        due_raw = payload.get("dueDate")
        return cls(
            id=str(payload["id"]),
            identifier=str(payload.get("identifier") or payload["id"]),
            title=str(payload.get("title") or ""),
            description=payload.get("description"),
            state=state,
            updated_at=_instant("updatedAt") or now(),
            completed_at=_instant("completedAt"),
            canceled_at=_instant("canceledAt"),
            archived_at=_instant("archivedAt"),
            snoozed_until=_instant("snoozedUntilAt"),
            due_date=date.fromisoformat(due_raw) if isinstance(due_raw, str) and due_raw else None,
        )


@dataclass(frozen=True)
class ItemDefinition:
    """Normalized definition of an item to create or refresh."""

    title: str
    description: str | None = None
    due_date: date | None = None

    @classmethod
    def coerce(cls, value: str | Mapping[str, Any] | ItemDefinition) -> ItemDefinition:
        """Resolve a bare title, a mapping or an existing definition."""
        if isinstance(value, ItemDefinition):
            return value
        if isinstance(value, str):
            title = value.strip()
            if not title:
                raise ValueError("Item title must not be empty")
            return cls(title=title)
        if isinstance(value, Mapping):
            title = str(value.get("title") or "").strip()
            if not title:
                raise ValueError("Item definition requires a non-empty 'title'")
            due = value.get("due_date")
            if isinstance(due, str):
                due = date.fromisoformat(due)
            elif due is not None and not isinstance(due, date):
                raise ValueError(f"Invalid due_date for {title!r}: {due!r}")
            description = value.get("description")
            return cls(
                title=title,
                description=str(description) if description is not None else None,
                due_date=due,
            )
        raise TypeError(f"Cannot build an item definition from {type(value).__name__}")


@dataclass(frozen=True)
class RecurringItem:
    """A definition plus the rule and modifiers that govern its recurrence.

    The three modifiers are independent; the reconciler applies them in a
    fixed order (see :mod:`issuecadence.reconciler`).
    """

    item: ItemDefinition
    state: str
    team: str
    schedule: Schedule
    duplicate_if_already_open: bool = False
    always_create_new: bool = False
    do_not_unsnooze: bool = False
    project: str | None = None
    labels: tuple[str, ...] = ()


@dataclass(frozen=True)
class SweepRule:
    source_state: str
    target_state: str
    stale_after: Duration


class Outcome(str, Enum):
    NOT_SCHEDULED = "not_scheduled"
    CREATED = "created"
    CREATE_FAILED = "create_failed"
    REOPENED = "reopened"
    REOPEN_FAILED = "reopen_failed"
    SKIPPED_SNOOZED = "skipped_snoozed"
    MOVED = "moved"
    MOVE_FAILED = "move_failed"

    @property
    def failed(self) -> bool:
        return self in _FAILED


_FAILED = frozenset({Outcome.CREATE_FAILED, Outcome.REOPEN_FAILED, Outcome.MOVE_FAILED})


@dataclass(frozen=True)
class ItemOutcome:
    outcome: Outcome
    title: str
    identifier: str | None = None
    item_id: str | None = None
    reason: str | None = None

    @property
    def success(self) -> bool:
        return not self.outcome.failed

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"outcome": self.outcome.value, "title": self.title}
        if self.identifier:
            data["identifier"] = self.identifier
        if self.item_id:
            data["item_id"] = self.item_id
        if self.reason:
            data["reason"] = self.reason
        return data


@dataclass
class SweepReport:
    rule: SweepRule
    examined: int = 0
    skipped_snoozed: int = 0
    outcomes: list[ItemOutcome] = field(default_factory=list)

    @property
    def moved(self) -> int:
        return sum(1 for o in self.outcomes if o.outcome is Outcome.MOVED)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if o.outcome.failed)

    def to_dict(self) -> dict[str, Any]:
        return {
            "from": self.rule.source_state,
            "to": self.rule.target_state,
            "after": str(self.rule.stale_after),
            "examined": self.examined,
            "skipped_snoozed": self.skipped_snoozed,
            "moved": self.moved,
            "failed": self.failed,
            "outcomes": [o.to_dict() for o in self.outcomes],
        }


__all__ = [
    "CatalogEntry",
    "TrackedItem",
    "ItemDefinition",
    "RecurringItem",
    "SweepRule",
    "Outcome",
    "ItemOutcome",
    "SweepReport",
]
