import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from issuecadence.catalog import TrackerContext
from issuecadence.duration import Duration
from issuecadence.errors import UnknownStateError
from issuecadence.mock import InMemoryTracker
from issuecadence.models import Outcome
from issuecadence.sweeper import StaleSweeper
from issuecadence.tracker import DryRunTracker

NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)
TEN_DAYS_AGO = NOW - timedelta(days=10)


def _sweeper(tracker, **kwargs):
    return StaleSweeper(TrackerContext(tracker), clock=lambda: NOW, **kwargs)


def test_stale_item_moves_and_snoozed_item_stays():
    tracker = InMemoryTracker()
    a = tracker.add_item("A", state="Todo", updated_at=TEN_DAYS_AGO)
    b = tracker.add_item(
        "B", state="Todo", updated_at=TEN_DAYS_AGO, snoozed_until=NOW + timedelta(days=3)
    )

    report = asyncio.run(_sweeper(tracker).sweep("Todo", "Triage", Duration.of_days(2)))

    assert report.examined == 2
    assert report.skipped_snoozed == 1
    assert report.moved == 1
    assert [o.identifier for o in report.outcomes] == [a.identifier]
    assert tracker.items[a.id].state.name == "Triage"
    assert tracker.items[b.id].state.name == "Todo"
    updates = [c for c in tracker.calls if c[0] == "update"]
    assert updates == [("update", a.id, {"state_id": tracker.state("Triage").id})]


def test_expired_snooze_still_counts_as_snoozed():
    tracker = InMemoryTracker()
    tracker.add_item("C", updated_at=TEN_DAYS_AGO, snoozed_until=NOW - timedelta(days=1))
    report = asyncio.run(_sweeper(tracker).sweep("Todo", "Triage", Duration.of_days(2)))
    assert report.skipped_snoozed == 1
    assert report.outcomes == []


def test_fresh_items_and_exact_threshold_are_not_stale():
    tracker = InMemoryTracker()
    tracker.add_item("fresh", updated_at=NOW - timedelta(hours=1))
    tracker.add_item("boundary", updated_at=NOW - timedelta(days=2))
    report = asyncio.run(_sweeper(tracker).sweep("Todo", "Triage", Duration.of_days(2)))
    assert report.examined == 2
    assert report.outcomes == []


def test_only_source_state_items_are_examined():
    tracker = InMemoryTracker()
    tracker.add_item("elsewhere", state="Backlog", updated_at=TEN_DAYS_AGO)
    report = asyncio.run(_sweeper(tracker).sweep("Todo", "Triage", Duration.of_days(2)))
    assert report.examined == 0
    assert ("list_items_by_state", tracker.state("Todo").id) in tracker.calls


def test_failures_are_isolated_per_item():
    tracker = InMemoryTracker()
    ok = tracker.add_item("ok", updated_at=TEN_DAYS_AGO)
    rejected = tracker.add_item("rejected", updated_at=TEN_DAYS_AGO)
    broken = tracker.add_item("broken", updated_at=TEN_DAYS_AGO)
    tracker.reject_updates.add(rejected.id)
    tracker.raise_on_update.add(broken.id)

    report = asyncio.run(_sweeper(tracker).sweep("Todo", "Triage", Duration.of_days(2)))

    by_title = {o.title: o for o in report.outcomes}
    assert by_title["ok"].outcome is Outcome.MOVED
    assert by_title["rejected"].outcome is Outcome.MOVE_FAILED
    assert by_title["rejected"].reason == "tracker reported success=false"
    assert by_title["broken"].outcome is Outcome.MOVE_FAILED
    assert by_title["broken"].reason.startswith("network:")
    assert report.moved == 1
    assert report.failed == 2
    assert tracker.items[ok.id].state.name == "Triage"
    assert tracker.items[broken.id].state.name == "Todo"


def test_unknown_state_aborts_before_listing():
    tracker = InMemoryTracker()
    with pytest.raises(UnknownStateError):
        asyncio.run(_sweeper(tracker).sweep("Todo", "Nowhere", Duration.of_days(2)))
    assert not any(c[0] == "list_items_by_state" for c in tracker.calls)


class _CountingTracker(InMemoryTracker):
    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.in_flight = 0
        self.peak = 0

    async def update_item(self, item_id, changes):
        self.in_flight += 1
        self.peak = max(self.peak, self.in_flight)
        try:
            await asyncio.sleep(0.01)
            return await super().update_item(item_id, changes)
        finally:
            self.in_flight -= 1


@pytest.mark.asyncio
async def test_in_flight_updates_are_capped():
    tracker = _CountingTracker()
    for i in range(10):
        tracker.add_item(f"item {i}", updated_at=TEN_DAYS_AGO)
    report = await _sweeper(tracker, max_in_flight=3).sweep("Todo", "Triage", Duration.of_days(2))
    assert report.moved == 10
    assert tracker.peak == 3


@pytest.mark.asyncio
async def test_dry_run_plans_moves_without_applying():
    backend = InMemoryTracker()
    item = backend.add_item("A", updated_at=TEN_DAYS_AGO)
    dry = DryRunTracker(backend)
    report = await _sweeper(dry, dry_run=True).sweep("Todo", "Triage", Duration.of_days(2))
    assert report.moved == 1
    assert backend.items[item.id].state.name == "Todo"
    assert dry.planned == [
        {"action": "update", "item_id": item.id, "changes": {"stateId": backend.state("Triage").id}}
    ]


def test_report_serializes():
    tracker = InMemoryTracker()
    tracker.add_item("A", updated_at=TEN_DAYS_AGO)
    report = asyncio.run(_sweeper(tracker).sweep("Todo", "Triage", Duration.of_days(2)))
    data = report.to_dict()
    assert data["from"] == "Todo"
    assert data["to"] == "Triage"
    assert data["after"] == "2d"
    assert data["moved"] == 1
    assert data["outcomes"][0]["outcome"] == "moved"
