import json
from datetime import date, datetime, timedelta, timezone

import pytest

from issuecadence.automation import (
    Automation,
    build_tracker,
    format_summary,
    summary_failed,
    write_summary,
)
from issuecadence.config import ConfigError, build_config
from issuecadence.mock import InMemoryTracker
from issuecadence.tracker import LinearTracker

NOW = datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc)
MONDAY = date(2024, 1, 1)

RAW = {
    "tracker": {"default_team": "Home"},
    "sweeps": [
        {"from": "Todo", "to": "Triage", "after": "2d"},
        {"from": "Todo", "to": "Nowhere", "after": "2d"},
    ],
    "recurring": [
        {"item": "Brush your teeth", "state": "Todo"},
        {"item": "Wash the dishes", "state": "Todo"},
        {"item": "Monthly review", "state": "Todo", "schedule": "LAST_FRIDAY_OF_THE_MONTH"},
    ],
}


def _automation(tracker, raw=RAW, **kwargs):
    return Automation(build_config(raw), tracker, today=lambda: MONDAY, clock=lambda: NOW, **kwargs)


def test_run_executes_sweeps_then_recurring():
    tracker = InMemoryTracker()
    stale = tracker.add_item("Old chore", updated_at=NOW - timedelta(days=10))
    dishes = tracker.add_item("Wash the dishes", state="Done")

    summary = _automation(tracker).run_sync()

    assert summary["today"] == "2024-01-01"
    assert summary["dry_run"] is False
    assert summary["totals"]["moved"] == 1
    assert summary["totals"]["created"] == 1
    assert summary["totals"]["reopened"] == 1
    assert summary["totals"]["not_scheduled"] == 1
    assert tracker.items[stale.id].state.name == "Triage"
    assert tracker.items[dishes.id].state.name == "Todo"
    assert [r["schedule"] for r in summary["recurring"]] == [
        "EVERY_DAY",
        "EVERY_DAY",
        "LAST_FRIDAY_OF_THE_MONTH",
    ]
    # the unknown target state aborts only its own sweep
    assert len(summary["sweeps"]) == 1
    (error,) = summary["errors"]
    assert error["operation"] == "sweep"
    assert error["category"] == "config"
    assert "Nowhere" in error["message"]
    assert summary_failed(summary)


def test_catalogs_fetched_once_per_run():
    tracker = InMemoryTracker()
    _automation(tracker).run_sync()
    assert tracker.calls.count(("list_workflow_states",)) == 1
    assert tracker.calls.count(("list_teams",)) == 1


def test_dry_run_changes_nothing():
    tracker = InMemoryTracker()
    stale = tracker.add_item("Old chore", updated_at=NOW - timedelta(days=10))
    raw = {**RAW, "sweeps": RAW["sweeps"][:1]}

    summary = _automation(tracker, raw, dry_run=True).run_sync()

    assert summary["dry_run"] is True
    assert summary["totals"]["moved"] == 1
    assert summary["totals"]["created"] == 2
    assert tracker.items[stale.id].state.name == "Todo"
    assert len(tracker.items) == 1
    assert not summary_failed(summary)


def test_failed_outcomes_mark_summary_failed():
    tracker = InMemoryTracker()
    tracker.reject_creates = True
    raw = {"tracker": {"default_team": "Home"}, "recurring": RAW["recurring"][:1]}
    summary = _automation(tracker, raw).run_sync()
    assert summary["totals"]["create_failed"] == 1
    assert summary["errors"] == []
    assert summary_failed(summary)


def test_format_summary_lines():
    tracker = InMemoryTracker()
    tracker.add_item("Old chore", updated_at=NOW - timedelta(days=10))
    lines = format_summary(_automation(tracker).run_sync())
    assert lines[0].startswith("[run] 2024-01-01: ")
    assert any(line.startswith("  sweep Todo -> Triage (after 2d)") for line in lines)
    assert any("created:" in line and "Brush your teeth" in line for line in lines)
    assert any(line.startswith("  error [config] sweep Todo -> Nowhere") for line in lines)
    assert not any("Monthly review" in line for line in lines)


def test_write_summary(tmp_path):
    path = write_summary(tmp_path / "nested" / "summary.json", {"totals": {}})
    assert json.loads(path.read_text()) == {"totals": {}}


def test_build_tracker_mock_mode():
    tracker = build_tracker(build_config({"tracker": {"default_team": "Work"}}), mock=True)
    assert isinstance(tracker, InMemoryTracker)
    assert [t.name for t in tracker.teams] == ["Work"]


def test_build_tracker_requires_api_key(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    with pytest.raises(ConfigError, match="API key"):
        build_tracker(build_config({}), mock=False)


def test_build_tracker_uses_environment_key(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("LINEAR_API_KEY", "lin_api_from_env")
    tracker = build_tracker(build_config({"concurrency": {"max_workers": 2}}), mock=False)
    assert isinstance(tracker, LinearTracker)
    assert tracker.client.api_key == "lin_api_from_env"
    assert tracker.max_workers == 2


def test_from_config_honours_mock_env():
    automation = Automation.from_config(build_config(RAW))
    assert isinstance(automation.tracker, InMemoryTracker)
