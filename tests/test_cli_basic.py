from __future__ import annotations

import json
import textwrap
from pathlib import Path

import pytest

from issuecadence.cli import main
from issuecadence.linear_api import LinearAPIError
from issuecadence.mock import InMemoryTracker

MIN_CONFIG = textwrap.dedent(
    """\
    version: 1
    tracker:
      default_team: Home
    sweeps:
      - from: Todo
        to: Triage
        after: 2d
    recurring:
      - item: Brush your teeth
        state: Todo
      - item:
          title: Monthly review
          description: Look back at the month
        schedule: LAST_FRIDAY_OF_THE_MONTH
        state: Backlog
        do_not_unsnooze: true
    """
)


def _write_config(tmp_path: Path, text: str = MIN_CONFIG) -> Path:
    path = tmp_path / "issuecadence.config.yaml"
    path.write_text(text)
    return path


def test_run_creates_recurring_items_and_writes_summary(tmp_path, capsys):
    cfg = _write_config(tmp_path)
    summary_path = tmp_path / "summary.json"
    rc = main(
        [
            "--quiet",
            "run",
            "--config",
            str(cfg),
            "--date",
            "2024-01-01",
            "--summary-json",
            str(summary_path),
        ]
    )
    out = capsys.readouterr().out
    assert rc == 0
    assert "[run] 2024-01-01:" in out
    assert "Brush your teeth" in out
    summary = json.loads(summary_path.read_text())
    assert summary["totals"]["created"] == 1
    assert summary["totals"]["not_scheduled"] == 1
    assert summary["sweeps"][0]["examined"] == 0


def test_run_dry_run_flag(tmp_path, capsys):
    cfg = _write_config(tmp_path)
    rc = main(["--quiet", "run", "--config", str(cfg), "--dry-run", "--date", "2024-01-26"])
    out = capsys.readouterr().out
    assert rc == 0
    assert "(dry-run)" in out
    assert "Monthly review" in out


def test_run_reports_operation_errors(tmp_path, capsys):
    cfg = _write_config(
        tmp_path,
        "tracker: {default_team: Home}\nsweeps:\n  - {from: Todo, to: Nowhere, after: 1d}\n",
    )
    rc = main(["--quiet", "run", "--config", str(cfg)])
    out = capsys.readouterr().out
    assert rc == 1
    assert "error [config]" in out


def test_missing_config_exits_with_config_error(tmp_path, capsys):
    rc = main(["run", "--config", str(tmp_path / "absent.yaml")])
    err = capsys.readouterr().err
    assert rc == 2
    assert "configuration error" in err


def test_invalid_schedule_is_config_error(tmp_path, capsys):
    cfg = _write_config(
        tmp_path,
        "tracker: {default_team: Home}\nrecurring:\n  - {item: x, state: Todo, schedule: SOMETIMES}\n",
    )
    rc = main(["validate", "--config", str(cfg)])
    assert rc == 2
    assert "SOMETIMES" in capsys.readouterr().err


def test_validate_lists_entries(tmp_path, capsys):
    cfg = _write_config(tmp_path)
    rc = main(["--quiet", "validate", "--config", str(cfg)])
    out = capsys.readouterr().out
    assert rc == 0
    assert "[validate] 1 sweeps, 2 recurring items" in out
    assert "sweep Todo -> Triage after 2d" in out
    assert "[LAST_FRIDAY_OF_THE_MONTH] -> Home/Backlog (do_not_unsnooze)" in out
    assert "[validate] ok" in out


def test_schedules_firing_on_first_monday(capsys):
    rc = main(["schedules", "--date", "2024-01-01", "--firing"])
    out = capsys.readouterr().out
    assert rc == 0
    assert "(Monday)" in out
    for name in ("EVERY_DAY", "EVERY_WEEKDAY", "FIRST_OF_THE_MONTH", "FIRST_MONDAY_OF_THE_MONTH"):
        assert f"* {name}" in out
    assert "EVERY_FRIDAY" not in out
    assert "SECOND_MONDAY_OF_THE_MONTH" not in out


def test_sweep_command_in_mock_mode(capsys):
    rc = main(["--quiet", "sweep", "--from", "Todo", "--to", "Triage", "--after", "2d"])
    out = capsys.readouterr().out
    assert rc == 0
    assert "[sweep] Todo -> Triage (after 2d): examined=0 moved=0 failed=0" in out


def test_sweep_unknown_state(capsys):
    rc = main(["--quiet", "sweep", "--from", "Todo", "--to", "Nowhere", "--after", "2d"])
    assert rc == 2
    assert "Unknown workflow state 'Nowhere'" in capsys.readouterr().err


def test_sweep_transport_failure_exits_with_error(capsys, monkeypatch):
    async def _unavailable(self, state_id):
        raise LinearAPIError("Linear API request failed with 503: upstream unavailable", status=503)

    monkeypatch.setattr(InMemoryTracker, "list_items_by_state", _unavailable)
    rc = main(["--quiet", "sweep", "--from", "Todo", "--to", "Triage", "--after", "2d"])
    err = capsys.readouterr().err
    assert rc == 1
    assert "[sweep] error [generic] Linear API request failed with 503" in err


def test_sweep_without_api_key_is_config_error(capsys, monkeypatch, tmp_path):
    monkeypatch.setenv("ISSUECADENCE_MOCK", "0")
    monkeypatch.chdir(tmp_path)
    rc = main(["--quiet", "sweep", "--from", "Todo", "--to", "Triage", "--after", "2d"])
    assert rc == 2
    assert "API key" in capsys.readouterr().err


@pytest.mark.parametrize("bad", ["soon", "2 fortnights"])
def test_sweep_rejects_bad_threshold(bad, capsys):
    with pytest.raises(SystemExit) as excinfo:
        main(["sweep", "--from", "Todo", "--to", "Triage", "--after", bad])
    assert excinfo.value.code == 2
