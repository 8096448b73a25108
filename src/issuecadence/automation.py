"""High-level orchestration of a single automation run.

One run builds one :class:`~issuecadence.catalog.TrackerContext` (so each
catalog is fetched at most once), executes every configured sweep, then
reconciles every recurring item. Failures stay local to the operation that
hit them: an unknown state name in one sweep is recorded under ``errors``
and the run moves on to the next entry.

Summary shape (stable for JSON tooling)::

    {
        "generated_at": str, "today": "YYYY-MM-DD", "dry_run": bool,
        "totals": {"moved": int, "created": int, ...},
        "sweeps": [SweepReport.to_dict(), ...],
        "recurring": [{"outcome": str, "title": str, "schedule": str, ...}, ...],
        "errors": [{"operation": str, "target": str, "category": str, "message": str}],
    }
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import os
from collections.abc import Callable
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any

from .catalog import TrackerContext
from .config import CadenceConfig, ConfigError
from .duration import now
from .env_auth import create_env_auth_manager
from .errors import CatalogLookupError, classify_error
from .linear_api import LinearClient
from .logging import get_logger
from .mock import InMemoryTracker
from .models import Outcome, RecurringItem, SweepRule
from .reconciler import RecurrenceReconciler
from .sweeper import StaleSweeper
from .tracker import DryRunTracker, LinearTracker, Tracker

MOCK_ENV = "ISSUECADENCE_MOCK"


def mock_enabled() -> bool:
    return os.environ.get(MOCK_ENV) == "1"


def build_tracker(config: CadenceConfig, *, mock: bool | None = None) -> Tracker:
    """Construct the tracker backend for ``config``.

    Mock mode yields an empty :class:`InMemoryTracker`; otherwise an API key
    is required, taken from the config or the environment.
    """
    if mock is None:
        mock = mock_enabled()
    if mock:
        return InMemoryTracker(teams=[config.default_team or "Home"])
    api_key = config.api_key
    if not api_key:
        auth = create_env_auth_manager(
            load_dotenv=config.env_auth_load_dotenv, dotenv_path=config.env_auth_dotenv_path
        )
        api_key = auth.get_api_key()
    if not api_key:
        raise ConfigError("No Linear API key configured (set LINEAR_API_KEY or tracker.api_key)")
    client = LinearClient(api_key=api_key, api_url=config.api_url)
    return LinearTracker(client, max_workers=config.concurrency_max_workers)


class Automation:
    def __init__(
        self,
        config: CadenceConfig,
        tracker: Tracker,
        *,
        dry_run: bool | None = None,
        today: Callable[[], date] = date.today,
        clock: Callable[[], datetime] = now,
    ):
        self.config = config
        self.dry_run = config.dry_run_default if dry_run is None else dry_run
        self._backend = tracker
        self.tracker: Tracker = DryRunTracker(tracker) if self.dry_run else tracker
        self.today = today
        self.clock = clock
        self.logger = get_logger()

    @classmethod
    def from_config(
        cls, config: CadenceConfig, *, dry_run: bool | None = None, mock: bool | None = None
    ) -> Automation:
        return cls(config, build_tracker(config, mock=mock), dry_run=dry_run)

    # ---- public API ---------------------------------------------------
    async def run(self) -> dict[str, Any]:
        async with contextlib.AsyncExitStack() as stack:
            if isinstance(self._backend, LinearTracker):
                await stack.enter_async_context(self._backend)
            context = TrackerContext(self.tracker)
            sweeper = StaleSweeper(
                context,
                max_in_flight=self.config.concurrency_max_workers,
                clock=self.clock,
                dry_run=self.dry_run,
            )
            reconciler = RecurrenceReconciler(context, today=self.today, dry_run=self.dry_run)
            summary = self._new_summary()
            with self.logger.timed_operation(
                "automation_run",
                sweeps=len(self.config.sweeps),
                recurring=len(self.config.recurring),
                dry_run=self.dry_run,
            ):
                for rule in self.config.sweeps:
                    await self._run_sweep(sweeper, rule, summary)
                for recurring in self.config.recurring:
                    await self._run_recurring(reconciler, recurring, summary)
        return summary

    def run_sync(self) -> dict[str, Any]:
        return asyncio.run(self.run())

    # ---- internals ----------------------------------------------------
    def _new_summary(self) -> dict[str, Any]:
        return {
            "generated_at": datetime.now(timezone.utc).isoformat(),
            "today": self.today().isoformat(),
            "dry_run": self.dry_run,
            "totals": {o.value: 0 for o in Outcome},
            "sweeps": [],
            "recurring": [],
            "errors": [],
        }

    def _record_error(
        self, summary: dict[str, Any], operation: str, target: str, exc: Exception
    ) -> None:
        if isinstance(exc, CatalogLookupError):
            category, message = "config", str(exc)
        else:
            info = classify_error(exc)
            category, message = info.category, info.message
        summary["errors"].append(
            {"operation": operation, "target": target, "category": category, "message": message}
        )
        self.logger.log_error(f"{operation} {target!r} aborted", error=message, category=category)

    async def _run_sweep(
        self, sweeper: StaleSweeper, rule: SweepRule, summary: dict[str, Any]
    ) -> None:
        target = f"{rule.source_state} -> {rule.target_state}"
        try:
            report = await sweeper.sweep(rule.source_state, rule.target_state, rule.stale_after)
        except Exception as exc:
            self._record_error(summary, "sweep", target, exc)
            return
        for outcome in report.outcomes:
            summary["totals"][outcome.outcome.value] += 1
        summary["sweeps"].append(report.to_dict())

    async def _run_recurring(
        self, reconciler: RecurrenceReconciler, recurring: RecurringItem, summary: dict[str, Any]
    ) -> None:
        try:
            outcome = await reconciler.reconcile(recurring)
        except Exception as exc:
            self._record_error(summary, "recurring", recurring.item.title, exc)
            return
        summary["totals"][outcome.outcome.value] += 1
        summary["recurring"].append({**outcome.to_dict(), "schedule": recurring.schedule.name})


def summary_failed(summary: dict[str, Any]) -> bool:
    totals = summary.get("totals", {})
    failed = sum(int(totals.get(o.value, 0)) for o in Outcome if o.failed)
    return bool(summary.get("errors")) or failed > 0


def format_summary(summary: dict[str, Any]) -> list[str]:  # return list of human lines
    totals = summary.get("totals", {})
    counted = ", ".join(f"{k}={v}" for k, v in totals.items() if v)
    lines = [
        f"[run] {summary.get('today')}{' (dry-run)' if summary.get('dry_run') else ''}: "
        f"{counted or 'nothing to do'}"
    ]
    for sweep in summary.get("sweeps", []):
        lines.append(
            f"  sweep {sweep['from']} -> {sweep['to']} (after {sweep['after']}): "
            f"examined={sweep['examined']} moved={sweep['moved']} failed={sweep['failed']} "
            f"snoozed={sweep['skipped_snoozed']}"
        )
        for entry in sweep.get("outcomes", []):
            if entry["outcome"] != Outcome.MOVED.value:
                lines.append(f"    {entry['outcome']}: {entry.get('identifier')} :: {entry.get('reason')}")
    for entry in summary.get("recurring", []):
        if entry["outcome"] == Outcome.NOT_SCHEDULED.value:
            continue
        ident = f" {entry['identifier']}" if entry.get("identifier") else ""
        reason = f" ({entry['reason']})" if entry.get("reason") else ""
        lines.append(f"  {entry['outcome']}:{ident} {entry['title']}{reason}")
    for err in summary.get("errors", []):
        lines.append(f"  error [{err['category']}] {err['operation']} {err['target']}: {err['message']}")
    return lines


def write_summary(path: str | Path, summary: dict[str, Any]) -> Path:
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(json.dumps(summary, indent=2, sort_keys=False) + "\n", encoding="utf-8")
    return target


__all__ = [
    "Automation",
    "MOCK_ENV",
    "build_tracker",
    "format_summary",
    "mock_enabled",
    "summary_failed",
    "write_summary",
]
