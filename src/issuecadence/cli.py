"""IssueCadence CLI.

Subcommands:
  run        -> execute configured sweeps and recurring items (summary JSON optional)
  sweep      -> ad-hoc stale sweep between two workflow states
  schedules  -> list named schedules and whether each fires on a date
  validate   -> parse the config and report what a run would do

Exit codes: 0 ok, 1 failed outcomes or operation errors, 2 configuration error.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from collections.abc import Iterable
from datetime import date
from typing import Any

from issuecadence.automation import (
    Automation,
    build_tracker,
    format_summary,
    summary_failed,
    write_summary,
)
from issuecadence.catalog import TrackerContext
from issuecadence.config import CONFIG_DEFAULT, CadenceConfig, ConfigError, build_config
from issuecadence.duration import Duration
from issuecadence.errors import CatalogLookupError, classify_error
from issuecadence.runtime import execute_command, prepare_config, setup_logging
from issuecadence.schedule import named_schedules
from issuecadence.sweeper import StaleSweeper
from issuecadence.tracker import DryRunTracker, LinearTracker

EXIT_FAILED = 1
EXIT_CONFIG = 2

_MAX_HELP_WIDTH = 100


class _HelpFormatter(argparse.HelpFormatter):
    def __init__(self, prog: str) -> None:
        super().__init__(prog, max_help_position=30, width=_MAX_HELP_WIDTH)


class _FormatterArgumentParser(argparse.ArgumentParser):
    def __init__(self, *args: Any, **kwargs: Any) -> None:
        kwargs.setdefault("formatter_class", _HelpFormatter)
        super().__init__(*args, **kwargs)


def _iso_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid date {value!r} (expected YYYY-MM-DD)") from exc


def _duration(value: str) -> Duration:
    try:
        return Duration.parse(value)
    except (TypeError, ValueError) as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc


def _build_parser() -> argparse.ArgumentParser:
    """Construct top-level CLI parser with subcommands."""
    p = _FormatterArgumentParser(
        prog="issuecadence", description="Stale sweeps and recurring items for Linear"
    )
    p.add_argument("--quiet", action="store_true", help="Only log warnings and errors")
    p.add_argument("--verbose", action="store_true", help="Enable debug logging")
    p.add_argument("--json-logs", action="store_true", help="Emit structured JSON log lines")
    sub = p.add_subparsers(
        dest="cmd",
        required=True,
        parser_class=_FormatterArgumentParser,
        metavar="<command>",
    )

    pr = sub.add_parser("run", help="Run configured sweeps and recurring items")
    pr.add_argument("--config", default=CONFIG_DEFAULT)
    pr.add_argument("--dry-run", action="store_true", help="Plan mutations without applying them")
    pr.add_argument("--summary-json", help="Write the run summary to this JSON file")
    pr.add_argument("--date", type=_iso_date, help="Evaluate schedules as of this date")
    pr.add_argument("--max-workers", type=int, help="Cap on concurrent update requests")

    ps = sub.add_parser("sweep", help="Move stale items from one workflow state to another")
    ps.add_argument("--from", dest="source", required=True, help="Source workflow state name")
    ps.add_argument("--to", dest="target", required=True, help="Target workflow state name")
    ps.add_argument("--after", type=_duration, required=True, help="Staleness threshold, e.g. 2d")
    ps.add_argument("--dry-run", action="store_true")
    ps.add_argument("--max-workers", type=int, default=4)

    psc = sub.add_parser("schedules", help="List named schedules for a date")
    psc.add_argument("--date", type=_iso_date, help="Date to evaluate (default: today)")
    psc.add_argument("--firing", action="store_true", help="Only list schedules that fire")

    pv = sub.add_parser("validate", help="Parse the config and summarize it")
    pv.add_argument("--config", default=CONFIG_DEFAULT)
    return p


def _print_lines(lines: Iterable[str]) -> None:
    for line in lines:
        print(line)


def _cmd_run(cfg: CadenceConfig, args: argparse.Namespace) -> int:
    dry_run = True if args.dry_run else None
    automation = Automation.from_config(cfg, dry_run=dry_run)
    if args.date:
        fixed: date = args.date
        automation.today = lambda: fixed
    summary = automation.run_sync()
    _print_lines(format_summary(summary))
    if cfg.summary_json:
        path = write_summary(cfg.summary_json, summary)
        print(f"[run] summary written to {path}")
    return EXIT_FAILED if summary_failed(summary) else 0


async def _sweep_once(args: argparse.Namespace, cfg: CadenceConfig) -> int:
    backend = build_tracker(cfg)
    tracker = DryRunTracker(backend) if args.dry_run else backend
    sweeper = StaleSweeper(
        TrackerContext(tracker), max_in_flight=args.max_workers, dry_run=args.dry_run
    )
    if isinstance(backend, LinearTracker):
        async with backend:
            report = await sweeper.sweep(args.source, args.target, args.after)
    else:
        report = await sweeper.sweep(args.source, args.target, args.after)
    print(
        f"[sweep] {args.source} -> {args.target} (after {args.after}): examined={report.examined} "
        f"moved={report.moved} failed={report.failed} snoozed={report.skipped_snoozed}"
    )
    for outcome in report.outcomes:
        status = "UPDATED" if outcome.success else "FAILED TO UPDATE"
        print(f"  {status} {outcome.identifier}" + (f" ({outcome.reason})" if outcome.reason else ""))
    return EXIT_FAILED if report.failed else 0


def _cmd_sweep(args: argparse.Namespace) -> int:
    cfg = build_config({"concurrency": {"max_workers": args.max_workers}})
    try:
        return asyncio.run(_sweep_once(args, cfg))
    except CatalogLookupError as exc:
        print(f"[sweep] {exc}", file=sys.stderr)
        return EXIT_CONFIG
    except ConfigError:
        raise
    except Exception as exc:
        info = classify_error(exc)
        print(f"[sweep] error [{info.category}] {info.message}", file=sys.stderr)
        return EXIT_FAILED


def _cmd_schedules(args: argparse.Namespace) -> int:
    day: date = args.date or date.today()
    print(f"[schedules] {day.isoformat()} ({day.strftime('%A')})")
    for name, schedule in named_schedules().items():
        fires = schedule(day)
        if args.firing and not fires:
            continue
        print(f"  {'*' if fires else ' '} {name}")
    return 0


def _cmd_validate(cfg: CadenceConfig) -> int:
    print(f"[validate] {len(cfg.sweeps)} sweeps, {len(cfg.recurring)} recurring items")
    for rule in cfg.sweeps:
        print(f"  sweep {rule.source_state} -> {rule.target_state} after {rule.stale_after}")
    for recurring in cfg.recurring:
        flags = [
            name
            for name, enabled in (
                ("duplicate_if_already_open", recurring.duplicate_if_already_open),
                ("always_create_new", recurring.always_create_new),
                ("do_not_unsnooze", recurring.do_not_unsnooze),
            )
            if enabled
        ]
        print(
            f"  recurring {recurring.item.title!r} [{recurring.schedule.name}] -> "
            f"{recurring.team}/{recurring.state}" + (f" ({', '.join(flags)})" if flags else "")
        )
    print("[validate] ok")
    return 0


def _require_cfg(cfg: CadenceConfig | None) -> CadenceConfig:
    if cfg is None:  # pragma: no cover - defensive guard
        raise RuntimeError("Configuration not loaded")
    return cfg


def _build_handlers(args: argparse.Namespace, cfg: CadenceConfig | None) -> dict[str, Any]:
    return {
        "run": lambda: _cmd_run(_require_cfg(cfg), args),
        "sweep": lambda: _cmd_sweep(args),
        "schedules": lambda: _cmd_schedules(args),
        "validate": lambda: _cmd_validate(_require_cfg(cfg)),
    }


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    try:
        cfg = prepare_config(args)
    except ConfigError as exc:
        setup_logging(None, args)
        print(f"[{args.cmd}] configuration error: {exc}", file=sys.stderr)
        return EXIT_CONFIG
    setup_logging(cfg, args)
    handler = _build_handlers(args, cfg).get(args.cmd)
    if handler is None:  # pragma: no cover - argparse enforces valid choices
        parser.print_help()
        return 1
    try:
        return execute_command(handler, args, args.cmd)
    except ConfigError as exc:
        print(f"[{args.cmd}] configuration error: {exc}", file=sys.stderr)
        return EXIT_CONFIG


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
