from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, cast

import yaml

from .duration import Duration
from .linear_api import DEFAULT_API_URL
from .models import ItemDefinition, RecurringItem, SweepRule
from .schedule import UnknownScheduleError, resolve_schedule

CONFIG_DEFAULT = "issuecadence.config.yaml"


class ConfigError(RuntimeError):
    pass


@dataclass
class CadenceConfig:
    version: int
    source_file: Path | None
    api_key: str | None
    api_url: str
    default_team: str | None
    sweeps: list[SweepRule] = field(default_factory=list)
    recurring: list[RecurringItem] = field(default_factory=list)
    # Logging configuration
    logging_json_enabled: bool = False
    logging_level: str = "INFO"
    # Concurrency configuration
    concurrency_max_workers: int = 4
    # Environment authentication configuration
    env_auth_load_dotenv: bool = True
    env_auth_dotenv_path: str | None = None
    # Output / behaviour
    summary_json: str | None = None
    dry_run_default: bool = False


def _resolve_env_var(value: Any) -> Any:
    """Resolve environment variable if value starts with $."""
    if isinstance(value, str) and value.startswith('$'):
        return os.getenv(value[1:])
    return value


def _section(raw: Mapping[str, Any], key: str) -> dict[str, Any]:
    value = raw.get(key) or {}
    if not isinstance(value, Mapping):
        raise ConfigError(f"'{key}' must be a mapping")
    return dict(value)


def _parse_sweep(index: int, entry: Any) -> SweepRule:
    if not isinstance(entry, Mapping):
        raise ConfigError(f"sweeps[{index}] must be a mapping")
    missing = [k for k in ('from', 'to', 'after') if entry.get(k) in (None, '')]
    if missing:
        raise ConfigError(f"sweeps[{index}] missing required keys: {', '.join(missing)}")
    try:
        after = Duration.parse(entry['after'])
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"sweeps[{index}].after: {exc}") from exc
    return SweepRule(str(entry['from']), str(entry['to']), after)


def _parse_recurring(index: int, entry: Any, default_team: str | None) -> RecurringItem:
    if not isinstance(entry, Mapping):
        raise ConfigError(f"recurring[{index}] must be a mapping")
    # 'item' may be a bare title or a mapping; a flat entry carrying 'title' works too
    raw_item = entry.get('item', entry)
    try:
        definition = ItemDefinition.coerce(raw_item)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"recurring[{index}]: {exc}") from exc
    try:
        schedule = resolve_schedule(entry.get('schedule', 'EVERY_DAY'))
    except (UnknownScheduleError, TypeError, ValueError) as exc:
        raise ConfigError(f"recurring[{index}] ({definition.title}): {exc}") from exc
    state = entry.get('state')
    if not state:
        raise ConfigError(f"recurring[{index}] ({definition.title}) missing 'state'")
    team = entry.get('team') or default_team
    if not team:
        raise ConfigError(
            f"recurring[{index}] ({definition.title}) has no 'team' and tracker.default_team is unset"
        )
    labels = entry.get('labels') or []
    if isinstance(labels, str):
        labels = [labels]
    return RecurringItem(
        item=definition,
        state=str(state),
        team=str(team),
        schedule=schedule,
        duplicate_if_already_open=bool(entry.get('duplicate_if_already_open', False)),
        always_create_new=bool(entry.get('always_create_new', False)),
        do_not_unsnooze=bool(entry.get('do_not_unsnooze', False)),
        project=entry.get('project'),
        labels=tuple(str(label) for label in labels),
    )


def build_config(raw: Mapping[str, Any], source_file: Path | None = None) -> CadenceConfig:
    tracker = _section(raw, 'tracker')
    logging_config = _section(raw, 'logging')
    concurrency_config = _section(raw, 'concurrency')
    env_auth = _section(raw, 'environment')
    out = _section(raw, 'output')
    behavior = _section(raw, 'behavior')

    default_team = tracker.get('default_team')
    sweeps_raw = raw.get('sweeps') or []
    recurring_raw = raw.get('recurring') or []
    if not isinstance(sweeps_raw, list):
        raise ConfigError("'sweeps' must be a list")
    if not isinstance(recurring_raw, list):
        raise ConfigError("'recurring' must be a list")

    try:
        max_workers = int(concurrency_config.get('max_workers', 4))
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"concurrency.max_workers: {exc}") from exc
    if max_workers < 1:
        raise ConfigError("concurrency.max_workers must be >= 1")

    return CadenceConfig(
        version=int(raw.get('version', 1)),
        source_file=source_file,
        api_key=_resolve_env_var(tracker.get('api_key')),
        api_url=tracker.get('api_url') or DEFAULT_API_URL,
        default_team=default_team,
        sweeps=[_parse_sweep(i, e) for i, e in enumerate(sweeps_raw)],
        recurring=[_parse_recurring(i, e, default_team) for i, e in enumerate(recurring_raw)],
        logging_json_enabled=bool(logging_config.get('json_enabled', False)),
        logging_level=str(logging_config.get('level', 'INFO')),
        concurrency_max_workers=max_workers,
        env_auth_load_dotenv=bool(env_auth.get('load_dotenv', True)),
        env_auth_dotenv_path=env_auth.get('dotenv_path'),
        summary_json=out.get('summary_json'),
        dry_run_default=bool(behavior.get('dry_run_default', False)),
    )


def load_config(path: str | Path) -> CadenceConfig:
    p = Path(path)
    if not p.exists():
        raise ConfigError(f'Configuration file not found: {p}')
    try:
        raw = yaml.safe_load(p.read_text()) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f'Invalid YAML in {p}: {exc}') from exc
    if not isinstance(raw, Mapping):
        raise ConfigError(f'Configuration root must be a mapping: {p}')
    return build_config(cast(dict[str, Any], raw), source_file=p)


__all__ = ["CadenceConfig", "ConfigError", "CONFIG_DEFAULT", "build_config", "load_config"]
