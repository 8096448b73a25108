"""IssueCadence - scheduled housekeeping for Linear issues.

High-level public API (stable):

from issuecadence import Automation, load_config

cfg = load_config('issuecadence.config.yaml')
summary = Automation.from_config(cfg, dry_run=True).run_sync()
print(summary['totals'])

Building blocks are importable on their own: :class:`Duration` for
millisecond spans, the named :mod:`~issuecadence.schedule` predicates,
:class:`StaleSweeper` and :class:`RecurrenceReconciler` over any
:class:`Tracker` implementation.
"""

from __future__ import annotations

from .automation import Automation
from .config import CadenceConfig, ConfigError, load_config
from .duration import Duration
from .models import ItemDefinition, ItemOutcome, Outcome, RecurringItem, SweepReport, SweepRule
from .reconciler import RecurrenceReconciler
from .schedule import Schedule, get_schedule
from .sweeper import StaleSweeper
from .tracker import Tracker

# Keep in sync with pyproject.toml and linear_api.USER_AGENT
__version__ = "0.2.0"

__all__ = [
    "Automation",
    "CadenceConfig",
    "ConfigError",
    "Duration",
    "ItemDefinition",
    "ItemOutcome",
    "Outcome",
    "RecurrenceReconciler",
    "RecurringItem",
    "Schedule",
    "StaleSweeper",
    "SweepReport",
    "SweepRule",
    "Tracker",
    "get_schedule",
    "load_config",
    "__version__",
]
