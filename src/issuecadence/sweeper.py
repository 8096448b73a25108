"""Stale item sweeping.

Moves every item sitting in a source workflow state to a target state once
it has gone longer than a threshold without updates. Snoozed items are
never moved, however stale they are.

Transitions for individual items are started together and complete
independently: one failing (or raising) update produces a ``MOVE_FAILED``
outcome for that item and nothing else. There is no rollback; a partially
applied sweep is a normal result. A semaphore caps how many update
requests are in flight at once.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import datetime

from .catalog import TrackerContext
from .duration import Duration, now
from .errors import RemoteOperationFailed, failure_reason
from .logging import get_logger
from .models import ItemOutcome, Outcome, SweepReport, SweepRule, TrackedItem
from .tracker import ItemChanges

DEFAULT_MAX_IN_FLIGHT = 4


class StaleSweeper:
    def __init__(
        self,
        context: TrackerContext,
        *,
        max_in_flight: int = DEFAULT_MAX_IN_FLIGHT,
        clock: Callable[[], datetime] = now,
        dry_run: bool = False,
    ):
        self.context = context
        self.tracker = context.tracker
        self.max_in_flight = max(1, max_in_flight)
        self.clock = clock
        self.dry_run = dry_run
        self.logger = get_logger()

    async def sweep(
        self, source_state: str, target_state: str, stale_after: Duration
    ) -> SweepReport:
        """Move stale, non-snoozed items from ``source_state`` to ``target_state``.

        Raises :class:`~issuecadence.errors.UnknownStateError` when either
        state name is missing from the workflow state catalog.
        """
        rule = SweepRule(source_state, target_state, stale_after)
        source_id = await self.context.state_id(source_state)
        target_id = await self.context.state_id(target_state)

        items = await self.tracker.list_items_by_state(source_id)
        report = SweepReport(rule=rule, examined=len(items))
        at = self.clock()
        candidates: list[TrackedItem] = []
        for item in items:
            if item.is_snoozed:
                report.skipped_snoozed += 1
                continue
            if item.is_stale(stale_after, at):
                candidates.append(item)

        self.logger.log_operation(
            "sweep",
            source=source_state,
            target=target_state,
            stale_after=str(stale_after),
            examined=len(items),
            candidates=len(candidates),
        )
        semaphore = asyncio.Semaphore(self.max_in_flight)
        outcomes = await asyncio.gather(
            *(self._move(item, target_id, semaphore) for item in candidates)
        )
        report.outcomes.extend(outcomes)
        return report

    async def _move(
        self, item: TrackedItem, target_id: str, semaphore: asyncio.Semaphore
    ) -> ItemOutcome:
        async with semaphore:
            try:
                result = await self.tracker.update_item(item.id, ItemChanges(state_id=target_id))
                if not result.success:
                    raise RemoteOperationFailed("tracker reported success=false")
            except Exception as exc:
                outcome = ItemOutcome(
                    Outcome.MOVE_FAILED, item.title, item.identifier, item.id,
                    reason=failure_reason(exc),
                )
            else:
                outcome = ItemOutcome(Outcome.MOVED, item.title, item.identifier, item.id)
        self.logger.log_item_action(
            "moved" if outcome.success else "move_failed",
            item.identifier,
            title=item.title,
            success=outcome.success,
            dry_run=self.dry_run,
            error=outcome.reason,
        )
        return outcome


__all__ = ["StaleSweeper", "DEFAULT_MAX_IN_FLIGHT"]
