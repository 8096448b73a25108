"""Recurring item reconciliation.

Given a :class:`~issuecadence.models.RecurringItem` the reconciler decides,
once per invocation, between creating a new item, refreshing (reopening) an
existing one, or doing nothing. Decision order:

1. ``schedule(today)`` is false                       -> ``not_scheduled`` (no tracker calls)
2. ``duplicate_if_already_open``                      -> create
3. no item whose title equals the definition's title  -> create
4. match is closed and ``always_create_new``          -> create (closed item untouched)
5. match is snoozed and ``do_not_unsnooze``           -> ``skipped_snoozed``
6. otherwise                                          -> update the match in place:
   description from the definition, target state, snooze cleared

The modifiers are independent flags; the order above is what resolves
combinations such as ``always_create_new`` together with ``do_not_unsnooze``.

Matching relies on the tracker's title search (substring) followed by an
exact string comparison here; when several items share the title the first
one returned wins. Repeated runs on the same day are only as idempotent as
that search: there is no persisted run marker.

Catalog names (state, team, project, labels) are resolved only on the path
that writes, so an unknown name never aborts a skipped item.

Create/update failures are reported through the outcome and never retried.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import date

from .catalog import TrackerContext
from .errors import RemoteOperationFailed, failure_reason
from .logging import get_logger
from .models import ItemOutcome, Outcome, RecurringItem, TrackedItem
from .tracker import ItemChanges, ItemDraft, MutationResult


def find_exact_match(items: list[TrackedItem], title: str) -> TrackedItem | None:
    for item in items:
        if item.title == title:
            return item
    return None


class RecurrenceReconciler:
    def __init__(
        self,
        context: TrackerContext,
        *,
        today: Callable[[], date] = date.today,
        dry_run: bool = False,
    ):
        self.context = context
        self.tracker = context.tracker
        self.today = today
        self.dry_run = dry_run
        self.logger = get_logger()

    async def reconcile(self, recurring: RecurringItem) -> ItemOutcome:
        title = recurring.item.title
        if not recurring.schedule(self.today()):
            self.logger.debug("Not scheduled today", title=title, schedule=recurring.schedule.name)
            return ItemOutcome(Outcome.NOT_SCHEDULED, title)

        if recurring.duplicate_if_already_open:
            return await self._create(recurring)

        match = find_exact_match(await self.tracker.search_items_by_title(title), title)
        if match is None:
            return await self._create(recurring)
        if recurring.always_create_new and not match.is_open:
            return await self._create(recurring)
        if recurring.do_not_unsnooze and match.is_snoozed:
            outcome = ItemOutcome(Outcome.SKIPPED_SNOOZED, title, match.identifier, match.id)
            self._report("skipped_snoozed", outcome)
            return outcome
        return await self._reopen(recurring, match)

    async def _create(self, recurring: RecurringItem) -> ItemOutcome:
        definition = recurring.item
        state_id = await self.context.state_id(recurring.state)
        team_id = await self.context.team_id(recurring.team)
        project_id = await self.context.project_id(recurring.project) if recurring.project else None
        label_ids = await self.context.label_ids(recurring.labels) if recurring.labels else ()
        draft = ItemDraft(
            title=definition.title,
            state_id=state_id,
            team_id=team_id,
            description=definition.description,
            due_date=definition.due_date,
            project_id=project_id,
            label_ids=label_ids,
        )
        try:
            result = await self.tracker.create_item(draft)
            if not result.success:
                raise RemoteOperationFailed("tracker reported success=false")
        except Exception as exc:
            outcome = self._failure(Outcome.CREATE_FAILED, definition.title, None, exc)
        else:
            outcome = self._success(Outcome.CREATED, definition.title, result, None)
        self._report("created" if outcome.success else "create_failed", outcome)
        return outcome

    async def _reopen(self, recurring: RecurringItem, match: TrackedItem) -> ItemOutcome:
        state_id = await self.context.state_id(recurring.state)
        description = recurring.item.description
        changes = ItemChanges(
            state_id=state_id,
            snoozed_until=None,
            **({"description": description} if description is not None else {}),
        )
        try:
            result = await self.tracker.update_item(match.id, changes)
            if not result.success:
                raise RemoteOperationFailed("tracker reported success=false")
        except Exception as exc:
            outcome = self._failure(Outcome.REOPEN_FAILED, match.title, match, exc)
        else:
            outcome = self._success(Outcome.REOPENED, match.title, result, match)
        self._report("reopened" if outcome.success else "reopen_failed", outcome)
        return outcome

    @staticmethod
    def _success(
        kind: Outcome, title: str, result: MutationResult, existing: TrackedItem | None
    ) -> ItemOutcome:
        item = result.item or existing
        return ItemOutcome(kind, title, item.identifier if item else None, item.id if item else None)

    @staticmethod
    def _failure(
        kind: Outcome, title: str, existing: TrackedItem | None, exc: Exception
    ) -> ItemOutcome:
        return ItemOutcome(
            kind,
            title,
            existing.identifier if existing else None,
            existing.id if existing else None,
            reason=failure_reason(exc),
        )

    def _report(self, action: str, outcome: ItemOutcome) -> None:
        self.logger.log_item_action(
            action,
            outcome.identifier,
            title=outcome.title,
            success=outcome.success,
            dry_run=self.dry_run,
            error=outcome.reason,
        )


__all__ = ["RecurrenceReconciler", "find_exact_match"]
