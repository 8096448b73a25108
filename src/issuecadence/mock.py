"""In-memory tracker used by mock mode (``ISSUECADENCE_MOCK=1``) and tests.

Behaviour mirrors the Linear backend closely enough for the decision logic:
title search is a case-insensitive substring match, updates apply only the
fields that were set, and creates fabricate sequential identifiers.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from dataclasses import replace

from .duration import now
from .models import CatalogEntry, TrackedItem
from .tracker import UNSET, ItemChanges, ItemDraft, MutationResult

DEFAULT_STATES = ("Triage", "Backlog", "Todo", "In Progress", "Done", "Canceled")


class InMemoryTracker:
    def __init__(
        self,
        states: Iterable[str] = DEFAULT_STATES,
        teams: Iterable[str] = ("Home",),
        projects: Iterable[str] = (),
        labels: Iterable[str] = (),
        items: Iterable[TrackedItem] = (),
        prefix: str = "MOCK",
    ):
        self.states = [CatalogEntry(id=f"state-{i}", name=n) for i, n in enumerate(states, 1)]
        self.teams = [CatalogEntry(id=f"team-{i}", name=n) for i, n in enumerate(teams, 1)]
        self.projects = [CatalogEntry(id=f"project-{i}", name=n) for i, n in enumerate(projects, 1)]
        self.labels = [CatalogEntry(id=f"label-{i}", name=n) for i, n in enumerate(labels, 1)]
        self.items: dict[str, TrackedItem] = {item.id: item for item in items}
        self.prefix = prefix
        self._counter = len(self.items)
        # Failure injection: ids whose updates report success=False / raise
        self.reject_updates: set[str] = set()
        self.raise_on_update: set[str] = set()
        self.reject_creates = False
        # Call log, e.g. ("list_workflow_states",), ("update", id, {...}), ("create", {...})
        self.calls: list[tuple[object, ...]] = []

    # ---- helpers ------------------------------------------------------
    def state(self, name: str) -> CatalogEntry:
        for entry in self.states:
            if entry.name == name:
                return entry
        raise KeyError(name)

    def add_item(self, title: str, state: str = "Todo", **fields: object) -> TrackedItem:
        self._counter += 1
        item = TrackedItem(
            id=f"item-{self._counter}",
            identifier=f"{self.prefix}-{self._counter}",
            title=title,
            state=self.state(state),
            updated_at=fields.pop("updated_at", None) or now(),  # type: ignore[arg-type]
            **fields,  # type: ignore[arg-type]
        )
        self.items[item.id] = item
        return item

    async def _tick(self) -> None:
        # Yield to the loop so concurrent callers interleave like real I/O
        await asyncio.sleep(0)

    # ---- catalogs -----------------------------------------------------
    async def list_workflow_states(self) -> list[CatalogEntry]:
        self.calls.append(("list_workflow_states",))
        await self._tick()
        return list(self.states)

    async def list_teams(self) -> list[CatalogEntry]:
        self.calls.append(("list_teams",))
        await self._tick()
        return list(self.teams)

    async def list_projects(self) -> list[CatalogEntry]:
        self.calls.append(("list_projects",))
        await self._tick()
        return list(self.projects)

    async def list_labels(self) -> list[CatalogEntry]:
        self.calls.append(("list_labels",))
        await self._tick()
        return list(self.labels)

    # ---- items --------------------------------------------------------
    async def list_items_by_state(self, state_id: str) -> list[TrackedItem]:
        self.calls.append(("list_items_by_state", state_id))
        await self._tick()
        return [i for i in self.items.values() if i.state is not None and i.state.id == state_id]

    async def list_all_items(self) -> list[TrackedItem]:
        self.calls.append(("list_all_items",))
        await self._tick()
        return list(self.items.values())

    async def search_items_by_title(self, text: str) -> list[TrackedItem]:
        self.calls.append(("search", text))
        await self._tick()
        needle = text.casefold()
        return [i for i in self.items.values() if needle in i.title.casefold()]

    async def update_item(self, item_id: str, changes: ItemChanges) -> MutationResult:
        self.calls.append(("update", item_id, changes.as_dict()))
        await self._tick()
        if item_id in self.raise_on_update:
            raise ConnectionError(f"connection reset while updating {item_id}")
        item = self.items.get(item_id)
        if item is None or item_id in self.reject_updates:
            return MutationResult(success=False)
        updated = item
        if changes.description is not UNSET:
            updated = replace(updated, description=changes.description)
        if changes.state_id is not UNSET:
            state = next((s for s in self.states if s.id == changes.state_id), None)
            if state is None:
                return MutationResult(success=False)
            updated = replace(updated, state=state)
        if changes.snoozed_until is not UNSET:
            updated = replace(updated, snoozed_until=changes.snoozed_until)
        updated = replace(updated, updated_at=now())
        self.items[item_id] = updated
        return MutationResult(success=True, item=updated)

    async def create_item(self, draft: ItemDraft) -> MutationResult:
        self.calls.append(("create", draft.to_payload()))
        await self._tick()
        if self.reject_creates:
            return MutationResult(success=False)
        state = next((s for s in self.states if s.id == draft.state_id), None)
        self._counter += 1
        item = TrackedItem(
            id=f"item-{self._counter}",
            identifier=f"{self.prefix}-{self._counter}",
            title=draft.title,
            description=draft.description,
            state=state,
            due_date=draft.due_date,
            updated_at=now(),
        )
        self.items[item.id] = item
        return MutationResult(success=True, item=item)


__all__ = ["InMemoryTracker", "DEFAULT_STATES"]
