"""Tracker collaborator contract and implementations.

The sweeper and reconciler talk to the issue tracker exclusively through
the async :class:`Tracker` protocol. Three implementations ship here:

* :class:`LinearTracker` adapts the blocking :class:`~issuecadence.linear_api.LinearClient`
  by running each call in a thread pool (``loop.run_in_executor``).
* :class:`DryRunTracker` delegates reads to another tracker and reports
  writes as successful without performing them.
* :class:`~issuecadence.mock.InMemoryTracker` (separate module) keeps items
  in memory for mock mode and tests.
"""

from __future__ import annotations

import asyncio
import functools
from collections.abc import Callable, Mapping
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import date, datetime
from types import TracebackType
from typing import Any, Protocol, TypeVar

from .linear_api import LinearClient
from .logging import get_logger
from .models import CatalogEntry, TrackedItem

T = TypeVar("T")


class _Unset:
    _instance: _Unset | None = None

    def __new__(cls) -> _Unset:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()


@dataclass(frozen=True)
class ItemChanges:
    """Partial update. ``UNSET`` fields are left alone; ``None`` clears."""

    description: str | None = UNSET
    state_id: str | None = UNSET
    snoozed_until: datetime | None = UNSET

    def is_empty(self) -> bool:
        return not self.as_dict()

    def as_dict(self) -> dict[str, Any]:
        return {k: v for k, v in vars(self).items() if v is not UNSET}

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {}
        if self.description is not UNSET:
            payload["description"] = self.description
        if self.state_id is not UNSET:
            payload["stateId"] = self.state_id
        if self.snoozed_until is not UNSET:
            payload["snoozedUntilAt"] = (
                self.snoozed_until.isoformat() if self.snoozed_until is not None else None
            )
        return payload


@dataclass(frozen=True)
class ItemDraft:
    title: str
    state_id: str
    team_id: str
    description: str | None = None
    due_date: date | None = None
    project_id: str | None = None
    label_ids: tuple[str, ...] = ()

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "title": self.title,
            "stateId": self.state_id,
            "teamId": self.team_id,
        }
        if self.description is not None:
            payload["description"] = self.description
        if self.due_date is not None:
            payload["dueDate"] = self.due_date.isoformat()
        if self.project_id:
            payload["projectId"] = self.project_id
        if self.label_ids:
            payload["labelIds"] = list(self.label_ids)
        return payload


@dataclass(frozen=True)
class MutationResult:
    success: bool
    item: TrackedItem | None = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> MutationResult:
        issue = payload.get("issue")
        return cls(
            success=bool(payload.get("success")),
            item=TrackedItem.from_payload(issue) if isinstance(issue, Mapping) else None,
        )


class Tracker(Protocol):  # pragma: no cover - interface only
    async def list_workflow_states(self) -> list[CatalogEntry]: ...

    async def list_teams(self) -> list[CatalogEntry]: ...

    async def list_projects(self) -> list[CatalogEntry]: ...

    async def list_labels(self) -> list[CatalogEntry]: ...

    async def list_items_by_state(self, state_id: str) -> list[TrackedItem]: ...

    async def list_all_items(self) -> list[TrackedItem]: ...

    async def search_items_by_title(self, text: str) -> list[TrackedItem]: ...

    async def update_item(self, item_id: str, changes: ItemChanges) -> MutationResult: ...

    async def create_item(self, draft: ItemDraft) -> MutationResult: ...


def _entries(nodes: list[dict[str, Any]]) -> list[CatalogEntry]:
    return [CatalogEntry(id=str(n["id"]), name=str(n.get("name", ""))) for n in nodes if n.get("id")]


def _items(nodes: list[dict[str, Any]]) -> list[TrackedItem]:
    return [TrackedItem.from_payload(n) for n in nodes if n.get("id")]


class LinearTracker:
    """Async Tracker over the Linear GraphQL client."""

    def __init__(self, client: LinearClient, max_workers: int = 4):
        self.client = client
        self.max_workers = max(1, max_workers)
        self.logger = get_logger()
        self._executor: ThreadPoolExecutor | None = None

    def __enter__(self) -> LinearTracker:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=self.max_workers, thread_name_prefix="issuecadence"
            )
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if self._executor:
            self._executor.shutdown(wait=True)
            self._executor = None

    async def __aenter__(self) -> LinearTracker:
        return self.__enter__()

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.__exit__(exc_type, exc_val, exc_tb)

    async def _call(self, fn: Callable[..., T], *args: Any) -> T:
        # Without an entered executor, fall back to the loop's default pool
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, functools.partial(fn, *args))

    async def list_workflow_states(self) -> list[CatalogEntry]:
        return _entries(await self._call(self.client.workflow_states))

    async def list_teams(self) -> list[CatalogEntry]:
        return _entries(await self._call(self.client.teams))

    async def list_projects(self) -> list[CatalogEntry]:
        return _entries(await self._call(self.client.projects))

    async def list_labels(self) -> list[CatalogEntry]:
        return _entries(await self._call(self.client.labels))

    async def list_items_by_state(self, state_id: str) -> list[TrackedItem]:
        return _items(await self._call(self.client.issues_in_state, state_id))

    async def list_all_items(self) -> list[TrackedItem]:
        return _items(await self._call(self.client.all_issues))

    async def search_items_by_title(self, text: str) -> list[TrackedItem]:
        self.logger.debug("Searching items by title", title=text[:50])
        return _items(await self._call(self.client.search_issues, text))

    async def update_item(self, item_id: str, changes: ItemChanges) -> MutationResult:
        payload = await self._call(self.client.update_issue, item_id, changes.to_payload())
        return MutationResult.from_payload(payload)

    async def create_item(self, draft: ItemDraft) -> MutationResult:
        payload = await self._call(self.client.create_issue, draft.to_payload())
        return MutationResult.from_payload(payload)


class DryRunTracker:
    """Reads pass through; writes are logged and reported as successful."""

    def __init__(self, inner: Tracker):
        self.inner = inner
        self.logger = get_logger()
        self.planned: list[dict[str, Any]] = []

    async def list_workflow_states(self) -> list[CatalogEntry]:
        return await self.inner.list_workflow_states()

    async def list_teams(self) -> list[CatalogEntry]:
        return await self.inner.list_teams()

    async def list_projects(self) -> list[CatalogEntry]:
        return await self.inner.list_projects()

    async def list_labels(self) -> list[CatalogEntry]:
        return await self.inner.list_labels()

    async def list_items_by_state(self, state_id: str) -> list[TrackedItem]:
        return await self.inner.list_items_by_state(state_id)

    async def list_all_items(self) -> list[TrackedItem]:
        return await self.inner.list_all_items()

    async def search_items_by_title(self, text: str) -> list[TrackedItem]:
        return await self.inner.search_items_by_title(text)

    async def update_item(self, item_id: str, changes: ItemChanges) -> MutationResult:
        self.planned.append({"action": "update", "item_id": item_id, "changes": changes.to_payload()})
        self.logger.debug("DRY-RUN update", item_id=item_id)
        return MutationResult(success=True)

    async def create_item(self, draft: ItemDraft) -> MutationResult:
        self.planned.append({"action": "create", "draft": draft.to_payload()})
        self.logger.debug("DRY-RUN create", title=draft.title[:50])
        return MutationResult(success=True)


__all__ = [
    "UNSET",
    "ItemChanges",
    "ItemDraft",
    "MutationResult",
    "Tracker",
    "LinearTracker",
    "DryRunTracker",
]
