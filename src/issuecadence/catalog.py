"""Per-run name -> id catalogs.

A :class:`TrackerContext` is built once per automation run. Each catalog
(workflow states, teams, projects, labels) is fetched lazily on first use,
at most once, and never invalidated for the lifetime of the context.
Concurrent first lookups share one fetch: the first caller populates the
map while the others wait on the same lock and then read the cached result.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable

from .errors import (
    CatalogLookupError,
    UnknownLabelError,
    UnknownProjectError,
    UnknownStateError,
    UnknownTeamError,
)
from .logging import get_logger
from .models import CatalogEntry
from .tracker import Tracker


class Catalog:
    def __init__(
        self,
        kind: str,
        fetch: Callable[[], Awaitable[list[CatalogEntry]]],
        error_type: type[CatalogLookupError],
    ):
        self.kind = kind
        self._fetch = fetch
        self._error_type = error_type
        self._entries: dict[str, str] | None = None
        self._lock = asyncio.Lock()
        self.fetch_count = 0

    @property
    def loaded(self) -> bool:
        return self._entries is not None

    async def entries(self) -> dict[str, str]:
        if self._entries is None:
            async with self._lock:
                if self._entries is None:
                    self.fetch_count += 1
                    nodes = await self._fetch()
                    mapping: dict[str, str] = {}
                    for node in nodes:
                        # First entry wins when names repeat across teams
                        mapping.setdefault(node.name, node.id)
                    self._entries = mapping
                    get_logger().debug(f"Loaded {self.kind} catalog", count=len(mapping))
        return self._entries

    async def resolve(self, name: str) -> str:
        entries = await self.entries()
        try:
            return entries[name]
        except KeyError:
            raise self._error_type(name, list(entries)) from None


class TrackerContext:
    """Explicit replacement for process-wide lookup caches."""

    def __init__(self, tracker: Tracker):
        self.tracker = tracker
        self.states = Catalog("workflow state", tracker.list_workflow_states, UnknownStateError)
        self.teams = Catalog("team", tracker.list_teams, UnknownTeamError)
        self.projects = Catalog("project", tracker.list_projects, UnknownProjectError)
        self.labels = Catalog("label", tracker.list_labels, UnknownLabelError)

    async def state_id(self, name: str) -> str:
        return await self.states.resolve(name)

    async def team_id(self, name: str) -> str:
        return await self.teams.resolve(name)

    async def project_id(self, name: str) -> str:
        return await self.projects.resolve(name)

    async def label_id(self, name: str) -> str:
        return await self.labels.resolve(name)

    async def label_ids(self, names: tuple[str, ...] | list[str]) -> tuple[str, ...]:
        return tuple([await self.label_id(n) for n in names])


__all__ = ["Catalog", "TrackerContext"]
