import asyncio

import pytest

from issuecadence.catalog import TrackerContext
from issuecadence.errors import UnknownLabelError, UnknownStateError, UnknownTeamError
from issuecadence.mock import InMemoryTracker
from issuecadence.models import CatalogEntry


@pytest.mark.asyncio
async def test_concurrent_first_lookups_share_one_fetch():
    tracker = InMemoryTracker()
    ctx = TrackerContext(tracker)
    ids = await asyncio.gather(*(ctx.state_id(n) for n in ("Todo", "Triage", "Done", "Todo")))
    assert ids == ["state-3", "state-1", "state-5", "state-3"]
    assert ctx.states.fetch_count == 1
    assert tracker.calls.count(("list_workflow_states",)) == 1


@pytest.mark.asyncio
async def test_catalog_is_never_refetched():
    tracker = InMemoryTracker()
    ctx = TrackerContext(tracker)
    await ctx.state_id("Todo")
    tracker.states.append(CatalogEntry(id="state-99", name="Later"))
    with pytest.raises(UnknownStateError):
        await ctx.state_id("Later")
    assert ctx.states.fetch_count == 1


@pytest.mark.asyncio
async def test_unknown_names_list_known_entries():
    ctx = TrackerContext(InMemoryTracker(teams=("Home", "Work")))
    with pytest.raises(UnknownTeamError) as excinfo:
        await ctx.team_id("Garden")
    assert excinfo.value.known == ["Home", "Work"]
    assert "Unknown team 'Garden'" in str(excinfo.value)


@pytest.mark.asyncio
async def test_first_entry_wins_for_duplicate_names():
    tracker = InMemoryTracker(states=("Todo", "Todo"))
    ctx = TrackerContext(tracker)
    assert await ctx.state_id("Todo") == "state-1"


@pytest.mark.asyncio
async def test_label_ids_resolve_in_order():
    ctx = TrackerContext(InMemoryTracker(labels=("chore", "home")))
    assert await ctx.label_ids(("home", "chore")) == ("label-2", "label-1")
    with pytest.raises(UnknownLabelError):
        await ctx.label_ids(["missing"])


def test_catalogs_load_lazily():
    tracker = InMemoryTracker()
    ctx = TrackerContext(tracker)
    assert not ctx.states.loaded
    assert tracker.calls == []
    asyncio.run(ctx.team_id("Home"))
    assert ctx.teams.loaded
    assert not ctx.states.loaded
