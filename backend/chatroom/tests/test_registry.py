"""
Tests for the presence registry.

Covers:
  - join validation (empty / whitespace names, exact-match collisions)
  - uniqueness under concurrent joins
  - idempotent leave
  - snapshot / count consistency
"""

import asyncio

import pytest

from chatroom.core.errors import AlreadyJoined, EmptyName, NameTaken
from chatroom.presence.registry import Participant, PresenceRegistry


@pytest.fixture()
def registry() -> PresenceRegistry:
    return PresenceRegistry()


@pytest.mark.asyncio
async def test_join_returns_participant(registry):
    p = await registry.try_join("c1", "alice")
    assert p.connection_id == "c1"
    assert p.display_name == "alice"
    assert p.joined_at > 0
    assert await registry.snapshot() == ["alice"]


@pytest.mark.asyncio
@pytest.mark.parametrize("name", ["", "   ", "\t\n"])
async def test_blank_names_are_rejected(registry, name):
    with pytest.raises(EmptyName):
        await registry.try_join("c1", name)
    assert await registry.count() == 0


@pytest.mark.asyncio
async def test_duplicate_name_is_rejected_not_renamed(registry):
    await registry.try_join("c1", "alice")
    with pytest.raises(NameTaken):
        await registry.try_join("c2", "alice")
    assert await registry.snapshot() == ["alice"]
    assert await registry.get("c2") is None


@pytest.mark.asyncio
async def test_names_are_case_sensitive(registry):
    await registry.try_join("c1", "alice")
    await registry.try_join("c2", "Alice")
    assert sorted(await registry.snapshot()) == ["Alice", "alice"]


@pytest.mark.asyncio
async def test_connection_cannot_join_twice(registry):
    await registry.try_join("c1", "alice")
    with pytest.raises(AlreadyJoined):
        await registry.try_join("c1", "bob")
    assert await registry.snapshot() == ["alice"]


@pytest.mark.asyncio
async def test_concurrent_joins_with_same_name_admit_one(registry):
    results = await asyncio.gather(
        *(registry.try_join(f"c{i}", "alice") for i in range(25)),
        return_exceptions=True,
    )
    winners = [r for r in results if isinstance(r, Participant)]
    losers = [r for r in results if isinstance(r, NameTaken)]
    assert len(winners) == 1
    assert len(losers) == 24
    assert await registry.snapshot() == ["alice"]


@pytest.mark.asyncio
async def test_name_is_free_again_after_leave(registry):
    await registry.try_join("c1", "alice")
    await registry.leave("c1")
    p = await registry.try_join("c2", "alice")
    assert p.connection_id == "c2"


@pytest.mark.asyncio
async def test_leave_is_idempotent(registry):
    await registry.try_join("c1", "alice")
    first = await registry.leave("c1")
    second = await registry.leave("c1")
    assert first is not None and first.display_name == "alice"
    assert second is None
    assert await registry.snapshot() == []


@pytest.mark.asyncio
async def test_leave_unknown_connection_is_noop(registry):
    assert await registry.leave("never-joined") is None


@pytest.mark.asyncio
async def test_snapshot_matches_count(registry):
    for i, name in enumerate(["alice", "bob", "carol"]):
        await registry.try_join(f"c{i}", name)
        assert len(await registry.snapshot()) == await registry.count()
    await registry.leave("c1")
    assert await registry.snapshot() == ["alice", "carol"]
    assert await registry.count() == 2


@pytest.mark.asyncio
async def test_snapshot_is_deterministic(registry):
    await registry.try_join("c1", "bob")
    await registry.try_join("c2", "alice")
    assert await registry.snapshot() == await registry.snapshot() == ["bob", "alice"]
