import pytest

from clublit.domain.chat.presence import PresenceRegistry


@pytest.mark.asyncio
async def test_join_is_idempotent_for_same_connection():
    registry = PresenceRegistry()
    first = await registry.join("c1", "alice", "sid-1")
    second = await registry.join("c1", "alice", "sid-1")
    assert first == second == ["alice"]
    # a single leave fully releases the connection
    assert await registry.leave("c1", "sid-1") == []


@pytest.mark.asyncio
async def test_user_stays_online_until_last_connection_disconnects():
    registry = PresenceRegistry()
    await registry.join("C2", "X", "tab1")
    assert await registry.join("C2", "X", "tab2") == ["X"]

    updated = await registry.disconnect("tab1")
    assert updated == {"C2": ["X"]}
    assert await registry.online("C2") == ["X"]

    updated = await registry.disconnect("tab2")
    assert updated == {"C2": []}
    assert await registry.online("C2") == []


@pytest.mark.asyncio
async def test_disconnect_touches_every_joined_club():
    registry = PresenceRegistry()
    await registry.join("c1", "alice", "sid-1")
    await registry.join("c2", "alice", "sid-1")
    await registry.join("c2", "bob", "sid-2")

    updated = await registry.disconnect("sid-1")
    assert updated == {"c1": [], "c2": ["bob"]}
    assert await registry.clubs_for("sid-1") == []


@pytest.mark.asyncio
async def test_online_list_is_sorted():
    registry = PresenceRegistry()
    await registry.join("c1", "zoe", "s1")
    await registry.join("c1", "amir", "s2")
    assert await registry.online("c1") == ["amir", "zoe"]


@pytest.mark.asyncio
async def test_missing_ids_are_a_noop():
    registry = PresenceRegistry()
    assert await registry.join("", "alice", "sid-1") == []
    assert await registry.join("c1", None, "sid-1") == []
    assert await registry.disconnect("sid-1") == {}


@pytest.mark.asyncio
async def test_leave_unknown_connection_returns_none():
    registry = PresenceRegistry()
    assert await registry.leave("c1", "ghost") is None


@pytest.mark.asyncio
async def test_drop_club_forgets_only_that_club():
    registry = PresenceRegistry()
    await registry.join("c1", "alice", "sid-1")
    await registry.join("c2", "alice", "sid-1")
    await registry.join("c1", "bob", "sid-2")

    assert await registry.drop_club("c1") == ["alice", "bob"]

    assert await registry.online("c1") == []
    assert await registry.clubs_for("sid-1") == ["c2"]
    assert await registry.clubs_for("sid-2") == []
    # A fresh join starts counting from zero again.
    await registry.join("c1", "bob", "sid-3")
    assert await registry.leave("c1", "sid-3") == []
