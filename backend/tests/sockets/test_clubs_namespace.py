from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest
import socketio

from clublit.domain.chat import sockets
from clublit.domain.chat.models import ClubMessage
from clublit.domain.chat.presence import PresenceRegistry
from clublit.domain.chat.sockets import ClubsNamespace, room_channel
from clublit.infra import jwt as jwt_helper
from clublit.settings import settings


def _namespace() -> ClubsNamespace:
    server = socketio.AsyncServer(async_mode="asgi")
    namespace = ClubsNamespace(presence=PresenceRegistry())
    server.register_namespace(namespace)
    namespace.emit = AsyncMock()
    namespace.enter_room = AsyncMock()
    namespace.leave_room = AsyncMock()
    return namespace


def _online_broadcasts(namespace: ClubsNamespace) -> list:
    return [call.args[1] for call in namespace.emit.await_args_list if call.args[0] == "online-users"]


async def _connect(namespace: ClubsNamespace, sid: str, user_id: str) -> None:
    await namespace.trigger_event("connect", sid, {"asgi.scope": {"headers": []}}, {"userId": user_id})


@pytest.mark.asyncio
async def test_connect_requires_credentials():
    namespace = _namespace()
    with pytest.raises(ConnectionRefusedError):
        await namespace.trigger_event("connect", "sid-1", {"asgi.scope": {"headers": []}}, None)


@pytest.mark.asyncio
async def test_dev_user_id_rejected_outside_dev():
    namespace = _namespace()
    settings.environment = "production"
    with pytest.raises(ConnectionRefusedError):
        await _connect(namespace, "sid-1", "user-1")


@pytest.mark.asyncio
async def test_connect_with_bearer_header():
    namespace = _namespace()
    token = jwt_helper.encode_access({"sub": "user-7", "name": "Seven"})
    scope = {"headers": [(b"authorization", f"Bearer {token}".encode())]}

    await namespace.trigger_event("connect", "sid-7", {"asgi.scope": scope}, None)

    user = namespace.session_user("sid-7")
    assert user is not None and user.id == "user-7"


@pytest.mark.asyncio
async def test_join_room_broadcasts_online_users():
    namespace = _namespace()
    await _connect(namespace, "sid-1", "alice")
    await _connect(namespace, "sid-2", "bob")

    await namespace.trigger_event("join_room", "sid-1", {"club_id": "c1"})
    await namespace.trigger_event("join_room", "sid-2", {"clubId": "c1"})

    namespace.enter_room.assert_any_await("sid-1", room_channel("c1"))
    assert _online_broadcasts(namespace) == [["alice"], ["alice", "bob"]]
    last = namespace.emit.await_args_list[-1]
    assert last.kwargs["room"] == "club:c1"


@pytest.mark.asyncio
async def test_two_tabs_keep_user_online_until_both_disconnect():
    namespace = _namespace()
    await _connect(namespace, "tab1", "X")
    await _connect(namespace, "tab2", "X")
    await namespace.trigger_event("join_room", "tab1", {"club_id": "C2"})
    await namespace.trigger_event("join_room", "tab2", {"club_id": "C2"})

    await namespace.trigger_event("disconnect", "tab1")
    assert _online_broadcasts(namespace)[-1] == ["X"]

    await namespace.trigger_event("disconnect", "tab2")
    assert _online_broadcasts(namespace)[-1] == []


@pytest.mark.asyncio
async def test_leave_room_updates_presence():
    namespace = _namespace()
    await _connect(namespace, "sid-1", "alice")
    await namespace.trigger_event("join_room", "sid-1", {"club_id": "c1"})

    await namespace.trigger_event("leave_room", "sid-1", {"club_id": "c1"})

    namespace.leave_room.assert_awaited_once_with("sid-1", room_channel("c1"))
    assert _online_broadcasts(namespace)[-1] == []


@pytest.mark.asyncio
async def test_join_without_club_id_emits_error():
    namespace = _namespace()
    await _connect(namespace, "sid-1", "alice")

    await namespace.trigger_event("join_room", "sid-1", {})

    namespace.emit.assert_awaited_once_with("error", {"code": "club_id_required"}, room="sid-1")
    namespace.enter_room.assert_not_awaited()


@pytest.mark.asyncio
async def test_module_emitters_target_club_room():
    namespace = _namespace()
    message = ClubMessage(
        id="m1",
        club_id="c9",
        author_id="u1",
        author_name="Una",
        author_avatar="",
        text="edited",
        created_at=datetime.now(timezone.utc),
    )
    original = sockets._namespace
    sockets.set_namespace(namespace)
    try:
        await sockets.emit_message_edited(message)
    finally:
        sockets.set_namespace(original)

    namespace.emit.assert_awaited_once_with("message-edited", message.to_dict(), room="club:c9")


@pytest.mark.asyncio
async def test_evict_user_leaves_every_tab_and_keeps_others():
    namespace = _namespace()
    await _connect(namespace, "tab1", "bob")
    await _connect(namespace, "tab2", "bob")
    await _connect(namespace, "sid-a", "alice")
    for sid in ("tab1", "tab2", "sid-a"):
        await namespace.trigger_event("join_room", sid, {"club_id": "c1"})

    evicted = await namespace.evict_user("c1", "bob")

    assert sorted(evicted) == ["tab1", "tab2"]
    assert namespace.leave_room.await_count == 2
    namespace.leave_room.assert_any_await("tab2", room_channel("c1"))
    assert _online_broadcasts(namespace)[-1] == ["alice"]


@pytest.mark.asyncio
async def test_evict_unknown_user_is_a_noop():
    namespace = _namespace()
    await _connect(namespace, "sid-a", "alice")

    assert await namespace.evict_user("c1", "bob") == []
    namespace.leave_room.assert_not_awaited()
    namespace.emit.assert_not_awaited()
