import asyncio
from unittest.mock import AsyncMock

import pytest
import socketio

from clublit.domain.chat import sockets
from clublit.domain.chat.presence import PresenceRegistry
from clublit.domain.chat.repo import ChatRepository
from clublit.domain.chat.service import ChatService
from clublit.domain.chat.sockets import ClubsNamespace, room_channel
from clublit.domain.clubs.outbox import CLUB_EVENT_STREAM
from clublit.domain.clubs.schemas import ClubCreateRequest
from clublit.domain.clubs.service import ClubService
from clublit.domain.errors import ConflictError, NotFoundError, PermissionDenied
from clublit.domain.users.schemas import RegisterRequest
from clublit.domain.users.service import UserService
from clublit.infra.auth import AuthenticatedUser


async def _user(users: UserService, name: str, *, admin: bool = False) -> AuthenticatedUser:
    profile = await users.register(
        RegisterRequest(username=name, email=f"{name.lower()}@example.com", password="correct-horse")
    )
    return AuthenticatedUser(id=profile.id, display_name=name, roles=("admin",) if admin else ())


@pytest.fixture
def namespace():
    server = socketio.AsyncServer(async_mode="asgi")
    mocked = ClubsNamespace(presence=PresenceRegistry())
    server.register_namespace(mocked)
    mocked.emit = AsyncMock()
    mocked.enter_room = AsyncMock()
    mocked.leave_room = AsyncMock()
    mocked.close_room = AsyncMock()
    original = sockets._namespace
    sockets.set_namespace(mocked)
    yield mocked
    sockets.set_namespace(original)


async def _club(clubs: ClubService, creator: AuthenticatedUser, name: str = "Page Turners"):
    return await clubs.create_club(
        creator,
        ClubCreateRequest(name=name, description="  Monthly pick  ", book="Dune"),
    )


@pytest.mark.asyncio
async def test_create_club_makes_creator_member():
    users = UserService()
    clubs = ClubService(users=users.repo)
    creator = await _user(users, "Uma")

    club = await _club(clubs, creator)
    assert club.members == [creator.id]
    assert club.description == "Monthly pick"

    profile = await users.get_profile(creator.id)
    assert profile.joined_clubs == [club.id]


@pytest.mark.asyncio
async def test_join_is_idempotent_and_bidirectional(fake_redis):
    users = UserService()
    clubs = ClubService(users=users.repo)
    creator = await _user(users, "Uma")
    alice = await _user(users, "Alice")
    club = await _club(clubs, creator)

    await clubs.join_club(alice, club.id)
    joined = await clubs.join_club(alice, club.id)
    assert joined.members == [creator.id, alice.id]
    assert (await users.get_profile(alice.id)).joined_clubs == [club.id]

    mine = await clubs.list_user_clubs(alice)
    assert [c.id for c in mine] == [club.id]

    events = [fields["event"] for _, fields in await fake_redis.xrange(CLUB_EVENT_STREAM)]
    assert events[0] == "club_created"
    assert events.count("member_joined") == 2


@pytest.mark.asyncio
async def test_concurrent_joins_do_not_lose_members():
    users = UserService()
    clubs = ClubService(users=users.repo)
    creator = await _user(users, "Uma")
    club = await _club(clubs, creator)
    joiners = [AuthenticatedUser(id=f"user-{idx}") for idx in range(10)]

    await asyncio.gather(*(clubs.join_club(user, club.id) for user in joiners))

    refreshed = await clubs.require_club(club.id)
    assert refreshed.member_count == 11


@pytest.mark.asyncio
async def test_creator_cannot_leave():
    users = UserService()
    clubs = ClubService(users=users.repo)
    creator = await _user(users, "Uma")
    club = await _club(clubs, creator)

    with pytest.raises(ConflictError):
        await clubs.leave_club(creator, club.id)


@pytest.mark.asyncio
async def test_leave_updates_both_sides():
    users = UserService()
    clubs = ClubService(users=users.repo)
    creator = await _user(users, "Uma")
    alice = await _user(users, "Alice")
    club = await _club(clubs, creator)
    await clubs.join_club(alice, club.id)

    await clubs.leave_club(alice, club.id)
    assert not (await clubs.require_club(club.id)).is_member(alice.id)
    assert (await users.get_profile(alice.id)).joined_clubs == []


@pytest.mark.asyncio
async def test_remove_member_rules():
    users = UserService()
    clubs = ClubService(users=users.repo)
    chat = ChatService(club_service=clubs, users=users.repo)
    creator = await _user(users, "Uma")
    alice = await _user(users, "Alice")
    bob = await _user(users, "Bob")
    root = await _user(users, "Root", admin=True)
    club = await _club(clubs, creator)
    await clubs.join_club(alice, club.id)
    await clubs.join_club(bob, club.id)

    with pytest.raises(PermissionDenied):
        await chat.remove_member(alice, club.id, bob.id)
    with pytest.raises(PermissionDenied):
        await chat.remove_member(root, club.id, creator.id)
    with pytest.raises(NotFoundError):
        await chat.remove_member(creator, club.id, "not-a-member")

    await chat.remove_member(creator, club.id, bob.id)
    refreshed = await clubs.require_club(club.id)
    assert refreshed.members == [creator.id, alice.id]
    assert (await users.get_profile(bob.id)).joined_clubs == []

    await chat.remove_member(root, club.id, alice.id)
    assert (await clubs.require_club(club.id)).members == [creator.id]


@pytest.mark.asyncio
async def test_get_club_is_members_only():
    users = UserService()
    clubs = ClubService(users=users.repo)
    creator = await _user(users, "Uma")
    outsider = await _user(users, "Olly")
    club = await _club(clubs, creator)

    with pytest.raises(PermissionDenied):
        await clubs.get_club(outsider, club.id)
    assert (await clubs.get_club(creator, club.id)).id == club.id


@pytest.mark.asyncio
async def test_admin_delete_notifies_creator():
    users = UserService()
    clubs = ClubService(users=users.repo)
    creator = await _user(users, "Uma")
    alice = await _user(users, "Alice")
    root = await _user(users, "Root", admin=True)
    club = await _club(clubs, creator)
    await clubs.join_club(alice, club.id)

    with pytest.raises(PermissionDenied):
        await clubs.delete_club(alice, club.id)

    result = await clubs.delete_club(root, club.id)
    assert result.deleted_by == "admin"
    assert (await users.get_profile(alice.id)).joined_clubs == []
    creator_profile = await users.get_profile(creator.id)
    assert creator_profile.joined_clubs == []
    assert len(creator_profile.notifications) == 1
    assert creator_profile.notifications[0].status == "unread"

    with pytest.raises(NotFoundError):
        await clubs.get_club(creator, club.id)


@pytest.mark.asyncio
async def test_rankings_order_by_member_count():
    users = UserService()
    clubs = ClubService(users=users.repo)
    creator = await _user(users, "Uma")
    small = await _club(clubs, creator, "Small")
    big = await _club(clubs, creator, "Big")
    for idx in range(3):
        await clubs.join_club(AuthenticatedUser(id=f"reader-{idx}"), big.id)

    ranked = await clubs.rankings()
    assert [r.id for r in ranked] == [big.id, small.id]
    assert ranked[0].member_count == 4


@pytest.mark.asyncio
async def test_removed_member_is_evicted_from_club_room(namespace):
    users = UserService()
    clubs = ClubService(users=users.repo)
    chat = ChatService(club_service=clubs, users=users.repo)
    creator = await _user(users, "Uma")
    bob = await _user(users, "Bob")
    club = await _club(clubs, creator)
    await clubs.join_club(bob, club.id)
    for sid in ("bob-tab-1", "bob-tab-2"):
        await namespace.trigger_event("connect", sid, {"asgi.scope": {"headers": []}}, {"userId": bob.id})
        await namespace.trigger_event("join_room", sid, {"club_id": club.id})

    await chat.remove_member(creator, club.id, bob.id)

    namespace.leave_room.assert_any_await("bob-tab-1", room_channel(club.id))
    namespace.leave_room.assert_any_await("bob-tab-2", room_channel(club.id))
    namespace.emit.assert_any_await("removed-from-club", {"club_id": club.id}, room="bob-tab-1")
    online = [call.args[1] for call in namespace.emit.await_args_list if call.args[0] == "online-users"]
    assert online[-1] == []

    await chat.send_message(creator, club.id, "members only from here")
    created = [call for call in namespace.emit.await_args_list if call.args[0] == "message-created"]
    assert created[-1].kwargs["room"] == room_channel(club.id)


@pytest.mark.asyncio
async def test_delete_club_purges_messages_and_closes_room(namespace):
    users = UserService()
    messages = ChatRepository()
    clubs = ClubService(users=users.repo, messages=messages)
    chat = ChatService(repository=messages, club_service=clubs, users=users.repo)
    creator = await _user(users, "Uma")
    club = await _club(clubs, creator)
    other = await _club(clubs, creator, "Other")
    doomed = await chat.send_message(creator, club.id, "last words")
    kept = await chat.send_message(creator, other.id, "still here")
    await namespace.trigger_event("connect", "sid-1", {"asgi.scope": {"headers": []}}, {"userId": creator.id})
    await namespace.trigger_event("join_room", "sid-1", {"club_id": club.id})

    await clubs.delete_club(creator, club.id)

    assert await chat.repo.get(doomed.id) is None
    assert (await chat.repo.get(kept.id)).text == "still here"
    namespace.emit.assert_any_await("club-deleted", {"club_id": club.id}, room=room_channel(club.id))
    namespace.close_room.assert_awaited_once_with(room_channel(club.id))
