"""Club lifecycle and membership service layer."""

from __future__ import annotations

import asyncio
from dataclasses import replace
from datetime import datetime, timezone
from typing import Dict, List, Optional

import asyncpg
import ulid

from clublit.domain.chat import policy as chat_policy
from clublit.domain.chat import sockets as chat_sockets
from clublit.domain.chat.repo import ChatRepository
from clublit.domain.clubs import models, outbox, policy, schemas
from clublit.domain.errors import NotFoundError
from clublit.domain.store import PoolBackedRepository
from clublit.domain.users.models import NOTIFICATION_UNREAD, Notification
from clublit.domain.users.service import UserRepository
from clublit.infra.auth import AuthenticatedUser
from clublit.obs import logging as obs_logging
from clublit.obs import metrics as obs_metrics

logger = obs_logging.get_logger(__name__)


class _MemoryStore:
	def __init__(self) -> None:
		self._lock = asyncio.Lock()
		self.clubs: Dict[str, models.Club] = {}

	async def create_club(self, club: models.Club) -> models.Club:
		async with self._lock:
			self.clubs[club.id] = club
			return replace(club, members=list(club.members))

	async def get_club(self, club_id: str) -> Optional[models.Club]:
		async with self._lock:
			club = self.clubs.get(club_id)
			return replace(club, members=list(club.members)) if club else None

	async def list_clubs(self, member_id: Optional[str] = None) -> List[models.Club]:
		async with self._lock:
			clubs = [
				replace(club, members=list(club.members))
				for club in self.clubs.values()
				if member_id is None or member_id in club.members
			]
		return sorted(clubs, key=lambda c: c.created_at, reverse=True)

	async def add_member(self, club_id: str, user_id: str) -> Optional[models.Club]:
		async with self._lock:
			club = self.clubs.get(club_id)
			if club is None:
				return None
			if user_id not in club.members:
				club.members.append(user_id)
				club.updated_at = datetime.now(timezone.utc)
			return replace(club, members=list(club.members))

	async def remove_member(self, club_id: str, user_id: str) -> bool:
		async with self._lock:
			club = self.clubs.get(club_id)
			if club is None or user_id not in club.members or club.creator_id == user_id:
				return False
			club.members = [member for member in club.members if member != user_id]
			club.updated_at = datetime.now(timezone.utc)
			return True

	async def delete_club(self, club_id: str) -> bool:
		async with self._lock:
			return self.clubs.pop(club_id, None) is not None

	async def rankings(self, limit: int) -> List[models.ClubRanking]:
		async with self._lock:
			ranked = sorted(
				self.clubs.values(),
				key=lambda c: (-len(c.members), c.created_at),
			)
			return [
				models.ClubRanking(id=c.id, name=c.name, member_count=len(c.members), created_at=c.created_at)
				for c in ranked[:limit]
			]


_MEMORY = _MemoryStore()


def _row_to_club(row: asyncpg.Record) -> models.Club:
	return models.Club(
		id=str(row["id"]),
		name=row["name"],
		description=row["description"],
		book=row["book"],
		active=bool(row["active"]),
		creator_id=str(row["creator_id"]),
		created_at=row["created_at"],
		updated_at=row["updated_at"],
		members=list(row["members"] or []),
	)


class ClubRepository(PoolBackedRepository):
	store_name = "clubs"

	async def create_club(self, club: models.Club) -> models.Club:
		pool = await self._get_pool()
		if pool is None:
			return await _MEMORY.create_club(club)
		async with self._connection(pool) as conn:
			row = await conn.fetchrow(
				"""
				INSERT INTO clubs (id, name, description, book, active, creator_id, members, created_at, updated_at)
				VALUES ($1,$2,$3,$4,$5,$6,$7,$8,$8)
				RETURNING *
				""",
				club.id,
				club.name,
				club.description,
				club.book,
				club.active,
				club.creator_id,
				list(club.members),
				club.created_at,
			)
		return _row_to_club(row)

	async def get_club(self, club_id: str) -> Optional[models.Club]:
		pool = await self._get_pool()
		if pool is None:
			return await _MEMORY.get_club(club_id)
		async with self._connection(pool) as conn:
			row = await conn.fetchrow("SELECT * FROM clubs WHERE id=$1", club_id)
		return _row_to_club(row) if row else None

	async def list_clubs(self, member_id: Optional[str] = None) -> List[models.Club]:
		pool = await self._get_pool()
		if pool is None:
			return await _MEMORY.list_clubs(member_id)
		async with self._connection(pool) as conn:
			if member_id is None:
				rows = await conn.fetch("SELECT * FROM clubs ORDER BY created_at DESC")
			else:
				rows = await conn.fetch(
					"SELECT * FROM clubs WHERE $1 = ANY(members) ORDER BY created_at DESC",
					member_id,
				)
		return [_row_to_club(row) for row in rows]

	async def add_member(self, club_id: str, user_id: str) -> Optional[models.Club]:
		"""Set-union of ``user_id`` into the member list in a single statement."""
		pool = await self._get_pool()
		if pool is None:
			return await _MEMORY.add_member(club_id, user_id)
		async with self._connection(pool) as conn:
			row = await conn.fetchrow(
				"""
				UPDATE clubs
				SET members = CASE WHEN $2 = ANY(members) THEN members ELSE array_append(members, $2) END,
					updated_at = CASE WHEN $2 = ANY(members) THEN updated_at ELSE NOW() END
				WHERE id=$1
				RETURNING *
				""",
				club_id,
				user_id,
			)
		return _row_to_club(row) if row else None

	async def remove_member(self, club_id: str, user_id: str) -> bool:
		"""Set-difference; never removes the creator. Returns whether a row changed."""
		pool = await self._get_pool()
		if pool is None:
			return await _MEMORY.remove_member(club_id, user_id)
		async with self._connection(pool) as conn:
			row = await conn.fetchrow(
				"""
				UPDATE clubs
				SET members = array_remove(members, $2), updated_at = NOW()
				WHERE id=$1 AND $2 = ANY(members) AND creator_id <> $2
				RETURNING id
				""",
				club_id,
				user_id,
			)
		return row is not None

	async def delete_club(self, club_id: str) -> bool:
		pool = await self._get_pool()
		if pool is None:
			return await _MEMORY.delete_club(club_id)
		async with self._connection(pool) as conn:
			row = await conn.fetchrow("DELETE FROM clubs WHERE id=$1 RETURNING id", club_id)
		return row is not None

	async def rankings(self, limit: int) -> List[models.ClubRanking]:
		pool = await self._get_pool()
		if pool is None:
			return await _MEMORY.rankings(limit)
		async with self._connection(pool) as conn:
			rows = await conn.fetch(
				"""
				SELECT id, name, cardinality(members) AS member_count, created_at
				FROM clubs
				ORDER BY member_count DESC, created_at ASC
				LIMIT $1
				""",
				limit,
			)
		return [
			models.ClubRanking(
				id=str(row["id"]),
				name=row["name"],
				member_count=int(row["member_count"]),
				created_at=row["created_at"],
			)
			for row in rows
		]


def _summary(club: models.Club) -> schemas.ClubResponse:
	return schemas.ClubResponse(**club.to_dict())


class ClubService:
	def __init__(
		self,
		repository: ClubRepository | None = None,
		users: UserRepository | None = None,
		messages: ChatRepository | None = None,
	) -> None:
		self._repo = repository or ClubRepository()
		self._users = users or UserRepository()
		self._messages = messages or ChatRepository()

	@property
	def repo(self) -> ClubRepository:
		return self._repo

	async def create_club(self, auth_user: AuthenticatedUser, payload: schemas.ClubCreateRequest) -> schemas.ClubResponse:
		now = datetime.now(timezone.utc)
		club = models.Club(
			id=str(ulid.new()),
			name=payload.name,
			description=payload.description,
			book=payload.book,
			active=payload.active,
			creator_id=auth_user.id,
			created_at=now,
			updated_at=now,
			members=[auth_user.id],
		)
		club = await self._repo.create_club(club)
		await self._users.add_joined_club(auth_user.id, club.id)
		await outbox.append_club_event("club_created", club.id, user_id=auth_user.id)
		obs_metrics.inc_club_created()
		logger.info("club_created", extra={"club_id": club.id})
		return _summary(club)

	async def list_clubs(self) -> List[schemas.ClubResponse]:
		return [_summary(club) for club in await self._repo.list_clubs()]

	async def list_user_clubs(self, auth_user: AuthenticatedUser) -> List[schemas.ClubResponse]:
		return [_summary(club) for club in await self._repo.list_clubs(member_id=auth_user.id)]

	async def get_club(self, auth_user: AuthenticatedUser, club_id: str) -> schemas.ClubResponse:
		club = await self.require_club(club_id)
		policy.ensure_can_view(club, auth_user.id, is_admin=auth_user.is_admin)
		return _summary(club)

	async def join_club(self, auth_user: AuthenticatedUser, club_id: str) -> schemas.ClubResponse:
		chat_policy.ensure_valid_id(club_id)
		club = await self._repo.add_member(club_id, auth_user.id)
		if club is None:
			raise NotFoundError("club_not_found")
		await self._users.add_joined_club(auth_user.id, club_id)
		await outbox.append_club_event("member_joined", club_id, user_id=auth_user.id)
		obs_metrics.inc_membership("join")
		return _summary(club)

	async def leave_club(self, auth_user: AuthenticatedUser, club_id: str) -> None:
		club = await self.require_club(club_id)
		policy.ensure_can_leave(club, auth_user.id)
		removed = await self._repo.remove_member(club_id, auth_user.id)
		await self._users.remove_joined_club(auth_user.id, club_id)
		if not removed:
			return
		await outbox.append_club_event("member_left", club_id, user_id=auth_user.id)
		obs_metrics.inc_membership("leave")

	async def remove_member(self, auth_user: AuthenticatedUser, club_id: str, target_id: str) -> None:
		club = await self.require_club(club_id)
		chat_policy.ensure_can_remove_member(club, auth_user.id, target_id, actor_is_admin=auth_user.is_admin)
		if not club.is_member(target_id):
			raise NotFoundError("member_not_found")
		removed = await self._repo.remove_member(club_id, target_id)
		if not removed:
			# Lost a race with a concurrent leave/remove.
			raise NotFoundError("member_not_found")
		await self._users.remove_joined_club(target_id, club_id)
		await chat_sockets.evict_member(club_id, target_id)
		await outbox.append_club_event("member_removed", club_id, user_id=target_id, meta={"actor": auth_user.id})
		obs_metrics.inc_membership("remove")
		logger.info("club_member_removed", extra={"club_id": club_id, "target_id": target_id})

	async def delete_club(self, auth_user: AuthenticatedUser, club_id: str) -> schemas.ClubDeleteResponse:
		club = await self.require_club(club_id)
		policy.ensure_can_delete(club, auth_user.id, is_admin=auth_user.is_admin)
		by_admin = auth_user.is_admin and not club.is_creator(auth_user.id)
		await self._repo.delete_club(club_id)
		await self._users.remove_club_everywhere(club_id)
		purged = await self._messages.remove_by_club(club_id)
		await chat_sockets.close_club_room(club_id)
		if by_admin:
			await self._users.notify(
				club.creator_id,
				Notification(
					message=f'Your club "{club.name}" was deleted by an administrator.',
					status=NOTIFICATION_UNREAD,
					created_at=datetime.now(timezone.utc),
				),
			)
		deleted_by = "admin" if by_admin else "creator"
		await outbox.append_club_event("club_deleted", club_id, user_id=auth_user.id, meta={"deleted_by": deleted_by})
		logger.info("club_deleted", extra={"club_id": club_id, "deleted_by": deleted_by, "messages_purged": purged})
		return schemas.ClubDeleteResponse(deleted_by=deleted_by)

	async def rankings(self, limit: int = 10) -> List[schemas.ClubRankingEntry]:
		ranked = await self._repo.rankings(max(1, min(limit, 50)))
		return [
			schemas.ClubRankingEntry(id=r.id, name=r.name, member_count=r.member_count, created_at=r.created_at)
			for r in ranked
		]

	async def require_club(self, club_id: str) -> models.Club:
		chat_policy.ensure_valid_id(club_id)
		club = await self._repo.get_club(club_id)
		if club is None:
			raise NotFoundError("club_not_found")
		return club


async def reset_memory_state() -> None:
	"""Test helper to clear in-memory store state."""
	async with _MEMORY._lock:  # type: ignore[attr-defined]
		_MEMORY.clubs.clear()
