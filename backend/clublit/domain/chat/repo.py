"""Message store gateway for club chat."""

from __future__ import annotations

import asyncio
from dataclasses import replace
from datetime import datetime, timezone
from typing import Dict, List, Optional

import asyncpg
import ulid

from clublit.domain.chat import models
from clublit.domain.store import PoolBackedRepository


class _MessageStore:
	def __init__(self) -> None:
		self._lock = asyncio.Lock()
		self.messages: Dict[str, List[models.ClubMessage]] = {}
		self.index: Dict[str, models.ClubMessage] = {}

	async def store_message(self, message: models.ClubMessage) -> models.ClubMessage:
		async with self._lock:
			self.messages.setdefault(message.club_id, []).append(message)
			self.index[message.id] = message
			return replace(message)

	async def list_messages(self, club_id: str, limit: int) -> List[models.ClubMessage]:
		async with self._lock:
			# Insertion order is send order.
			return [replace(m) for m in self.messages.get(club_id, [])[-limit:]]

	async def get(self, message_id: str) -> Optional[models.ClubMessage]:
		async with self._lock:
			message = self.index.get(message_id)
			return replace(message) if message else None

	async def update(self, message_id: str, **changes) -> Optional[models.ClubMessage]:
		async with self._lock:
			message = self.index.get(message_id)
			if message is None or message.deleted:
				return None
			for key, value in changes.items():
				setattr(message, key, value)
			return replace(message)

	async def remove(self, message_id: str) -> bool:
		async with self._lock:
			message = self.index.pop(message_id, None)
			if message is None:
				return False
			self.messages[message.club_id] = [m for m in self.messages.get(message.club_id, []) if m.id != message_id]
			return True

	async def remove_club(self, club_id: str) -> int:
		async with self._lock:
			removed = self.messages.pop(club_id, [])
			for message in removed:
				self.index.pop(message.id, None)
			return len(removed)


_STORE = _MessageStore()


def _row_to_message(row: asyncpg.Record) -> models.ClubMessage:
	return models.ClubMessage(
		id=str(row["id"]),
		club_id=str(row["club_id"]),
		author_id=str(row["author_id"]),
		author_name=row["author_name"],
		author_avatar=row["author_avatar"] or "",
		text=row["text"],
		created_at=row["created_at"],
		updated_at=row["updated_at"],
		deleted=bool(row["deleted"]),
		deleted_by=row["deleted_by"],
	)


class ChatRepository(PoolBackedRepository):
	store_name = "club_messages"

	async def append(
		self,
		*,
		club_id: str,
		author_id: str,
		author_name: str,
		author_avatar: str,
		text: str,
	) -> models.ClubMessage:
		message = models.ClubMessage(
			id=str(ulid.new()),
			club_id=club_id,
			author_id=author_id,
			author_name=author_name,
			author_avatar=author_avatar,
			text=text,
			created_at=datetime.now(timezone.utc),
		)
		pool = await self._get_pool()
		if pool is None:
			return await _STORE.store_message(message)
		async with self._connection(pool) as conn:
			row = await conn.fetchrow(
				"""
				INSERT INTO club_messages (id, club_id, author_id, author_name, author_avatar, text, created_at)
				VALUES ($1,$2,$3,$4,$5,$6,$7)
				RETURNING *
				""",
				message.id,
				club_id,
				author_id,
				author_name,
				author_avatar,
				text,
				message.created_at,
			)
		return _row_to_message(row)

	async def list_by_club(self, club_id: str, limit: int) -> List[models.ClubMessage]:
		"""Return the latest ``limit`` messages of a club, oldest first."""
		pool = await self._get_pool()
		if pool is None:
			return await _STORE.list_messages(club_id, limit)
		async with self._connection(pool) as conn:
			rows = await conn.fetch(
				"""
				SELECT * FROM (
					SELECT * FROM club_messages
					WHERE club_id=$1
					ORDER BY created_at DESC, id DESC
					LIMIT $2
				) latest
				ORDER BY created_at ASC, id ASC
				""",
				club_id,
				limit,
			)
		return [_row_to_message(row) for row in rows]

	async def get(self, message_id: str) -> Optional[models.ClubMessage]:
		pool = await self._get_pool()
		if pool is None:
			return await _STORE.get(message_id)
		async with self._connection(pool) as conn:
			row = await conn.fetchrow("SELECT * FROM club_messages WHERE id=$1", message_id)
		return _row_to_message(row) if row else None

	async def update_text(self, message_id: str, text: str) -> Optional[models.ClubMessage]:
		"""Returns None when the message vanished or was tombstoned meanwhile."""
		now = datetime.now(timezone.utc)
		pool = await self._get_pool()
		if pool is None:
			return await _STORE.update(message_id, text=text, updated_at=now)
		async with self._connection(pool) as conn:
			row = await conn.fetchrow(
				"""
				UPDATE club_messages SET text=$2, updated_at=$3
				WHERE id=$1 AND NOT deleted
				RETURNING *
				""",
				message_id,
				text,
				now,
			)
		return _row_to_message(row) if row else None

	async def mark_deleted(self, message_id: str, deleted_by: models.DeletedBy) -> Optional[models.ClubMessage]:
		now = datetime.now(timezone.utc)
		pool = await self._get_pool()
		if pool is None:
			return await _STORE.update(message_id, text="", deleted=True, deleted_by=deleted_by, updated_at=now)
		async with self._connection(pool) as conn:
			row = await conn.fetchrow(
				"""
				UPDATE club_messages SET text='', deleted=TRUE, deleted_by=$2, updated_at=$3
				WHERE id=$1 AND NOT deleted
				RETURNING *
				""",
				message_id,
				deleted_by,
				now,
			)
		return _row_to_message(row) if row else None

	async def remove(self, message_id: str) -> bool:
		pool = await self._get_pool()
		if pool is None:
			return await _STORE.remove(message_id)
		async with self._connection(pool) as conn:
			row = await conn.fetchrow("DELETE FROM club_messages WHERE id=$1 RETURNING id", message_id)
		return row is not None

	async def remove_by_club(self, club_id: str) -> int:
		"""Hard delete every message of a deleted club; returns how many went."""
		pool = await self._get_pool()
		if pool is None:
			return await _STORE.remove_club(club_id)
		async with self._connection(pool) as conn:
			rows = await conn.fetch("DELETE FROM club_messages WHERE club_id=$1 RETURNING id", club_id)
		return len(rows)


async def reset_message_store() -> None:
	"""Test helper to clear in-memory message store."""
	async with _STORE._lock:  # type: ignore[attr-defined]
		_STORE.messages.clear()
		_STORE.index.clear()
