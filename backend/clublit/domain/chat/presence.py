"""In-process registry of who is online in each club's chat.

Presence is keyed by connection: a user stays online in a club for as long as
at least one of their connections remains joined to it. Presence says nothing
about club membership.
"""

from __future__ import annotations

import asyncio
from collections import Counter
from typing import Dict, List, Optional, Set, Tuple

from clublit.obs import logging as obs_logging
from clublit.obs import metrics as obs_metrics

logger = obs_logging.get_logger(__name__)

PresenceKey = Tuple[str, str]


class PresenceRegistry:
	def __init__(self) -> None:
		self._lock = asyncio.Lock()
		# (club_id, user_id) -> number of distinct connections
		self._counts: Counter[PresenceKey] = Counter()
		# club_id -> online user ids
		self._online: Dict[str, Set[str]] = {}
		# connection_id -> {club_id: user_id}
		self._connections: Dict[str, Dict[str, str]] = {}

	async def join(self, club_id: Optional[str], user_id: Optional[str], connection_id: str) -> List[str]:
		"""Register ``connection_id`` in ``club_id``; returns the club's online users."""
		if not club_id or not user_id:
			logger.warning("presence_join_missing_ids", extra={"club_id": club_id, "connection_id": connection_id})
			return []
		async with self._lock:
			joined = self._connections.setdefault(connection_id, {})
			previous = joined.get(club_id)
			if previous == user_id:
				return self._snapshot(club_id)
			if previous is not None:
				self._release(club_id, previous)
			joined[club_id] = user_id
			self._counts[(club_id, user_id)] += 1
			self._online.setdefault(club_id, set()).add(user_id)
			return self._snapshot(club_id)

	async def leave(self, club_id: str, connection_id: str) -> Optional[List[str]]:
		"""Drop one connection from one club; None when it was not joined."""
		async with self._lock:
			joined = self._connections.get(connection_id)
			if not joined or club_id not in joined:
				return None
			user_id = joined.pop(club_id)
			if not joined:
				self._connections.pop(connection_id, None)
			self._release(club_id, user_id)
			return self._snapshot(club_id)

	async def disconnect(self, connection_id: str) -> Dict[str, List[str]]:
		"""Drop a connection from every club; returns the updated lists per club."""
		async with self._lock:
			joined = self._connections.pop(connection_id, {})
			updated: Dict[str, List[str]] = {}
			for club_id, user_id in joined.items():
				self._release(club_id, user_id)
				updated[club_id] = self._snapshot(club_id)
			return updated

	async def online(self, club_id: str) -> List[str]:
		async with self._lock:
			return self._snapshot(club_id)

	async def clubs_for(self, connection_id: str) -> List[str]:
		async with self._lock:
			return list(self._connections.get(connection_id, {}))

	async def drop_club(self, club_id: str) -> List[str]:
		"""Forget every connection joined to ``club_id``; returns who was online."""
		async with self._lock:
			dropped = sorted(self._online.pop(club_id, ()))
			for key in [key for key in self._counts if key[0] == club_id]:
				del self._counts[key]
			for connection_id in list(self._connections):
				joined = self._connections[connection_id]
				joined.pop(club_id, None)
				if not joined:
					del self._connections[connection_id]
			obs_metrics.presence_online(club_id, 0)
			return dropped

	async def reset(self) -> None:
		async with self._lock:
			self._counts.clear()
			self._online.clear()
			self._connections.clear()

	def _release(self, club_id: str, user_id: str) -> None:
		key = (club_id, user_id)
		self._counts[key] -= 1
		if self._counts[key] > 0:
			return
		del self._counts[key]
		users = self._online.get(club_id)
		if users is None:
			return
		users.discard(user_id)
		if not users:
			del self._online[club_id]

	def _snapshot(self, club_id: str) -> List[str]:
		users = sorted(self._online.get(club_id, ()))
		obs_metrics.presence_online(club_id, len(users))
		return users


registry = PresenceRegistry()
