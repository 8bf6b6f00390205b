"""Socket.IO namespace for club chat rooms and online presence."""

from __future__ import annotations

from typing import Dict, List, Optional

import socketio

from clublit.domain.chat import models
from clublit.domain.chat.presence import PresenceRegistry, registry as default_registry
from clublit.infra.auth import AuthenticatedUser, parse_roles, verify_access_jwt
from clublit.obs import logging as obs_logging
from clublit.obs import metrics as obs_metrics
from clublit.settings import settings

logger = obs_logging.get_logger(__name__)

_namespace: "ClubsNamespace" | None = None


def _header(scope: dict, name: str) -> Optional[str]:
	target = name.encode().lower()
	for key, value in scope.get("headers", []):
		if key.lower() == target:
			return value.decode()
	return None


def _club_id(payload: object) -> str:
	if not isinstance(payload, dict):
		return ""
	value = payload.get("club_id") or payload.get("clubId")
	return str(value).strip() if value else ""


class ClubsNamespace(socketio.AsyncNamespace):
	"""One room per club; membership in the room drives presence."""

	def __init__(self, presence: PresenceRegistry | None = None) -> None:
		super().__init__("/clubs")
		self._sessions: Dict[str, AuthenticatedUser] = {}
		self._presence = presence or default_registry

	async def on_connect(self, sid: str, environ: dict, auth: Optional[dict] = None) -> None:
		obs_metrics.socket_connected(self.namespace)
		try:
			user = self._authorise(environ, auth)
		except Exception:
			obs_metrics.socket_disconnected(self.namespace)
			raise ConnectionRefusedError("unauthorized") from None
		self._sessions[sid] = user

	async def on_disconnect(self, sid: str, *args) -> None:
		obs_metrics.socket_disconnected(self.namespace)
		self._sessions.pop(sid, None)
		updated = await self._presence.disconnect(sid)
		for club_id, online in updated.items():
			await self._broadcast_online(club_id, online)

	async def on_join_room(self, sid: str, payload: dict) -> None:
		obs_metrics.socket_event(self.namespace, "join_room")
		user = self._sessions.get(sid)
		if not user:
			raise ConnectionRefusedError("unauthenticated")
		club_id = _club_id(payload)
		if not club_id:
			await self.emit("error", {"code": "club_id_required"}, room=sid)
			return
		await self.enter_room(sid, room_channel(club_id))
		online = await self._presence.join(club_id, user.id, sid)
		await self._broadcast_online(club_id, online)

	async def on_leave_room(self, sid: str, payload: dict) -> None:
		obs_metrics.socket_event(self.namespace, "leave_room")
		user = self._sessions.get(sid)
		if not user:
			raise ConnectionRefusedError("unauthenticated")
		club_id = _club_id(payload)
		if not club_id:
			return
		await self.leave_room(sid, room_channel(club_id))
		online = await self._presence.leave(club_id, sid)
		if online is not None:
			await self._broadcast_online(club_id, online)

	def session_user(self, sid: str) -> Optional[AuthenticatedUser]:
		return self._sessions.get(sid)

	async def evict_user(self, club_id: str, user_id: str) -> List[str]:
		"""Pull every connection of ``user_id`` out of the club room; returns the sids."""
		sids = [sid for sid, user in self._sessions.items() if user.id == user_id]
		online: Optional[List[str]] = None
		for sid in sids:
			await self.leave_room(sid, room_channel(club_id))
			await self.emit("removed-from-club", {"club_id": club_id}, room=sid)
			left = await self._presence.leave(club_id, sid)
			if left is not None:
				online = left
		if online is not None:
			await self._broadcast_online(club_id, online)
		return sids

	async def close_club(self, club_id: str) -> None:
		obs_metrics.socket_event(self.namespace, "club-deleted")
		await self.emit("club-deleted", {"club_id": club_id}, room=room_channel(club_id))
		await self.close_room(room_channel(club_id))
		await self._presence.drop_club(club_id)

	async def _broadcast_online(self, club_id: str, online: List[str]) -> None:
		obs_metrics.socket_event(self.namespace, "online-users")
		await self.emit("online-users", online, room=room_channel(club_id))

	def _authorise(self, environ: dict, auth: Optional[dict]) -> AuthenticatedUser:
		scope = environ.get("asgi.scope", environ)
		auth_payload = auth or environ.get("auth") or scope.get("auth") or {}
		token = auth_payload.get("token")
		if not token:
			auth_header = _header(scope, "authorization")
			if auth_header and auth_header.lower().startswith("bearer "):
				token = auth_header.split(" ", 1)[1]
		if token:
			return verify_access_jwt(str(token))
		if settings.is_dev():
			user_id = auth_payload.get("user_id") or auth_payload.get("userId") or _header(scope, "x-user-id")
			if user_id:
				roles = auth_payload.get("roles") or _header(scope, "x-user-roles") or ""
				return AuthenticatedUser(id=str(user_id), roles=parse_roles(roles))
		raise ValueError("missing_token")


def room_channel(club_id: str) -> str:
	return f"club:{club_id}"


def set_namespace(namespace: ClubsNamespace | None) -> None:
	global _namespace
	_namespace = namespace


async def _emit(event: str, club_id: str, payload: object) -> None:
	if _namespace is None:
		return
	obs_metrics.socket_event(_namespace.namespace, event)
	await _namespace.emit(event, payload, room=room_channel(club_id))


async def evict_member(club_id: str, user_id: str) -> None:
	if _namespace is None:
		return
	sids = await _namespace.evict_user(club_id, user_id)
	if sids:
		logger.info("club_member_evicted", extra={"club_id": club_id, "connections": len(sids)})


async def close_club_room(club_id: str) -> None:
	if _namespace is None:
		return
	await _namespace.close_club(club_id)


async def emit_message_created(message: models.ClubMessage) -> None:
	await _emit("message-created", message.club_id, message.to_dict())


async def emit_message_edited(message: models.ClubMessage) -> None:
	await _emit("message-edited", message.club_id, message.to_dict())


async def emit_message_deleted(message: models.ClubMessage) -> None:
	# Full tombstone so clients can reconcile without a refetch.
	await _emit("message-deleted", message.club_id, message.to_dict())
