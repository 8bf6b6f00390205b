"""Club chat message handling."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from clublit.domain.chat import models, outbox, policy, schemas, sockets
from clublit.domain.chat.repo import ChatRepository
from clublit.domain.clubs.service import ClubService
from clublit.domain.errors import ConflictError, NotFoundError, PermissionDenied, RateLimited, ValidationError
from clublit.domain.store import redis_call
from clublit.domain.users.service import UserRepository
from clublit.infra import rate_limit
from clublit.infra.auth import AuthenticatedUser
from clublit.obs import logging as obs_logging
from clublit.obs import metrics as obs_metrics
from clublit.settings import settings

logger = obs_logging.get_logger(__name__)

UNKNOWN_AUTHOR = "Unknown User"


def _dto(message: models.ClubMessage) -> schemas.ClubMessageDTO:
	return schemas.ClubMessageDTO(**message.to_dict())


def clamp_limit(limit: Optional[int]) -> int:
	if limit is None or limit < 1:
		return settings.chat_history_default_limit
	return min(limit, settings.chat_history_max_limit)


class ChatService:
	def __init__(
		self,
		repository: ChatRepository | None = None,
		club_service: ClubService | None = None,
		users: UserRepository | None = None,
	) -> None:
		self._repo = repository or ChatRepository()
		self._users = users or UserRepository()
		self._clubs = club_service or ClubService(users=self._users, messages=self._repo)

	@property
	def repo(self) -> ChatRepository:
		return self._repo

	async def send_message(self, auth_user: AuthenticatedUser, club_id: str, text: str) -> schemas.ClubMessageDTO:
		try:
			cleaned = policy.clean_text(text)
		except ValidationError:
			obs_metrics.inc_chat_reject("invalid_text")
			raise
		club = await self._clubs.require_club(club_id)
		try:
			policy.ensure_can_post(club, auth_user.id)
		except PermissionDenied:
			obs_metrics.inc_chat_reject("not_member")
			raise
		async with redis_call():
			allowed = await rate_limit.allow_per_minute("chat_send", auth_user.id, settings.chat_send_per_minute)
		if not allowed:
			obs_metrics.inc_chat_reject("rate_limited")
			raise RateLimited("rate_limited")
		author = await self._users.get(auth_user.id)
		if author is not None:
			author_name, author_avatar = author.username, author.avatar
		else:
			author_name, author_avatar = auth_user.display_name or UNKNOWN_AUTHOR, ""
		message = await self._repo.append(
			club_id=club.id,
			author_id=auth_user.id,
			author_name=author_name,
			author_avatar=author_avatar,
			text=cleaned,
		)
		await sockets.emit_message_created(message)
		await outbox.append_chat_event("msg_new", club_id=club.id, msg_id=message.id, user_id=auth_user.id)
		obs_metrics.inc_chat("send")
		return _dto(message)

	async def list_messages(
		self,
		auth_user: AuthenticatedUser,
		club_id: str,
		limit: Optional[int] = None,
	) -> List[schemas.ClubMessageDTO]:
		club = await self._clubs.require_club(club_id)
		if not auth_user.is_admin:
			policy.ensure_can_post(club, auth_user.id)
		messages = await self._repo.list_by_club(club.id, clamp_limit(limit))
		return [_dto(message) for message in messages]

	async def edit_message(
		self,
		auth_user: AuthenticatedUser,
		message_id: str,
		text: str,
		*,
		now: Optional[datetime] = None,
	) -> schemas.ClubMessageDTO:
		cleaned = policy.clean_text(text)
		message = await self._require_message(message_id)
		try:
			policy.ensure_can_edit(message, auth_user.id, now=now)
		except (PermissionDenied, ConflictError):
			obs_metrics.inc_chat_reject("edit_denied")
			raise
		updated = await self._repo.update_text(message.id, cleaned)
		if updated is None:
			# Tombstoned or purged between the read and the write.
			raise ConflictError("message_deleted")
		await sockets.emit_message_edited(updated)
		await outbox.append_chat_event("msg_edited", club_id=updated.club_id, msg_id=updated.id, user_id=auth_user.id)
		obs_metrics.inc_chat("edit")
		return _dto(updated)

	async def delete_message(
		self,
		auth_user: AuthenticatedUser,
		message_id: str,
		*,
		now: Optional[datetime] = None,
	) -> schemas.ClubMessageDTO:
		message = await self._require_message(message_id)
		club = await self._clubs.require_club(message.club_id)
		try:
			policy.ensure_can_delete(message, club, auth_user.id, is_admin=auth_user.is_admin, now=now)
		except (PermissionDenied, ConflictError):
			obs_metrics.inc_chat_reject("delete_denied")
			raise
		deleted_by = policy.deleted_by_role(message, club, auth_user.id, is_admin=auth_user.is_admin)
		tombstone = await self._repo.mark_deleted(message.id, deleted_by)
		if tombstone is None:
			raise ConflictError("message_deleted")
		await sockets.emit_message_deleted(tombstone)
		await outbox.append_chat_event(
			"msg_deleted",
			club_id=tombstone.club_id,
			msg_id=tombstone.id,
			user_id=auth_user.id,
			meta={"deleted_by": deleted_by},
		)
		obs_metrics.inc_chat("delete")
		logger.info("club_message_deleted", extra={"club_id": tombstone.club_id, "msg_id": tombstone.id})
		return _dto(tombstone)

	async def remove_member(self, auth_user: AuthenticatedUser, club_id: str, target_id: str) -> None:
		await self._clubs.remove_member(auth_user, club_id, target_id)

	async def purge_message(self, auth_user: AuthenticatedUser, message_id: str) -> None:
		"""Hard delete; only reachable through the admin routes."""
		message = await self._require_message(message_id)
		if not await self._repo.remove(message.id):
			raise NotFoundError("message_not_found")
		message.text = ""
		message.deleted = True
		message.deleted_by = models.DELETED_BY_ADMIN
		await sockets.emit_message_deleted(message)
		await outbox.append_chat_event("msg_purged", club_id=message.club_id, msg_id=message.id, user_id=auth_user.id)
		obs_metrics.inc_chat("purge")
		logger.info("club_message_purged", extra={"club_id": message.club_id, "msg_id": message.id})

	async def _require_message(self, message_id: str) -> models.ClubMessage:
		policy.ensure_valid_id(message_id)
		message = await self._repo.get(message_id)
		if message is None:
			raise NotFoundError("message_not_found")
		return message
