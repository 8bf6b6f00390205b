"""Authorization policy for club chat.

The ``can_*`` functions are pure decisions. The ``ensure_*`` counterparts raise
typed errors and are always called before any write.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

import ulid

from clublit.domain.chat import models
from clublit.domain.clubs.models import Club
from clublit.domain.errors import ConflictError, PermissionDenied, ValidationError
from clublit.settings import settings

MAX_TEXT_LENGTH = 2000


def is_valid_id(value: object) -> bool:
	"""Club, message and user ids are ULIDs minted by ``ulid.new()``."""
	if not isinstance(value, str):
		return False
	try:
		ulid.from_str(value)
	except ValueError:
		return False
	return True


def ensure_valid_id(value: object) -> str:
	if not is_valid_id(value):
		raise ValidationError("invalid_id")
	return value  # type: ignore[return-value]


def edit_window() -> timedelta:
	return timedelta(seconds=settings.chat_edit_window_seconds)


def _now(now: Optional[datetime]) -> datetime:
	return now or datetime.now(timezone.utc)


def within_edit_window(message: models.ClubMessage, *, now: Optional[datetime] = None) -> bool:
	return _now(now) - message.created_at <= edit_window()


def can_post(club: Club, user_id: str) -> bool:
	return club.is_member(user_id)


def can_edit(message: models.ClubMessage, user_id: str, *, now: Optional[datetime] = None) -> bool:
	return message.author_id == user_id and within_edit_window(message, now=now)


def can_delete(
	message: models.ClubMessage,
	club: Club,
	user_id: str,
	*,
	is_admin: bool,
	now: Optional[datetime] = None,
) -> bool:
	if is_admin or club.is_creator(user_id):
		return True
	return message.author_id == user_id and within_edit_window(message, now=now)


def can_remove_member(club: Club, actor_id: str, target_id: str, *, actor_is_admin: bool) -> bool:
	if club.is_creator(target_id):
		return False
	return actor_is_admin or club.is_creator(actor_id)


def deleted_by_role(message: models.ClubMessage, club: Club, user_id: str, *, is_admin: bool) -> models.DeletedBy:
	if message.author_id == user_id:
		return models.DELETED_BY_SELF
	if club.is_creator(user_id):
		return models.DELETED_BY_CREATOR
	return models.DELETED_BY_ADMIN


def clean_text(text: object) -> str:
	cleaned = text.strip() if isinstance(text, str) else ""
	if not cleaned:
		raise ValidationError("text_required")
	if len(cleaned) > MAX_TEXT_LENGTH:
		raise ValidationError("text_too_long")
	return cleaned


def ensure_can_post(club: Club, user_id: str) -> None:
	if not can_post(club, user_id):
		raise PermissionDenied("not_member")


def ensure_not_deleted(message: models.ClubMessage) -> None:
	if message.deleted:
		raise ConflictError("message_deleted")


def ensure_can_edit(message: models.ClubMessage, user_id: str, *, now: Optional[datetime] = None) -> None:
	if message.author_id != user_id:
		raise PermissionDenied("not_author")
	if not can_edit(message, user_id, now=now):
		raise PermissionDenied("edit_window_expired")
	ensure_not_deleted(message)


def ensure_can_delete(
	message: models.ClubMessage,
	club: Club,
	user_id: str,
	*,
	is_admin: bool,
	now: Optional[datetime] = None,
) -> None:
	ensure_not_deleted(message)
	if can_delete(message, club, user_id, is_admin=is_admin, now=now):
		return
	if message.author_id == user_id:
		raise PermissionDenied("edit_window_expired")
	raise PermissionDenied("forbidden")


def ensure_can_remove_member(club: Club, actor_id: str, target_id: str, *, actor_is_admin: bool) -> None:
	if not (actor_is_admin or club.is_creator(actor_id)):
		raise PermissionDenied("forbidden")
	if club.is_creator(target_id):
		raise PermissionDenied("cannot_remove_creator")
