"""Club-level access rules."""

from __future__ import annotations

from clublit.domain.clubs.models import Club
from clublit.domain.errors import ConflictError, PermissionDenied


def ensure_can_view(club: Club, user_id: str, *, is_admin: bool = False) -> None:
	if is_admin or club.is_member(user_id) or club.is_creator(user_id):
		return
	raise PermissionDenied("not_member")


def ensure_can_leave(club: Club, user_id: str) -> None:
	if club.is_creator(user_id):
		raise ConflictError("creator_cannot_leave", message="creator_must_delete_club")


def ensure_can_delete(club: Club, user_id: str, *, is_admin: bool) -> None:
	if not (is_admin or club.is_creator(user_id)):
		raise PermissionDenied("forbidden")
