"""Administrator routes."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, status

from clublit.api.errors import as_http_error
from clublit.domain.chat.service import ChatService
from clublit.domain.clubs import schemas
from clublit.domain.clubs.service import ClubService
from clublit.domain.errors import ClubLitError
from clublit.domain.users import schemas as user_schemas
from clublit.domain.users.service import UserService
from clublit.infra.auth import AuthenticatedUser, get_admin_user

router = APIRouter(prefix="/admin", tags=["admin"])

_club_service = ClubService()
_chat_service = ChatService(club_service=_club_service)
_user_service = UserService()


@router.get("/clubs", response_model=List[schemas.ClubResponse])
async def list_all_clubs_endpoint(
	admin: AuthenticatedUser = Depends(get_admin_user),
) -> List[schemas.ClubResponse]:
	try:
		return await _club_service.list_clubs()
	except ClubLitError as exc:
		raise as_http_error(exc) from exc


@router.delete("/messages/{message_id}", status_code=status.HTTP_200_OK)
async def purge_message_endpoint(
	message_id: str,
	admin: AuthenticatedUser = Depends(get_admin_user),
) -> dict:
	try:
		await _chat_service.purge_message(admin, message_id)
	except ClubLitError as exc:
		raise as_http_error(exc) from exc
	return {"ok": True}


@router.get("/users", response_model=List[user_schemas.UserProfile])
async def list_users_endpoint(
	admin: AuthenticatedUser = Depends(get_admin_user),
) -> List[user_schemas.UserProfile]:
	try:
		return await _user_service.list_users()
	except ClubLitError as exc:
		raise as_http_error(exc) from exc


@router.put("/users/{user_id}/make-admin", response_model=user_schemas.AdminPromotion)
async def make_admin_endpoint(
	user_id: str,
	admin: AuthenticatedUser = Depends(get_admin_user),
) -> user_schemas.AdminPromotion:
	try:
		return await _user_service.make_admin(user_id)
	except ClubLitError as exc:
		raise as_http_error(exc) from exc


@router.delete("/users/{user_id}", status_code=status.HTTP_200_OK)
async def delete_user_endpoint(
	user_id: str,
	admin: AuthenticatedUser = Depends(get_admin_user),
) -> dict:
	try:
		await _user_service.delete_user(user_id)
	except ClubLitError as exc:
		raise as_http_error(exc) from exc
	return {"ok": True}
