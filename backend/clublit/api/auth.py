"""Registration, login, current-user profile and notifications."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, status

from clublit.api.errors import as_http_error
from clublit.domain.errors import ClubLitError
from clublit.domain.users import schemas
from clublit.domain.users.service import UserService
from clublit.infra.auth import AuthenticatedUser, get_current_user

router = APIRouter(prefix="/auth", tags=["auth"])

_user_service = UserService()


@router.post("/register", response_model=schemas.UserProfile, status_code=status.HTTP_201_CREATED)
async def register_endpoint(payload: schemas.RegisterRequest) -> schemas.UserProfile:
	try:
		return await _user_service.register(payload)
	except ClubLitError as exc:
		raise as_http_error(exc) from exc


@router.post("/login", response_model=schemas.LoginResponse)
async def login_endpoint(payload: schemas.LoginRequest) -> schemas.LoginResponse:
	try:
		return await _user_service.login(payload)
	except ClubLitError as exc:
		raise as_http_error(exc) from exc


@router.get("/me", response_model=schemas.UserProfile)
async def me_endpoint(auth_user: AuthenticatedUser = Depends(get_current_user)) -> schemas.UserProfile:
	try:
		return await _user_service.get_profile(auth_user.id)
	except ClubLitError as exc:
		raise as_http_error(exc) from exc


@router.put("/me", response_model=schemas.UserProfile)
async def update_me_endpoint(
	payload: schemas.ProfileUpdateRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> schemas.UserProfile:
	try:
		return await _user_service.update_profile(auth_user.id, payload)
	except ClubLitError as exc:
		raise as_http_error(exc) from exc


@router.get("/me/notifications", response_model=List[schemas.NotificationOut])
async def list_notifications_endpoint(
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> List[schemas.NotificationOut]:
	try:
		return await _user_service.list_notifications(auth_user.id)
	except ClubLitError as exc:
		raise as_http_error(exc) from exc


@router.put("/me/notifications/mark-read", status_code=status.HTTP_200_OK)
async def mark_notifications_read_endpoint(auth_user: AuthenticatedUser = Depends(get_current_user)) -> dict:
	try:
		await _user_service.mark_notifications_read(auth_user.id)
	except ClubLitError as exc:
		raise as_http_error(exc) from exc
	return {"ok": True}


@router.delete("/me/notifications", status_code=status.HTTP_200_OK)
async def clear_notifications_endpoint(auth_user: AuthenticatedUser = Depends(get_current_user)) -> dict:
	try:
		await _user_service.clear_notifications(auth_user.id)
	except ClubLitError as exc:
		raise as_http_error(exc) from exc
	return {"ok": True}
