"""FastAPI routes for clubs and club membership."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, Query, status

from clublit.api.errors import as_http_error
from clublit.domain.clubs import schemas
from clublit.domain.clubs.service import ClubService
from clublit.domain.errors import ClubLitError
from clublit.infra.auth import AuthenticatedUser, get_current_user

router = APIRouter(prefix="/clubs", tags=["clubs"])

_club_service = ClubService()


@router.get("", response_model=List[schemas.ClubResponse])
async def list_clubs_endpoint(
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> List[schemas.ClubResponse]:
	try:
		return await _club_service.list_clubs()
	except ClubLitError as exc:
		raise as_http_error(exc) from exc


@router.post("", response_model=schemas.ClubResponse, status_code=status.HTTP_201_CREATED)
async def create_club_endpoint(
	payload: schemas.ClubCreateRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> schemas.ClubResponse:
	try:
		return await _club_service.create_club(auth_user, payload)
	except ClubLitError as exc:
		raise as_http_error(exc) from exc


@router.get("/mine", response_model=List[schemas.ClubResponse])
async def list_my_clubs_endpoint(
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> List[schemas.ClubResponse]:
	try:
		return await _club_service.list_user_clubs(auth_user)
	except ClubLitError as exc:
		raise as_http_error(exc) from exc


@router.get("/rankings", response_model=List[schemas.ClubRankingEntry])
async def rankings_endpoint(
	limit: int = Query(default=10, ge=1, le=50),
) -> List[schemas.ClubRankingEntry]:
	try:
		return await _club_service.rankings(limit)
	except ClubLitError as exc:
		raise as_http_error(exc) from exc


@router.get("/{club_id}", response_model=schemas.ClubResponse)
async def get_club_endpoint(
	club_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> schemas.ClubResponse:
	try:
		return await _club_service.get_club(auth_user, club_id)
	except ClubLitError as exc:
		raise as_http_error(exc) from exc


@router.post("/{club_id}/join", response_model=schemas.ClubResponse)
async def join_club_endpoint(
	club_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> schemas.ClubResponse:
	try:
		return await _club_service.join_club(auth_user, club_id)
	except ClubLitError as exc:
		raise as_http_error(exc) from exc


@router.post("/{club_id}/leave", status_code=status.HTTP_200_OK)
async def leave_club_endpoint(
	club_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> dict:
	try:
		await _club_service.leave_club(auth_user, club_id)
	except ClubLitError as exc:
		raise as_http_error(exc) from exc
	return {"ok": True}


@router.delete("/{club_id}", response_model=schemas.ClubDeleteResponse)
async def delete_club_endpoint(
	club_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> schemas.ClubDeleteResponse:
	try:
		return await _club_service.delete_club(auth_user, club_id)
	except ClubLitError as exc:
		raise as_http_error(exc) from exc


@router.delete("/{club_id}/members/{user_id}", status_code=status.HTTP_200_OK)
async def remove_member_endpoint(
	club_id: str,
	user_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> dict:
	try:
		await _club_service.remove_member(auth_user, club_id, user_id)
	except ClubLitError as exc:
		raise as_http_error(exc) from exc
	return {"ok": True}
