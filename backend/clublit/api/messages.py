"""FastAPI routes for club chat messages."""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

from clublit.api.errors import as_http_error
from clublit.domain.chat import schemas
from clublit.domain.chat.service import ChatService
from clublit.domain.errors import ClubLitError
from clublit.infra.auth import AuthenticatedUser, get_current_user

router = APIRouter(prefix="/messages", tags=["messages"])

_chat_service = ChatService()


@router.post("", response_model=schemas.ClubMessageDTO, status_code=status.HTTP_201_CREATED)
async def send_message_endpoint(
	payload: schemas.MessageSendRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> schemas.ClubMessageDTO:
	try:
		return await _chat_service.send_message(auth_user, payload.club_id, payload.text)
	except ClubLitError as exc:
		raise as_http_error(exc) from exc


@router.get("/{club_id}", response_model=List[schemas.ClubMessageDTO])
async def list_messages_endpoint(
	club_id: str,
	limit: Optional[int] = Query(default=None),
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> List[schemas.ClubMessageDTO]:
	try:
		return await _chat_service.list_messages(auth_user, club_id, limit)
	except ClubLitError as exc:
		raise as_http_error(exc) from exc


@router.put("/{message_id}", response_model=schemas.ClubMessageDTO)
async def edit_message_endpoint(
	message_id: str,
	payload: schemas.MessageEditRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> schemas.ClubMessageDTO:
	try:
		return await _chat_service.edit_message(auth_user, message_id, payload.text)
	except ClubLitError as exc:
		raise as_http_error(exc) from exc


@router.delete("/{message_id}", response_model=schemas.ClubMessageDTO)
async def delete_message_endpoint(
	message_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> schemas.ClubMessageDTO:
	try:
		return await _chat_service.delete_message(auth_user, message_id)
	except ClubLitError as exc:
		raise as_http_error(exc) from exc
