"""Pydantic schemas for the club chat API."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class MessageSendRequest(BaseModel):
    club_id: str = Field(..., min_length=1, max_length=64)
    text: str = Field(..., max_length=4000)


class MessageEditRequest(BaseModel):
    text: str = Field(..., max_length=4000)


class ClubMessageDTO(BaseModel):
    id: str
    club_id: str
    author_id: str
    author_name: str
    author_avatar: str
    text: str
    created_at: datetime
    updated_at: Optional[datetime] = None
    deleted: bool = False
    deleted_by: Optional[str] = None
