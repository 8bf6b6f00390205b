"""Pydantic schemas for Clubs API."""

from __future__ import annotations

from datetime import datetime
from typing import List

from pydantic import BaseModel, Field, field_validator


class ClubCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: str = Field(..., min_length=1, max_length=1000)
    book: str = Field(..., min_length=1, max_length=200)
    active: bool = True

    @field_validator("name", "description", "book")
    @classmethod
    def _strip(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value


class ClubResponse(BaseModel):
    id: str
    name: str
    description: str
    book: str
    active: bool
    creator_id: str
    # Member ids only; clients hydrate profiles separately.
    members: List[str]
    member_count: int
    created_at: datetime
    updated_at: datetime


class ClubDeleteResponse(BaseModel):
    ok: bool = True
    deleted_by: str


class ClubRankingEntry(BaseModel):
    id: str
    name: str
    member_count: int
    created_at: datetime
