"""Pydantic schemas for the auth API."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class RegisterRequest(BaseModel):
    username: str = Field(..., min_length=2, max_length=40)
    email: str = Field(..., min_length=3, max_length=254, pattern=r"^[^@\s]+@[^@\s]+$")
    password: str = Field(..., min_length=8, max_length=128)


class LoginRequest(BaseModel):
    email: str
    password: str


class NotificationOut(BaseModel):
    message: str
    status: str
    created_at: datetime


class UserProfile(BaseModel):
    id: str
    username: str
    email: str
    avatar: str
    is_admin: bool
    joined_clubs: List[str]
    notifications: List[NotificationOut] = Field(default_factory=list)
    created_at: datetime


class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserProfile


class ProfileUpdateRequest(BaseModel):
    username: Optional[str] = Field(default=None, max_length=40)
    email: Optional[str] = Field(default=None, max_length=254, pattern=r"^\s*$|^[^@\s]+@[^@\s]+$")
    avatar: Optional[str] = Field(default=None, max_length=500)


class AdminPromotion(BaseModel):
    already_admin: bool
    user: UserProfile
