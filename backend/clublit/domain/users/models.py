"""Domain models for Club Lit users."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Tuple

NOTIFICATION_UNREAD = "unread"
NOTIFICATION_READ = "read"


@dataclass(slots=True)
class Notification:
	message: str
	status: str
	created_at: datetime

	def to_dict(self) -> dict:
		return {
			"message": self.message,
			"status": self.status,
			"created_at": self.created_at.isoformat(),
		}


@dataclass(slots=True)
class User:
	id: str
	username: str
	email: str
	password_hash: str
	avatar: str
	roles: Tuple[str, ...]
	created_at: datetime
	joined_clubs: List[str] = field(default_factory=list)
	notifications: List[Notification] = field(default_factory=list)

	@property
	def is_admin(self) -> bool:
		return "admin" in self.roles

	def to_profile(self) -> dict:
		return {
			"id": self.id,
			"username": self.username,
			"email": self.email,
			"avatar": self.avatar,
			"is_admin": self.is_admin,
			"joined_clubs": list(self.joined_clubs),
			"notifications": [n.to_dict() for n in self.notifications],
			"created_at": self.created_at,
		}
