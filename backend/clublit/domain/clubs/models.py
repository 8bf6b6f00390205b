"""Domain models for Clubs."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import List


@dataclass(slots=True)
class Club:
	id: str
	name: str
	description: str
	book: str
	active: bool
	creator_id: str
	created_at: datetime
	updated_at: datetime
	members: List[str] = field(default_factory=list)

	def is_member(self, user_id: str) -> bool:
		return user_id in self.members

	def is_creator(self, user_id: str) -> bool:
		return self.creator_id == user_id

	@property
	def member_count(self) -> int:
		return len(self.members)

	def to_dict(self) -> dict:
		return {
			"id": self.id,
			"name": self.name,
			"description": self.description,
			"book": self.book,
			"active": self.active,
			"creator_id": self.creator_id,
			"members": list(self.members),
			"member_count": self.member_count,
			"created_at": self.created_at,
			"updated_at": self.updated_at,
		}


@dataclass(slots=True)
class ClubRanking:
	id: str
	name: str
	member_count: int
	created_at: datetime
