"""Domain models for club chat."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

DeletedBy = str

DELETED_BY_SELF: DeletedBy = "self"
DELETED_BY_CREATOR: DeletedBy = "creator"
DELETED_BY_ADMIN: DeletedBy = "admin"


@dataclass(slots=True)
class ClubMessage:
	"""A chat message; author name and avatar are snapshots taken at send time."""

	id: str
	club_id: str
	author_id: str
	author_name: str
	author_avatar: str
	text: str
	created_at: datetime
	updated_at: Optional[datetime] = None
	deleted: bool = False
	deleted_by: Optional[DeletedBy] = None

	def to_dict(self) -> dict:
		return {
			"id": self.id,
			"club_id": self.club_id,
			"author_id": self.author_id,
			"author_name": self.author_name,
			"author_avatar": self.author_avatar,
			"text": self.text,
			"created_at": self.created_at.isoformat(),
			"updated_at": self.updated_at.isoformat() if self.updated_at else None,
			"deleted": self.deleted,
			"deleted_by": self.deleted_by,
		}
