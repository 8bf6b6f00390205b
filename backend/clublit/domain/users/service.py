"""User accounts: registration, login and joined-club bookkeeping."""

from __future__ import annotations

import asyncio
import json
from datetime import datetime, timezone
from typing import Dict, List, Optional

import asyncpg
import ulid

from clublit.domain.chat import policy as chat_policy
from clublit.domain.errors import ConflictError, NotFoundError, PermissionDenied, ValidationError
from clublit.domain.store import PoolBackedRepository
from clublit.domain.users import models, schemas
from clublit.infra import jwt as jwt_helper
from clublit.infra.auth import ADMIN_ROLE
from clublit.infra.password import check_needs_rehash, hash_password, verify_password
from clublit.obs import logging as obs_logging
from clublit.obs import metrics as obs_metrics
from clublit.settings import settings

logger = obs_logging.get_logger(__name__)


class _MemoryStore:
	def __init__(self) -> None:
		self._lock = asyncio.Lock()
		self.users: Dict[str, models.User] = {}

	async def insert(self, user: models.User) -> models.User:
		async with self._lock:
			for existing in self.users.values():
				if existing.email == user.email or existing.username == user.username:
					raise ConflictError("user_exists")
			self.users[user.id] = user
			return user

	async def get(self, user_id: str) -> Optional[models.User]:
		async with self._lock:
			return self.users.get(user_id)

	async def get_by_email(self, email: str) -> Optional[models.User]:
		async with self._lock:
			for user in self.users.values():
				if user.email == email:
					return user
			return None

	async def update_password(self, user_id: str, password_hash: str) -> None:
		async with self._lock:
			user = self.users.get(user_id)
			if user:
				user.password_hash = password_hash

	async def add_role(self, email: str, role: str) -> Optional[models.User]:
		async with self._lock:
			for user in self.users.values():
				if user.email == email:
					if role not in user.roles:
						user.roles = user.roles + (role,)
					return user
			return None

	async def add_joined_club(self, user_id: str, club_id: str) -> None:
		async with self._lock:
			user = self.users.get(user_id)
			if user and club_id not in user.joined_clubs:
				user.joined_clubs.append(club_id)

	async def remove_joined_club(self, user_id: str, club_id: str) -> None:
		async with self._lock:
			user = self.users.get(user_id)
			if user:
				user.joined_clubs = [ref for ref in user.joined_clubs if ref != club_id]

	async def remove_club_everywhere(self, club_id: str) -> None:
		async with self._lock:
			for user in self.users.values():
				user.joined_clubs = [ref for ref in user.joined_clubs if ref != club_id]

	async def notify(self, user_id: str, notification: models.Notification) -> None:
		async with self._lock:
			user = self.users.get(user_id)
			if user:
				user.notifications.append(notification)

	async def update_profile(
		self,
		user_id: str,
		*,
		username: str,
		email: str,
		avatar: str,
	) -> Optional[models.User]:
		async with self._lock:
			user = self.users.get(user_id)
			if user is None:
				return None
			for other in self.users.values():
				if other.id == user_id:
					continue
				if other.username == username:
					raise ConflictError("username_taken")
				if other.email == email:
					raise ConflictError("email_taken")
			user.username = username
			user.email = email
			user.avatar = avatar
			return user

	async def set_notification_status(self, user_id: str, status: str) -> bool:
		async with self._lock:
			user = self.users.get(user_id)
			if user is None:
				return False
			for notification in user.notifications:
				notification.status = status
			return True

	async def clear_notifications(self, user_id: str) -> bool:
		async with self._lock:
			user = self.users.get(user_id)
			if user is None:
				return False
			user.notifications = []
			return True

	async def list_all(self) -> List[models.User]:
		async with self._lock:
			return sorted(self.users.values(), key=lambda u: u.created_at)

	async def grant_role(self, user_id: str, role: str) -> Optional[models.User]:
		async with self._lock:
			user = self.users.get(user_id)
			if user and role not in user.roles:
				user.roles = user.roles + (role,)
			return user

	async def delete(self, user_id: str) -> bool:
		async with self._lock:
			return self.users.pop(user_id, None) is not None


_MEMORY = _MemoryStore()


def _row_to_user(row: asyncpg.Record) -> models.User:
	raw_notifications = row["notifications"]
	if isinstance(raw_notifications, str):
		raw_notifications = json.loads(raw_notifications)
	return models.User(
		id=str(row["id"]),
		username=row["username"],
		email=row["email"],
		password_hash=row["password_hash"],
		avatar=row["avatar"] or "",
		roles=tuple(row["roles"] or ()),
		created_at=row["created_at"],
		joined_clubs=list(row["joined_clubs"] or []),
		notifications=[
			models.Notification(
				message=item["message"],
				status=item["status"],
				created_at=datetime.fromisoformat(item["created_at"]),
			)
			for item in raw_notifications or []
		],
	)


class UserRepository(PoolBackedRepository):
	store_name = "users"

	async def insert(self, user: models.User) -> models.User:
		pool = await self._get_pool()
		if pool is None:
			return await _MEMORY.insert(user)
		async with self._connection(pool) as conn:
			try:
				await conn.execute(
					"""
					INSERT INTO users (id, username, email, password_hash, avatar, roles, created_at)
					VALUES ($1,$2,$3,$4,$5,$6,$7)
					""",
					user.id,
					user.username,
					user.email,
					user.password_hash,
					user.avatar,
					list(user.roles),
					user.created_at,
				)
			except asyncpg.UniqueViolationError as exc:
				raise ConflictError("user_exists") from exc
		return user

	async def get(self, user_id: str) -> Optional[models.User]:
		pool = await self._get_pool()
		if pool is None:
			return await _MEMORY.get(user_id)
		async with self._connection(pool) as conn:
			row = await conn.fetchrow("SELECT * FROM users WHERE id=$1", user_id)
		return _row_to_user(row) if row else None

	async def get_by_email(self, email: str) -> Optional[models.User]:
		pool = await self._get_pool()
		if pool is None:
			return await _MEMORY.get_by_email(email)
		async with self._connection(pool) as conn:
			row = await conn.fetchrow("SELECT * FROM users WHERE email=$1", email)
		return _row_to_user(row) if row else None

	async def update_password(self, user_id: str, password_hash: str) -> None:
		pool = await self._get_pool()
		if pool is None:
			await _MEMORY.update_password(user_id, password_hash)
			return
		async with self._connection(pool) as conn:
			await conn.execute("UPDATE users SET password_hash=$2 WHERE id=$1", user_id, password_hash)

	async def add_role(self, email: str, role: str) -> Optional[models.User]:
		pool = await self._get_pool()
		if pool is None:
			return await _MEMORY.add_role(email, role)
		async with self._connection(pool) as conn:
			row = await conn.fetchrow(
				"""
				UPDATE users
				SET roles = CASE WHEN $2 = ANY(roles) THEN roles ELSE array_append(roles, $2) END
				WHERE email=$1
				RETURNING *
				""",
				email,
				role,
			)
		return _row_to_user(row) if row else None

	async def add_joined_club(self, user_id: str, club_id: str) -> None:
		pool = await self._get_pool()
		if pool is None:
			await _MEMORY.add_joined_club(user_id, club_id)
			return
		async with self._connection(pool) as conn:
			await conn.execute(
				"""
				UPDATE users SET joined_clubs = array_append(joined_clubs, $2)
				WHERE id=$1 AND NOT ($2 = ANY(joined_clubs))
				""",
				user_id,
				club_id,
			)

	async def remove_joined_club(self, user_id: str, club_id: str) -> None:
		pool = await self._get_pool()
		if pool is None:
			await _MEMORY.remove_joined_club(user_id, club_id)
			return
		async with self._connection(pool) as conn:
			await conn.execute(
				"UPDATE users SET joined_clubs = array_remove(joined_clubs, $2) WHERE id=$1",
				user_id,
				club_id,
			)

	async def remove_club_everywhere(self, club_id: str) -> None:
		pool = await self._get_pool()
		if pool is None:
			await _MEMORY.remove_club_everywhere(club_id)
			return
		async with self._connection(pool) as conn:
			await conn.execute(
				"UPDATE users SET joined_clubs = array_remove(joined_clubs, $1) WHERE $1 = ANY(joined_clubs)",
				club_id,
			)

	async def notify(self, user_id: str, notification: models.Notification) -> None:
		pool = await self._get_pool()
		if pool is None:
			await _MEMORY.notify(user_id, notification)
			return
		async with self._connection(pool) as conn:
			await conn.execute(
				"UPDATE users SET notifications = notifications || $2::jsonb WHERE id=$1",
				user_id,
				json.dumps([notification.to_dict()]),
			)

	async def update_profile(
		self,
		user_id: str,
		*,
		username: str,
		email: str,
		avatar: str,
	) -> Optional[models.User]:
		pool = await self._get_pool()
		if pool is None:
			return await _MEMORY.update_profile(user_id, username=username, email=email, avatar=avatar)
		async with self._connection(pool) as conn:
			try:
				row = await conn.fetchrow(
					"UPDATE users SET username=$2, email=$3, avatar=$4 WHERE id=$1 RETURNING *",
					user_id,
					username,
					email,
					avatar,
				)
			except asyncpg.UniqueViolationError as exc:
				field = "email" if "email" in (exc.constraint_name or "") else "username"
				raise ConflictError(f"{field}_taken") from exc
		return _row_to_user(row) if row else None

	async def set_notification_status(self, user_id: str, status: str) -> bool:
		pool = await self._get_pool()
		if pool is None:
			return await _MEMORY.set_notification_status(user_id, status)
		async with self._connection(pool) as conn:
			row = await conn.fetchrow(
				"""
				UPDATE users
				SET notifications = COALESCE(
					(SELECT jsonb_agg(item || jsonb_build_object('status', $2::text)) FROM jsonb_array_elements(notifications) AS item),
					'[]'::jsonb
				)
				WHERE id=$1
				RETURNING id
				""",
				user_id,
				status,
			)
		return row is not None

	async def clear_notifications(self, user_id: str) -> bool:
		pool = await self._get_pool()
		if pool is None:
			return await _MEMORY.clear_notifications(user_id)
		async with self._connection(pool) as conn:
			row = await conn.fetchrow("UPDATE users SET notifications='[]'::jsonb WHERE id=$1 RETURNING id", user_id)
		return row is not None

	async def list_all(self) -> List[models.User]:
		pool = await self._get_pool()
		if pool is None:
			return await _MEMORY.list_all()
		async with self._connection(pool) as conn:
			rows = await conn.fetch("SELECT * FROM users ORDER BY created_at ASC")
		return [_row_to_user(row) for row in rows]

	async def grant_role(self, user_id: str, role: str) -> Optional[models.User]:
		pool = await self._get_pool()
		if pool is None:
			return await _MEMORY.grant_role(user_id, role)
		async with self._connection(pool) as conn:
			row = await conn.fetchrow(
				"""
				UPDATE users
				SET roles = CASE WHEN $2 = ANY(roles) THEN roles ELSE array_append(roles, $2) END
				WHERE id=$1
				RETURNING *
				""",
				user_id,
				role,
			)
		return _row_to_user(row) if row else None

	async def delete(self, user_id: str) -> bool:
		pool = await self._get_pool()
		if pool is None:
			return await _MEMORY.delete(user_id)
		async with self._connection(pool) as conn:
			row = await conn.fetchrow("DELETE FROM users WHERE id=$1 RETURNING id", user_id)
		return row is not None


class UserService:
	def __init__(self, repository: UserRepository | None = None) -> None:
		self._repo = repository or UserRepository()

	@property
	def repo(self) -> UserRepository:
		return self._repo

	async def register(self, payload: schemas.RegisterRequest) -> schemas.UserProfile:
		user = models.User(
			id=str(ulid.new()),
			username=payload.username.strip(),
			email=payload.email.strip().lower(),
			password_hash=hash_password(payload.password),
			avatar="",
			roles=(),
			created_at=datetime.now(timezone.utc),
		)
		try:
			await self._repo.insert(user)
		except ConflictError:
			obs_metrics.inc_identity("register", "conflict")
			raise
		obs_metrics.inc_identity("register", "ok")
		logger.info("user_registered", extra={"registered_user": user.id})
		return schemas.UserProfile(**user.to_profile())

	async def login(self, payload: schemas.LoginRequest) -> schemas.LoginResponse:
		user = await self._repo.get_by_email(payload.email.strip().lower())
		if user is None or not verify_password(user.password_hash, payload.password):
			obs_metrics.inc_identity("login", "rejected")
			raise PermissionDenied("invalid_credentials", status_code=401)
		if check_needs_rehash(user.password_hash):
			await self._repo.update_password(user.id, hash_password(payload.password))
		token = jwt_helper.encode_access(
			{"sub": user.id, "name": user.username, "roles": list(user.roles)}
		)
		obs_metrics.inc_identity("login", "ok")
		return schemas.LoginResponse(access_token=token, user=schemas.UserProfile(**user.to_profile()))

	async def get_profile(self, user_id: str) -> schemas.UserProfile:
		user = await self._require(user_id)
		return schemas.UserProfile(**user.to_profile())

	async def promote_admin(self, email: str) -> bool:
		user = await self._repo.add_role(email.strip().lower(), ADMIN_ROLE)
		if user is None:
			logger.warning("admin_promotion_skipped", extra={"reason": "unknown_user"})
			return False
		logger.info("admin_promoted", extra={"promoted_user": user.id})
		return True

	async def update_profile(self, user_id: str, payload: schemas.ProfileUpdateRequest) -> schemas.UserProfile:
		"""Blank or omitted fields keep their current value; avatar may be cleared with ``""``."""
		current = await self._require(user_id)
		username = (payload.username or "").strip() or current.username
		if len(username) < 2:
			raise ValidationError("username_too_short")
		email = (payload.email or "").strip().lower() or current.email
		avatar = current.avatar if payload.avatar is None else payload.avatar.strip()
		user = await self._repo.update_profile(user_id, username=username, email=email, avatar=avatar)
		if user is None:
			raise NotFoundError("user_not_found")
		logger.info("profile_updated", extra={"profile_user": user.id})
		return schemas.UserProfile(**user.to_profile())

	async def list_notifications(self, user_id: str) -> List[schemas.NotificationOut]:
		user = await self._require(user_id)
		return [schemas.NotificationOut(**notification.to_dict()) for notification in user.notifications]

	async def mark_notifications_read(self, user_id: str) -> None:
		if not await self._repo.set_notification_status(user_id, models.NOTIFICATION_READ):
			raise NotFoundError("user_not_found")

	async def clear_notifications(self, user_id: str) -> None:
		if not await self._repo.clear_notifications(user_id):
			raise NotFoundError("user_not_found")

	async def list_users(self) -> List[schemas.UserProfile]:
		return [schemas.UserProfile(**user.to_profile()) for user in await self._repo.list_all()]

	async def make_admin(self, user_id: str) -> schemas.AdminPromotion:
		current = await self._require(chat_policy.ensure_valid_id(user_id))
		if current.is_admin:
			return schemas.AdminPromotion(already_admin=True, user=schemas.UserProfile(**current.to_profile()))
		user = await self._repo.grant_role(user_id, ADMIN_ROLE)
		if user is None:
			raise NotFoundError("user_not_found")
		logger.info("admin_promoted", extra={"promoted_user": user.id})
		return schemas.AdminPromotion(already_admin=False, user=schemas.UserProfile(**user.to_profile()))

	async def delete_user(self, user_id: str) -> None:
		user = await self._require(chat_policy.ensure_valid_id(user_id))
		if settings.admin_email and user.email == settings.admin_email.strip().lower():
			raise PermissionDenied("cannot_delete_primary_admin")
		if not await self._repo.delete(user_id):
			raise NotFoundError("user_not_found")
		obs_metrics.inc_identity("delete", "ok")
		logger.info("user_deleted", extra={"deleted_user": user_id})

	async def _require(self, user_id: str) -> models.User:
		user = await self._repo.get(user_id)
		if user is None:
			raise NotFoundError("user_not_found")
		return user


async def reset_memory_state() -> None:
	"""Test helper to clear in-memory store state."""
	async with _MEMORY._lock:  # type: ignore[attr-defined]
		_MEMORY.users.clear()
