"""Outbox helpers for club membership events."""

from __future__ import annotations

from typing import Any, Mapping

from redis.exceptions import RedisError

from clublit.domain.store import OUTBOX_STORE
from clublit.infra.redis import redis_client
from clublit.obs import logging as obs_logging
from clublit.obs import metrics as obs_metrics

logger = obs_logging.get_logger(__name__)

CLUB_EVENT_STREAM = "x:clubs.events"


async def append_club_event(event: str, club_id: str, *, user_id: str | None = None, meta: Mapping[str, Any] | None = None) -> bool:
	fields: dict[str, Any] = {
		"event": event,
		"club_id": club_id,
	}
	if user_id:
		fields["user_id"] = str(user_id)
	if meta:
		for key, value in meta.items():
			fields[f"meta_{key}"] = str(value)
	try:
		await redis_client.xadd(CLUB_EVENT_STREAM, fields)
	except (RedisError, OSError):
		# Membership change is already committed.
		obs_metrics.inc_store_failure(OUTBOX_STORE)
		logger.exception("outbox_append_failed", extra={"event": event, "club_id": club_id})
		return False
	return True
