"""Outbox helpers for club chat events."""

from __future__ import annotations

from typing import Any, Mapping, Optional

from redis.exceptions import RedisError

from clublit.domain.store import OUTBOX_STORE
from clublit.infra.redis import redis_client
from clublit.obs import logging as obs_logging
from clublit.obs import metrics as obs_metrics

logger = obs_logging.get_logger(__name__)

CLUB_CHAT_STREAM = "x:clubchat.events"


async def append_chat_event(
	event: str,
	*,
	club_id: str,
	msg_id: str,
	user_id: Optional[str] = None,
	meta: Mapping[str, Any] | None = None,
) -> bool:
	"""Append after the write has committed; a failed append is counted, never raised."""
	fields: dict[str, Any] = {
		"event": event,
		"club_id": club_id,
		"msg_id": msg_id,
	}
	if user_id:
		fields["user_id"] = str(user_id)
	if meta:
		for key, value in meta.items():
			fields[f"meta_{key}"] = str(value)
	try:
		await redis_client.xadd(CLUB_CHAT_STREAM, fields)
	except (RedisError, OSError):
		obs_metrics.inc_store_failure(OUTBOX_STORE)
		logger.exception("outbox_append_failed", extra={"event": event, "club_id": club_id, "msg_id": msg_id})
		return False
	return True
