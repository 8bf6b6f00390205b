"""Fixed-window counters backed by Redis."""

from __future__ import annotations

from datetime import datetime, timezone

from clublit.infra.redis import redis_client


async def touch(key: str, ttl_seconds: int) -> int:
	async with redis_client.pipeline(transaction=True) as pipe:
		pipe.incr(key)
		pipe.expire(key, ttl_seconds)
		count, _ = await pipe.execute()
	return int(count)


async def allow_per_minute(scope: str, subject: str, limit: int) -> bool:
	"""Return False once `subject` exceeds `limit` hits in the current minute."""
	bucket = datetime.now(timezone.utc).strftime("%Y%m%d%H%M")
	key = f"rl:{scope}:{subject}:{bucket}"
	return await touch(key, 120) <= limit
