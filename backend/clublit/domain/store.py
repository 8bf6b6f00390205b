"""Shared plumbing for repositories with an in-memory fallback."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import asyncpg
from redis.exceptions import RedisError

from clublit.domain.errors import TransientStoreError
from clublit.infra.postgres import get_pool
from clublit.obs import logging as obs_logging
from clublit.obs import metrics as obs_metrics

logger = obs_logging.get_logger(__name__)

REDIS_STORE = "redis"
OUTBOX_STORE = "outbox"


class PoolBackedRepository:
	"""Resolve the asyncpg pool once; ``None`` selects the memory store."""

	store_name = "postgres"

	def __init__(self) -> None:
		self._pool_checked = False
		self._pool_instance: Optional[asyncpg.Pool] = None

	async def _get_pool(self) -> Optional[asyncpg.Pool]:
		if self._pool_checked:
			return self._pool_instance
		self._pool_checked = True
		try:
			pool = await get_pool()
		except (AssertionError, OSError, asyncpg.PostgresError):
			logger.warning("postgres_unavailable_using_memory", extra={"store": self.store_name})
			pool = None
		self._pool_instance = pool
		return pool

	@asynccontextmanager
	async def _connection(self, pool: asyncpg.Pool) -> AsyncIterator[asyncpg.Connection]:
		try:
			async with pool.acquire() as conn:
				yield conn
		except (asyncpg.PostgresError, OSError, TimeoutError) as exc:
			obs_metrics.inc_store_failure(self.store_name)
			logger.exception("store_call_failed", extra={"store": self.store_name})
			raise TransientStoreError(self.store_name) from exc


@asynccontextmanager
async def redis_call(store: str = REDIS_STORE) -> AsyncIterator[None]:
	"""Classify Redis failures the way ``_connection`` classifies driver errors."""
	try:
		yield
	except (RedisError, OSError) as exc:
		obs_metrics.inc_store_failure(store)
		logger.exception("store_call_failed", extra={"store": store})
		raise TransientStoreError(store) from exc
