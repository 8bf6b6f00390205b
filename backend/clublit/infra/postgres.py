"""AsyncPG pool management for the backend."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import asyncpg

from clublit.obs import logging as obs_logging
from clublit.settings import settings

_pool: Optional[asyncpg.pool.Pool] = None

SCHEMA_PATH = Path(__file__).resolve().parent / "schema.sql"

logger = obs_logging.get_logger(__name__)


async def init_pool() -> asyncpg.pool.Pool:
	global _pool
	if _pool is None:
		# Force 127.0.0.1 instead of localhost to avoid IPv6 issues on Windows
		dsn = settings.postgres_url.replace("localhost", "127.0.0.1")
		_pool = await asyncpg.create_pool(
			dsn=dsn,
			min_size=settings.postgres_min_pool_size,
			max_size=settings.postgres_max_pool_size,
		)
	return _pool


def set_pool(pool: Optional[asyncpg.pool.Pool]) -> None:
	global _pool
	_pool = pool


async def get_pool() -> asyncpg.pool.Pool:
	if _pool is None:
		await init_pool()
	assert _pool is not None
	return _pool


async def ensure_schema(pool: Optional[asyncpg.pool.Pool]) -> None:
	"""Apply the idempotent bootstrap schema."""
	if pool is None:
		return
	ddl = SCHEMA_PATH.read_text(encoding="utf-8")
	async with pool.acquire() as conn:
		await conn.execute(ddl)
	logger.info("schema_ready")


async def close_pool() -> None:
	global _pool
	if _pool is not None:
		await _pool.close()
		_pool = None
