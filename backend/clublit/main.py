"""FastAPI application entrypoint."""

from __future__ import annotations

from contextlib import asynccontextmanager

import asyncpg
import socketio
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from clublit.api import admin, auth, clubs, messages, ops
from clublit.api.errors import install_error_handlers
from clublit.api.middleware_request_id import RequestIdMiddleware
from clublit.domain.chat.sockets import ClubsNamespace, set_namespace as set_clubs_namespace
from clublit.domain.users.service import UserService
from clublit.infra import postgres
from clublit.obs import init as obs_init
from clublit.obs import logging as obs_logging
from clublit.settings import settings

logger = obs_logging.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
	try:
		pool = await postgres.init_pool()
	except (OSError, asyncpg.PostgresError):
		logger.warning("postgres_unavailable_using_memory")
		pool = None
	await postgres.ensure_schema(pool)
	if settings.admin_email:
		await UserService().promote_admin(settings.admin_email)
	try:
		yield
	finally:
		await postgres.close_pool()


app = FastAPI(title="Club Lit API", lifespan=lifespan)
install_error_handlers(app)

allow_origins = list(settings.cors_allow_origins)
if not allow_origins:
	allow_origins = ["http://localhost:3000", "http://localhost:5173"] if settings.is_dev() else []

# Starlette disallows wildcard '*' with allow_credentials=True.
if "*" in allow_origins:
	allow_origins = ["http://localhost:3000", "http://localhost:5173"] if settings.is_dev() else []

app.add_middleware(
	CORSMiddleware,
	allow_origins=allow_origins,
	allow_credentials=True,
	allow_methods=["*"],
	allow_headers=["*"],
)

# Use the same allowed origins for Socket.IO as for the REST API
sio = socketio.AsyncServer(async_mode="asgi", cors_allowed_origins=allow_origins)
clubs_namespace = ClubsNamespace()
sio.register_namespace(clubs_namespace)
set_clubs_namespace(clubs_namespace)
socket_app = socketio.ASGIApp(sio, other_asgi_app=app)
obs_init(app)

app.add_middleware(RequestIdMiddleware)

app.include_router(auth.router)
app.include_router(clubs.router)
app.include_router(messages.router)
app.include_router(admin.router)
app.include_router(ops.router)
