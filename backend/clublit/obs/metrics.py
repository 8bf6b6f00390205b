"""Central registry for Prometheus metrics used across the backend."""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

REQUEST_COUNTER = Counter(
	"clublit_http_requests_total",
	"Total HTTP requests processed",
	["route", "method", "status"],
)

REQUEST_LATENCY = Histogram(
	"clublit_http_request_duration_seconds",
	"HTTP request latency in seconds",
	["route", "method"],
	buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0),
)

SOCKET_CLIENTS = Gauge(
	"clublit_socketio_clients",
	"Active Socket.IO clients per namespace",
	["namespace"],
)

SOCKET_EVENTS = Counter(
	"clublit_socketio_events_total",
	"Socket.IO events handled or emitted per namespace",
	["namespace", "event"],
)

PRESENCE_ONLINE = Gauge(
	"clublit_presence_online_users",
	"Users holding at least one chat connection, per club",
	["club_id"],
)

CHAT_MESSAGES = Counter(
	"clublit_chat_messages_total",
	"Club chat message operations",
	["action"],
)

CHAT_REJECTS = Counter(
	"clublit_chat_rejects_total",
	"Club chat operations refused",
	["reason"],
)

CLUB_MEMBERSHIP = Counter(
	"clublit_club_membership_total",
	"Club membership changes",
	["action"],
)

CLUBS_CREATED = Counter(
	"clublit_clubs_created_total",
	"Clubs created",
)

IDENTITY_EVENTS = Counter(
	"clublit_identity_events_total",
	"Registration, login and account management outcomes",
	["event", "result"],
)

STORE_FAILURES = Counter(
	"clublit_store_failures_total",
	"Persistence calls that failed",
	["store"],
)


def observe_request(route: str, method: str, status: int, elapsed_seconds: float) -> None:
	REQUEST_COUNTER.labels(route=route, method=method, status=str(status)).inc()
	REQUEST_LATENCY.labels(route=route, method=method).observe(elapsed_seconds)


def socket_connected(namespace: str) -> None:
	SOCKET_CLIENTS.labels(namespace=namespace).inc()


def socket_disconnected(namespace: str) -> None:
	SOCKET_CLIENTS.labels(namespace=namespace).dec()


def socket_event(namespace: str, event: str) -> None:
	SOCKET_EVENTS.labels(namespace=namespace, event=event).inc()


def presence_online(club_id: str, count: int) -> None:
	if count:
		PRESENCE_ONLINE.labels(club_id=club_id).set(count)
		return
	try:
		PRESENCE_ONLINE.remove(club_id)
	except KeyError:
		pass


def inc_chat(action: str) -> None:
	CHAT_MESSAGES.labels(action=action).inc()


def inc_chat_reject(reason: str) -> None:
	CHAT_REJECTS.labels(reason=reason).inc()


def inc_membership(action: str) -> None:
	CLUB_MEMBERSHIP.labels(action=action).inc()


def inc_club_created() -> None:
	CLUBS_CREATED.inc()


def inc_identity(event: str, result: str) -> None:
	IDENTITY_EVENTS.labels(event=event, result=result).inc()


def inc_store_failure(store: str) -> None:
	STORE_FAILURES.labels(store=store).inc()
