"""Central registry for Prometheus metrics used across the backend."""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

REQUEST_COUNTER = Counter(
	"classhub_http_requests_total",
	"Total HTTP requests processed",
	["route", "method", "status"],
)

REQUEST_LATENCY = Histogram(
	"classhub_http_request_duration_seconds",
	"HTTP request latency in seconds",
	["route", "method"],
	buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0),
)

SOCKET_CLIENTS = Gauge(
	"classhub_socketio_clients",
	"Active Socket.IO clients per namespace",
	["namespace"],
)

SOCKET_EVENTS = Counter(
	"classhub_socketio_events_total",
	"Socket.IO events emitted per namespace",
	["namespace", "event"],
)

SOCKET_SUBSCRIPTIONS = Counter(
	"classhub_socketio_subscriptions_total",
	"Route subscription attempts by result",
	["result"],
)

ENGAGEMENT_TOGGLES = Counter(
	"classhub_engagement_toggles_total",
	"Engagement toggles applied",
	["kind", "action"],
)

LOCK_WAIT = Histogram(
	"classhub_engagement_lock_wait_seconds",
	"Time spent waiting for a per-triple engagement lock",
	buckets=(0.0005, 0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0),
)

COUNTER_INVARIANT_VIOLATIONS = Counter(
	"classhub_counter_invariant_violations_total",
	"Counter updates rejected because they would go negative",
	["field"],
)

NOTIFICATIONS_COMPOSED = Counter(
	"classhub_notifications_composed_total",
	"Notifications persisted by kind",
	["kind"],
)

NOTIFICATIONS_SUPPRESSED = Counter(
	"classhub_notifications_suppressed_total",
	"Notifications skipped because the origin user is the receiver",
	["kind"],
)

DISPATCH_PUBLISHED = Counter(
	"classhub_dispatch_publish_total",
	"Broker publications by route family and result",
	["route", "result"],
)

DISPATCH_QUEUE_DEPTH = Gauge(
	"classhub_dispatch_queue_depth",
	"Publications waiting in the dispatcher queue",
)

CACHE_LOOKUPS = Counter(
	"classhub_cache_lookups_total",
	"Read-through cache lookups",
	["entity", "result"],
)

IDEMPOTENCY_LOOKUPS = Counter(
	"classhub_idempotency_lookups_total",
	"Idempotency key lookups by result",
	["result"],
)

USER_LOOKUPS = Counter(
	"classhub_user_lookups_total",
	"User directory lookups by result",
	["result"],
)

CHAT_SEEN_UPDATES = Counter(
	"classhub_chat_seen_updates_total",
	"Messages transitioned to SEEN",
)

RETENTION_PRUNED = Counter(
	"classhub_notifications_pruned_total",
	"Notifications deleted by the retention job",
)

BACKGROUND_RUNS = Counter(
	"classhub_background_runs_total",
	"Background job runs by job and result",
	["job", "result"],
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


def socket_subscription(result: str) -> None:
	SOCKET_SUBSCRIPTIONS.labels(result=result).inc()


def engagement_toggled(kind: str, action: str) -> None:
	ENGAGEMENT_TOGGLES.labels(kind=kind, action=action).inc()


def observe_lock_wait(elapsed_seconds: float) -> None:
	LOCK_WAIT.observe(elapsed_seconds)


def counter_invariant_violation(field: str) -> None:
	COUNTER_INVARIANT_VIOLATIONS.labels(field=field).inc()


def notification_composed(kind: str) -> None:
	NOTIFICATIONS_COMPOSED.labels(kind=kind).inc()


def notification_suppressed(kind: str) -> None:
	NOTIFICATIONS_SUPPRESSED.labels(kind=kind).inc()


def dispatch_published(route_family: str, result: str) -> None:
	DISPATCH_PUBLISHED.labels(route=route_family, result=result).inc()


def dispatch_queue_depth(depth: int) -> None:
	DISPATCH_QUEUE_DEPTH.set(depth)


def cache_lookup(entity: str, result: str) -> None:
	CACHE_LOOKUPS.labels(entity=entity, result=result).inc()


def idempotency_lookup(result: str) -> None:
	IDEMPOTENCY_LOOKUPS.labels(result=result).inc()


def user_lookup(result: str) -> None:
	USER_LOOKUPS.labels(result=result).inc()


def chat_seen(count: int) -> None:
	if count > 0:
		CHAT_SEEN_UPDATES.inc(count)


def notifications_pruned(count: int) -> None:
	if count > 0:
		RETENTION_PRUNED.inc(count)


def background_run(job: str, result: str) -> None:
	BACKGROUND_RUNS.labels(job=job, result=result).inc()
