"""Central registry for Prometheus metrics used across the backend."""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram, Summary


REQUEST_COUNTER = Counter(
	"teake_http_requests_total",
	"Total HTTP requests processed",
	["route", "method", "status"],
)

REQUEST_LATENCY = Histogram(
	"teake_http_request_duration_seconds",
	"HTTP request latency in seconds",
	["route", "method"],
	buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0),
)

REPOSITORY_ERRORS = Counter(
	"teake_repository_errors_total",
	"Repository failures by operation and classified kind",
	["context", "kind"],
)

POSTGRES_UP = Gauge("teake_postgres_up", "Postgres availability (1=up,0=down)")
POSTGRES_LATENCY = Summary("teake_postgres_latency_seconds", "Postgres ping latency (seconds)")

BACKGROUND_RUNS = Counter(
	"teake_job_runs_total",
	"Maintenance job executions",
	["name", "result"],
)

BACKGROUND_DURATION = Histogram(
	"teake_job_duration_seconds",
	"Maintenance job duration in seconds",
	["name"],
)

MESSAGES_PURGED = Counter(
	"teake_messages_purged_total",
	"Expired messages removed by cleanup runs",
)

MESSAGES_SENT = Counter(
	"teake_messages_sent_total",
	"Direct messages accepted",
)

STORIES_CREATED = Counter(
	"teake_stories_created_total",
	"Stories created",
)

VERIFICATION_DECISIONS = Counter(
	"teake_verification_decisions_total",
	"Verification status changes applied by admins",
	["status"],
)


def observe_request(route: str, method: str, status: int, elapsed_seconds: float) -> None:
	REQUEST_COUNTER.labels(route=route, method=method, status=str(status)).inc()
	REQUEST_LATENCY.labels(route=route, method=method).observe(elapsed_seconds)


def inc_repository_error(context: str, kind: str) -> None:
	REPOSITORY_ERRORS.labels(context=context, kind=kind).inc()


def mark_postgres(ok: bool, *, latency_seconds: float | None = None) -> None:
	POSTGRES_UP.set(1 if ok else 0)
	if latency_seconds is not None:
		POSTGRES_LATENCY.observe(latency_seconds)


def record_job_run(name: str, *, result: str, duration_seconds: float | None = None) -> None:
	BACKGROUND_RUNS.labels(name=name, result=result).inc()
	if duration_seconds is not None:
		BACKGROUND_DURATION.labels(name=name).observe(duration_seconds)


def inc_messages_purged(count: int) -> None:
	if count > 0:
		MESSAGES_PURGED.inc(count)


def inc_message_sent() -> None:
	MESSAGES_SENT.inc()


def inc_story_created() -> None:
	STORIES_CREATED.inc()


def inc_verification_decision(status: str, count: int = 1) -> None:
	VERIFICATION_DECISIONS.labels(status=status).inc(count)
