"""Central registry for Prometheus metrics used across the hub."""

from __future__ import annotations

from prometheus_client import Counter, Histogram

REQUEST_COUNTER = Counter(
	"panthers_http_requests_total",
	"Total HTTP requests processed",
	["route", "method", "status"],
)

REQUEST_LATENCY = Histogram(
	"panthers_http_request_duration_seconds",
	"HTTP request latency in seconds",
	["route", "method"],
	buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0),
)

RPC_CALLS = Counter(
	"panthers_rpc_calls_total",
	"Remote procedure calls issued through the gateway",
	["procedure", "outcome"],
)

RPC_LATENCY = Histogram(
	"panthers_rpc_duration_seconds",
	"Remote procedure round-trip latency",
	["procedure"],
	buckets=(0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

BACKEND_ERRORS = Counter(
	"panthers_backend_errors_total",
	"Backend errors by classified kind",
	["kind"],
)

RETRY_ATTEMPTS = Counter(
	"panthers_retry_attempts_total",
	"Retries scheduled by the backoff wrapper",
)

RETRY_EXHAUSTED = Counter(
	"panthers_retry_exhausted_total",
	"Retry-wrapped calls that surfaced their final error",
)

CACHE_HITS = Counter(
	"panthers_cache_hits_total",
	"TTL cache hits",
	["cache"],
)

CACHE_MISSES = Counter(
	"panthers_cache_misses_total",
	"TTL cache misses (absent or expired)",
	["cache"],
)

CACHE_EVICTIONS = Counter(
	"panthers_cache_evictions_total",
	"Entries evicted because a cache was full",
	["cache"],
)

FEED_EVENTS = Counter(
	"panthers_feed_events_total",
	"Change-feed notifications delivered to subscribers",
	["table", "type"],
)

FEED_REFRESHES = Counter(
	"panthers_feed_refreshes_total",
	"Full refetches triggered by live queries",
	["outcome"],
)

MEMBERSHIP_ALERTS = Counter(
	"panthers_membership_alerts_total",
	"Membership threshold alerts created by the maintenance sweep",
	["code"],
)


def observe_request(route: str, method: str, status: int, latency_seconds: float) -> None:
	REQUEST_COUNTER.labels(route=route, method=method, status=str(status)).inc()
	REQUEST_LATENCY.labels(route=route, method=method).observe(latency_seconds)
