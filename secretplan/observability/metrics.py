"""Prometheus metrics for secret resolution runs."""

from __future__ import annotations

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest

_FETCH_COUNTER = Counter(
    "secretplan_connector_fetches_total",
    "Connector lookups performed during resolution",
    labelnames=("connector", "outcome"),
)
_DIAGNOSTIC_COUNTER = Counter(
    "secretplan_diagnostics_total",
    "Problems reported by resolution runs",
    labelnames=("code",),
)
_MATERIALIZED_COUNTER = Counter(
    "secretplan_materialized_secrets_total",
    "Secrets materialized into persisted resources",
    labelnames=("provider",),
)
_RUN_LATENCY = Histogram(
    "secretplan_resolution_duration_seconds",
    "Duration of a full resolution pass in seconds",
    buckets=(
        0.01,
        0.05,
        0.1,
        0.25,
        0.5,
        1.0,
        2.5,
        5.0,
        10.0,
        30.0,
    ),
)


def record_fetch(connector: str, outcome: str) -> None:
    _FETCH_COUNTER.labels(connector, outcome).inc()


def record_diagnostic(code: str) -> None:
    _DIAGNOSTIC_COUNTER.labels(code).inc()


def record_materialized(provider: str) -> None:
    _MATERIALIZED_COUNTER.labels(provider).inc()


def observe_run(duration_seconds: float) -> None:
    _RUN_LATENCY.observe(duration_seconds)


def render_metrics() -> tuple[bytes, str]:
    """Return the exposition payload and its content type."""

    return generate_latest(), CONTENT_TYPE_LATEST


__all__ = [
    "observe_run",
    "record_diagnostic",
    "record_fetch",
    "record_materialized",
    "render_metrics",
]
