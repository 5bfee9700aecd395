from __future__ import annotations

from prometheus_client import REGISTRY

from secretplan.observability import render_metrics
from secretplan.secrets import InjectionRequestSet


def _sample(name: str, labels: dict[str, str]) -> float:
    return REGISTRY.get_sample_value(name, labels) or 0.0


def test_resolution_updates_counters(engine):
    fetches_before = _sample(
        "secretplan_connector_fetches_total", {"connector": "EnvConnector", "outcome": "hit"}
    )
    unknown_before = _sample("secretplan_diagnostics_total", {"code": "unknown_secret"})
    materialized_before = _sample(
        "secretplan_materialized_secrets_total", {"provider": "ApiCredentialsProvider"}
    )
    runs_before = _sample("secretplan_resolution_duration_seconds_count", {})

    requests = InjectionRequestSet()
    unit = requests.for_unit("api-service")
    unit.inject("API_CREDENTIALS", "username", "env", name="API_USERNAME")
    unit.inject("MISSING", "value", "env", name="MISSING")
    engine.resolve(requests)

    assert _sample(
        "secretplan_connector_fetches_total", {"connector": "EnvConnector", "outcome": "hit"}
    ) == fetches_before + 2
    assert _sample("secretplan_diagnostics_total", {"code": "unknown_secret"}) == unknown_before + 1
    assert _sample(
        "secretplan_materialized_secrets_total", {"provider": "ApiCredentialsProvider"}
    ) == materialized_before + 1
    assert _sample("secretplan_resolution_duration_seconds_count", {}) == runs_before + 1


def test_render_metrics_exposes_payload():
    payload, content_type = render_metrics()

    assert b"secretplan_connector_fetches_total" in payload
    assert content_type.startswith("text/plain")
