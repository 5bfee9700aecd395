"""Shared fixtures for the secret resolution test-suite."""
from __future__ import annotations

import sys
import threading
from pathlib import Path
from typing import Any, Mapping

import pytest

_PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(_PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(_PROJECT_ROOT))

from secretplan.secrets import (  # noqa: E402
    BasicAuthSecretProvider,
    InMemoryConnector,
    InjectionRequestSet,
    OpaqueSecretProvider,
    ResolutionEngine,
    SecretRegistry,
)


class RecordingConnector:
    """In-memory connector remembering every lookup it served."""

    name = "recording"

    def __init__(self, values: Mapping[str, Any]) -> None:
        self._inner = InMemoryConnector(values)
        self._lock = threading.Lock()
        self.calls: list[tuple[str, str | None]] = []

    def fetch(
        self,
        secret_name: str,
        field_name: str | None = None,
        *,
        options: Mapping[str, Any] | None = None,
    ) -> str | None:
        with self._lock:
            self.calls.append((secret_name, field_name))
        return self._inner.fetch(secret_name, field_name, options=options)

    def secrets_fetched(self) -> set[str]:
        return {secret_name for secret_name, _ in self.calls}


@pytest.fixture()
def connector() -> RecordingConnector:
    return RecordingConnector(
        {
            "API_CREDENTIALS": {"username": "api-user", "password": "s3cr3t-pa55"},
            "DATABASE_URL": "postgresql://db.internal:5432/app",
            "UNUSED_TOKEN": "never-read",
        }
    )


@pytest.fixture()
def registry(connector: RecordingConnector) -> SecretRegistry:
    return (
        SecretRegistry()
        .add_connector("EnvConnector", connector)
        .add_provider(
            "ApiCredentialsProvider",
            BasicAuthSecretProvider(name="api-credentials", namespace="apps"),
        )
        .add_provider("OpaqueProvider", OpaqueSecretProvider(namespace="apps"))
        .add_secret("API_CREDENTIALS", provider="ApiCredentialsProvider")
        .add_secret("DATABASE_URL", provider="OpaqueProvider")
        .add_secret("UNUSED_TOKEN", provider="OpaqueProvider")
    )


@pytest.fixture()
def requests() -> InjectionRequestSet:
    return InjectionRequestSet()


@pytest.fixture()
def engine(registry: SecretRegistry) -> ResolutionEngine:
    return ResolutionEngine(registry, max_concurrency=4)
