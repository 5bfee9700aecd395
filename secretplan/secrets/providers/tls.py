"""Certificate/key pairs persisted as ``kubernetes.io/tls``."""
from __future__ import annotations

from typing import Any, Mapping

from ..base import FieldSpec
from ..kubernetes import inject_field, materialize_secret, resource_name_for
from ..models import InjectionFragment, MaterializedSecretResource


class TlsSecretProvider:
    name = "tls"
    secret_type = "kubernetes.io/tls"
    all_or_nothing = True

    # The optional CA bundle is only persisted when it was requested.
    _SCHEMA = (
        FieldSpec("cert", binary=True, data_key="tls.crt"),
        FieldSpec("key", binary=True, data_key="tls.key"),
        FieldSpec("ca", binary=True, required=False, data_key="ca.crt"),
    )

    def __init__(
        self,
        *,
        name: str | None = None,
        namespace: str = "default",
        labels: Mapping[str, str] | None = None,
    ) -> None:
        self._resource_name = name
        self.namespace = namespace
        self.labels = dict(labels or {})

    def resource_name(self, secret_name: str) -> str:
        return self._resource_name or resource_name_for(secret_name)

    def field_schema(self) -> tuple[FieldSpec, ...]:
        return self._SCHEMA

    def materialize(
        self, secret_name: str, field_values: Mapping[str, str]
    ) -> MaterializedSecretResource:
        return materialize_secret(self, secret_name, field_values)

    def build_injection_fragment(
        self,
        secret_name: str,
        field_name: str,
        target_kind: str,
        target_options: Mapping[str, Any],
    ) -> InjectionFragment:
        return inject_field(self, secret_name, field_name, target_kind, target_options)


__all__ = ["TlsSecretProvider"]
