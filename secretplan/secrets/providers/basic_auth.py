"""Username/password credentials persisted as ``kubernetes.io/basic-auth``."""
from __future__ import annotations

from typing import Any, Mapping

from ..base import BINARY_KINDS, FieldSpec
from ..kubernetes import inject_field, materialize_secret, resource_name_for
from ..models import InjectionFragment, MaterializedSecretResource


class BasicAuthSecretProvider:
    """Provider for ``username``/``password`` pairs.

    Both fields are always materialized together. The password can be exposed
    through environment variables or mounted files but never as an annotation.
    """

    name = "basic-auth"
    secret_type = "kubernetes.io/basic-auth"
    all_or_nothing = True

    _SCHEMA = (
        FieldSpec("username"),
        FieldSpec("password", allowed_kinds=BINARY_KINDS),
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


__all__ = ["BasicAuthSecretProvider"]
