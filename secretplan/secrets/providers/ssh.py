"""SSH credentials persisted as ``kubernetes.io/ssh-auth``."""
from __future__ import annotations

from typing import Any, Mapping

from ..base import FieldSpec
from ..kubernetes import inject_field, materialize_secret, resource_name_for
from ..models import InjectionFragment, MaterializedSecretResource


class SshAuthSecretProvider:
    """Provider for an SSH private key with an optional public key.

    The private key is required for materialization; the public key is
    persisted only when at least one unit asks for it.
    """

    name = "ssh-auth"
    secret_type = "kubernetes.io/ssh-auth"
    all_or_nothing = True

    _SCHEMA = (
        FieldSpec("privateKey", binary=True, data_key="ssh-privatekey"),
        FieldSpec("publicKey", required=False, data_key="ssh-publickey"),
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


__all__ = ["SshAuthSecretProvider"]
