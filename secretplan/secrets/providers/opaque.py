"""Caller-defined secrets persisted as ``Opaque``."""
from __future__ import annotations

from typing import Any, Iterable, Mapping

from ..base import FieldSpec
from ..kubernetes import inject_field, materialize_secret, resource_name_for
from ..models import InjectionFragment, MaterializedSecretResource

DEFAULT_FIELD = "value"


class OpaqueSecretProvider:
    """Provider for arbitrary named fields.

    ``fields`` accepts plain names or :class:`FieldSpec` instances; names in
    ``binary_fields`` cannot be injected as annotations. Only the fields that
    were actually requested end up in the materialized resource.
    """

    name = "opaque"
    secret_type = "Opaque"
    all_or_nothing = False

    def __init__(
        self,
        *,
        fields: Iterable[str | FieldSpec] = (DEFAULT_FIELD,),
        binary_fields: Iterable[str] = (),
        name: str | None = None,
        namespace: str = "default",
        labels: Mapping[str, str] | None = None,
    ) -> None:
        binary = set(binary_fields)
        schema: list[FieldSpec] = []
        for item in fields:
            spec = item if isinstance(item, FieldSpec) else FieldSpec(item, binary=item in binary)
            if any(existing.name == spec.name for existing in schema):
                raise ValueError(f"field '{spec.name}' is declared twice")
            schema.append(spec)
        if not schema:
            raise ValueError("an opaque secret needs at least one field")
        unknown = binary - {spec.name for spec in schema}
        if unknown:
            raise ValueError(f"binary fields {sorted(unknown)} are not declared")
        self._schema = tuple(schema)
        self._resource_name = name
        self.namespace = namespace
        self.labels = dict(labels or {})

    def resource_name(self, secret_name: str) -> str:
        return self._resource_name or resource_name_for(secret_name)

    def field_schema(self) -> tuple[FieldSpec, ...]:
        return self._schema

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


__all__ = ["DEFAULT_FIELD", "OpaqueSecretProvider"]
