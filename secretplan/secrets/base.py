"""Capability contracts implemented by connectors and providers."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Protocol, runtime_checkable

from .errors import FieldNotSupportedError, IncompleteFieldSetError, KindNotSupportedError
from .models import InjectionFragment, MaterializedSecretResource

ENV = "env"
VOLUME = "volume"
ANNOTATION = "annotation"

TARGET_KINDS = frozenset({ENV, VOLUME, ANNOTATION})
TEXT_KINDS = frozenset({ENV, VOLUME, ANNOTATION})
BINARY_KINDS = frozenset({ENV, VOLUME})


@dataclass(slots=True, frozen=True)
class FieldSpec:
    """One named field a provider exposes."""

    name: str
    allowed_kinds: frozenset[str] = TEXT_KINDS
    required: bool = True
    binary: bool = False
    data_key: str | None = None

    def __post_init__(self) -> None:
        kinds = frozenset(self.allowed_kinds)
        if self.binary:
            kinds = kinds - {ANNOTATION}
        object.__setattr__(self, "allowed_kinds", kinds)

    @property
    def key(self) -> str:
        """Key under which the field is stored in the persisted resource."""

        return self.data_key or self.name


@runtime_checkable
class Connector(Protocol):
    """Fetches raw values from an external source."""

    name: str

    def fetch(
        self,
        secret_name: str,
        field_name: str | None = None,
        *,
        options: Mapping[str, Any] | None = None,
    ) -> str | None:
        """Return the value for ``secret_name``/``field_name``.

        ``None`` signals the value is absent. Transport failures raise
        :class:`~secretplan.secrets.errors.SourceUnavailableError`.
        """


@runtime_checkable
class Provider(Protocol):
    """Owns the shape of a secret and how it is persisted and injected."""

    name: str
    all_or_nothing: bool

    def field_schema(self) -> tuple[FieldSpec, ...]:
        ...

    def materialize(
        self, secret_name: str, field_values: Mapping[str, str]
    ) -> MaterializedSecretResource:
        ...

    def build_injection_fragment(
        self,
        secret_name: str,
        field_name: str,
        target_kind: str,
        target_options: Mapping[str, Any],
    ) -> InjectionFragment:
        ...


def schema_index(schema: Iterable[FieldSpec]) -> dict[str, FieldSpec]:
    return {spec.name: spec for spec in schema}


def required_fields(provider: Provider) -> tuple[str, ...]:
    return tuple(spec.name for spec in provider.field_schema() if spec.required)


def check_field_and_kind(
    provider: Provider,
    secret_name: str,
    field_name: str,
    target_kind: str,
    *,
    provider_id: str | None = None,
) -> FieldSpec:
    """Return the field spec or raise when the field/kind pair is unsupported.

    ``provider_id`` names the provider in error messages and defaults to its
    ``name`` label.
    """

    label = provider_id or provider.name
    spec = schema_index(provider.field_schema()).get(field_name)
    if spec is None:
        raise FieldNotSupportedError(secret_name, field_name, label)
    if target_kind not in spec.allowed_kinds:
        raise KindNotSupportedError(secret_name, field_name, target_kind, label)
    return spec


def collect_field_data(
    schema: tuple[FieldSpec, ...],
    *,
    secret_name: str,
    provider_name: str,
    field_values: Mapping[str, str],
    all_or_nothing: bool,
) -> dict[str, str]:
    """Map field values to resource keys in schema order.

    Unknown fields are rejected. All-or-nothing providers also reject a value
    set lacking any required field.
    """

    index = schema_index(schema)
    for field_name in field_values:
        if field_name not in index:
            raise FieldNotSupportedError(secret_name, field_name, provider_name)
    if all_or_nothing:
        missing = [spec.name for spec in schema if spec.required and spec.name not in field_values]
        if missing:
            raise IncompleteFieldSetError(secret_name, provider_name, missing)
    return {spec.key: field_values[spec.name] for spec in schema if spec.name in field_values}


__all__ = [
    "ANNOTATION",
    "BINARY_KINDS",
    "Connector",
    "ENV",
    "FieldSpec",
    "Provider",
    "TARGET_KINDS",
    "TEXT_KINDS",
    "VOLUME",
    "check_field_and_kind",
    "collect_field_data",
    "required_fields",
    "schema_index",
]
