"""Data model shared by the registry, the providers and the resolution engine."""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field, computed_field

from .errors import ResolutionFailedError


class SecretState(str, Enum):
    DECLARED = "declared"
    RESOLVING = "resolving"
    RESOLVED = "resolved"
    MATERIALIZED = "materialized"
    FAILED = "failed"


@dataclass(slots=True, frozen=True)
class SecretDeclaration:
    """A secret declared once and consumed by any number of units."""

    name: str
    provider: str
    connector: str | None = None
    connector_options: Mapping[str, Any] = field(default_factory=dict)


@dataclass(slots=True, frozen=True)
class InjectionRequest:
    """A unit asking for one field of a secret to be exposed through ``target_kind``."""

    secret_name: str
    field_name: str
    owner_unit_id: str
    target_kind: str
    target_options: Mapping[str, Any] = field(default_factory=dict)
    sequence: int = 0

    def signature(self) -> tuple[str, str, str, str]:
        """Identity of the request independent of its owner and registration order."""

        options = json.dumps(dict(self.target_options), sort_keys=True, default=str)
        return (self.secret_name, self.field_name, self.target_kind, options)

    def describe(self) -> str:
        return (
            f"#{self.sequence} {self.secret_name}.{self.field_name} -> "
            f"{self.target_kind} {dict(self.target_options)}"
        )


@dataclass(slots=True, frozen=True)
class ResolvedSecretValue:
    secret_name: str
    field_name: str
    raw_value: str = field(repr=False)


class MaterializedSecretResource(BaseModel):
    """Persisted form of one secret, built once regardless of how many units use it."""

    model_config = ConfigDict(frozen=True)

    secret_name: str
    provider: str
    resource_name: str
    namespace: str
    field_names: tuple[str, ...]
    manifest: dict[str, Any] = Field(repr=False)


class InjectionFragment(BaseModel):
    """Patch a unit applies to its own definition.

    The ``value`` only ever references the materialized resource by name and
    key; raw secret values are never embedded.
    """

    model_config = ConfigDict(frozen=True)

    secret_name: str
    field_name: str
    target_kind: str
    target: str
    path: str
    value: dict[str, Any]


class DiagnosticContext(BaseModel):
    model_config = ConfigDict(frozen=True)

    secret_name: str | None = None
    owner_unit_id: str | None = None
    field_name: str | None = None


class Diagnostic(BaseModel):
    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    context: DiagnosticContext = Field(default_factory=DiagnosticContext)


class ResolutionResult(BaseModel):
    """Artifact of one resolution pass, handed over to the composition layer."""

    materialized_resources: list[MaterializedSecretResource] = Field(default_factory=list)
    plans: dict[str, list[InjectionFragment]] = Field(default_factory=dict)
    diagnostics: list[Diagnostic] = Field(default_factory=list)
    secret_states: dict[str, SecretState] = Field(default_factory=dict)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def success(self) -> bool:
        return not self.diagnostics

    def plan_for(self, owner_unit_id: str) -> list[InjectionFragment]:
        return list(self.plans.get(owner_unit_id, []))

    def resource_for(self, secret_name: str) -> MaterializedSecretResource | None:
        for resource in self.materialized_resources:
            if resource.secret_name == secret_name:
                return resource
        return None

    def raise_for_diagnostics(self) -> None:
        if self.diagnostics:
            raise ResolutionFailedError(self.diagnostics)

    def to_json(self) -> str:
        return self.model_dump_json(indent=2)


__all__ = [
    "Diagnostic",
    "DiagnosticContext",
    "InjectionFragment",
    "InjectionRequest",
    "MaterializedSecretResource",
    "ResolutionResult",
    "ResolvedSecretValue",
    "SecretDeclaration",
    "SecretState",
]
