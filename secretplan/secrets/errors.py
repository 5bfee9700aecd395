"""Error taxonomy for secret declaration, resolution and injection.

Declaration errors are raised immediately by :class:`SecretRegistry`.
Everything raised later in a resolution pass is converted into a
:class:`~secretplan.secrets.models.Diagnostic` and reported in batch.
"""
from __future__ import annotations

from typing import TYPE_CHECKING, ClassVar, Iterable, Sequence

if TYPE_CHECKING:  # pragma: no cover - import cycle guard
    from .models import Diagnostic, InjectionRequest


class SecretPlanError(Exception):
    """Base class for every error raised by the secrets core."""

    code: ClassVar[str] = "secret_error"

    def __init__(
        self,
        message: str,
        *,
        secret_name: str | None = None,
        owner_unit_id: str | None = None,
        field_name: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.secret_name = secret_name
        self.owner_unit_id = owner_unit_id
        self.field_name = field_name

    def to_diagnostic(self, **context: str | None) -> "Diagnostic":
        """Convert the error into a diagnostic; ``context`` overrides attribution."""

        from .models import Diagnostic, DiagnosticContext

        merged = {
            "secret_name": self.secret_name,
            "owner_unit_id": self.owner_unit_id,
            "field_name": self.field_name,
        }
        merged.update({key: value for key, value in context.items() if value is not None})
        return Diagnostic(
            code=self.code,
            message=self.message,
            context=DiagnosticContext(**merged),
        )


# Declaration time: fail fast.


class DeclarationError(SecretPlanError):
    """Structural configuration error detected while populating a registry."""


class DuplicateIdentifierError(DeclarationError):
    code = "duplicate_identifier"

    def __init__(self, namespace: str, identifier: str) -> None:
        super().__init__(f"{namespace} '{identifier}' is already registered")
        self.namespace = namespace
        self.identifier = identifier


class UnknownProviderError(DeclarationError):
    code = "unknown_provider"

    def __init__(self, provider_id: str, *, secret_name: str | None = None) -> None:
        super().__init__(f"Provider '{provider_id}' is not registered", secret_name=secret_name)
        self.provider_id = provider_id


class UnknownConnectorError(DeclarationError):
    code = "unknown_connector"

    def __init__(
        self,
        connector_id: str | None,
        *,
        secret_name: str | None = None,
        message: str | None = None,
    ) -> None:
        super().__init__(
            message or f"Connector '{connector_id}' is not registered",
            secret_name=secret_name,
        )
        self.connector_id = connector_id


class RegistryFrozenError(DeclarationError):
    code = "registry_frozen"

    def __init__(self, operation: str) -> None:
        super().__init__(f"Cannot {operation}: the registry is frozen once resolution has started")
        self.operation = operation


# Resolution time: aggregated per secret.


class SourceUnavailableError(SecretPlanError):
    code = "source_unavailable"


class UnresolvedValueError(SecretPlanError):
    code = "unresolved_value"

    def __init__(self, secret_name: str, field_name: str | None, connector_id: str) -> None:
        target = f"{secret_name}/{field_name}" if field_name else secret_name
        super().__init__(
            f"Connector '{connector_id}' has no value for '{target}'",
            secret_name=secret_name,
            field_name=field_name,
        )
        self.connector_id = connector_id


# Provider contract violations: aggregated per request or per secret.


class IncompleteFieldSetError(SecretPlanError):
    code = "incomplete_field_set"

    def __init__(self, secret_name: str, provider_name: str, missing: Iterable[str]) -> None:
        self.missing = tuple(missing)
        super().__init__(
            f"Provider '{provider_name}' requires fields {', '.join(self.missing)} "
            f"to materialize secret '{secret_name}'",
            secret_name=secret_name,
        )
        self.provider_name = provider_name


class FieldNotSupportedError(SecretPlanError):
    code = "field_not_supported"

    def __init__(self, secret_name: str, field_name: str, provider_name: str) -> None:
        super().__init__(
            f"Provider '{provider_name}' does not expose field '{field_name}' "
            f"(secret '{secret_name}')",
            secret_name=secret_name,
            field_name=field_name,
        )
        self.provider_name = provider_name


class KindNotSupportedError(SecretPlanError):
    code = "kind_not_supported"

    def __init__(
        self, secret_name: str, field_name: str, target_kind: str, provider_name: str
    ) -> None:
        super().__init__(
            f"Provider '{provider_name}' cannot inject field '{field_name}' of secret "
            f"'{secret_name}' as '{target_kind}'",
            secret_name=secret_name,
            field_name=field_name,
        )
        self.target_kind = target_kind
        self.provider_name = provider_name


class InvalidInjectionOptionsError(SecretPlanError):
    code = "invalid_injection_options"


class ResourceCollisionError(SecretPlanError):
    code = "resource_collision"


class InvalidResourceNameError(SecretPlanError, ValueError):
    code = "invalid_resource_name"

    def __init__(self, secret_name: str) -> None:
        super().__init__(
            f"Cannot derive a resource name from secret '{secret_name}'",
            secret_name=secret_name,
        )


class ProviderFailedError(SecretPlanError):
    code = "provider_failed"


# Cross-request errors.


class UnknownSecretError(SecretPlanError):
    code = "unknown_secret"


class UpstreamSecretFailed(SecretPlanError):
    code = "upstream_secret_failed"


class InjectionConflictError(SecretPlanError):
    code = "injection_conflict"

    def __init__(self, first: "InjectionRequest", second: "InjectionRequest", target: str) -> None:
        super().__init__(
            f"Unit '{second.owner_unit_id}' injects conflicting values into "
            f"{second.target_kind} target '{target}': {first.describe()} and {second.describe()}",
            secret_name=second.secret_name,
            owner_unit_id=second.owner_unit_id,
            field_name=second.field_name,
        )
        self.requests = (first, second)
        self.target = target


class ResolutionFailedError(SecretPlanError):
    """Raised by :meth:`ResolutionResult.raise_for_diagnostics`."""

    code = "resolution_failed"

    def __init__(self, diagnostics: Sequence["Diagnostic"]) -> None:
        self.diagnostics = tuple(diagnostics)
        lines = [f"[{item.code}] {item.message}" for item in self.diagnostics]
        super().__init__(
            f"Secret resolution reported {len(lines)} problem(s):\n" + "\n".join(lines)
        )


__all__ = [
    "DeclarationError",
    "DuplicateIdentifierError",
    "FieldNotSupportedError",
    "IncompleteFieldSetError",
    "InjectionConflictError",
    "InvalidResourceNameError",
    "InvalidInjectionOptionsError",
    "KindNotSupportedError",
    "ProviderFailedError",
    "RegistryFrozenError",
    "ResolutionFailedError",
    "ResourceCollisionError",
    "SecretPlanError",
    "SourceUnavailableError",
    "UnknownConnectorError",
    "UnknownProviderError",
    "UnknownSecretError",
    "UnresolvedValueError",
    "UpstreamSecretFailed",
]
