"""Declaration registry for connectors, providers and secrets."""
from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, List, Mapping, MutableMapping

from .base import Connector, Provider
from .errors import (
    DuplicateIdentifierError,
    RegistryFrozenError,
    UnknownConnectorError,
    UnknownProviderError,
)
from .models import SecretDeclaration

logger = logging.getLogger(__name__)


class SecretRegistry:
    """Explicit configuration object passed to the resolution engine.

    Connector ids, provider ids and secret names are independent namespaces.
    Capabilities must be registered before the secrets that use them, and the
    registry refuses any mutation once :meth:`freeze` has been called.
    """

    def __init__(self) -> None:
        self._connectors: MutableMapping[str, Connector] = {}
        self._providers: MutableMapping[str, Provider] = {}
        self._secrets: MutableMapping[str, SecretDeclaration] = {}
        self._default_connector: str | None = None
        self._frozen = False

    @property
    def frozen(self) -> bool:
        return self._frozen

    def freeze(self) -> None:
        if not self._frozen:
            logger.debug(
                "secret registry frozen",
                extra={
                    "connectors": len(self._connectors),
                    "providers": len(self._providers),
                    "secrets": len(self._secrets),
                },
            )
        self._frozen = True

    def _ensure_mutable(self, operation: str) -> None:
        if self._frozen:
            raise RegistryFrozenError(operation)

    def add_connector(self, connector_id: str, connector: Connector) -> "SecretRegistry":
        self._ensure_mutable(f"add connector '{connector_id}'")
        if connector_id in self._connectors:
            raise DuplicateIdentifierError("connector", connector_id)
        if not callable(getattr(connector, "fetch", None)):
            raise TypeError(f"Connector '{connector_id}' must define a fetch() method")
        self._connectors[connector_id] = connector
        return self

    def add_provider(self, provider_id: str, provider: Provider) -> "SecretRegistry":
        self._ensure_mutable(f"add provider '{provider_id}'")
        if provider_id in self._providers:
            raise DuplicateIdentifierError("provider", provider_id)
        for method in ("field_schema", "materialize", "build_injection_fragment"):
            if not callable(getattr(provider, method, None)):
                raise TypeError(f"Provider '{provider_id}' must define a {method}() method")
        self._providers[provider_id] = provider
        return self

    def set_default_connector(self, connector_id: str) -> "SecretRegistry":
        self._ensure_mutable(f"set default connector '{connector_id}'")
        if connector_id not in self._connectors:
            raise UnknownConnectorError(connector_id)
        self._default_connector = connector_id
        return self

    @property
    def default_connector(self) -> str | None:
        """Explicit default, or the only registered connector."""

        if self._default_connector is not None:
            return self._default_connector
        if len(self._connectors) == 1:
            return next(iter(self._connectors))
        return None

    def add_secret(
        self,
        declaration: SecretDeclaration | str,
        *,
        provider: str | None = None,
        connector: str | None = None,
        connector_options: Mapping[str, Any] | None = None,
    ) -> "SecretRegistry":
        """Declare a secret.

        Accepts either a :class:`SecretDeclaration` or its name plus keyword
        arguments. A missing connector falls back to :attr:`default_connector`.
        """

        if isinstance(declaration, str):
            if provider is None:
                raise TypeError("add_secret() requires a provider id")
            declaration = SecretDeclaration(
                name=declaration,
                provider=provider,
                connector=connector,
                connector_options=dict(connector_options or {}),
            )
        name = declaration.name
        self._ensure_mutable(f"add secret '{name}'")
        if not name:
            raise ValueError("secret name must not be empty")
        if name in self._secrets:
            raise DuplicateIdentifierError("secret", name)
        if declaration.provider not in self._providers:
            raise UnknownProviderError(declaration.provider, secret_name=name)

        connector_id = declaration.connector or self.default_connector
        if connector_id is None:
            raise UnknownConnectorError(
                None,
                secret_name=name,
                message=(
                    f"Secret '{name}' names no connector and the registry has no default "
                    "connector; call set_default_connector() first"
                ),
            )
        if connector_id not in self._connectors:
            raise UnknownConnectorError(connector_id, secret_name=name)

        self._secrets[name] = replace(declaration, connector=connector_id)
        return self

    def connector(self, connector_id: str) -> Connector:
        try:
            return self._connectors[connector_id]
        except KeyError as exc:
            raise UnknownConnectorError(connector_id) from exc

    def provider(self, provider_id: str) -> Provider:
        try:
            return self._providers[provider_id]
        except KeyError as exc:
            raise UnknownProviderError(provider_id) from exc

    def secret(self, name: str) -> SecretDeclaration:
        return self._secrets[name]

    def has_secret(self, name: str) -> bool:
        return name in self._secrets

    def secrets(self) -> List[SecretDeclaration]:
        return [self._secrets[name] for name in sorted(self._secrets)]

    def connector_ids(self) -> List[str]:
        return sorted(self._connectors)

    def provider_ids(self) -> List[str]:
        return sorted(self._providers)


__all__ = ["SecretRegistry"]
