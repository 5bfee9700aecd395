"""Declare secrets once and inject their fields into many deployment units.

Typical use::

    registry = (
        SecretRegistry()
        .add_connector("env", EnvironmentConnector(prefix="CUSTOM_PREFIX_"))
        .add_provider("api-credentials", BasicAuthSecretProvider(name="api-credentials"))
        .add_secret("API_CREDENTIALS", provider="api-credentials")
    )
    requests = InjectionRequestSet()
    app = requests.for_unit("api-service")
    app.secret("API_CREDENTIALS").field("username").inject("env", name="API_USERNAME")
    result = ResolutionEngine(registry).resolve(requests)
"""
from __future__ import annotations

from .base import ANNOTATION, ENV, VOLUME, Connector, FieldSpec, Provider
from .connectors import (
    AWSSecretsManagerConnector,
    DopplerConnector,
    EnvironmentConnector,
    FileConnector,
    InMemoryConnector,
    VaultConnector,
    build_connector,
)
from .engine import ResolutionEngine
from .errors import (
    DuplicateIdentifierError,
    FieldNotSupportedError,
    IncompleteFieldSetError,
    InjectionConflictError,
    InvalidInjectionOptionsError,
    InvalidResourceNameError,
    KindNotSupportedError,
    ProviderFailedError,
    RegistryFrozenError,
    ResolutionFailedError,
    ResourceCollisionError,
    SecretPlanError,
    SourceUnavailableError,
    UnknownConnectorError,
    UnknownProviderError,
    UnknownSecretError,
    UnresolvedValueError,
    UpstreamSecretFailed,
)
from .models import (
    Diagnostic,
    InjectionFragment,
    InjectionRequest,
    MaterializedSecretResource,
    ResolutionResult,
    SecretDeclaration,
    SecretState,
)
from .providers import (
    BasicAuthSecretProvider,
    OpaqueSecretProvider,
    SshAuthSecretProvider,
    TlsSecretProvider,
)
from .registry import SecretRegistry
from .requests import InjectionRequestSet

__all__ = [
    "ANNOTATION",
    "AWSSecretsManagerConnector",
    "BasicAuthSecretProvider",
    "Connector",
    "Diagnostic",
    "DopplerConnector",
    "DuplicateIdentifierError",
    "ENV",
    "EnvironmentConnector",
    "FieldNotSupportedError",
    "FieldSpec",
    "FileConnector",
    "InMemoryConnector",
    "IncompleteFieldSetError",
    "InjectionConflictError",
    "InjectionFragment",
    "InjectionRequest",
    "InjectionRequestSet",
    "InvalidInjectionOptionsError",
    "InvalidResourceNameError",
    "KindNotSupportedError",
    "MaterializedSecretResource",
    "OpaqueSecretProvider",
    "Provider",
    "ProviderFailedError",
    "RegistryFrozenError",
    "ResolutionEngine",
    "ResolutionFailedError",
    "ResolutionResult",
    "ResourceCollisionError",
    "SecretDeclaration",
    "SecretPlanError",
    "SecretRegistry",
    "SecretState",
    "SourceUnavailableError",
    "SshAuthSecretProvider",
    "TlsSecretProvider",
    "UnknownConnectorError",
    "UnknownProviderError",
    "UnknownSecretError",
    "UnresolvedValueError",
    "UpstreamSecretFailed",
    "VOLUME",
    "VaultConnector",
    "build_connector",
]
