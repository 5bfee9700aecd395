from __future__ import annotations

import pytest

from secretplan.secrets import (
    BasicAuthSecretProvider,
    DuplicateIdentifierError,
    EnvironmentConnector,
    InMemoryConnector,
    InjectionRequestSet,
    RegistryFrozenError,
    ResolutionEngine,
    SecretDeclaration,
    SecretRegistry,
    UnknownConnectorError,
    UnknownProviderError,
)


def _base_registry() -> SecretRegistry:
    return (
        SecretRegistry()
        .add_connector("env", EnvironmentConnector(environ={}))
        .add_provider("basic", BasicAuthSecretProvider())
    )


def test_namespaces_are_independent():
    registry = _base_registry()
    registry.add_connector("shared", InMemoryConnector())
    registry.add_provider("shared", BasicAuthSecretProvider())
    registry.add_secret("shared", provider="shared", connector="shared")

    assert registry.connector_ids() == ["env", "shared"]
    assert registry.provider_ids() == ["basic", "shared"]
    assert registry.has_secret("shared")


@pytest.mark.parametrize(
    "register",
    [
        lambda registry: registry.add_connector("env", InMemoryConnector()),
        lambda registry: registry.add_provider("basic", BasicAuthSecretProvider()),
        lambda registry: registry.add_secret("API_CREDENTIALS", provider="basic"),
    ],
)
def test_duplicate_identifiers_are_rejected(register):
    registry = _base_registry().add_secret("API_CREDENTIALS", provider="basic")

    with pytest.raises(DuplicateIdentifierError):
        register(registry)


def test_secret_requires_registered_provider():
    registry = _base_registry()

    with pytest.raises(UnknownProviderError) as exc:
        registry.add_secret("API_CREDENTIALS", provider="missing")

    assert exc.value.provider_id == "missing"
    assert exc.value.secret_name == "API_CREDENTIALS"


def test_secret_requires_registered_connector():
    registry = _base_registry()

    with pytest.raises(UnknownConnectorError):
        registry.add_secret("API_CREDENTIALS", provider="basic", connector="vault")


def test_registration_order_matters():
    registry = SecretRegistry().add_connector("env", InMemoryConnector())

    with pytest.raises(UnknownProviderError):
        registry.add_secret("API_CREDENTIALS", provider="basic")

    registry.add_provider("basic", BasicAuthSecretProvider())
    registry.add_secret("API_CREDENTIALS", provider="basic")
    assert registry.secret("API_CREDENTIALS").connector == "env"


def test_sole_connector_is_the_default():
    registry = _base_registry().add_secret("API_CREDENTIALS", provider="basic")

    assert registry.default_connector == "env"
    assert registry.secret("API_CREDENTIALS").connector == "env"


def test_ambiguous_default_connector_is_rejected():
    registry = _base_registry().add_connector("memory", InMemoryConnector())

    assert registry.default_connector is None
    with pytest.raises(UnknownConnectorError) as exc:
        registry.add_secret("API_CREDENTIALS", provider="basic")
    assert "no default connector" in str(exc.value)

    registry.set_default_connector("memory")
    registry.add_secret("API_CREDENTIALS", provider="basic")
    assert registry.secret("API_CREDENTIALS").connector == "memory"


def test_declaration_object_keeps_connector_options():
    registry = _base_registry()
    registry.add_secret(
        SecretDeclaration(
            name="API_CREDENTIALS",
            provider="basic",
            connector_options={"source": "LEGACY_API_CREDENTIALS"},
        )
    )

    declaration = registry.secret("API_CREDENTIALS")
    assert declaration.connector == "env"
    assert declaration.connector_options == {"source": "LEGACY_API_CREDENTIALS"}


def test_registry_is_frozen_once_resolution_starts():
    registry = _base_registry().add_secret("API_CREDENTIALS", provider="basic")
    ResolutionEngine(registry).resolve(InjectionRequestSet())

    assert registry.frozen
    with pytest.raises(RegistryFrozenError):
        registry.add_secret("OTHER", provider="basic")
    with pytest.raises(RegistryFrozenError):
        registry.add_connector("memory", InMemoryConnector())
    with pytest.raises(RegistryFrozenError):
        registry.add_provider("other", BasicAuthSecretProvider())


def test_capabilities_must_implement_the_contract():
    registry = SecretRegistry()

    with pytest.raises(TypeError):
        registry.add_connector("broken", object())  # type: ignore[arg-type]
    with pytest.raises(TypeError):
        registry.add_provider("broken", object())  # type: ignore[arg-type]


def test_secrets_are_listed_by_name():
    registry = (
        _base_registry()
        .add_secret("ZETA", provider="basic")
        .add_secret("ALPHA", provider="basic")
    )

    assert [declaration.name for declaration in registry.secrets()] == ["ALPHA", "ZETA"]
