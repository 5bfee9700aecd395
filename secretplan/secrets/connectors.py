"""Connectors retrieving raw secret values from external sources.

Every connector follows the same lookup convention for multi-field secrets:

* a dedicated entry ``<KEY>_<FIELD>`` (upper snake case) when the source is a
  flat key/value store (environment, Doppler);
* otherwise the entry ``<KEY>`` holding a JSON object indexed by field name;
* a plain, non-JSON entry only answers the connector's ``scalar_field``.

A missing value is reported as ``None``; an unreachable source raises
:class:`SourceUnavailableError`.
"""
from __future__ import annotations

import json
import os
import re
from pathlib import Path
from typing import TYPE_CHECKING, Any, Mapping

import httpx

from .crypto import SecretDocumentCryptoError, decrypt_document, resolve_passphrase
from .errors import SourceUnavailableError

if TYPE_CHECKING:  # pragma: no cover - typing only
    from ..settings import SecretPlanSettings
    from .base import Connector

DEFAULT_SCALAR_FIELD = "value"
_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")


def field_variable_name(key: str, field_name: str) -> str:
    """Return the flat entry name for ``field_name`` of ``key``.

    ``privateKey`` of ``DEPLOY_KEY`` becomes ``DEPLOY_KEY_PRIVATE_KEY``.
    """

    suffix = _CAMEL_BOUNDARY.sub("_", field_name).replace("-", "_").replace(".", "_")
    return f"{key}_{suffix.upper()}"


def _stringify(value: Any) -> str:
    return value if isinstance(value, str) else json.dumps(value, sort_keys=True)


def extract_field(
    raw: str | None, field_name: str | None, *, scalar_field: str = DEFAULT_SCALAR_FIELD
) -> str | None:
    """Pick ``field_name`` out of a raw entry following the lookup convention."""

    if raw is None or field_name is None:
        return raw
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        data = None
    if isinstance(data, dict):
        value = data.get(field_name)
        return None if value is None else _stringify(value)
    return raw if field_name == scalar_field else None


def _extract_from_entry(
    entry: Any, field_name: str | None, *, scalar_field: str
) -> str | None:
    if entry is None:
        return None
    if isinstance(entry, Mapping):
        if field_name is None:
            return json.dumps(dict(entry), sort_keys=True)
        value = entry.get(field_name)
        return None if value is None else _stringify(value)
    return extract_field(_stringify(entry), field_name, scalar_field=scalar_field)


def _source_key(secret_name: str, options: Mapping[str, Any] | None) -> str:
    source = (options or {}).get("source")
    return source if isinstance(source, str) and source else secret_name


class EnvironmentConnector:
    """Load secrets from environment variables.

    ``prefix`` is prepended to every variable name. It is never implied: a
    connector without a prefix reads ``API_CREDENTIALS`` verbatim.
    """

    name = "environment"

    def __init__(
        self,
        prefix: str | None = None,
        *,
        environ: Mapping[str, str] | None = None,
        scalar_field: str = DEFAULT_SCALAR_FIELD,
    ) -> None:
        self._prefix = prefix or ""
        self._environ = environ
        self._scalar_field = scalar_field

    @property
    def prefix(self) -> str:
        return self._prefix

    def variable_name(self, key: str) -> str:
        return f"{self._prefix}{key}" if self._prefix else key

    def fetch(
        self,
        secret_name: str,
        field_name: str | None = None,
        *,
        options: Mapping[str, Any] | None = None,
    ) -> str | None:
        environ = self._environ if self._environ is not None else os.environ
        key = _source_key(secret_name, options)
        if field_name is not None:
            dedicated = environ.get(self.variable_name(field_variable_name(key, field_name)))
            if dedicated is not None:
                return dedicated
        return extract_field(
            environ.get(self.variable_name(key)), field_name, scalar_field=self._scalar_field
        )


class InMemoryConnector:
    """Serve values from a mapping of secret name to scalar or field mapping."""

    name = "memory"

    def __init__(
        self,
        values: Mapping[str, Any] | None = None,
        *,
        scalar_field: str = DEFAULT_SCALAR_FIELD,
    ) -> None:
        self._values = dict(values or {})
        self._scalar_field = scalar_field

    def fetch(
        self,
        secret_name: str,
        field_name: str | None = None,
        *,
        options: Mapping[str, Any] | None = None,
    ) -> str | None:
        entry = self._values.get(_source_key(secret_name, options))
        return _extract_from_entry(entry, field_name, scalar_field=self._scalar_field)


class FileConnector:
    """Read secrets from a JSON document, optionally encrypted with a passphrase.

    The document is read on every fetch so the connector keeps no state
    besides its configuration.
    """

    name = "file"

    def __init__(
        self,
        path: str | os.PathLike[str],
        *,
        passphrase: str | None = None,
        scalar_field: str = DEFAULT_SCALAR_FIELD,
    ) -> None:
        self._path = Path(path)
        self._passphrase = passphrase
        self._scalar_field = scalar_field

    def _load(self) -> Mapping[str, Any]:
        try:
            text = self._path.read_text(encoding="utf-8")
            document = json.loads(text)
            if self._passphrase is not None:
                document = json.loads(decrypt_document(document, self._passphrase))
        except FileNotFoundError as exc:
            raise SourceUnavailableError(f"Secrets file '{self._path}' not found") from exc
        except (OSError, json.JSONDecodeError, SecretDocumentCryptoError) as exc:
            raise SourceUnavailableError(f"Secrets file '{self._path}' is unreadable: {exc}") from exc
        if not isinstance(document, dict):
            raise SourceUnavailableError(f"Secrets file '{self._path}' must hold a JSON object")
        return document

    def fetch(
        self,
        secret_name: str,
        field_name: str | None = None,
        *,
        options: Mapping[str, Any] | None = None,
    ) -> str | None:
        entry = self._load().get(_source_key(secret_name, options))
        return _extract_from_entry(entry, field_name, scalar_field=self._scalar_field)


class VaultConnector:
    """Retrieve secrets from HashiCorp Vault using the KV v2 engine.

    Each secret lives at ``<base_path>/<name in lower case>`` unless
    ``key_mapping`` says otherwise; its fields are the keys of the stored data.
    """

    name = "vault"

    def __init__(
        self,
        url: str | None = None,
        token: str | None = None,
        *,
        mount_point: str = "secret",
        base_path: str = "secrets",
        key_mapping: Mapping[str, str] | None = None,
        scalar_field: str = DEFAULT_SCALAR_FIELD,
        client: Any | None = None,
    ) -> None:
        try:  # Import lazily to avoid making hvac a hard dependency.
            import hvac  # type: ignore
        except Exception as exc:  # pragma: no cover - optional dependency
            raise RuntimeError("hvac must be installed to use the Vault connector") from exc

        self._client = client if client is not None else hvac.Client(url=url, token=token)
        self._exceptions = hvac.exceptions
        self._mount_point = mount_point
        self._base_path = base_path.strip("/")
        self._mapping = dict(key_mapping or {})
        self._scalar_field = scalar_field

    def _resolve_path(self, key: str) -> str:
        return self._mapping.get(key, f"{self._base_path}/{key.lower()}").strip("/")

    def fetch(
        self,
        secret_name: str,
        field_name: str | None = None,
        *,
        options: Mapping[str, Any] | None = None,
    ) -> str | None:
        path = self._resolve_path(_source_key(secret_name, options))
        try:
            response = self._client.secrets.kv.v2.read_secret_version(
                mount_point=self._mount_point,
                path=path,
                raise_on_deleted_version=True,
            )
        except self._exceptions.InvalidPath:
            return None
        except (self._exceptions.VaultError, OSError) as exc:
            raise SourceUnavailableError(
                f"Vault lookup of '{path}' failed: {exc}", secret_name=secret_name
            ) from exc
        data = (response or {}).get("data", {}).get("data", {}) or {}
        lookup = field_name if field_name is not None else self._scalar_field
        return _extract_from_entry(data, lookup, scalar_field=self._scalar_field)


class DopplerConnector:
    """Retrieve secrets from Doppler via its HTTP API."""

    name = "doppler"

    def __init__(
        self,
        token: str,
        *,
        config: str,
        project: str,
        base_url: str = "https://api.doppler.com",
        key_mapping: Mapping[str, str] | None = None,
        timeout: float = 5.0,
        scalar_field: str = DEFAULT_SCALAR_FIELD,
        client: httpx.Client | None = None,
    ) -> None:
        self._token = token
        self._config = config
        self._project = project
        self._base_url = base_url.rstrip("/")
        self._mapping = dict(key_mapping or {})
        self._timeout = timeout
        self._scalar_field = scalar_field
        self._client = client

    def _resolve_key(self, key: str) -> str:
        return self._mapping.get(key, key)

    def _get(self, api_key: str) -> str | None:
        request = {
            "params": {"project": self._project, "config": self._config, "name": api_key},
            "headers": {"Authorization": f"Bearer {self._token}"},
        }
        url = f"{self._base_url}/v3/configs/config/secret"
        try:
            if self._client is not None:
                response = self._client.get(url, **request)
            else:
                response = httpx.get(url, timeout=self._timeout, **request)
        except httpx.HTTPError as exc:
            raise SourceUnavailableError(f"Doppler is unreachable: {exc}") from exc
        if response.status_code == 404:
            return None
        if response.status_code >= 400:
            raise SourceUnavailableError(
                f"Doppler answered {response.status_code} for '{api_key}'"
            )
        payload = response.json()
        return payload.get("secret", {}).get("raw")

    def fetch(
        self,
        secret_name: str,
        field_name: str | None = None,
        *,
        options: Mapping[str, Any] | None = None,
    ) -> str | None:
        key = self._resolve_key(_source_key(secret_name, options))
        if field_name is not None:
            dedicated = self._get(field_variable_name(key, field_name))
            if dedicated is not None:
                return dedicated
        return extract_field(self._get(key), field_name, scalar_field=self._scalar_field)


class AWSSecretsManagerConnector:
    """Retrieve secrets from AWS Secrets Manager.

    Multi-field secrets are stored as a JSON ``SecretString``.
    """

    name = "aws-secrets-manager"

    def __init__(
        self,
        *,
        region_name: str | None = None,
        prefix: str = "",
        key_mapping: Mapping[str, str] | None = None,
        profile_name: str | None = None,
        scalar_field: str = DEFAULT_SCALAR_FIELD,
        client: Any | None = None,
    ) -> None:
        try:  # pragma: no cover - optional dependency
            from botocore.exceptions import BotoCoreError, ClientError  # type: ignore
        except Exception as exc:  # pragma: no cover - requires AWS SDK
            raise RuntimeError(
                "boto3 must be installed to use the AWS Secrets Manager connector"
            ) from exc
        self._errors = (BotoCoreError, ClientError)
        self._client_error = ClientError
        if client is None:
            import boto3  # type: ignore

            session = boto3.Session(profile_name=profile_name) if profile_name else boto3.Session()
            client = session.client("secretsmanager", region_name=region_name)
        self._client = client
        self._prefix = prefix
        self._mapping = dict(key_mapping or {})
        self._scalar_field = scalar_field

    def _resolve_secret_id(self, key: str) -> str:
        if key in self._mapping:
            return self._mapping[key]
        return f"{self._prefix}{key}" if self._prefix else key

    def fetch(
        self,
        secret_name: str,
        field_name: str | None = None,
        *,
        options: Mapping[str, Any] | None = None,
    ) -> str | None:
        secret_id = self._resolve_secret_id(_source_key(secret_name, options))
        try:
            response = self._client.get_secret_value(SecretId=secret_id)
        except self._client_error as exc:
            code = exc.response.get("Error", {}).get("Code")
            if code == "ResourceNotFoundException":
                return None
            raise SourceUnavailableError(
                f"AWS Secrets Manager rejected '{secret_id}': {code}", secret_name=secret_name
            ) from exc
        except self._errors as exc:
            raise SourceUnavailableError(
                f"AWS Secrets Manager is unreachable: {exc}", secret_name=secret_name
            ) from exc
        return extract_field(
            response.get("SecretString"), field_name, scalar_field=self._scalar_field
        )


def build_connector(settings: "SecretPlanSettings") -> "Connector":
    """Instantiate the connector selected by ``settings.connector``."""

    connector = settings.connector
    mapping = settings.key_mapping

    if connector in {"env", "environment", "local"}:
        return EnvironmentConnector(prefix=settings.env_prefix)
    if connector == "file":
        if settings.secrets_file is None:
            raise RuntimeError("SECRETPLAN_SECRETS_FILE must be set for the file connector")
        configured = settings.secrets_file_passphrase
        passphrase = None
        if settings.secrets_file_encrypted or configured is not None:
            passphrase = resolve_passphrase(configured.get_secret_value() if configured else None)
        return FileConnector(settings.secrets_file, passphrase=passphrase)
    if connector == "vault":
        if not settings.vault_addr or settings.vault_token is None:
            raise RuntimeError(
                "SECRETPLAN_VAULT_ADDR and SECRETPLAN_VAULT_TOKEN must be set for the Vault connector"
            )
        return VaultConnector(
            url=settings.vault_addr,
            token=settings.vault_token.get_secret_value(),
            mount_point=settings.vault_mount,
            base_path=settings.vault_base_path,
            key_mapping=mapping,
        )
    if connector in {"doppler", "doppler.com"}:
        if settings.doppler_token is None or not settings.doppler_config or not settings.doppler_project:
            raise RuntimeError(
                "SECRETPLAN_DOPPLER_TOKEN, SECRETPLAN_DOPPLER_CONFIG and "
                "SECRETPLAN_DOPPLER_PROJECT must be set for the Doppler connector"
            )
        return DopplerConnector(
            settings.doppler_token.get_secret_value(),
            config=settings.doppler_config,
            project=settings.doppler_project,
            base_url=settings.doppler_api_url,
            key_mapping=mapping,
        )
    if connector in {"aws", "aws-secrets-manager", "secretsmanager"}:
        region_name = settings.aws_region or os.environ.get("AWS_REGION") or os.environ.get(
            "AWS_DEFAULT_REGION"
        )
        if not region_name:
            raise RuntimeError("SECRETPLAN_AWS_REGION or AWS_REGION must be set for AWS Secrets Manager")
        return AWSSecretsManagerConnector(
            region_name=region_name,
            prefix=settings.aws_prefix,
            profile_name=settings.aws_profile,
            key_mapping=mapping,
        )

    raise RuntimeError(f"Unknown secret connector: {connector}")


__all__ = [
    "AWSSecretsManagerConnector",
    "DopplerConnector",
    "EnvironmentConnector",
    "FileConnector",
    "InMemoryConnector",
    "VaultConnector",
    "build_connector",
    "extract_field",
    "field_variable_name",
]
