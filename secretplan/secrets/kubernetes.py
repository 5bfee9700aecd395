"""Kubernetes ``Secret`` manifests and workload patch fragments.

Providers call these helpers as plain functions; the fragments they return
reference a materialized ``Secret`` by name and key and never carry raw values.
"""
from __future__ import annotations

import base64
import hashlib
import re
from typing import Any, Callable, Mapping, Protocol

from .base import ANNOTATION, ENV, VOLUME, FieldSpec, check_field_and_kind, collect_field_data
from .errors import InvalidInjectionOptionsError, InvalidResourceNameError, KindNotSupportedError
from .models import InjectionFragment, MaterializedSecretResource

MANAGED_BY_LABEL = "app.kubernetes.io/managed-by"
MANAGED_BY_VALUE = "secretplan"
SECRET_NAME_ANNOTATION = "secretplan.io/secret-name"

_DNS_INVALID = re.compile(r"[^a-z0-9-]+")
_ENV_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_MAX_RESOURCE_NAME = 253
_MAX_VOLUME_NAME = 63


def resource_name_for(secret_name: str) -> str:
    """Return a DNS-1123 compatible resource name derived from ``secret_name``.

    Raises :class:`InvalidResourceNameError` when nothing usable remains.
    """

    candidate = _DNS_INVALID.sub("-", secret_name.strip().lower().replace("_", "-"))
    candidate = candidate.strip("-")[:_MAX_RESOURCE_NAME].rstrip("-")
    if not candidate:
        raise InvalidResourceNameError(secret_name)
    return candidate


def encode_value(value: str) -> str:
    return base64.b64encode(value.encode("utf-8")).decode("ascii")


def _volume_name(resource_name: str, data_key: str, file_name: str) -> str:
    """Pod-unique volume name: one volume per resource, key and projected file."""

    source = f"{resource_name}/{data_key}/{file_name}"
    digest = hashlib.sha256(source.encode("utf-8")).hexdigest()[:8]
    readable = _DNS_INVALID.sub("-", f"{resource_name}-{data_key}".lower().replace("_", "-"))
    readable = readable.strip("-")[: _MAX_VOLUME_NAME - len(digest) - 1].rstrip("-")
    return f"{readable}-{digest}" if readable else digest


def build_secret_manifest(
    *,
    secret_name: str,
    resource_name: str,
    namespace: str,
    secret_type: str,
    data: Mapping[str, str],
    labels: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    merged_labels = {**dict(labels or {}), MANAGED_BY_LABEL: MANAGED_BY_VALUE}
    return {
        "apiVersion": "v1",
        "kind": "Secret",
        "metadata": {
            "name": resource_name,
            "namespace": namespace,
            "labels": dict(sorted(merged_labels.items())),
            "annotations": {SECRET_NAME_ANNOTATION: secret_name},
        },
        "type": secret_type,
        "data": {key: encode_value(value) for key, value in data.items()},
    }


def _reject_unknown_options(
    options: Mapping[str, Any], allowed: set[str], secret_name: str, field_name: str, kind: str
) -> None:
    unknown = sorted(set(options) - allowed)
    if unknown:
        raise InvalidInjectionOptionsError(
            f"Unsupported {kind} option(s) {', '.join(unknown)} for {secret_name}.{field_name}",
            secret_name=secret_name,
            field_name=field_name,
        )


def _required_text(
    options: Mapping[str, Any], key: str, secret_name: str, field_name: str, kind: str
) -> str:
    value = options.get(key)
    if not isinstance(value, str) or not value.strip():
        raise InvalidInjectionOptionsError(
            f"{kind} injection of {secret_name}.{field_name} requires a non-empty '{key}' option",
            secret_name=secret_name,
            field_name=field_name,
        )
    return value.strip()


def _container_index(options: Mapping[str, Any], secret_name: str, field_name: str) -> int:
    value = options.get("container_index", 0)
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise InvalidInjectionOptionsError(
            f"'container_index' must be a non-negative integer for {secret_name}.{field_name}",
            secret_name=secret_name,
            field_name=field_name,
        )
    return value


def _env_fragment(
    secret_name: str,
    field_name: str,
    options: Mapping[str, Any],
    resource_name: str,
    namespace: str,
    data_key: str,
) -> InjectionFragment:
    _reject_unknown_options(options, {"name", "container_index"}, secret_name, field_name, ENV)
    env_name = _required_text(options, "name", secret_name, field_name, ENV)
    if not _ENV_NAME.match(env_name):
        raise InvalidInjectionOptionsError(
            f"'{env_name}' is not a valid environment variable name",
            secret_name=secret_name,
            field_name=field_name,
        )
    index = _container_index(options, secret_name, field_name)
    return InjectionFragment(
        secret_name=secret_name,
        field_name=field_name,
        target_kind=ENV,
        target=f"containers[{index}]:env:{env_name}",
        path=f"spec.template.spec.containers[{index}].env",
        value={
            "name": env_name,
            "valueFrom": {"secretKeyRef": {"name": resource_name, "key": data_key}},
        },
    )


def _volume_fragment(
    secret_name: str,
    field_name: str,
    options: Mapping[str, Any],
    resource_name: str,
    namespace: str,
    data_key: str,
) -> InjectionFragment:
    _reject_unknown_options(
        options, {"mount_path", "file_name", "container_index"}, secret_name, field_name, VOLUME
    )
    mount_path = _required_text(options, "mount_path", secret_name, field_name, VOLUME)
    if not mount_path.startswith("/"):
        raise InvalidInjectionOptionsError(
            f"'mount_path' must be absolute, got '{mount_path}'",
            secret_name=secret_name,
            field_name=field_name,
        )
    file_name = options.get("file_name") or data_key
    if not isinstance(file_name, str) or "/" in file_name:
        raise InvalidInjectionOptionsError(
            f"'file_name' must be a plain file name for {secret_name}.{field_name}",
            secret_name=secret_name,
            field_name=field_name,
        )
    index = _container_index(options, secret_name, field_name)
    file_path = f"{mount_path.rstrip('/')}/{file_name}"
    volume_name = _volume_name(resource_name, data_key, file_name)
    return InjectionFragment(
        secret_name=secret_name,
        field_name=field_name,
        target_kind=VOLUME,
        target=f"containers[{index}]:{file_path}",
        path="spec.template.spec",
        value={
            "containerIndex": index,
            "volume": {
                "name": volume_name,
                "secret": {
                    "secretName": resource_name,
                    "items": [{"key": data_key, "path": file_name}],
                },
            },
            "volumeMount": {
                "name": volume_name,
                "mountPath": file_path,
                "subPath": file_name,
                "readOnly": True,
            },
        },
    )


def _annotation_fragment(
    secret_name: str,
    field_name: str,
    options: Mapping[str, Any],
    resource_name: str,
    namespace: str,
    data_key: str,
) -> InjectionFragment:
    _reject_unknown_options(options, {"key"}, secret_name, field_name, ANNOTATION)
    key = _required_text(options, "key", secret_name, field_name, ANNOTATION)
    return InjectionFragment(
        secret_name=secret_name,
        field_name=field_name,
        target_kind=ANNOTATION,
        target=f"annotations:{key}",
        path="spec.template.metadata.annotations",
        value={key: f"secret://{namespace}/{resource_name}#{data_key}"},
    )


_BUILDERS: dict[str, Callable[..., InjectionFragment]] = {
    ENV: _env_fragment,
    VOLUME: _volume_fragment,
    ANNOTATION: _annotation_fragment,
}


def build_fragment(
    *,
    secret_name: str,
    field_name: str,
    target_kind: str,
    target_options: Mapping[str, Any],
    resource_name: str,
    namespace: str,
    data_key: str,
    provider_name: str,
) -> InjectionFragment:
    builder = _BUILDERS.get(target_kind)
    if builder is None:
        raise KindNotSupportedError(secret_name, field_name, target_kind, provider_name)
    return builder(secret_name, field_name, target_options, resource_name, namespace, data_key)



class SecretShape(Protocol):
    """What the shared helpers need from a Kubernetes-backed provider."""

    name: str
    secret_type: str
    all_or_nothing: bool
    namespace: str
    labels: Mapping[str, str]

    def field_schema(self) -> tuple[FieldSpec, ...]:
        ...

    def resource_name(self, secret_name: str) -> str:
        ...


def materialize_secret(
    provider: SecretShape, secret_name: str, field_values: Mapping[str, str]
) -> MaterializedSecretResource:
    """Build the persisted ``Secret`` for ``field_values`` in schema order."""

    schema = provider.field_schema()
    data = collect_field_data(
        schema,
        secret_name=secret_name,
        provider_name=provider.name,
        field_values=field_values,
        all_or_nothing=provider.all_or_nothing,
    )
    resource_name = provider.resource_name(secret_name)
    return MaterializedSecretResource(
        secret_name=secret_name,
        provider=provider.name,
        resource_name=resource_name,
        namespace=provider.namespace,
        field_names=tuple(spec.name for spec in schema if spec.name in field_values),
        manifest=build_secret_manifest(
            secret_name=secret_name,
            resource_name=resource_name,
            namespace=provider.namespace,
            secret_type=provider.secret_type,
            data=data,
            labels=provider.labels,
        ),
    )


def inject_field(
    provider: SecretShape,
    secret_name: str,
    field_name: str,
    target_kind: str,
    target_options: Mapping[str, Any],
) -> InjectionFragment:
    spec = check_field_and_kind(provider, secret_name, field_name, target_kind)  # type: ignore[arg-type]
    return build_fragment(
        secret_name=secret_name,
        field_name=field_name,
        target_kind=target_kind,
        target_options=target_options,
        resource_name=provider.resource_name(secret_name),
        namespace=provider.namespace,
        data_key=spec.key,
        provider_name=provider.name,
    )


__all__ = [
    "MANAGED_BY_LABEL",
    "SecretShape",
    "SECRET_NAME_ANNOTATION",
    "build_fragment",
    "build_secret_manifest",
    "encode_value",
    "inject_field",
    "materialize_secret",
    "resource_name_for",
]
