"""Collection of injection requests declared by deployment units.

Units declare what they need through a small builder::

    requests = InjectionRequestSet()
    app = requests.for_unit("api-service")
    app.secret("API_CREDENTIALS").field("username").inject("env", name="API_USERNAME")
    app.secret("API_CREDENTIALS").field("password").inject("env", name="API_PASSWORD")
"""
from __future__ import annotations

import itertools
from typing import Any, Iterator, List

from .models import InjectionRequest


class InjectionRequestSet:
    """Accumulates requests across units, numbering them in registration order."""

    def __init__(self) -> None:
        self._requests: List[InjectionRequest] = []
        self._counter = itertools.count()

    def add(
        self,
        owner_unit_id: str,
        secret_name: str,
        field_name: str,
        target_kind: str,
        **target_options: Any,
    ) -> InjectionRequest:
        if not owner_unit_id:
            raise ValueError("owner unit id must not be empty")
        if not secret_name or not field_name:
            raise ValueError("secret and field names must not be empty")
        request = InjectionRequest(
            secret_name=secret_name,
            field_name=field_name,
            owner_unit_id=owner_unit_id,
            target_kind=target_kind,
            target_options=dict(target_options),
            sequence=next(self._counter),
        )
        self._requests.append(request)
        return request

    def for_unit(self, owner_unit_id: str) -> "UnitInjections":
        return UnitInjections(self, owner_unit_id)

    def units(self) -> List[str]:
        return sorted({request.owner_unit_id for request in self._requests})

    def secret_names(self) -> List[str]:
        return sorted({request.secret_name for request in self._requests})

    def __iter__(self) -> Iterator[InjectionRequest]:
        return iter(list(self._requests))

    def __len__(self) -> int:
        return len(self._requests)


class UnitInjections:
    """Per-unit view used by the composition layer."""

    def __init__(self, request_set: InjectionRequestSet, owner_unit_id: str) -> None:
        self._request_set = request_set
        self.owner_unit_id = owner_unit_id

    def secret(self, secret_name: str) -> "SecretInjection":
        return SecretInjection(self, secret_name)

    def inject(
        self, secret_name: str, field_name: str, target_kind: str, **target_options: Any
    ) -> InjectionRequest:
        return self._request_set.add(
            self.owner_unit_id, secret_name, field_name, target_kind, **target_options
        )


class SecretInjection:
    def __init__(self, unit: UnitInjections, secret_name: str) -> None:
        self._unit = unit
        self.secret_name = secret_name

    def field(self, field_name: str) -> "FieldInjection":
        return FieldInjection(self._unit, self.secret_name, field_name)


class FieldInjection:
    def __init__(self, unit: UnitInjections, secret_name: str, field_name: str) -> None:
        self._unit = unit
        self.secret_name = secret_name
        self.field_name = field_name

    def inject(self, target_kind: str, **target_options: Any) -> InjectionRequest:
        return self._unit.inject(self.secret_name, self.field_name, target_kind, **target_options)


__all__ = [
    "FieldInjection",
    "InjectionRequestSet",
    "SecretInjection",
    "UnitInjections",
]
