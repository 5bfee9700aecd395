"""Single-pass resolution of declared secrets into resources and injection plans.

A pass validates every request and builds its fragment up front, fetches the
referenced fields through the secret's connector, materializes each secret
once and finally rejects conflicting fragments per unit.
Problems found after declaration time never abort the pass: they are
collected as diagnostics so a single run reports all of them.
"""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Tuple

from ..observability.logging import configure_from_settings, run_context
from ..observability.metrics import (
    observe_run,
    record_diagnostic,
    record_fetch,
    record_materialized,
)
from ..settings import SecretPlanSettings, load_settings
from .base import check_field_and_kind, required_fields
from .errors import (
    InjectionConflictError,
    ProviderFailedError,
    ResourceCollisionError,
    SecretPlanError,
    SourceUnavailableError,
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
    ResolvedSecretValue,
    SecretDeclaration,
    SecretState,
)
from .registry import SecretRegistry
from .requests import InjectionRequestSet


logger = logging.getLogger(__name__)

DEFAULT_MAX_CONCURRENCY = 8

_FetchOutcome = ResolvedSecretValue | SecretPlanError
_Planned = Tuple[InjectionRequest, InjectionFragment]


@dataclass
class _Run:
    """Mutable bookkeeping of one pass. Only touched from the event loop thread."""

    secret_states: Dict[str, SecretState] = field(default_factory=dict)
    diagnostics: List[Diagnostic] = field(default_factory=list)

    def report(self, error: SecretPlanError, **context: str | None) -> None:
        diagnostic = error.to_diagnostic(**context)
        self.diagnostics.append(diagnostic)
        record_diagnostic(diagnostic.code)
        logger.warning(
            diagnostic.message,
            extra={
                "diagnostic_code": diagnostic.code,
                "secret_name": diagnostic.context.secret_name,
                "owner_unit_id": diagnostic.context.owner_unit_id,
                "field_name": diagnostic.context.field_name,
            },
        )

    def fail_request(self, request: InjectionRequest, error: SecretPlanError) -> None:
        self.report(
            error,
            secret_name=request.secret_name,
            owner_unit_id=request.owner_unit_id,
            field_name=request.field_name,
        )

    def fail_secret(self, secret_name: str, error: SecretPlanError) -> None:
        self.secret_states[secret_name] = SecretState.FAILED
        self.report(error, secret_name=secret_name)

    def failed(self, secret_name: str) -> bool:
        return self.secret_states.get(secret_name) is SecretState.FAILED


class ResolutionEngine:
    """Resolve an :class:`InjectionRequestSet` against a :class:`SecretRegistry`.

    Connector lookups run concurrently in worker threads, bounded by
    ``max_concurrency``; everything else is pure and runs on the calling task.
    Emitted artifacts are ordered by secret name and request registration
    order, never by completion order.
    """

    def __init__(
        self,
        registry: SecretRegistry,
        *,
        max_concurrency: int | None = None,
        settings: SecretPlanSettings | None = None,
    ) -> None:
        if max_concurrency is None:
            max_concurrency = settings.max_concurrency if settings else DEFAULT_MAX_CONCURRENCY
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self._registry = registry
        self._max_concurrency = max_concurrency

    @classmethod
    def from_settings(
        cls, registry: SecretRegistry, settings: SecretPlanSettings | None = None
    ) -> "ResolutionEngine":
        """Build an engine from settings and install structured logging for it."""

        settings = settings or load_settings()
        configure_from_settings(settings)
        return cls(registry, settings=settings)

    @property
    def registry(self) -> SecretRegistry:
        return self._registry

    def resolve(self, requests: InjectionRequestSet) -> ResolutionResult:
        """Run a full pass synchronously. Use :meth:`resolve_async` inside an event loop."""

        return asyncio.run(self.resolve_async(requests))

    async def resolve_async(self, requests: InjectionRequestSet) -> ResolutionResult:
        self._registry.freeze()
        started = time.perf_counter()
        with run_context():
            logger.info(
                "secret resolution started",
                extra={"requests": len(requests), "units": len(requests.units())},
            )
            try:
                run = _Run(
                    secret_states={
                        declaration.name: SecretState.DECLARED
                        for declaration in self._registry.secrets()
                    }
                )
                valid = self._validate(requests, run)
                values = await self._fetch_all(valid, run)
                resources = self._materialize(values, run)
                plans = self._plan(valid, resources, run, units=requests.units())
            finally:
                observe_run(time.perf_counter() - started)

            result = ResolutionResult(
                materialized_resources=[resources[name] for name in sorted(resources)],
                plans=plans,
                diagnostics=run.diagnostics,
                secret_states=dict(sorted(run.secret_states.items())),
            )
            logger.info(
                "secret resolution finished",
                extra={
                    "success": result.success,
                    "resources": len(result.materialized_resources),
                    "diagnostic_count": len(result.diagnostics),
                },
            )
            return result

    def validate(self, requests: InjectionRequestSet) -> List[Diagnostic]:
        """Check requests, their target options and provider schemas without fetching."""

        run = _Run()
        self._validate(requests, run)
        return run.diagnostics

    def _validate(
        self, requests: Iterable[InjectionRequest], run: _Run
    ) -> Dict[str, List[_Planned]]:
        seen: set[tuple[str, ...]] = set()
        fragments: Dict[tuple[str, str, str, str], InjectionFragment | SecretPlanError] = {}
        by_secret: Dict[str, List[_Planned]] = {}
        for request in sorted(requests, key=lambda item: item.sequence):
            identity = (request.owner_unit_id, *request.signature())
            if identity in seen:
                logger.debug(
                    "duplicate injection request collapsed",
                    extra={"owner_unit_id": request.owner_unit_id, "sequence": request.sequence},
                )
                continue
            seen.add(identity)

            if not self._registry.has_secret(request.secret_name):
                run.fail_request(
                    request,
                    UnknownSecretError(
                        f"Unit '{request.owner_unit_id}' requests undeclared secret "
                        f"'{request.secret_name}'"
                    ),
                )
                continue
            signature = request.signature()
            if signature not in fragments:
                fragments[signature] = self._build_fragment(request)
            outcome = fragments[signature]
            if isinstance(outcome, SecretPlanError):
                run.fail_request(request, outcome)
                continue
            by_secret.setdefault(request.secret_name, []).append((request, outcome))
        return {name: by_secret[name] for name in sorted(by_secret)}

    def _build_fragment(self, request: InjectionRequest) -> InjectionFragment | SecretPlanError:
        """Fragments reference the resource by name only, so they are built before any fetch."""

        declaration = self._registry.secret(request.secret_name)
        provider = self._registry.provider(declaration.provider)
        try:
            check_field_and_kind(
                provider,
                request.secret_name,
                request.field_name,
                request.target_kind,
                provider_id=declaration.provider,
            )
            return provider.build_injection_fragment(
                request.secret_name,
                request.field_name,
                request.target_kind,
                request.target_options,
            )
        except SecretPlanError as exc:
            return exc
        except Exception as exc:
            logger.exception(
                "provider raised an unexpected error while building a fragment",
                extra={"provider": declaration.provider, "secret_name": request.secret_name},
            )
            return _provider_failure(
                declaration.provider, "build an injection fragment for", request.secret_name, exc
            )

    def _fields_to_fetch(
        self, declaration: SecretDeclaration, requests: List[_Planned]
    ) -> List[str]:
        provider = self._registry.provider(declaration.provider)
        wanted = {request.field_name for request, _ in requests}
        if provider.all_or_nothing:
            wanted.update(required_fields(provider))
        return [spec.name for spec in provider.field_schema() if spec.name in wanted]

    async def _fetch_all(
        self, valid: Dict[str, List[_Planned]], run: _Run
    ) -> Dict[str, Dict[str, str]]:
        semaphore = asyncio.Semaphore(self._max_concurrency)
        jobs: List[Tuple[SecretDeclaration, str]] = []
        for name, requests in valid.items():
            declaration = self._registry.secret(name)
            run.secret_states[name] = SecretState.RESOLVING
            jobs.extend(
                (declaration, field_name)
                for field_name in self._fields_to_fetch(declaration, requests)
            )

        outcomes = await asyncio.gather(
            *(self._fetch_one(semaphore, declaration, field_name) for declaration, field_name in jobs)
        )

        values: Dict[str, Dict[str, str]] = {}
        for (declaration, field_name), outcome in zip(jobs, outcomes):
            if isinstance(outcome, SecretPlanError):
                run.fail_secret(declaration.name, outcome)
                continue
            values.setdefault(declaration.name, {})[field_name] = outcome.raw_value

        resolved: Dict[str, Dict[str, str]] = {}
        for name in valid:
            if run.failed(name):
                continue
            run.secret_states[name] = SecretState.RESOLVED
            resolved[name] = values.get(name, {})
        return resolved

    async def _fetch_one(
        self, semaphore: asyncio.Semaphore, declaration: SecretDeclaration, field_name: str
    ) -> _FetchOutcome:
        connector_id = declaration.connector or ""
        connector = self._registry.connector(connector_id)
        options = dict(declaration.connector_options) or None
        async with semaphore:
            try:
                value = await asyncio.to_thread(
                    connector.fetch, declaration.name, field_name, options=options
                )
            except SourceUnavailableError as exc:
                record_fetch(connector_id, "unavailable")
                exc.secret_name = exc.secret_name or declaration.name
                exc.field_name = exc.field_name or field_name
                return exc
            except Exception as exc:
                record_fetch(connector_id, "error")
                logger.exception(
                    "connector raised an unexpected error",
                    extra={"connector": connector_id, "secret_name": declaration.name},
                )
                error = SourceUnavailableError(
                    f"Connector '{connector_id}' failed while fetching "
                    f"'{declaration.name}/{field_name}': {exc}",
                    secret_name=declaration.name,
                    field_name=field_name,
                )
                error.__cause__ = exc
                return error
        if value is None:
            record_fetch(connector_id, "missing")
            return UnresolvedValueError(declaration.name, field_name, connector_id)
        record_fetch(connector_id, "hit")
        return ResolvedSecretValue(declaration.name, field_name, value)

    def _materialize(
        self, values: Dict[str, Dict[str, str]], run: _Run
    ) -> Dict[str, MaterializedSecretResource]:
        resources: Dict[str, MaterializedSecretResource] = {}
        for name in sorted(values):
            declaration = self._registry.secret(name)
            provider = self._registry.provider(declaration.provider)
            try:
                resource = provider.materialize(name, values[name])
            except SecretPlanError as exc:
                run.fail_secret(name, exc)
                continue
            except Exception as exc:
                logger.exception(
                    "provider raised an unexpected error while materializing",
                    extra={"provider": declaration.provider, "secret_name": name},
                )
                run.fail_secret(
                    name, _provider_failure(declaration.provider, "materialize", name, exc)
                )
                continue
            resources[name] = resource
            run.secret_states[name] = SecretState.MATERIALIZED
            record_materialized(declaration.provider)

        identities: Dict[Tuple[str, str], List[str]] = {}
        for name, resource in resources.items():
            identities.setdefault((resource.namespace, resource.resource_name), []).append(name)
        for (namespace, resource_name), names in identities.items():
            if len(names) < 2:
                continue
            for name in names:
                resources.pop(name)
                run.fail_secret(
                    name,
                    ResourceCollisionError(
                        f"Secrets {', '.join(names)} all materialize to "
                        f"'{namespace}/{resource_name}'"
                    ),
                )
        return resources

    def _plan(
        self,
        valid: Dict[str, List[_Planned]],
        resources: Dict[str, MaterializedSecretResource],
        run: _Run,
        *,
        units: List[str],
    ) -> Dict[str, List[InjectionFragment]]:
        planned: List[_Planned] = []
        for name, entries in valid.items():
            if name in resources:
                planned.extend(entries)
                continue
            for request, _ in entries:
                run.fail_request(
                    request,
                    UpstreamSecretFailed(
                        f"Secret '{name}' failed; {request.describe()} for unit "
                        f"'{request.owner_unit_id}' was not planned"
                    ),
                )

        groups: Dict[Tuple[str, str, str], List[_Planned]] = {}
        for request, fragment in planned:
            key = (request.owner_unit_id, fragment.target_kind, fragment.target)
            groups.setdefault(key, []).append((request, fragment))

        plans: Dict[str, List[InjectionFragment]] = {unit: [] for unit in units}
        for (owner_unit_id, _, target), members in groups.items():
            members.sort(key=lambda item: item[0].sequence)
            kept = members[0][1]
            if all(fragment == kept for _, fragment in members):
                plans[owner_unit_id].append(kept)
                continue
            # Every member of a conflicting group is reported once, against a differing member.
            for request, fragment in members:
                other = next(
                    candidate for candidate, candidate_fragment in members
                    if candidate_fragment != fragment
                )
                earlier, later = sorted((request, other), key=lambda item: item.sequence)
                run.fail_request(request, InjectionConflictError(earlier, later, target))
        return {unit: plans[unit] for unit in sorted(plans)}


def _provider_failure(
    provider_id: str, action: str, secret_name: str, exc: Exception
) -> ProviderFailedError:
    error = ProviderFailedError(
        f"Provider '{provider_id}' failed to {action} secret '{secret_name}': {exc}",
        secret_name=secret_name,
    )
    error.__cause__ = exc
    return error


__all__ = ["DEFAULT_MAX_CONCURRENCY", "ResolutionEngine"]
