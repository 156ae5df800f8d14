"""Container resource and environment merging.

Computes updated container specs for ``set resources`` and ``rollout
restart`` style edits. Everything here is pure: inputs are never mutated and
new containers or objects are returned for the caller to persist.
"""

from __future__ import annotations

import fnmatch
from collections.abc import Iterable, Sequence
from datetime import UTC, datetime
from typing import Any

from rollout_ops.integrations.kubernetes.exceptions import KubernetesValidationError
from rollout_ops.integrations.kubernetes.models.identity import GroupKind
from rollout_ops.integrations.kubernetes.models.workloads import (
    Container,
    EnvVar,
    ResourceRequirements,
)
from rollout_ops.services.kubernetes.kind_registry import containers_accessor_for, handlers_for

RESTARTED_ENV = "RESTARTED_AT"
RESTARTED_AT_ANNOTATION = "kubectl.kubernetes.io/restartedAt"

WILDCARD = "*"


def parse_resource_list(spec: str | None) -> dict[str, str]:
    """Parse ``"cpu=200m,memory=512Mi"`` into a resource list.

    Args:
        spec: Comma separated ``name=quantity`` pairs; empty means no change.

    Returns:
        Mapping of resource name to quantity string.

    Raises:
        KubernetesValidationError: If a pair or quantity is malformed.
    """
    from kubernetes.utils import parse_quantity

    resources: dict[str, str] = {}
    if not spec:
        return resources
    for pair in spec.split(","):
        name, sep, quantity = pair.partition("=")
        name, quantity = name.strip(), quantity.strip()
        if not sep or not name or not quantity:
            raise KubernetesValidationError(
                f"invalid resource specification {pair!r}, expected <name>=<quantity>",
                validation_errors={pair: "expected <name>=<quantity>"},
                status_code=None,
            )
        try:
            parse_quantity(quantity)
        except ValueError as e:
            raise KubernetesValidationError(
                f"invalid quantity {quantity!r} for resource {name!r}",
                validation_errors={name: str(e)},
                status_code=None,
            ) from e
        resources[name] = quantity
    return resources


def _matches(name: str, patterns: Iterable[str]) -> bool:
    return any(p == WILDCARD or fnmatch.fnmatchcase(name, p) for p in patterns)


def merge_resources(
    containers: Sequence[Container],
    patterns: Iterable[str],
    limits: dict[str, str] | None = None,
    requests: dict[str, str] | None = None,
) -> list[Container]:
    """Overwrite resource quantities on the containers matching any pattern.

    Only the dimensions present in ``limits`` or ``requests`` are written;
    every other dimension already set on a container is kept.

    Args:
        containers: Containers in template order.
        patterns: Container name patterns; ``*`` matches every container.
        limits: Limits to set, keyed by resource name.
        requests: Requests to set, keyed by resource name.

    Returns:
        New container list in the same order.
    """
    patterns = list(patterns)
    merged: list[Container] = []
    for container in containers:
        if not _matches(container.name, patterns):
            merged.append(container.model_copy(deep=True))
            continue
        current = container.resources or ResourceRequirements()
        resources = current.model_copy(
            update={
                "limits": _merge_quantities(current.limits, limits),
                "requests": _merge_quantities(current.requests, requests),
            }
        )
        merged.append(container.model_copy(update={"resources": resources}, deep=True))
    return merged


def _merge_quantities(
    current: dict[str, Any] | None, updates: dict[str, str] | None
) -> dict[str, Any] | None:
    if not updates:
        return dict(current) if current is not None else None
    return {**(current or {}), **updates}


def update_env(
    existing: Sequence[EnvVar],
    upserts: Sequence[EnvVar],
    removals: Iterable[str] = (),
) -> list[EnvVar]:
    """Reconcile a container's environment.

    Removed names are dropped first. Existing entries named by an upsert are
    replaced in place, then the remaining upserts are appended in order. A
    name only ever appears once among the replaced and appended entries, and
    the first upsert for a name wins.

    Args:
        existing: Current environment in order.
        upserts: Variables to add or replace.
        removals: Names to remove.

    Returns:
        The reconciled environment.
    """
    covered = set(removals)
    first_upserts: dict[str, EnvVar] = {}
    for env in upserts:
        first_upserts.setdefault(env.name, env)

    out: list[EnvVar] = []
    for env in existing:
        if env.name in covered:
            continue
        newer = first_upserts.get(env.name)
        if newer is not None:
            covered.add(env.name)
            out.append(newer.model_copy(deep=True))
            continue
        out.append(env.model_copy(deep=True))

    for env in upserts:
        if env.name in covered:
            continue
        covered.add(env.name)
        out.append(env.model_copy(deep=True))
    return out


def restart_timestamp(now: datetime | None = None) -> str:
    """Render ``now`` (default: current time) as an RFC 3339 UTC timestamp."""
    now = now or datetime.now(UTC)
    if now.tzinfo is None:
        now = now.replace(tzinfo=UTC)
    return now.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


def update_restart_env(
    containers: Sequence[Container], now: datetime | None = None
) -> list[Container]:
    """Upsert the ``RESTARTED_AT`` marker into every container.

    Changing the marker changes the pod template, which makes controllers
    that restart pods in place (OpenKruise) roll every pod.
    """
    marker = EnvVar(name=RESTARTED_ENV, value=restart_timestamp(now))
    return [
        c.model_copy(update={"env": update_env(c.env or [], [marker])}, deep=True)
        for c in containers
    ]


def set_resources(
    obj: dict[str, Any],
    patterns: Iterable[str],
    limits: dict[str, str] | None = None,
    requests: dict[str, str] | None = None,
) -> dict[str, Any]:
    """Return a copy of ``obj`` with resources merged into its pod template.

    Raises:
        KindNotImplementedError: If the kind carries no pod template.
        TypeConversionError: If the containers are malformed.
    """
    accessor = containers_accessor_for(GroupKind.of(obj))
    containers = merge_resources(accessor.containers(obj), patterns, limits, requests)
    return accessor.with_containers(obj, containers)


def restart_object(obj: dict[str, Any], now: datetime | None = None) -> dict[str, Any]:
    """Return a copy of ``obj`` whose pod template forces a rolling restart.

    OpenKruise kinds get the ``RESTARTED_AT`` env marker on every container;
    every other kind gets the ``kubectl.kubernetes.io/restartedAt`` template
    annotation.

    Raises:
        KindNotImplementedError: If the kind carries no pod template.
    """
    identity = GroupKind.of(obj)
    accessor = containers_accessor_for(identity)
    if handlers_for(identity).env_restart:
        return accessor.with_containers(obj, update_restart_env(accessor.containers(obj), now))
    return accessor.with_template_annotations(
        obj, {RESTARTED_AT_ANNOTATION: restart_timestamp(now)}
    )
