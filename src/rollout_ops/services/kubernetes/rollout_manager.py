"""Rollout manager.

Reads workloads from the cluster and runs the pure rollout evaluator, pod
locator and resource merger against them. This is the only layer that
fetches objects, retries transient failures, logs and waits.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Iterable
from datetime import datetime
from typing import TYPE_CHECKING, Any

from rollout_ops.integrations.kubernetes.exceptions import (
    KindNotImplementedError,
    KubernetesTimeoutError,
    ProgressDeadlineExceededError,
)
from rollout_ops.integrations.kubernetes.models.base import _get_path
from rollout_ops.integrations.kubernetes.models.identity import GroupKind
from rollout_ops.services.kubernetes.base import K8sBaseManager
from rollout_ops.services.kubernetes.kind_registry import containers_accessor_for, handlers_for
from rollout_ops.services.kubernetes.pod_locator import (
    CancelSignal,
    LocatedPod,
    PodLocator,
    PodSortKey,
    PodSource,
)
from rollout_ops.services.kubernetes.resource_merger import (
    RESTARTED_AT_ANNOTATION,
    restart_object,
    set_resources,
)
from rollout_ops.services.kubernetes.rollout_status import RolloutStatus, evaluate

if TYPE_CHECKING:
    from rollout_ops.integrations.kubernetes.client import KubernetesClient

# Core group kinds are read through typed CoreV1Api calls
_CORE_READERS = {
    "ReplicationController": "read_namespaced_replication_controller",
    "Service": "read_namespaced_service",
}

_DEPLOYMENT_KINDS = {GroupKind("apps", "Deployment"), GroupKind("extensions", "Deployment")}


class RolloutManager(K8sBaseManager):
    """Manager for workload rollouts.

    Example:
        ```python
        manager = RolloutManager(client)
        status = manager.wait_for_rollout("apps/v1", "Deployment", "web", "prod")
        print(status.message)
        ```
    """

    _entity_name = "rollout"

    def __init__(self, client: KubernetesClient, pod_source: PodSource | None = None) -> None:
        """Initialize the manager.

        Args:
            client: Kubernetes API client instance.
            pod_source: Pod list/watch provider for pod lookups.
        """
        super().__init__(client)
        self._locator = PodLocator(client, source=pod_source)

    # =========================================================================
    # Reads
    # =========================================================================

    def get_object(
        self,
        api_version: str,
        kind: str,
        name: str,
        namespace: str | None = None,
    ) -> dict[str, Any]:
        """Read a registered kind as an unstructured object.

        Args:
            api_version: ``group/version`` or ``version`` of the object.
            kind: Kind name.
            name: Object name.
            namespace: Target namespace (uses default if None).

        Returns:
            The object keyed by API field names.

        Raises:
            KindNotImplementedError: If the kind is not registered.
            KubernetesNotFoundError: If the object does not exist.
        """
        identity = GroupKind.from_api_version(api_version, kind)
        plural = handlers_for(identity).plural
        ns = self._resolve_namespace(namespace)
        self._log.debug("getting_object", kind=str(identity), name=name, namespace=ns)

        @self._client.make_retry_decorator()
        def read() -> dict[str, Any]:
            try:
                if identity.group:
                    obj: dict[str, Any] = self._client.custom_objects.get_namespaced_custom_object(
                        group=identity.group,
                        version=identity.version,
                        namespace=ns,
                        plural=plural,
                        name=name,
                    )
                else:
                    reader = _CORE_READERS.get(identity.kind)
                    if reader is None:
                        raise KindNotImplementedError(identity.group, identity.kind, "reader")
                    result = getattr(self._client.core_v1, reader)(name=name, namespace=ns)
                    obj = self._client.to_dict(result)
            except Exception as e:
                self._handle_api_error(e, kind, name, ns)
            obj.setdefault("apiVersion", api_version)
            obj.setdefault("kind", kind)
            return obj

        return read()

    def get_status(
        self,
        api_version: str,
        kind: str,
        name: str,
        namespace: str | None = None,
        revision: int = 0,
    ) -> RolloutStatus:
        """Read an object and evaluate its rollout status once.

        Args:
            api_version: ``group/version`` of the object.
            kind: Kind name.
            name: Object name.
            namespace: Target namespace (uses default if None).
            revision: Revision expected to be rolling out (0 for any).

        Returns:
            Current rollout progress.
        """
        obj = self.get_object(api_version, kind, name, namespace)
        status = evaluate(obj, revision)
        self._log.debug(
            "rollout_status_evaluated",
            kind=kind,
            name=name,
            namespace=self._resolve_namespace(namespace),
            done=status.done,
            message=status.message,
        )
        return status

    def wait_for_rollout(
        self,
        api_version: str,
        kind: str,
        name: str,
        namespace: str | None = None,
        *,
        revision: int = 0,
        timeout: float | None = None,
        poll_interval: float | None = None,
        on_status: Callable[[RolloutStatus], None] | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> RolloutStatus:
        """Poll an object until its rollout is done.

        Args:
            api_version: ``group/version`` of the object.
            kind: Kind name.
            name: Object name.
            namespace: Target namespace (uses default if None).
            revision: Revision expected to be rolling out (0 for any).
            timeout: Seconds to wait (defaults to the configured timeout).
            poll_interval: Seconds between reads (defaults to the configured interval).
            on_status: Called with every status whose message changed.
            sleep: Sleep function, replaceable in tests.
            clock: Monotonic clock, replaceable in tests.

        Returns:
            The final, done status.

        Raises:
            ProgressDeadlineExceededError: If a Deployment stopped progressing.
            KubernetesTimeoutError: If the rollout did not finish in time.
        """
        ns = self._resolve_namespace(namespace)
        limit = self._client.timeout if timeout is None else timeout
        interval = self._client.poll_interval if poll_interval is None else poll_interval
        deadline = clock() + limit
        identity = GroupKind.from_api_version(api_version, kind)
        self._log.info("waiting_for_rollout", kind=kind, name=name, namespace=ns, timeout=limit)

        last_message: str | None = None
        while True:
            obj = self.get_object(api_version, kind, name, ns)
            if identity in _DEPLOYMENT_KINDS and _progress_deadline_exceeded(obj):
                self._log.warning("rollout_progress_deadline_exceeded", name=name, namespace=ns)
                raise ProgressDeadlineExceededError(name, ns)

            status = evaluate(obj, revision)
            if status.message != last_message:
                last_message = status.message
                self._log.debug(
                    "rollout_status_evaluated",
                    kind=kind,
                    name=name,
                    namespace=ns,
                    done=status.done,
                    message=status.message,
                )
                if on_status is not None:
                    on_status(status)
            if status.done:
                self._log.info("rollout_complete", kind=kind, name=name, namespace=ns)
                return status

            remaining = deadline - clock()
            if remaining <= 0:
                raise KubernetesTimeoutError(
                    f"timed out waiting for {kind} {name!r} in {ns}: {status.message}",
                    timeout_seconds=limit,
                )
            sleep(min(interval, remaining))

    def first_pod_for(
        self,
        api_version: str,
        kind: str,
        name: str,
        namespace: str | None = None,
        *,
        timeout: float | None = None,
        sort_key: PodSortKey | None = None,
        cancel: CancelSignal | None = None,
    ) -> LocatedPod:
        """Locate the first pod selected by a workload or Service.

        Args:
            api_version: ``group/version`` of the object.
            kind: Kind name.
            name: Object name.
            namespace: Target namespace (uses default if None).
            timeout: Seconds to wait when no pod exists yet.
            sort_key: Ordering applied to existing pods.
            cancel: Signal that aborts the wait when cancelled.
        """
        obj = self.get_object(api_version, kind, name, namespace)
        obj.setdefault("metadata", {}).setdefault("namespace", self._resolve_namespace(namespace))
        return self._locator.locate_for_object(
            obj, timeout=timeout, sort_key=sort_key, cancel=cancel
        )

    # =========================================================================
    # Patch builders
    # =========================================================================

    def resources_patch(
        self,
        obj: dict[str, Any],
        patterns: Iterable[str],
        limits: dict[str, str] | None = None,
        requests: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        """Build a merge patch setting container resources on ``obj``.

        Returns:
            Patch body holding the full updated container list.
        """
        accessor = containers_accessor_for(GroupKind.of(obj))
        updated = set_resources(obj, patterns, limits, requests)
        containers = _get_path(accessor.template(updated), "spec", "containers", default=[])
        self._log.debug(
            "built_resources_patch",
            kind=obj.get("kind"),
            name=_get_path(obj, "metadata", "name"),
            containers=len(containers),
        )
        return _nest(accessor.path, {"spec": {"containers": containers}})

    def restart_patch(self, obj: dict[str, Any], now: datetime | None = None) -> dict[str, Any]:
        """Build a merge patch that restarts every pod of ``obj``."""
        identity = GroupKind.of(obj)
        accessor = containers_accessor_for(identity)
        template = accessor.template(restart_object(obj, now))
        if handlers_for(identity).env_restart:
            body = {"spec": {"containers": _get_path(template, "spec", "containers", default=[])}}
        else:
            annotation = _get_path(template, "metadata", "annotations", RESTARTED_AT_ANNOTATION)
            body = {"metadata": {"annotations": {RESTARTED_AT_ANNOTATION: annotation}}}
        self._log.info(
            "built_restart_patch",
            kind=obj.get("kind"),
            name=_get_path(obj, "metadata", "name"),
        )
        return _nest(accessor.path, body)


def _nest(path: tuple[str, ...], leaf: dict[str, Any]) -> dict[str, Any]:
    patch = leaf
    for key in reversed(path):
        patch = {key: patch}
    return patch


def _progress_deadline_exceeded(obj: dict[str, Any]) -> bool:
    # A stale condition from before the latest spec change is not terminal
    generation = _get_path(obj, "metadata", "generation", default=0)
    if _get_path(obj, "status", "observedGeneration", default=0) < generation:
        return False
    for cond in _get_path(obj, "status", "conditions", default=[]):
        if cond.get("type") == "Progressing":
            return cond.get("reason") == "ProgressDeadlineExceeded"
    return False
