"""First-matching-pod locator.

Resolves a label selector to one pod to exec into, attach to or read logs
from. Existing pods are listed and ordered; when none exist yet, a watch is
opened at the list's resource version and the call blocks until a pod is
added, the timeout elapses or the caller cancels, whichever comes first.
"""

from __future__ import annotations

import math
import threading
from collections.abc import Callable, Iterator
from concurrent.futures import FIRST_COMPLETED, Future, wait
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any, Protocol

from rollout_ops.integrations.kubernetes.exceptions import (
    KubernetesError,
    KubernetesTimeoutError,
    LocatorCancelledError,
)
from rollout_ops.integrations.kubernetes.models.base import _safe_get
from rollout_ops.integrations.kubernetes.models.selectors import LabelSelector
from rollout_ops.integrations.kubernetes.models.workloads import PodSummary, pod_is_ready
from rollout_ops.services.kubernetes.base import K8sBaseManager
from rollout_ops.services.kubernetes.kind_registry import selector_for_object

if TYPE_CHECKING:
    from rollout_ops.integrations.kubernetes.client import KubernetesClient

PodSortKey = Callable[[Any], Any]

# Extra seconds granted to the server-side watch so the local wait expires first
_WATCH_GRACE_SECONDS = 1


# =============================================================================
# Pod source
# =============================================================================


class PodWatch(Protocol):
    """An open pod change feed."""

    def events(self) -> Iterator[dict[str, Any]]:
        """Yield ``{"type": ..., "object": ...}`` events until closed."""
        ...

    def close(self) -> None:
        """Stop the feed. Safe to call more than once."""
        ...


class PodSource(Protocol):
    """Lists and watches pods."""

    def list(self, namespace: str, label_selector: str) -> tuple[list[Any], str]:
        """Return the matching pods and the list's resource version."""
        ...

    def watch(
        self,
        namespace: str,
        label_selector: str,
        resource_version: str,
        *,
        timeout_seconds: int | None = None,
    ) -> PodWatch:
        """Open a change feed starting after ``resource_version``."""
        ...


class _KubernetesPodWatch:
    def __init__(self, watch: Any, stream: Iterator[dict[str, Any]]) -> None:
        self._watch = watch
        self._stream = stream

    def events(self) -> Iterator[dict[str, Any]]:
        yield from self._stream

    def close(self) -> None:
        self._watch.stop()


class KubernetesPodSource:
    """Pod source backed by ``CoreV1Api`` and ``kubernetes.watch.Watch``."""

    def __init__(self, client: KubernetesClient) -> None:
        self._client = client

    def list(self, namespace: str, label_selector: str) -> tuple[list[Any], str]:
        result = self._client.core_v1.list_namespaced_pod(
            namespace=namespace,
            label_selector=label_selector,
        )
        return list(result.items or []), _safe_get(result, "metadata", "resource_version", default="")

    def watch(
        self,
        namespace: str,
        label_selector: str,
        resource_version: str,
        *,
        timeout_seconds: int | None = None,
    ) -> PodWatch:
        from kubernetes import watch

        kwargs: dict[str, Any] = {
            "namespace": namespace,
            "label_selector": label_selector,
        }
        if resource_version:
            kwargs["resource_version"] = resource_version
        if timeout_seconds is not None:
            # Client-side bound too; Watch.stop() alone may not release the socket
            kwargs["timeout_seconds"] = timeout_seconds
            kwargs["_request_timeout"] = timeout_seconds

        w = watch.Watch()
        stream = w.stream(self._client.core_v1.list_namespaced_pod, **kwargs)
        return _KubernetesPodWatch(w, stream)


# =============================================================================
# Cancellation and results
# =============================================================================


class CancelSignal:
    """Cancellation signal shared between a caller and a blocking lookup.

    ``cancel()`` may be called from any thread, any number of times. The
    signal is a completed future rather than a cancelled one, since
    ``concurrent.futures.wait`` only wakes on completion.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._future: Future[None] = Future()

    def cancel(self) -> None:
        with self._lock:
            if not self._future.done():
                self._future.set_result(None)

    @property
    def cancelled(self) -> bool:
        return self._future.done()

    @property
    def future(self) -> Future[None]:
        return self._future


@dataclass(frozen=True)
class LocatedPod:
    """A located pod and how many pods matched the selector.

    Attributes:
        pod: The pod object as returned by the pod source.
        match_count: Number of pods matching the selector at lookup time
            (1 when the pod arrived through the watch).
    """

    pod: Any
    match_count: int

    @property
    def name(self) -> str:
        return str(_safe_get(self.pod, "metadata", "name", default=""))

    def summary(self) -> PodSummary:
        """Display view of the located pod."""
        return PodSummary.from_k8s_object(self.pod)


# =============================================================================
# Orderings
# =============================================================================

_PHASE_RANK = {"Pending": 0, "Unknown": 1, "Running": 2}


def _epoch(value: Any) -> float | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.timestamp()
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00")).timestamp()
    except ValueError:
        return None


def _ready_since(pod: Any) -> float | None:
    for cond in _safe_get(pod, "status", "conditions") or []:
        if getattr(cond, "type", None) == "Ready" and getattr(cond, "status", None) == "True":
            return _epoch(getattr(cond, "last_transition_time", None))
    return None


def active_pods_first(pod: Any) -> tuple[Any, ...]:
    """Sort key putting the most useful pod to attach to first.

    Scheduled before unscheduled, Running before Unknown before Pending,
    ready before not ready, ready for longer first, fewer container
    restarts first, then older pods first.
    """
    ready_since = _ready_since(pod)
    created = _epoch(_safe_get(pod, "metadata", "creation_timestamp"))
    restarts = [
        getattr(cs, "restart_count", 0) or 0
        for cs in _safe_get(pod, "status", "container_statuses") or []
    ]
    return (
        0 if _safe_get(pod, "spec", "node_name") else 1,
        -_PHASE_RANK.get(_safe_get(pod, "status", "phase", default=""), 0),
        0 if pod_is_ready(pod) else 1,
        ready_since if ready_since is not None else math.inf,
        max(restarts, default=0),
        created if created is not None else math.inf,
    )


def newest_first(pod: Any) -> tuple[bool, float]:
    """Sort key putting the most recently created pod first."""
    created = _epoch(_safe_get(pod, "metadata", "creation_timestamp"))
    return (created is None, -(created or 0.0))


# =============================================================================
# Locator
# =============================================================================


class PodLocator(K8sBaseManager):
    """Finds the first pod matching a selector.

    Example:
        ```python
        locator = PodLocator(client)
        located = locator.locate(LabelSelector.from_set({"app": "web"}), "prod", timeout=30)
        print(located.name, located.match_count)
        ```
    """

    _entity_name = "pod_locator"

    def __init__(self, client: KubernetesClient, source: PodSource | None = None) -> None:
        """Initialize the locator.

        Args:
            client: Kubernetes API client instance.
            source: Pod list/watch provider (defaults to the client's CoreV1Api).
        """
        super().__init__(client)
        self._source: PodSource = source or KubernetesPodSource(client)

    def locate(
        self,
        selector: LabelSelector | str,
        namespace: str | None = None,
        *,
        timeout: float | None = None,
        sort_key: PodSortKey | None = None,
        cancel: CancelSignal | None = None,
    ) -> LocatedPod:
        """Return the first pod matching ``selector``.

        Args:
            selector: Label selector, or an already-rendered selector string.
            namespace: Target namespace (uses default if None).
            timeout: Seconds to wait for a pod when none exists yet
                (defaults to the configured pod wait timeout).
            sort_key: Ordering applied to existing pods (defaults to
                ``active_pods_first``).
            cancel: Signal that aborts the wait when cancelled.

        Returns:
            The chosen pod and the number of matching pods.

        Raises:
            KubernetesTimeoutError: If no pod appeared within ``timeout``.
            LocatorCancelledError: If ``cancel`` fired first.
            KubernetesError: If listing or watching failed.
        """
        ns = self._resolve_namespace(namespace)
        label_selector = str(selector)
        wait_timeout = self._client.pod_wait_timeout if timeout is None else timeout
        self._log.debug("locating_pod", namespace=ns, selector=label_selector)

        items, resource_version = self._list(ns, label_selector)
        if items:
            ordered = sorted(items, key=sort_key or active_pods_first)
            located = LocatedPod(pod=ordered[0], match_count=len(items))
            self._log.debug(
                "located_pod", pod=located.name, namespace=ns, match_count=located.match_count
            )
            return located

        if cancel is not None and cancel.cancelled:
            raise LocatorCancelledError()

        pod = self._wait_for_pod(ns, label_selector, resource_version, wait_timeout, cancel)
        located = LocatedPod(pod=pod, match_count=1)
        self._log.info("observed_pod", pod=located.name, namespace=ns)
        return located

    def locate_for_object(
        self,
        obj: dict[str, Any],
        *,
        timeout: float | None = None,
        sort_key: PodSortKey | None = None,
        cancel: CancelSignal | None = None,
    ) -> LocatedPod:
        """Return the first pod selected by a workload or Service.

        Args:
            obj: Unstructured workload or Service.
            timeout: Seconds to wait for a pod when none exists yet.
            sort_key: Ordering applied to existing pods.
            cancel: Signal that aborts the wait when cancelled.

        Raises:
            KindNotImplementedError: If the kind has no pod selector.
            InvalidSelectorError: If the selector is invalid or empty for a Service.
        """
        namespace, selector = selector_for_object(obj)
        return self.locate(
            selector, namespace, timeout=timeout, sort_key=sort_key, cancel=cancel
        )

    def _list(self, namespace: str, label_selector: str) -> tuple[list[Any], str]:
        @self._client.make_retry_decorator()
        def list_pods() -> tuple[list[Any], str]:
            try:
                return self._source.list(namespace, label_selector)
            except Exception as e:
                self._handle_api_error(e, "Pod", None, namespace)

        return list_pods()

    def _wait_for_pod(
        self,
        namespace: str,
        label_selector: str,
        resource_version: str,
        timeout: float,
        cancel: CancelSignal | None,
    ) -> Any:
        self._log.debug(
            "watching_for_pod",
            namespace=namespace,
            selector=label_selector,
            resource_version=resource_version,
            timeout=timeout,
        )
        try:
            pod_watch = self._source.watch(
                namespace,
                label_selector,
                resource_version,
                timeout_seconds=math.ceil(timeout) + _WATCH_GRACE_SECONDS,
            )
        except Exception as e:
            self._handle_api_error(e, "Pod", None, namespace)

        found: Future[Any] = Future()
        try:
            threading.Thread(
                target=_first_pod_event,
                args=(pod_watch, found),
                name="pod-locator-watch",
                daemon=True,
            ).start()

            waiters: list[Future[Any]] = [found]
            if cancel is not None:
                waiters.append(cancel.future)
            done, _ = wait(waiters, timeout=timeout, return_when=FIRST_COMPLETED)

            if cancel is not None and cancel.cancelled:
                raise LocatorCancelledError()
            if found in done:
                try:
                    return found.result()
                except Exception as e:
                    self._handle_api_error(e, "Pod", None, namespace)
            raise KubernetesTimeoutError(
                f"timed out waiting for a pod matching '{label_selector}' in {namespace}",
                timeout_seconds=timeout,
            )
        finally:
            pod_watch.close()
            self._log.debug("closed_pod_watch", namespace=namespace)


def _first_pod_event(pod_watch: PodWatch, found: Future[Any]) -> None:
    """Complete ``found`` with the first added or modified pod on the feed."""
    try:
        for event in pod_watch.events():
            event_type = event.get("type")
            if event_type in ("ADDED", "MODIFIED"):
                found.set_result(event.get("object"))
                return
            if event_type == "ERROR":
                raise KubernetesError(f"pod watch failed: {_error_message(event)}")
        raise KubernetesError("pod watch closed before a matching pod was observed")
    except Exception as e:
        found.set_exception(e)


def _error_message(event: dict[str, Any]) -> str:
    obj = event.get("raw_object") or event.get("object")
    if isinstance(obj, dict):
        return str(obj.get("message") or obj.get("reason") or obj)
    return str(_safe_get(obj, "message", default=obj))
