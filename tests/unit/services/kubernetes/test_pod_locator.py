"""Unit tests for PodLocator."""

from __future__ import annotations

import threading
import time
from collections.abc import Iterator
from datetime import UTC, datetime, timedelta
from types import SimpleNamespace
from typing import Any
from unittest.mock import MagicMock, patch

import pytest
from kubernetes.client import ApiException

from rollout_ops.integrations.kubernetes.exceptions import (
    InvalidSelectorError,
    KubernetesAuthError,
    KubernetesError,
    KubernetesTimeoutError,
    LocatorCancelledError,
)
from rollout_ops.integrations.kubernetes.models.selectors import LabelSelector
from rollout_ops.services.kubernetes.pod_locator import (
    CancelSignal,
    KubernetesPodSource,
    LocatedPod,
    PodLocator,
    active_pods_first,
    newest_first,
)

NOW = datetime(2026, 1, 1, tzinfo=UTC)


def make_pod(
    name: str,
    *,
    phase: str = "Running",
    node: str | None = "node-1",
    ready: bool = True,
    ready_since: datetime | None = None,
    restarts: int = 0,
    created: datetime | None = NOW,
) -> SimpleNamespace:
    """Build a pod shaped like a kubernetes V1Pod."""
    conditions = [
        SimpleNamespace(
            type="Ready",
            status="True" if ready else "False",
            last_transition_time=ready_since or created,
        )
    ]
    return SimpleNamespace(
        metadata=SimpleNamespace(
            name=name,
            namespace="default",
            uid=f"uid-{name}",
            creation_timestamp=created,
            labels={"app": "web"},
        ),
        spec=SimpleNamespace(node_name=node),
        status=SimpleNamespace(
            phase=phase,
            conditions=conditions,
            container_statuses=[
                SimpleNamespace(name="app", ready=ready, restart_count=restarts, state=None)
            ],
        ),
    )


class FakeWatch:
    """Pod watch that yields scripted events, then optionally blocks until closed."""

    def __init__(self, events: list[dict[str, Any]], block: bool) -> None:
        self._events = events
        self._block = block
        self._closed = threading.Event()
        self.close_calls = 0

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def events(self) -> Iterator[dict[str, Any]]:
        yield from self._events
        if self._block:
            self._closed.wait(timeout=10)

    def close(self) -> None:
        self.close_calls += 1
        self._closed.set()


class FakePodSource:
    """Pod source serving a fixed list and a scripted watch."""

    def __init__(
        self,
        pods: list[Any] | None = None,
        resource_version: str = "100",
        events: list[dict[str, Any]] | None = None,
        block: bool = False,
    ) -> None:
        self.pods = pods or []
        self.resource_version = resource_version
        self.watch_instance = FakeWatch(events or [], block)
        self.list_calls: list[tuple[str, str]] = []
        self.watch_calls: list[dict[str, Any]] = []

    def list(self, namespace: str, label_selector: str) -> tuple[list[Any], str]:
        self.list_calls.append((namespace, label_selector))
        return self.pods, self.resource_version

    def watch(
        self,
        namespace: str,
        label_selector: str,
        resource_version: str,
        *,
        timeout_seconds: int | None = None,
    ) -> FakeWatch:
        self.watch_calls.append(
            {
                "namespace": namespace,
                "label_selector": label_selector,
                "resource_version": resource_version,
                "timeout_seconds": timeout_seconds,
            }
        )
        return self.watch_instance


SELECTOR = LabelSelector.from_set({"app": "web"})


@pytest.mark.unit
@pytest.mark.kubernetes
class TestLocateExistingPods:
    """Tests for the list path."""

    def test_returns_first_pod_without_watching(self, mock_k8s_client: MagicMock) -> None:
        """Should pick from existing pods and never open a watch."""
        source = FakePodSource(pods=[make_pod("a"), make_pod("b")])
        locator = PodLocator(mock_k8s_client, source=source)

        located = locator.locate(SELECTOR, "prod", timeout=1)

        assert located.match_count == 2
        assert located.name in ("a", "b")
        assert source.list_calls == [("prod", "app=web")]
        assert source.watch_calls == []

    def test_default_namespace(self, mock_k8s_client: MagicMock) -> None:
        """Should fall back to the client's namespace."""
        source = FakePodSource(pods=[make_pod("a")])
        locator = PodLocator(mock_k8s_client, source=source)

        locator.locate("app=web")

        assert source.list_calls == [("default", "app=web")]

    def test_active_pods_first_prefers_running_ready(self, mock_k8s_client: MagicMock) -> None:
        """Default ordering should prefer a ready running pod."""
        source = FakePodSource(
            pods=[
                make_pod("pending", phase="Pending", node=None, ready=False),
                make_pod("not-ready", ready=False),
                make_pod("ready"),
            ]
        )
        locator = PodLocator(mock_k8s_client, source=source)

        assert locator.locate(SELECTOR).name == "ready"

    def test_custom_ordering(self, mock_k8s_client: MagicMock) -> None:
        """A caller-supplied ordering should decide the pod."""
        source = FakePodSource(
            pods=[
                make_pod("old", created=NOW - timedelta(hours=1)),
                make_pod("new", created=NOW),
            ]
        )
        locator = PodLocator(mock_k8s_client, source=source)

        located = locator.locate(SELECTOR, sort_key=newest_first)

        assert located.name == "new"
        assert located.match_count == 2

    def test_list_error_translated(self, mock_k8s_client: MagicMock) -> None:
        """API errors from the list call should be translated."""
        source = MagicMock()
        source.list.side_effect = ApiException(status=403, reason="Forbidden")
        locator = PodLocator(mock_k8s_client, source=source)

        with pytest.raises(KubernetesAuthError):
            locator.locate(SELECTOR)

        source.watch.assert_not_called()


@pytest.mark.unit
@pytest.mark.kubernetes
class TestLocateWatch:
    """Tests for the watch path."""

    def test_returns_added_pod(self, mock_k8s_client: MagicMock) -> None:
        """Should return the first added pod with a match count of 1."""
        pod = make_pod("fresh")
        source = FakePodSource(events=[{"type": "ADDED", "object": pod}], block=True)
        locator = PodLocator(mock_k8s_client, source=source)

        located = locator.locate(SELECTOR, "prod", timeout=2.5)

        assert located == LocatedPod(pod=pod, match_count=1)
        assert source.watch_calls == [
            {
                "namespace": "prod",
                "label_selector": "app=web",
                "resource_version": "100",
                "timeout_seconds": 4,
            }
        ]
        assert source.watch_instance.closed

    def test_skips_deleted_events(self, mock_k8s_client: MagicMock) -> None:
        """Deleted pods should not satisfy the lookup."""
        pod = make_pod("second")
        source = FakePodSource(
            events=[
                {"type": "DELETED", "object": make_pod("gone")},
                {"type": "MODIFIED", "object": pod},
            ]
        )
        locator = PodLocator(mock_k8s_client, source=source)

        assert locator.locate(SELECTOR, timeout=2).pod is pod

    def test_default_timeout_from_client(self, mock_k8s_client: MagicMock) -> None:
        """Should size the server-side watch from the configured wait timeout."""
        source = FakePodSource(events=[{"type": "ADDED", "object": make_pod("a")}])
        locator = PodLocator(mock_k8s_client, source=source)

        locator.locate(SELECTOR)

        assert source.watch_calls[0]["timeout_seconds"] == 6

    def test_timeout(self, mock_k8s_client: MagicMock) -> None:
        """Should raise KubernetesTimeoutError soon after the timeout."""
        source = FakePodSource(block=True)
        locator = PodLocator(mock_k8s_client, source=source)

        start = time.monotonic()
        with pytest.raises(KubernetesTimeoutError) as exc_info:
            locator.locate(SELECTOR, timeout=0.2)
        elapsed = time.monotonic() - start

        assert elapsed < 2.0
        assert exc_info.value.timeout_seconds == 0.2
        assert source.watch_instance.closed

    def test_cancel_while_waiting(self, mock_k8s_client: MagicMock) -> None:
        """Cancelling from another thread should end the wait."""
        source = FakePodSource(block=True)
        locator = PodLocator(mock_k8s_client, source=source)
        cancel = CancelSignal()
        timer = threading.Timer(0.1, cancel.cancel)
        timer.start()

        start = time.monotonic()
        try:
            with pytest.raises(LocatorCancelledError):
                locator.locate(SELECTOR, timeout=10, cancel=cancel)
        finally:
            timer.cancel()

        assert time.monotonic() - start < 5
        assert source.watch_instance.closed

    def test_cancelled_before_watch(self, mock_k8s_client: MagicMock) -> None:
        """An already-cancelled signal should not open a watch."""
        source = FakePodSource(block=True)
        locator = PodLocator(mock_k8s_client, source=source)
        cancel = CancelSignal()
        cancel.cancel()

        with pytest.raises(LocatorCancelledError):
            locator.locate(SELECTOR, timeout=10, cancel=cancel)

        assert source.watch_calls == []

    def test_cancel_ignored_when_pods_exist(self, mock_k8s_client: MagicMock) -> None:
        """Existing pods are returned even if the signal already fired."""
        source = FakePodSource(pods=[make_pod("a")])
        locator = PodLocator(mock_k8s_client, source=source)
        cancel = CancelSignal()
        cancel.cancel()

        assert locator.locate(SELECTOR, cancel=cancel).name == "a"

    def test_error_event(self, mock_k8s_client: MagicMock) -> None:
        """A watch ERROR event should raise and close the watch."""
        source = FakePodSource(
            events=[{"type": "ERROR", "object": {"message": "too old resource version"}}]
        )
        locator = PodLocator(mock_k8s_client, source=source)

        with pytest.raises(KubernetesError, match="too old resource version"):
            locator.locate(SELECTOR, timeout=2)

        assert source.watch_instance.closed

    def test_stream_closed_early(self, mock_k8s_client: MagicMock) -> None:
        """A feed ending without a pod should raise."""
        source = FakePodSource(events=[])
        locator = PodLocator(mock_k8s_client, source=source)

        with pytest.raises(KubernetesError, match="closed before a matching pod"):
            locator.locate(SELECTOR, timeout=2)

        assert source.watch_instance.close_calls == 1

    def test_watch_open_error_translated(self, mock_k8s_client: MagicMock) -> None:
        """Errors opening the watch should be translated."""
        source = MagicMock()
        source.list.return_value = ([], "5")
        source.watch.side_effect = ApiException(status=401, reason="Unauthorized")
        locator = PodLocator(mock_k8s_client, source=source)

        with pytest.raises(KubernetesAuthError):
            locator.locate(SELECTOR, timeout=1)


@pytest.mark.unit
@pytest.mark.kubernetes
class TestLocateForObject:
    """Tests for locating pods through a workload."""

    def test_uses_object_selector_and_namespace(self, mock_k8s_client: MagicMock) -> None:
        """Should list with the workload's selector in its namespace."""
        source = FakePodSource(pods=[make_pod("a")])
        locator = PodLocator(mock_k8s_client, source=source)
        obj = {
            "apiVersion": "apps/v1",
            "kind": "Deployment",
            "metadata": {"name": "web", "namespace": "prod"},
            "spec": {"selector": {"matchLabels": {"app": "web", "tier": "front"}}},
        }

        locator.locate_for_object(obj)

        assert source.list_calls == [("prod", "app=web,tier=front")]

    def test_service_without_selector(self, mock_k8s_client: MagicMock) -> None:
        """Should raise before listing when a Service has no selector."""
        source = FakePodSource()
        locator = PodLocator(mock_k8s_client, source=source)
        obj = {"apiVersion": "v1", "kind": "Service", "metadata": {"name": "ext"}, "spec": {}}

        with pytest.raises(InvalidSelectorError):
            locator.locate_for_object(obj)

        assert source.list_calls == []


@pytest.mark.unit
@pytest.mark.kubernetes
class TestOrderings:
    """Tests for pod orderings."""

    def test_active_pods_first(self) -> None:
        """Should rank scheduled, running, ready, long-ready, stable, old pods first."""
        pods = [
            make_pod("unscheduled", node=None, phase="Pending", ready=False),
            make_pod("pending", phase="Pending", ready=False),
            make_pod("unknown", phase="Unknown", ready=False),
            make_pod("running-not-ready", ready=False),
            make_pod("restarting", restarts=3, ready_since=NOW - timedelta(hours=2)),
            make_pod("ready-recently", ready_since=NOW),
            make_pod("ready-long", ready_since=NOW - timedelta(hours=2)),
        ]

        ordered = [p.metadata.name for p in sorted(pods, key=active_pods_first)]

        assert ordered == [
            "ready-long",
            "restarting",
            "ready-recently",
            "running-not-ready",
            "unknown",
            "pending",
            "unscheduled",
        ]

    def test_older_pod_wins_tie(self) -> None:
        """Otherwise identical pods should prefer the older one."""
        older = make_pod("older", created=NOW - timedelta(days=1), ready_since=NOW)
        newer = make_pod("newer", created=NOW, ready_since=NOW)

        assert sorted([newer, older], key=active_pods_first)[0] is older

    def test_newest_first_missing_timestamp_last(self) -> None:
        """Pods without a creation timestamp should sort last."""
        pods = [
            make_pod("none", created=None, ready_since=NOW),
            make_pod("old", created=NOW - timedelta(days=1)),
            make_pod("new", created=NOW),
        ]

        ordered = [p.metadata.name for p in sorted(pods, key=newest_first)]

        assert ordered == ["new", "old", "none"]

    def test_string_timestamps(self) -> None:
        """RFC 3339 strings should order like datetimes."""
        old = make_pod("old", created=None)
        old.metadata.creation_timestamp = "2025-01-01T00:00:00Z"
        new = make_pod("new", created=None)
        new.metadata.creation_timestamp = "2025-06-01T00:00:00Z"

        assert sorted([old, new], key=newest_first)[0] is new


@pytest.mark.unit
@pytest.mark.kubernetes
class TestCancelSignal:
    """Tests for CancelSignal."""

    def test_cancel_is_idempotent(self) -> None:
        """Cancelling twice should keep the signal cancelled."""
        cancel = CancelSignal()
        assert not cancel.cancelled

        cancel.cancel()
        cancel.cancel()

        assert cancel.cancelled
        assert cancel.future.done()


@pytest.mark.unit
@pytest.mark.kubernetes
class TestLocatedPod:
    """Tests for LocatedPod."""

    def test_summary(self) -> None:
        """Should build a display summary of the pod."""
        located = LocatedPod(pod=make_pod("a", restarts=2), match_count=3)

        summary = located.summary()

        assert summary.name == "a"
        assert summary.ready is True
        assert summary.restarts == 2
        assert summary.phase == "Running"


@pytest.mark.unit
@pytest.mark.kubernetes
class TestKubernetesPodSource:
    """Tests for the CoreV1Api-backed pod source."""

    def test_list_returns_items_and_resource_version(self, mock_k8s_client: MagicMock) -> None:
        """Should list by selector and report the list's resource version."""
        pod = make_pod("a")
        mock_k8s_client.core_v1.list_namespaced_pod.return_value = SimpleNamespace(
            items=[pod], metadata=SimpleNamespace(resource_version="4711")
        )

        items, resource_version = KubernetesPodSource(mock_k8s_client).list("prod", "app=web")

        assert items == [pod]
        assert resource_version == "4711"
        mock_k8s_client.core_v1.list_namespaced_pod.assert_called_once_with(
            namespace="prod", label_selector="app=web"
        )

    def test_list_without_items(self, mock_k8s_client: MagicMock) -> None:
        """Should tolerate a null item list and missing metadata."""
        mock_k8s_client.core_v1.list_namespaced_pod.return_value = SimpleNamespace(
            items=None, metadata=None
        )

        assert KubernetesPodSource(mock_k8s_client).list("prod", "app=web") == ([], "")

    @patch("kubernetes.watch.Watch")
    def test_watch_forwards_bounds(
        self, mock_watch_cls: MagicMock, mock_k8s_client: MagicMock
    ) -> None:
        """Should resume from the resource version with server and client bounds."""
        pod = make_pod("fresh")
        mock_watch = mock_watch_cls.return_value
        mock_watch.stream.return_value = iter([{"type": "ADDED", "object": pod}])

        pod_watch = KubernetesPodSource(mock_k8s_client).watch(
            "prod", "app=web", "100", timeout_seconds=6
        )

        mock_watch.stream.assert_called_once_with(
            mock_k8s_client.core_v1.list_namespaced_pod,
            namespace="prod",
            label_selector="app=web",
            resource_version="100",
            timeout_seconds=6,
            _request_timeout=6,
        )
        assert list(pod_watch.events()) == [{"type": "ADDED", "object": pod}]

    @patch("kubernetes.watch.Watch")
    def test_watch_omits_empty_resource_version(
        self, mock_watch_cls: MagicMock, mock_k8s_client: MagicMock
    ) -> None:
        """Should not send an empty resource version or unset bounds."""
        mock_watch_cls.return_value.stream.return_value = iter([])

        KubernetesPodSource(mock_k8s_client).watch("prod", "app=web", "")

        mock_watch_cls.return_value.stream.assert_called_once_with(
            mock_k8s_client.core_v1.list_namespaced_pod,
            namespace="prod",
            label_selector="app=web",
        )

    @patch("kubernetes.watch.Watch")
    def test_close_stops_watch(self, mock_watch_cls: MagicMock, mock_k8s_client: MagicMock) -> None:
        """Closing the feed should stop the underlying watch."""
        mock_watch_cls.return_value.stream.return_value = iter([])

        pod_watch = KubernetesPodSource(mock_k8s_client).watch("prod", "app=web", "1")
        pod_watch.close()

        mock_watch_cls.return_value.stop.assert_called_once_with()

    @patch("kubernetes.watch.Watch")
    def test_locator_over_kubernetes_source(
        self, mock_watch_cls: MagicMock, mock_k8s_client: MagicMock
    ) -> None:
        """The locator should list, then watch from the list's resource version."""
        pod = make_pod("fresh")
        mock_k8s_client.core_v1.list_namespaced_pod.return_value = SimpleNamespace(
            items=[], metadata=SimpleNamespace(resource_version="42")
        )
        mock_watch = mock_watch_cls.return_value
        mock_watch.stream.return_value = iter([{"type": "ADDED", "object": pod}])

        located = PodLocator(mock_k8s_client).locate(SELECTOR, "prod", timeout=2)

        assert located == LocatedPod(pod=pod, match_count=1)
        assert mock_watch.stream.call_args.kwargs["resource_version"] == "42"
        assert mock_watch.stream.call_args.kwargs["timeout_seconds"] == 3
        mock_watch.stop.assert_called_once_with()
