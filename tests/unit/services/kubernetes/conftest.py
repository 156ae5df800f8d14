"""Shared fixtures for Kubernetes service tests."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any
from unittest.mock import MagicMock

import pytest

from rollout_ops.integrations.kubernetes.client import KubernetesClient


@pytest.fixture
def mock_k8s_client() -> MagicMock:
    """Create a mock Kubernetes client.

    Retries are disabled and API errors are translated with the real
    ``KubernetesClient.translate_api_exception``.
    """
    mock_client = MagicMock()
    mock_client.default_namespace = "default"
    mock_client.timeout = 300
    mock_client.pod_wait_timeout = 5.0
    mock_client.poll_interval = 1.0
    mock_client.make_retry_decorator.return_value = lambda f: f
    mock_client.translate_api_exception.side_effect = KubernetesClient.translate_api_exception
    mock_client.to_dict.side_effect = lambda obj: obj
    return mock_client


@pytest.fixture
def make_workload() -> Callable[..., dict[str, Any]]:
    """Build unstructured workload objects.

    Keyword arguments ``spec`` and ``status`` are merged into the defaults;
    ``metadata`` extras are merged into the object metadata.
    """

    def _make(
        kind: str = "Deployment",
        api_version: str = "apps/v1",
        name: str = "web",
        namespace: str = "default",
        generation: int = 1,
        spec: dict[str, Any] | None = None,
        status: dict[str, Any] | None = None,
        **metadata: Any,
    ) -> dict[str, Any]:
        return {
            "apiVersion": api_version,
            "kind": kind,
            "metadata": {
                "name": name,
                "namespace": namespace,
                "generation": generation,
                **metadata,
            },
            "spec": spec or {},
            "status": {"observedGeneration": generation, **(status or {})},
        }

    return _make
