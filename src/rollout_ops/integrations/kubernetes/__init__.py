"""Kubernetes integration - API client, configuration and exceptions."""

from rollout_ops.integrations.kubernetes.client import KubernetesClient
from rollout_ops.integrations.kubernetes.config import (
    ClusterConfig,
    KubernetesDefaultsConfig,
    KubernetesPluginConfig,
)
from rollout_ops.integrations.kubernetes.exceptions import (
    InvalidSelectorError,
    KindNotImplementedError,
    KubernetesAuthError,
    KubernetesConflictError,
    KubernetesConnectionError,
    KubernetesError,
    KubernetesNotFoundError,
    KubernetesTimeoutError,
    KubernetesValidationError,
    LocatorCancelledError,
    ProgressDeadlineExceededError,
    RevisionMismatchError,
    TypeConversionError,
    UnsupportedStrategyError,
)

__all__ = [
    "ClusterConfig",
    "InvalidSelectorError",
    "KindNotImplementedError",
    "KubernetesAuthError",
    "KubernetesClient",
    "KubernetesConflictError",
    "KubernetesConnectionError",
    "KubernetesDefaultsConfig",
    "KubernetesError",
    "KubernetesNotFoundError",
    "KubernetesPluginConfig",
    "KubernetesTimeoutError",
    "KubernetesValidationError",
    "LocatorCancelledError",
    "ProgressDeadlineExceededError",
    "RevisionMismatchError",
    "TypeConversionError",
    "UnsupportedStrategyError",
]
