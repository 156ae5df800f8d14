"""Kubernetes integration configuration models."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

ENV_PREFIX = "ROLLOUT_OPS_K8S_"


class ClusterConfig(BaseModel):
    """Configuration for a single Kubernetes cluster."""

    model_config = ConfigDict(extra="forbid")

    context: str = ""
    kubeconfig: str = Field(default="~/.kube/config", validate_default=True)
    namespace: str = "default"
    timeout: int = 300

    @field_validator("timeout")
    @classmethod
    def validate_timeout(cls, v: int) -> int:
        """Validate timeout is positive."""
        if v <= 0:
            raise ValueError("timeout must be positive")
        return v

    @field_validator("kubeconfig")
    @classmethod
    def validate_kubeconfig(cls, v: str) -> str:
        """Expand ~ in kubeconfig path."""
        return str(Path(v).expanduser())


class KubernetesDefaultsConfig(BaseModel):
    """Default settings for rollout and pod lookup operations.

    Attributes:
        timeout: Overall rollout wait bound in seconds.
        retry_attempts: Attempts for transient connection failures.
        pod_wait_timeout: How long to wait for a first matching pod.
        poll_interval: Seconds between rollout status evaluations.
    """

    model_config = ConfigDict(extra="forbid")

    timeout: int = 300
    retry_attempts: int = 3
    pod_wait_timeout: float = 60.0
    poll_interval: float = 2.0

    @field_validator("timeout", "pod_wait_timeout", "poll_interval")
    @classmethod
    def validate_positive(cls, v: float) -> float:
        """Validate durations are positive."""
        if v <= 0:
            raise ValueError("durations must be positive")
        return v

    @field_validator("retry_attempts")
    @classmethod
    def validate_retry_attempts(cls, v: int) -> int:
        """Validate retry_attempts is at least one."""
        if v < 1:
            raise ValueError("retry_attempts must be at least 1")
        return v


class KubernetesPluginConfig(BaseModel):
    """Complete Kubernetes configuration for rollout operations."""

    model_config = ConfigDict(extra="forbid")

    clusters: dict[str, ClusterConfig] = {}
    active_cluster: str | None = None
    defaults: KubernetesDefaultsConfig = KubernetesDefaultsConfig()
    token: str | None = None

    @classmethod
    def from_env(cls, base_config: dict[str, Any] | None = None) -> KubernetesPluginConfig:
        """Create configuration with environment variable overrides.

        Environment variables take precedence over base_config values.

        Supported environment variables:
            ROLLOUT_OPS_K8S_CONTEXT: Override active Kubernetes context
            ROLLOUT_OPS_K8S_NAMESPACE: Override default namespace
            ROLLOUT_OPS_K8S_KUBECONFIG: Override kubeconfig path
            ROLLOUT_OPS_K8S_TOKEN: Bearer token for authentication
            ROLLOUT_OPS_K8S_TIMEOUT: Rollout wait timeout in seconds
            ROLLOUT_OPS_K8S_POD_WAIT_TIMEOUT: First-pod wait timeout in seconds
            ROLLOUT_OPS_K8S_POLL_INTERVAL: Seconds between status checks
        """
        config_dict = base_config.copy() if base_config else {}
        config_dict["defaults"] = dict(config_dict.get("defaults", {}))
        config_dict.setdefault("clusters", {})

        def env(name: str) -> str | None:
            return os.environ.get(f"{ENV_PREFIX}{name}")

        if context := env("CONTEXT"):
            config_dict["active_cluster"] = context

        if token := env("TOKEN"):
            config_dict["token"] = token

        if timeout := env("TIMEOUT"):
            config_dict["defaults"]["timeout"] = int(timeout)

        if pod_wait := env("POD_WAIT_TIMEOUT"):
            config_dict["defaults"]["pod_wait_timeout"] = float(pod_wait)

        if interval := env("POLL_INTERVAL"):
            config_dict["defaults"]["poll_interval"] = float(interval)

        instance = cls.model_validate(config_dict)

        # Path and namespace overrides apply to every configured cluster
        if kubeconfig := env("KUBECONFIG"):
            for cluster_cfg in instance.clusters.values():
                cluster_cfg.kubeconfig = str(Path(kubeconfig).expanduser())

        if namespace := env("NAMESPACE"):
            if not instance.clusters:
                instance.clusters["default"] = ClusterConfig(namespace=namespace)
            for cluster_cfg in instance.clusters.values():
                cluster_cfg.namespace = namespace

        return instance

    def _active(self) -> ClusterConfig | None:
        if self.active_cluster and self.active_cluster in self.clusters:
            return self.clusters[self.active_cluster]
        if self.clusters:
            return next(iter(self.clusters.values()))
        return None

    def get_active_context(self) -> str | None:
        """Get the active cluster context name.

        Returns the context of the named active cluster, the active_cluster
        value itself when it is a raw context name, or the first configured
        cluster's context.
        """
        if self.active_cluster and self.active_cluster not in self.clusters:
            return self.active_cluster
        cluster = self._active()
        if cluster is None or not cluster.context:
            return None
        return cluster.context

    def get_active_kubeconfig(self) -> str | None:
        """Get the kubeconfig path of the active cluster, if one is configured."""
        cluster = self._active()
        return cluster.kubeconfig if cluster else None

    def get_active_namespace(self) -> str:
        """Get the default namespace for the active cluster."""
        cluster = self._active()
        return cluster.namespace if cluster else "default"

    def get_active_timeout(self) -> int:
        """Get the rollout timeout for the active cluster."""
        if self.active_cluster and self.active_cluster in self.clusters:
            return self.clusters[self.active_cluster].timeout
        return self.defaults.timeout
