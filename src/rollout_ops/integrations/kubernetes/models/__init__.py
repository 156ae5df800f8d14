"""Kubernetes resource models."""

from rollout_ops.integrations.kubernetes.models.base import K8sEntityBase, K8sObjectModel
from rollout_ops.integrations.kubernetes.models.identity import GroupKind
from rollout_ops.integrations.kubernetes.models.selectors import (
    LabelSelector,
    LabelSelectorRequirement,
    SelectorOperator,
)
from rollout_ops.integrations.kubernetes.models.workloads import (
    Container,
    ContainerStatus,
    EnvVar,
    ObjectMeta,
    PodSummary,
    ResourceRequirements,
    RollingUpdatePolicy,
    UpdateStrategy,
    WorkloadCondition,
    WorkloadObject,
    WorkloadSpec,
    WorkloadStatus,
    decode_workload,
    deployment_revision,
)

__all__ = [
    "Container",
    "ContainerStatus",
    "EnvVar",
    "GroupKind",
    "K8sEntityBase",
    "K8sObjectModel",
    "LabelSelector",
    "LabelSelectorRequirement",
    "ObjectMeta",
    "PodSummary",
    "ResourceRequirements",
    "RollingUpdatePolicy",
    "SelectorOperator",
    "UpdateStrategy",
    "WorkloadCondition",
    "WorkloadObject",
    "WorkloadSpec",
    "WorkloadStatus",
    "decode_workload",
    "deployment_revision",
]
