"""Kubernetes workload models.

``WorkloadObject`` is the typed snapshot a rollout status viewer consumes,
decoded from unstructured API data. ``Container`` and ``EnvVar`` keep every
field they do not declare so that a container can be edited and written back
without losing data. ``PodSummary`` is the display view of a located pod.
"""

from __future__ import annotations

import math
from typing import Any, ClassVar

from pydantic import ConfigDict, Field, ValidationError

from rollout_ops.integrations.kubernetes.exceptions import TypeConversionError
from rollout_ops.integrations.kubernetes.models.base import (
    K8sEntityBase,
    K8sObjectModel,
    _get_labels,
    _get_timestamp,
    _safe_get,
)

REVISION_ANNOTATION = "deployment.kubernetes.io/revision"

# Strategy type names across apps/v1 and OpenKruise
ROLLING_UPDATE = "RollingUpdate"
ON_DELETE = "OnDelete"
RECREATE = "Recreate"
KRUISE_RECREATE = "ReCreate"
IN_PLACE_IF_POSSIBLE = "InPlaceIfPossible"
IN_PLACE_ONLY = "InPlaceOnly"


# =============================================================================
# Containers
# =============================================================================


class EnvVar(K8sObjectModel):
    """Container environment variable."""

    model_config = ConfigDict(extra="allow")

    name: str
    value: str | None = None
    value_from: dict[str, Any] | None = None


class ResourceRequirements(K8sObjectModel):
    """Container compute resource limits and requests."""

    model_config = ConfigDict(extra="allow")

    limits: dict[str, Any] | None = None
    requests: dict[str, Any] | None = None


class Container(K8sObjectModel):
    """Pod template container, preserving undeclared fields."""

    model_config = ConfigDict(extra="allow")

    name: str
    env: list[EnvVar] | None = None
    resources: ResourceRequirements | None = None


# =============================================================================
# Workload snapshot
# =============================================================================


class ObjectMeta(K8sObjectModel):
    """Subset of object metadata used by rollout evaluation."""

    name: str = ""
    namespace: str | None = None
    generation: int = 0
    labels: dict[str, str] = Field(default_factory=dict)
    annotations: dict[str, str] = Field(default_factory=dict)


class RollingUpdatePolicy(K8sObjectModel):
    """Rolling update sub-policy (StatefulSet family partition, surge limits)."""

    partition: int | None = None
    max_unavailable: int | str | None = None
    max_surge: int | str | None = None


class UpdateStrategy(K8sObjectModel):
    """Update strategy descriptor.

    ``type`` defaults to RollingUpdate, which the API server fills in when
    the field is omitted. ``partition`` is the CloneSet top-level partition
    (an integer or a percentage of replicas); the StatefulSet family carries
    its partition under ``rolling_update``.
    """

    type: str = ROLLING_UPDATE
    rolling_update: RollingUpdatePolicy | None = None
    partition: int | str | None = None

    @property
    def is_rolling_update(self) -> bool:
        return self.type == ROLLING_UPDATE

    @property
    def is_in_place(self) -> bool:
        return self.type in (IN_PLACE_IF_POSSIBLE, IN_PLACE_ONLY)


class WorkloadSpec(K8sObjectModel):
    """Desired state fields used by rollout evaluation."""

    replicas: int | None = None
    strategy: UpdateStrategy | None = None
    update_strategy: UpdateStrategy | None = None


class WorkloadCondition(K8sObjectModel):
    """Status condition."""

    type: str
    status: str = "Unknown"
    reason: str | None = None
    message: str | None = None


class WorkloadStatus(K8sObjectModel):
    """Observed state reported by a workload controller."""

    observed_generation: int = 0
    replicas: int = 0
    updated_replicas: int = 0
    ready_replicas: int = 0
    available_replicas: int = 0
    current_replicas: int = 0
    current_revision: str = ""
    update_revision: str = ""
    # DaemonSet scheduling counters
    desired_number_scheduled: int = 0
    current_number_scheduled: int = 0
    updated_number_scheduled: int = 0
    number_available: int = 0
    number_ready: int = 0
    conditions: list[WorkloadCondition] = Field(default_factory=list)

    def get_condition(self, condition_type: str) -> WorkloadCondition | None:
        """Return the condition of the given type, if reported."""
        return next((c for c in self.conditions if c.type == condition_type), None)


class WorkloadObject(K8sObjectModel):
    """Typed status snapshot of a workload.

    Built fresh for every evaluation from the object as last read from the
    API. ``status.observed_generation < metadata.generation`` means the
    controller has not yet seen the latest spec.
    """

    api_version: str = ""
    kind: str = ""
    metadata: ObjectMeta = Field(default_factory=ObjectMeta)
    spec: WorkloadSpec = Field(default_factory=WorkloadSpec)
    status: WorkloadStatus = Field(default_factory=WorkloadStatus)

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def namespace(self) -> str | None:
        return self.metadata.namespace

    @property
    def generation_observed(self) -> bool:
        """Whether the controller has reconciled the latest spec."""
        return self.metadata.generation <= self.status.observed_generation

    def partition(self) -> int | None:
        """Resolve the effective update partition as a pod count.

        Returns the StatefulSet-family ``rollingUpdate.partition`` when set,
        otherwise the CloneSet ``partition`` scaled against the desired
        replicas (percentages round up), or None when no partition applies.
        """
        strategy = self.spec.update_strategy
        if strategy is None:
            return None
        if strategy.rolling_update is not None and strategy.rolling_update.partition is not None:
            return strategy.rolling_update.partition
        if strategy.partition is None:
            return None
        return scaled_value(strategy.partition, self.spec.replicas or 0, round_up=True)


def scaled_value(value: int | str, total: int, *, round_up: bool) -> int:
    """Resolve an int-or-percent value against a total.

    Args:
        value: Absolute count, or a string such as ``"3"`` or ``"20%"``.
        total: The count a percentage is taken from.
        round_up: Round fractional results up instead of down.

    Returns:
        The absolute count.

    Raises:
        TypeConversionError: If a string value is not a number or percentage.
    """
    if isinstance(value, int):
        return value
    text = value.strip()
    try:
        if not text.endswith("%"):
            return int(text)
        scaled = int(text[:-1]) * total / 100
    except ValueError as e:
        raise TypeConversionError(
            f"invalid value for IntOrString: {value!r}", original_error=e
        ) from e
    return math.ceil(scaled) if round_up else math.floor(scaled)


def decode_workload(obj: Any) -> WorkloadObject:
    """Decode an unstructured object into a ``WorkloadObject``.

    Args:
        obj: Unstructured API data (dict keyed by camelCase field names).

    Returns:
        The typed snapshot.

    Raises:
        TypeConversionError: If the data is not an object or has malformed fields.
    """
    if not isinstance(obj, dict):
        raise TypeConversionError(f"failed to convert {type(obj).__name__} to WorkloadObject")
    try:
        return WorkloadObject.model_validate(obj)
    except ValidationError as e:
        kind = obj.get("kind") or "object"
        name = (obj.get("metadata") or {}).get("name")
        raise TypeConversionError(
            f"failed to convert {kind} to WorkloadObject: {e.error_count()} invalid field(s)",
            resource_type=kind,
            resource_name=name,
            original_error=e,
        ) from e


def deployment_revision(workload: WorkloadObject) -> int:
    """Read the revision recorded on a Deployment.

    Args:
        workload: Decoded Deployment snapshot.

    Returns:
        The revision number, or 0 when the annotation is absent.

    Raises:
        TypeConversionError: If the annotation is not an integer.
    """
    raw = workload.metadata.annotations.get(REVISION_ANNOTATION)
    if raw is None:
        return 0
    try:
        return int(raw)
    except ValueError as e:
        raise TypeConversionError(
            f"cannot get the revision of deployment {workload.name!r}: {raw!r} is not a number",
            resource_type="Deployment",
            resource_name=workload.name,
            original_error=e,
        ) from e


# =============================================================================
# Pods
# =============================================================================


class ContainerStatus(K8sEntityBase):
    """Container status within a pod."""

    _entity_name: ClassVar[str] = "container"

    ready: bool = Field(default=False, description="Whether container is ready")
    restart_count: int = Field(default=0, description="Number of restarts")
    state: str = Field(default="unknown", description="Current state")

    @classmethod
    def from_k8s_object(cls, obj: Any) -> ContainerStatus:
        """Create from a kubernetes V1ContainerStatus object."""
        state = "unknown"
        if obj_state := getattr(obj, "state", None):
            if getattr(obj_state, "running", None):
                state = "running"
            elif getattr(obj_state, "waiting", None):
                state = str(_safe_get(obj_state, "waiting", "reason", default="Waiting"))
            elif getattr(obj_state, "terminated", None):
                state = str(_safe_get(obj_state, "terminated", "reason", default="Terminated"))

        return cls(
            name=getattr(obj, "name", ""),
            ready=getattr(obj, "ready", False) or False,
            restart_count=getattr(obj, "restart_count", 0) or 0,
            state=state,
        )


class PodSummary(K8sEntityBase):
    """Pod display model."""

    _entity_name: ClassVar[str] = "pod"

    phase: str = Field(default="Unknown", description="Pod phase")
    node_name: str | None = Field(default=None, description="Node the pod is running on")
    ready: bool = Field(default=False, description="Whether the Ready condition is True")
    restarts: int = Field(default=0, description="Total container restarts")
    containers: list[ContainerStatus] = Field(
        default_factory=list, description="Container statuses"
    )

    @classmethod
    def from_k8s_object(cls, obj: Any) -> PodSummary:
        """Create from a kubernetes V1Pod object."""
        container_statuses = _safe_get(obj, "status", "container_statuses") or []
        containers = [ContainerStatus.from_k8s_object(cs) for cs in container_statuses]

        return cls(
            name=_safe_get(obj, "metadata", "name", default=""),
            namespace=_safe_get(obj, "metadata", "namespace"),
            uid=_safe_get(obj, "metadata", "uid"),
            creation_timestamp=_get_timestamp(_safe_get(obj, "metadata", "creation_timestamp")),
            labels=_get_labels(obj),
            phase=_safe_get(obj, "status", "phase", default="Unknown"),
            node_name=_safe_get(obj, "spec", "node_name"),
            ready=pod_is_ready(obj),
            restarts=sum(c.restart_count for c in containers),
            containers=containers,
        )


def pod_is_ready(pod: Any) -> bool:
    """Whether a kubernetes V1Pod reports ``Ready=True``."""
    for cond in _safe_get(pod, "status", "conditions") or []:
        if getattr(cond, "type", None) == "Ready":
            return getattr(cond, "status", None) == "True"
    return False
