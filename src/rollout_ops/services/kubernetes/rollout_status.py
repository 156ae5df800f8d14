"""Rollout status viewers.

One viewer per workload family decides whether a rollout has converged and
describes its progress. Viewers are pure: they decode the unstructured
object they are given, never touch the API and never log. A rollout that is
still progressing is reported as ``done=False`` with a message; only terminal
or invalid states raise.

Checks run in a fixed order and the first unmet condition decides the
message: revision, observed generation, strategy, updated replicas, old
replicas, readiness/availability, revisions.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

from rollout_ops.integrations.kubernetes.exceptions import (
    RevisionMismatchError,
    TypeConversionError,
    UnsupportedStrategyError,
)
from rollout_ops.integrations.kubernetes.models.workloads import (
    UpdateStrategy,
    WorkloadObject,
    decode_workload,
    deployment_revision,
)


@dataclass(frozen=True)
class RolloutStatus:
    """Progress of a rollout.

    Attributes:
        message: Human-readable progress or completion message.
        done: Whether the rollout has converged.
    """

    message: str
    done: bool


class StatusViewer(Protocol):
    """Evaluates rollout status for one workload family."""

    def status(self, obj: dict[str, Any], revision: int = 0) -> RolloutStatus: ...


def _waiting(message: str) -> RolloutStatus:
    return RolloutStatus(message=message, done=False)


def _done(message: str) -> RolloutStatus:
    return RolloutStatus(message=message, done=True)


def _require_rolling_update(workload: WorkloadObject, kind: str) -> UpdateStrategy:
    strategy = workload.spec.update_strategy or UpdateStrategy()
    if not strategy.is_rolling_update:
        raise UnsupportedStrategyError(
            strategy.type,
            resource_type=kind,
            resource_name=workload.name,
            namespace=workload.namespace,
        )
    return strategy


def _updated_target(workload: WorkloadObject) -> tuple[int, bool] | None:
    """Number of pods expected on the update revision, and whether partitioned."""
    replicas = workload.spec.replicas
    if replicas is None:
        return None
    partition = workload.partition()
    if partition is None:
        return replicas, False
    return max(replicas - partition, 0), True


class DeploymentStatusViewer:
    """Status viewer for Deployments (apps and extensions groups)."""

    def status(self, obj: dict[str, Any], revision: int = 0) -> RolloutStatus:
        deployment = decode_workload(obj)
        name = deployment.name

        if revision > 0:
            running = deployment_revision(deployment)
            if revision != running:
                raise RevisionMismatchError(
                    revision,
                    running,
                    resource_type="Deployment",
                    resource_name=name,
                    namespace=deployment.namespace,
                )

        if not deployment.generation_observed:
            return _waiting("Waiting for deployment spec update to be observed...")

        prefix = f'Waiting for deployment "{name}" rollout to finish'
        replicas = deployment.spec.replicas
        st = deployment.status
        if replicas is not None and st.updated_replicas < replicas:
            return _waiting(
                f"{prefix}: {st.updated_replicas} out of {replicas} new replicas updated..."
            )
        if st.replicas > st.updated_replicas:
            return _waiting(
                f"{prefix}: {st.replicas - st.updated_replicas} old replicas are pending "
                "termination..."
            )
        if st.available_replicas < st.updated_replicas:
            return _waiting(
                f"{prefix}: {st.available_replicas} of {st.updated_replicas} updated replicas "
                "are available..."
            )
        return _done(f'deployment "{name}" successfully rolled out')


class DaemonSetStatusViewer:
    """Status viewer for DaemonSets.

    DaemonSet history lives in ControllerRevisions, not on the object, so a
    target revision is ignored.
    """

    def status(self, obj: dict[str, Any], revision: int = 0) -> RolloutStatus:
        daemon = decode_workload(obj)

        if not daemon.generation_observed:
            return _waiting("Waiting for daemon set spec update to be observed...")

        _require_rolling_update(daemon, "DaemonSet")

        prefix = f'Waiting for daemon set "{daemon.name}" rollout to finish'
        st = daemon.status
        if st.updated_number_scheduled < st.desired_number_scheduled:
            return _waiting(
                f"{prefix}: {st.updated_number_scheduled} out of {st.desired_number_scheduled} "
                "new pods have been updated..."
            )
        if st.number_available < st.desired_number_scheduled:
            return _waiting(
                f"{prefix}: {st.number_available} of {st.desired_number_scheduled} updated pods "
                "are available..."
            )
        return _done(f'daemon set "{daemon.name}" successfully rolled out')


class StatefulSetStatusViewer:
    """Status viewer for apps StatefulSets.

    With a partition the rollout is done once ``replicas - partition`` pods
    are updated and all pods are ready; the ordinals below the partition stay
    on the old revision. Without one, the update revision must
    become the current revision.
    """

    def status(self, obj: dict[str, Any], revision: int = 0) -> RolloutStatus:
        sts = decode_workload(obj)
        st = sts.status

        if st.observed_generation == 0 or not sts.generation_observed:
            return _waiting("Waiting for statefulset spec update to be observed...")

        _require_rolling_update(sts, "StatefulSet")

        target = _updated_target(sts)
        partitioned = target is not None and target[1]
        if target is not None and st.updated_replicas < target[0]:
            if partitioned:
                return _waiting(
                    "Waiting for partitioned roll out to finish: "
                    f"{st.updated_replicas} out of {target[0]} new pods have been updated..."
                )
            return _waiting(
                "Waiting for statefulset rolling update to finish: "
                f"{st.updated_replicas} out of {target[0]} new pods have been updated..."
            )

        replicas = sts.spec.replicas
        if replicas is not None and st.ready_replicas < replicas:
            return _waiting(f"Waiting for {replicas - st.ready_replicas} pods to be ready...")

        if partitioned:
            return _done(
                f"partitioned roll out complete: {st.updated_replicas} new pods have been "
                "updated..."
            )

        if st.update_revision != st.current_revision:
            return _waiting(
                f"waiting for statefulset rolling update to complete {st.updated_replicas} pods "
                f"at revision {st.update_revision}..."
            )
        return _done(
            f"statefulset rolling update complete {st.current_replicas} pods at revision "
            f"{st.current_revision}..."
        )


class AdvancedStatefulSetStatusViewer:
    """Status viewer for OpenKruise Advanced StatefulSets (apps.kruise.io)."""

    def status(self, obj: dict[str, Any], revision: int = 0) -> RolloutStatus:
        asts = decode_workload(obj)
        st = asts.status

        if st.observed_generation == 0 or not asts.generation_observed:
            return _waiting("Waiting for Advanced StatefulSet spec update to be observed...")

        _require_rolling_update(asts, "StatefulSet")

        target = _updated_target(asts)
        if target is not None and st.updated_replicas < target[0]:
            kind = "partitioned roll out" if target[1] else "roll out"
            return _waiting(
                f"Waiting for {kind} to finish: {st.updated_replicas} out of {target[0]} "
                "new pods have been updated..."
            )

        replicas = asts.spec.replicas
        if replicas is not None and st.ready_replicas < replicas:
            return _waiting(f"Waiting for {replicas - st.ready_replicas} pods to be ready...")

        return _done(
            f"Advanced StatefulSet rolling update complete {st.available_replicas} pods at "
            f"revision {st.update_revision}..."
        )


class CloneSetStatusViewer:
    """Status viewer for OpenKruise CloneSets.

    Every CloneSet update type (ReCreate, InPlaceIfPossible, InPlaceOnly)
    reports progress through updatedReplicas, so none is rejected. The
    partition may be a percentage of replicas.
    """

    def status(self, obj: dict[str, Any], revision: int = 0) -> RolloutStatus:
        cs = decode_workload(obj)
        st = cs.status

        if st.observed_generation == 0 or not cs.generation_observed:
            return _waiting("Waiting for CloneSet spec update to be observed...")

        target = _updated_target(cs)
        if target is not None and st.updated_replicas < target[0]:
            kind = "partitioned roll out" if target[1] else "roll out"
            return _waiting(
                f"Waiting for {kind} to finish: {st.updated_replicas} out of {target[0]} "
                "new pods have been updated..."
            )

        replicas = cs.spec.replicas
        if replicas is not None and st.ready_replicas < replicas:
            return _waiting(f"Waiting for {replicas - st.ready_replicas} pods to be ready...")

        return _done(
            f"CloneSet rolling update complete {st.available_replicas} pods at revision "
            f"{st.update_revision}..."
        )


def evaluate(obj: dict[str, Any], revision: int = 0) -> RolloutStatus:
    """Evaluate the rollout status of an unstructured workload.

    Args:
        obj: Unstructured object carrying ``apiVersion`` and ``kind``.
        revision: Revision the caller expects to be rolling out (0 for any).

    Returns:
        Current rollout progress.

    Raises:
        KindNotImplementedError: If the kind has no status viewer.
        RevisionMismatchError: If ``revision`` differs from the running revision.
        UnsupportedStrategyError: If the update strategy has no progress signal.
        TypeConversionError: If the object is malformed.
    """
    from rollout_ops.services.kubernetes.kind_registry import GroupKind, policy_for

    if not isinstance(obj, dict):
        raise TypeConversionError(f"failed to convert {type(obj).__name__} to WorkloadObject")
    return policy_for(GroupKind.of(obj)).status(obj, revision)
