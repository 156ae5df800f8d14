"""Kind registry.

Maps a workload's ``(group, kind)`` to the handlers that know how to read it:
its rollout status viewer, where its pod template lives, how its pod
selector is expressed, and whether a restart is done through a container
environment marker. The table is a closed allow-list; unknown kinds raise
``KindNotImplementedError`` instead of falling back to a guess.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError

from rollout_ops.integrations.kubernetes.exceptions import (
    InvalidSelectorError,
    KindNotImplementedError,
    TypeConversionError,
)
from rollout_ops.integrations.kubernetes.models.base import _get_path
from rollout_ops.integrations.kubernetes.models.identity import GroupKind
from rollout_ops.integrations.kubernetes.models.selectors import LabelSelector
from rollout_ops.integrations.kubernetes.models.workloads import Container
from rollout_ops.services.kubernetes.rollout_status import (
    AdvancedStatefulSetStatusViewer,
    CloneSetStatusViewer,
    DaemonSetStatusViewer,
    DeploymentStatusViewer,
    StatefulSetStatusViewer,
    StatusViewer,
)

KRUISE_GROUP = "apps.kruise.io"


@dataclass(frozen=True)
class PodTemplateAccessor:
    """Locates the pod template inside an unstructured object.

    Attributes:
        path: Keys leading from the object root to the pod template.
    """

    path: tuple[str, ...]

    def template(self, obj: dict[str, Any]) -> dict[str, Any]:
        """Return the pod template, or an empty dict if absent."""
        template = _get_path(obj, *self.path, default={})
        if not isinstance(template, dict):
            raise TypeConversionError(
                f"pod template at {'.'.join(self.path)} is not an object",
                resource_type=obj.get("kind"),
            )
        return template

    def containers(self, obj: dict[str, Any]) -> list[Container]:
        """Decode the template's containers.

        Raises:
            TypeConversionError: If a container entry is malformed.
        """
        raw = _get_path(self.template(obj), "spec", "containers", default=[])
        try:
            return [Container.model_validate(c) for c in raw]
        except ValidationError as e:
            raise TypeConversionError(
                f"failed to convert containers of {obj.get('kind') or 'object'}",
                resource_type=obj.get("kind"),
                resource_name=_get_path(obj, "metadata", "name"),
                original_error=e,
            ) from e

    def with_containers(
        self, obj: dict[str, Any], containers: list[Container]
    ) -> dict[str, Any]:
        """Return a copy of ``obj`` whose template holds ``containers``."""
        updated = copy.deepcopy(obj)
        spec = self._ensure(updated, (*self.path, "spec"))
        spec["containers"] = [c.to_api() for c in containers]
        return updated

    def with_template_annotations(
        self, obj: dict[str, Any], annotations: dict[str, str]
    ) -> dict[str, Any]:
        """Return a copy of ``obj`` with annotations merged into the template metadata."""
        updated = copy.deepcopy(obj)
        metadata = self._ensure(updated, (*self.path, "metadata"))
        metadata["annotations"] = {**(metadata.get("annotations") or {}), **annotations}
        return updated

    @staticmethod
    def _ensure(obj: dict[str, Any], path: tuple[str, ...]) -> dict[str, Any]:
        current = obj
        for key in path:
            if not isinstance(current.get(key), dict):
                current[key] = {}
            current = current[key]
        return current


@dataclass(frozen=True)
class SelectorAccessor:
    """Reads the pod selector of an unstructured object.

    Attributes:
        label_selector: ``spec.selector`` is a full LabelSelector; otherwise a
            plain ``{label: value}`` map.
        required: An empty or missing selector is an error rather than
            "select everything" (Services).
    """

    label_selector: bool = True
    required: bool = False

    def selector(self, obj: dict[str, Any]) -> LabelSelector:
        raw = _get_path(obj, "spec", "selector")
        name = _get_path(obj, "metadata", "name")
        kind = obj.get("kind")
        if self.required and not raw:
            raise InvalidSelectorError(
                f"invalid {kind.lower() if kind else 'object'} '{name}': "
                f"{kind} is defined without a selector",
                resource_type=kind,
                resource_name=name,
            )
        try:
            if self.label_selector:
                return LabelSelector.model_validate(raw or {})
            return LabelSelector.from_set(raw or {})
        except ValidationError as e:
            raise InvalidSelectorError(
                f"invalid label selector: {e.errors()[0]['msg']}",
                resource_type=kind,
                resource_name=name,
            ) from e


@dataclass(frozen=True)
class KindHandlers:
    """Handlers registered for one kind.

    Attributes:
        plural: Resource plural used in API paths.
        status_viewer: Rollout status viewer, if rollout status is defined.
        pod_template: Pod template accessor, if the kind carries containers.
        selector: Pod selector accessor, if the kind selects pods.
        env_restart: Restarts inject an env marker instead of an annotation.
    """

    plural: str
    status_viewer: StatusViewer | None = None
    pod_template: PodTemplateAccessor | None = None
    selector: SelectorAccessor | None = None
    env_restart: bool = False


_TEMPLATE = PodTemplateAccessor(("spec", "template"))
_JOB_TEMPLATE = PodTemplateAccessor(("spec", "jobTemplate", "spec", "template"))
_LABEL_SELECTOR = SelectorAccessor()
_MAP_SELECTOR = SelectorAccessor(label_selector=False)

_DEPLOYMENT = KindHandlers(
    "deployments", DeploymentStatusViewer(), _TEMPLATE, _LABEL_SELECTOR
)
_DAEMON_SET = KindHandlers("daemonsets", DaemonSetStatusViewer(), _TEMPLATE, _LABEL_SELECTOR)
_REPLICA_SET = KindHandlers("replicasets", None, _TEMPLATE, _LABEL_SELECTOR)

_REGISTRY: dict[GroupKind, KindHandlers] = {
    GroupKind("apps", "Deployment"): _DEPLOYMENT,
    GroupKind("extensions", "Deployment"): _DEPLOYMENT,
    GroupKind("apps", "DaemonSet"): _DAEMON_SET,
    GroupKind("extensions", "DaemonSet"): _DAEMON_SET,
    GroupKind("apps", "StatefulSet"): KindHandlers(
        "statefulsets", StatefulSetStatusViewer(), _TEMPLATE, _LABEL_SELECTOR
    ),
    GroupKind(KRUISE_GROUP, "CloneSet"): KindHandlers(
        "clonesets", CloneSetStatusViewer(), _TEMPLATE, _LABEL_SELECTOR, env_restart=True
    ),
    GroupKind(KRUISE_GROUP, "StatefulSet"): KindHandlers(
        "statefulsets",
        AdvancedStatefulSetStatusViewer(),
        _TEMPLATE,
        _LABEL_SELECTOR,
        env_restart=True,
    ),
    GroupKind("apps", "ReplicaSet"): _REPLICA_SET,
    GroupKind("extensions", "ReplicaSet"): _REPLICA_SET,
    GroupKind("", "ReplicationController"): KindHandlers(
        "replicationcontrollers", None, _TEMPLATE, _MAP_SELECTOR
    ),
    GroupKind("batch", "Job"): KindHandlers("jobs", None, _TEMPLATE, _LABEL_SELECTOR),
    GroupKind("batch", "CronJob"): KindHandlers("cronjobs", None, _JOB_TEMPLATE),
    GroupKind("", "Service"): KindHandlers(
        "services", selector=SelectorAccessor(label_selector=False, required=True)
    ),
}


def handlers_for(identity: GroupKind) -> KindHandlers:
    """Look up every handler registered for a kind.

    Raises:
        KindNotImplementedError: If the kind is not registered at all.
    """
    handlers = _REGISTRY.get(identity)
    if handlers is None:
        raise KindNotImplementedError(identity.group, identity.kind, "handler")
    return handlers


def policy_for(identity: GroupKind) -> StatusViewer:
    """Return the rollout status viewer for a kind.

    Args:
        identity: Group and kind; the schema version is ignored.

    Raises:
        KindNotImplementedError: If no status viewer is registered.
    """
    viewer = _REGISTRY.get(identity, KindHandlers("")).status_viewer
    if viewer is None:
        raise KindNotImplementedError(identity.group, identity.kind, "status viewer")
    return viewer


def containers_accessor_for(identity: GroupKind) -> PodTemplateAccessor:
    """Return the pod template accessor for a kind.

    Raises:
        KindNotImplementedError: If the kind carries no pod template.
    """
    accessor = _REGISTRY.get(identity, KindHandlers("")).pod_template
    if accessor is None:
        raise KindNotImplementedError(identity.group, identity.kind, "pod template accessor")
    return accessor


def selector_for_object(obj: dict[str, Any]) -> tuple[str | None, LabelSelector]:
    """Return the namespace and pod selector of an unstructured object.

    Raises:
        KindNotImplementedError: If the kind has no selector accessor.
        InvalidSelectorError: If the selector is invalid, or a Service has none.
    """
    identity = GroupKind.of(obj)
    accessor = _REGISTRY.get(identity, KindHandlers("")).selector
    if accessor is None:
        raise KindNotImplementedError(identity.group, identity.kind, "selector")
    return _get_path(obj, "metadata", "namespace"), accessor.selector(obj)


def registered_kinds() -> list[GroupKind]:
    """All registered kinds, sorted by group then kind."""
    return sorted(_REGISTRY, key=lambda gk: (gk.group, gk.kind))


__all__ = [
    "GroupKind",
    "KindHandlers",
    "PodTemplateAccessor",
    "SelectorAccessor",
    "containers_accessor_for",
    "handlers_for",
    "policy_for",
    "registered_kinds",
    "selector_for_object",
]
