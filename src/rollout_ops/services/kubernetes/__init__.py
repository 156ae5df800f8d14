"""Kubernetes rollout services.

Rollout status evaluation, the kind registry, first-pod lookup and container
resource merging, plus the manager that runs them against a live cluster.
"""

from rollout_ops.services.kubernetes.kind_registry import (
    KindHandlers,
    PodTemplateAccessor,
    SelectorAccessor,
    containers_accessor_for,
    handlers_for,
    policy_for,
    registered_kinds,
    selector_for_object,
)
from rollout_ops.services.kubernetes.pod_locator import (
    CancelSignal,
    KubernetesPodSource,
    LocatedPod,
    PodLocator,
    PodSource,
    PodWatch,
    active_pods_first,
    newest_first,
)
from rollout_ops.services.kubernetes.resource_merger import (
    RESTARTED_AT_ANNOTATION,
    RESTARTED_ENV,
    merge_resources,
    parse_resource_list,
    restart_object,
    set_resources,
    update_env,
    update_restart_env,
)
from rollout_ops.services.kubernetes.rollout_manager import RolloutManager
from rollout_ops.services.kubernetes.rollout_status import (
    RolloutStatus,
    StatusViewer,
    evaluate,
)

__all__ = [
    "RESTARTED_AT_ANNOTATION",
    "RESTARTED_ENV",
    "CancelSignal",
    "KindHandlers",
    "KubernetesPodSource",
    "LocatedPod",
    "PodLocator",
    "PodSource",
    "PodTemplateAccessor",
    "PodWatch",
    "RolloutManager",
    "RolloutStatus",
    "SelectorAccessor",
    "StatusViewer",
    "active_pods_first",
    "containers_accessor_for",
    "evaluate",
    "handlers_for",
    "merge_resources",
    "newest_first",
    "parse_resource_list",
    "policy_for",
    "registered_kinds",
    "restart_object",
    "selector_for_object",
    "set_resources",
    "update_env",
    "update_restart_env",
]
