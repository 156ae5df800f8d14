"""Workload kind identity."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class GroupKind:
    """API group and kind of a resource, with an informational schema version.

    Equality and hashing use ``group`` and ``kind`` only, so every schema
    version of a kind (``extensions/v1beta1``, ``apps/v1beta2``, ``apps/v1``
    Deployments, ...) resolves to the same registry entry.

    Example:
        >>> GroupKind.from_api_version("apps/v1", "Deployment")
        GroupKind(group='apps', kind='Deployment', version='v1')
    """

    group: str
    kind: str
    version: str = field(default="", compare=False)

    @classmethod
    def from_api_version(cls, api_version: str, kind: str) -> GroupKind:
        """Build from an ``apiVersion`` string (``group/version`` or ``version``)."""
        group, _, version = api_version.rpartition("/")
        return cls(group=group, kind=kind, version=version)

    @classmethod
    def of(cls, obj: dict[str, Any]) -> GroupKind:
        """Build from the ``apiVersion`` and ``kind`` of an unstructured object."""
        return cls.from_api_version(obj.get("apiVersion") or "", obj.get("kind") or "")

    def __str__(self) -> str:
        return f"{self.kind}.{self.group}" if self.group else self.kind
