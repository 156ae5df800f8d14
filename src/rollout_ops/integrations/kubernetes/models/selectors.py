"""Label selector model.

Mirrors ``metav1.LabelSelector``: a set of exact ``matchLabels`` plus
``matchExpressions`` requirements, all of which must hold. Selectors are
immutable; build a new one rather than editing an existing selector.
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import StrEnum

from pydantic import ConfigDict, Field, model_validator

from rollout_ops.integrations.kubernetes.models.base import K8sObjectModel


class SelectorOperator(StrEnum):
    """Operators allowed in a label selector requirement."""

    IN = "In"
    NOT_IN = "NotIn"
    EXISTS = "Exists"
    DOES_NOT_EXIST = "DoesNotExist"


class LabelSelectorRequirement(K8sObjectModel):
    """A single ``key operator values`` requirement."""

    model_config = ConfigDict(frozen=True)

    key: str
    operator: SelectorOperator
    values: tuple[str, ...] = ()

    @model_validator(mode="after")
    def check_values(self) -> LabelSelectorRequirement:
        """Validate the values list against the operator."""
        if self.operator in (SelectorOperator.IN, SelectorOperator.NOT_IN):
            if not self.values:
                raise ValueError(f"values must be non-empty for operator {self.operator}")
        elif self.values:
            raise ValueError(f"values must be empty for operator {self.operator}")
        return self

    def matches(self, labels: Mapping[str, str]) -> bool:
        """Check the requirement against a label set."""
        match self.operator:
            case SelectorOperator.IN:
                return labels.get(self.key) in self.values
            case SelectorOperator.NOT_IN:
                return labels.get(self.key) not in self.values
            case SelectorOperator.EXISTS:
                return self.key in labels
            case SelectorOperator.DOES_NOT_EXIST:
                return self.key not in labels

    def __str__(self) -> str:
        values = ",".join(sorted(self.values))
        match self.operator:
            case SelectorOperator.IN if len(self.values) == 1:
                return f"{self.key}={self.values[0]}"
            case SelectorOperator.IN:
                return f"{self.key} in ({values})"
            case SelectorOperator.NOT_IN:
                return f"{self.key} notin ({values})"
            case SelectorOperator.EXISTS:
                return self.key
            case _:
                return f"!{self.key}"


class LabelSelector(K8sObjectModel):
    """Immutable pod label selector.

    An empty selector matches every label set. Use ``LabelSelector.from_set``
    for the plain map selectors of ReplicationControllers and Services.

    Example:
        >>> selector = LabelSelector.from_set({"app": "web"})
        >>> str(selector)
        'app=web'
    """

    model_config = ConfigDict(frozen=True)

    match_labels: dict[str, str] = Field(default_factory=dict)
    match_expressions: tuple[LabelSelectorRequirement, ...] = ()

    @classmethod
    def from_set(cls, labels: Mapping[str, str]) -> LabelSelector:
        """Build a selector requiring every given label to match exactly."""
        return cls(match_labels=dict(labels))

    @property
    def is_empty(self) -> bool:
        """Whether the selector has no requirements at all."""
        return not self.match_labels and not self.match_expressions

    def requirements(self) -> list[LabelSelectorRequirement]:
        """All requirements, with matchLabels expressed as single-value ``In``."""
        reqs = [
            LabelSelectorRequirement(key=key, operator=SelectorOperator.IN, values=(value,))
            for key, value in self.match_labels.items()
        ]
        reqs.extend(self.match_expressions)
        return sorted(reqs, key=lambda r: r.key)

    def matches(self, labels: Mapping[str, str] | None) -> bool:
        """Check whether a label set satisfies every requirement."""
        labels = labels or {}
        return all(req.matches(labels) for req in self.requirements())

    def __str__(self) -> str:
        """Render in the API's label selector query syntax."""
        return ",".join(str(req) for req in self.requirements())
