"""Unit tests for GroupKind."""

from __future__ import annotations

import pytest

from rollout_ops.integrations.kubernetes.models.identity import GroupKind


@pytest.mark.unit
@pytest.mark.kubernetes
class TestGroupKind:
    """Test GroupKind."""

    def test_from_grouped_api_version(self) -> None:
        """Test parsing group/version."""
        gk = GroupKind.from_api_version("apps.kruise.io/v1beta1", "StatefulSet")
        assert (gk.group, gk.kind, gk.version) == ("apps.kruise.io", "StatefulSet", "v1beta1")

    def test_from_core_api_version(self) -> None:
        """Test parsing a core group version."""
        gk = GroupKind.from_api_version("v1", "Service")
        assert (gk.group, gk.version) == ("", "v1")

    def test_version_ignored_for_equality(self) -> None:
        """Test every schema version of a kind is one identity."""
        a = GroupKind.from_api_version("apps/v1", "Deployment")
        b = GroupKind.from_api_version("apps/v1beta2", "Deployment")
        assert a == b
        assert hash(a) == hash(b)
        assert GroupKind("extensions", "Deployment") != a

    def test_of(self) -> None:
        """Test reading identity from an object."""
        assert GroupKind.of({"apiVersion": "batch/v1", "kind": "Job"}) == GroupKind("batch", "Job")

    def test_of_missing_fields(self) -> None:
        """Test objects without identity fields."""
        assert GroupKind.of({}) == GroupKind("", "")

    def test_str(self) -> None:
        """Test rendering Kind.group."""
        assert str(GroupKind("apps.kruise.io", "CloneSet")) == "CloneSet.apps.kruise.io"
        assert str(GroupKind("", "Service")) == "Service"
