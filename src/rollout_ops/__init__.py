"""Rollout status, pod lookup and resource merging for Kubernetes workloads."""

from rollout_ops.__version__ import __version__

__all__ = ["__version__"]
