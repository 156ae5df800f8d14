"""Version information for rollout_ops."""

__version__ = "0.1.0"
