"""Logging configuration for rollout_ops."""

from rollout_ops.logging.config import configure_logging, get_logger, resolve_log_dir

__all__ = ["configure_logging", "get_logger", "resolve_log_dir"]
