"""Utility modules for tabgroups."""

from tabgroups.utils.logging import JsonFormatter, configure_logging, get_logger
from tabgroups.utils.retry import RetryConfig, RetryError, retry_with_backoff_async

__all__ = [
    "JsonFormatter",
    "RetryConfig",
    "RetryError",
    "configure_logging",
    "get_logger",
    "retry_with_backoff_async",
]
