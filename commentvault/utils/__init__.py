"""Utility modules for the crawler."""

from commentvault.utils.http_client import ClientPool, close_all_clients, get_client_pool
from commentvault.utils.logging import LogContext, get_logger, setup_logging
from commentvault.utils.retry import RetryConfig, retry_async
from commentvault.utils.signing import sign, validate_signature

__all__ = [
    # HTTP
    "ClientPool",
    "close_all_clients",
    "get_client_pool",
    # Logging
    "get_logger",
    "LogContext",
    "setup_logging",
    # Retry
    "retry_async",
    "RetryConfig",
    # Signing
    "sign",
    "validate_signature",
]
