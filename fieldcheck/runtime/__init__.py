"""
Runtime layer for provider and endpoint calls.

- ServiceError: transport errors with retry semantics
- RetryPolicy: backoff configuration for LLM judge calls
"""

from .errors import ErrorCode, RetryableError, ServiceError, TerminalError
from .retry import RetryPolicy, with_retry

__all__ = [
    "ErrorCode",
    "ServiceError",
    "RetryableError",
    "TerminalError",
    "RetryPolicy",
    "with_retry",
]
