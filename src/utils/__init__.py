"""Utility modules for rvlights."""

from utils.errors import (
    AuthenticationError,
    CorrelationTimeout,
    DeviceParseError,
    DiscoveryError,
    DiscoveryTimeout,
    EmptySceneError,
    ErrorCategory,
    NotConnectedError,
    OperationError,
    classify_exception,
)
from utils.retry import RetryExhausted, retry_async

__all__ = [
    "AuthenticationError",
    "CorrelationTimeout",
    "DeviceParseError",
    "DiscoveryError",
    "DiscoveryTimeout",
    "EmptySceneError",
    "ErrorCategory",
    "NotConnectedError",
    "OperationError",
    "RetryExhausted",
    "classify_exception",
    "retry_async",
]
