"""Error handling utilities for rvlights.

Provides the error taxonomy of the lighting core and a way to turn any
exception into a structured, user-facing error with a recovery hint.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class ErrorCategory(Enum):
    """Categories of errors for appropriate handling."""

    TIMEOUT = "timeout"
    PARSE_FAILURE = "parse_failure"
    NOT_FOUND = "not_found"
    PARTIAL_APPLICATION = "partial_application"
    NOT_CONNECTED = "not_connected"
    INVALID_INPUT = "invalid_input"
    INTERNAL_ERROR = "internal_error"


@dataclass
class OperationError:
    """Structured error for command line and status output."""

    category: ErrorCategory
    message: str
    device_id: int | None = None
    recovery: str | None = None
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to response dict."""
        result: dict[str, Any] = {
            "error": self.message,
            "error_category": self.category.value,
        }
        if self.device_id is not None:
            result["device_id"] = self.device_id
        if self.recovery:
            result["recovery"] = self.recovery
        if self.details:
            result["details"] = self.details
        return result


RECOVERY_SUGGESTIONS = {
    ErrorCategory.TIMEOUT: "The controller did not answer in time. Check the connection and try again.",
    ErrorCategory.PARSE_FAILURE: "The controller sent data that could not be read. Re-run discovery.",
    ErrorCategory.NOT_FOUND: "Use 'rvlights discover' or 'rvlights scene list' to see what exists.",
    ErrorCategory.PARTIAL_APPLICATION: "Some lights were not updated. Re-run discovery and prune stale scenes.",
    ErrorCategory.NOT_CONNECTED: "Not connected to the controller. Check host, port and PIN.",
    ErrorCategory.INVALID_INPUT: "Check parameter values and try again.",
    ErrorCategory.INTERNAL_ERROR: "An unexpected error occurred. Please try again.",
}


def get_recovery_suggestion(category: ErrorCategory) -> str:
    """Get recovery suggestion for an error category."""
    return RECOVERY_SUGGESTIONS.get(category, "Please try again.")


class CorrelationTimeout(TimeoutError):
    """Raised when no response arrives for a correlation tag in time."""

    def __init__(self, tag: str, timeout: float):
        self.tag = tag
        self.timeout = timeout
        super().__init__(f"No response for {tag} within {timeout}s")


class DiscoveryError(Exception):
    """Raised when discovery cannot make sense of the controller's answers."""


class DiscoveryTimeout(DiscoveryError):
    """Raised when discovery does not reach Ready within its budget.

    ``count_received`` is False when the controller never answered the count
    request; otherwise ``received`` of ``expected`` devices were registered
    and remain available in the registry.
    """

    def __init__(
        self,
        timeout: float,
        expected: int | None = None,
        received: int = 0,
    ):
        self.timeout = timeout
        self.expected = expected
        self.received = received
        if expected is None:
            msg = f"No light count from controller within {timeout}s"
        else:
            msg = f"Discovered {received} of {expected} lights within {timeout}s"
        super().__init__(msg)

    @property
    def count_received(self) -> bool:
        return self.expected is not None


class DeviceParseError(ValueError):
    """Raised when a controller light object or status value is malformed."""

    def __init__(self, payload: str, reason: str):
        self.payload = payload
        self.reason = reason
        super().__init__(f"Malformed controller data ({reason}): {payload[:80]}")


class EmptySceneError(ValueError):
    """Raised when a scene capture matches no devices."""

    def __init__(self, name: str, room_filter: int | None):
        self.name = name
        self.room_filter = room_filter
        where = "any room" if room_filter is None else f"room {room_filter}"
        super().__init__(f"Scene {name!r} would be empty: no lights in {where}")


class NotConnectedError(ConnectionError):
    """Raised when the controller connection is not open."""


class AuthenticationError(ConnectionError):
    """Raised when the controller rejects or locks out the PIN."""

    def __init__(self, token: str, message: str):
        self.token = token
        super().__init__(message)


def classify_exception(e: Exception, device_id: int | None = None) -> OperationError:
    """Classify an exception into a structured error.

    Args:
        e: The exception to classify
        device_id: Optional device ID for context

    Returns:
        OperationError with appropriate category and recovery suggestion
    """
    if isinstance(e, DiscoveryTimeout):
        category = ErrorCategory.TIMEOUT
        message = str(e)
    elif isinstance(e, (CorrelationTimeout, asyncio.TimeoutError)):
        category = ErrorCategory.TIMEOUT
        message = str(e) or "Operation timed out"
    elif isinstance(e, (DeviceParseError, DiscoveryError)):
        category = ErrorCategory.PARSE_FAILURE
        message = str(e)
    elif isinstance(e, AuthenticationError):
        category = ErrorCategory.NOT_CONNECTED
        message = f"Authentication failed: {e}"
    elif isinstance(e, NotConnectedError):
        category = ErrorCategory.NOT_CONNECTED
        message = str(e) or "Not connected to controller"
    elif isinstance(e, KeyError):
        category = ErrorCategory.NOT_FOUND
        message = f"Not found: {e.args[0] if e.args else e}"
    elif isinstance(e, ValueError):
        category = ErrorCategory.INVALID_INPUT
        message = str(e)
    elif isinstance(e, (ConnectionError, OSError)):
        category = ErrorCategory.NOT_CONNECTED
        message = f"Connection error: {e}"
    else:
        category = ErrorCategory.INTERNAL_ERROR
        message = f"Unexpected error: {e}"

    return OperationError(
        category=category,
        message=message,
        device_id=device_id,
        recovery=get_recovery_suggestion(category),
    )
