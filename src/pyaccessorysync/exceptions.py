"""Custom exceptions for pyaccessorysync."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .models import CharacteristicKind


class PyAccessorySyncException(Exception):
    """Base class for pyaccessorysync exceptions."""


class ConfigError(PyAccessorySyncException):
    """Raised when the configuration is missing or invalid."""


class AuthError(PyAccessorySyncException):
    """Raised when the bridge rejects the access token."""


class ApiError(PyAccessorySyncException):
    """Raised when a bridge API call fails."""

    def __init__(self, status_code: int, error_message: str) -> None:
        """Initialize the API error."""
        self.status_code = status_code
        self.error_message = error_message
        super().__init__(f"API Error {status_code}: {error_message}")


class GatewayUnavailable(PyAccessorySyncException):
    """Raised when no session with the accessory framework can be established."""


class CharacteristicError(PyAccessorySyncException):
    """Base class for failures tied to one accessory characteristic."""

    action = "access"

    def __init__(
        self,
        accessory_id: str,
        kind: CharacteristicKind,
        reason: str,
    ) -> None:
        """Initialize the characteristic error."""
        self.accessory_id = accessory_id
        self.kind = kind
        self.reason = reason
        super().__init__(
            f"Failed to {self.action} {kind} of accessory {accessory_id}: {reason}",
        )


class NotificationSubscriptionFailed(CharacteristicError):
    """Raised when push notifications cannot be enabled for a characteristic."""

    action = "subscribe to"


class ReadFailed(CharacteristicError):
    """Raised when a one-shot characteristic read fails."""

    action = "read"


class WriteFailed(CharacteristicError):
    """Raised when a characteristic write fails or times out."""

    action = "write"

    def __init__(
        self,
        accessory_id: str,
        kind: CharacteristicKind,
        value: Any,
        reason: str,
    ) -> None:
        """Initialize the write error."""
        self.value = value
        super().__init__(accessory_id, kind, reason)
