"""Exceptions raised by clients and the client factory."""

from typing import Any, Optional


class BrokerError(Exception):
    """Base error for all broker failures."""

    kind = "internal"

    def __init__(self, message: str, *, context: Optional[Any] = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context


class ConfigurationError(BrokerError):
    """Raised when a connection descriptor is missing or invalid."""

    kind = "configuration"


class ConnectionError(BrokerError):
    """Raised when the target is unreachable, unauthorized or missing."""

    kind = "connection"


class ExecutionError(BrokerError):
    """Raised when a command fails or the transport breaks mid-command."""

    kind = "execution"


class UnsupportedActionError(BrokerError):
    """Raised when a transport does not know the requested action."""

    kind = "unsupported_action"


__all__ = [
    "BrokerError",
    "ConfigurationError",
    "ConnectionError",
    "ExecutionError",
    "UnsupportedActionError",
]
