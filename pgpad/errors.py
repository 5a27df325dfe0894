"""Error taxonomy shared by the connection registry and its callers."""

from __future__ import annotations


class ConnectionManagerError(RuntimeError):
    """Base class for failures delivered to registry completion callbacks."""


class ConfigError(ConnectionManagerError):
    """Raised when no connection target can be resolved for a document."""


class ConnectError(ConnectionManagerError):
    """Raised when libpq reports a failed connection attempt."""


class NotConnected(ConnectionManagerError):
    """Raised when a query is sent for a document with no connection."""


class InvalidState(ConnectionManagerError):
    """Raised when an operation is requested in a phase that disallows it."""


class ConnectionLost(ConnectionManagerError):
    """Raised when the link health check fails before sending a query."""


class SendError(ConnectionManagerError):
    """Raised when the client rejects a query synchronously."""


class IoError(ConnectionManagerError):
    """Raised on socket registration or input consumption failures."""


class Cancelled(ConnectionManagerError):
    """Delivered to queued requests dropped by a disconnect or failure."""


__all__ = [
    "Cancelled",
    "ConfigError",
    "ConnectError",
    "ConnectionLost",
    "ConnectionManagerError",
    "InvalidState",
    "IoError",
    "NotConnected",
    "SendError",
]
