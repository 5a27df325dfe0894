"""Per-document PostgreSQL connections for a Textual SQL editor."""

from __future__ import annotations

from .connections import ConnectionRegistry
from .errors import ConnectionManagerError
from .models import CommandResult, ConnectionStatus, ErrorResult, Phase, ResultSet, TabularResult
from .session import QueryOutcome, SessionManager

__all__ = [
    "CommandResult",
    "ConnectionManagerError",
    "ConnectionRegistry",
    "ConnectionStatus",
    "ErrorResult",
    "Phase",
    "QueryOutcome",
    "ResultSet",
    "SessionManager",
    "TabularResult",
]
