"""Shared dataclasses used across connection/session modules."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Hashable, Sequence, Union

from .errors import ConnectionManagerError


class Phase(str, Enum):
    """Lifecycle stage of a document connection."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    READY = "ready"
    BUSY = "busy"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class ConnectionMetadata:
    """Who and where a connection is talking to."""

    user: str
    host: str
    database: str

    def describe(self) -> str:
        return f"{self.user}@{self.host}/{self.database}"


@dataclass(frozen=True, slots=True)
class TabularResult:
    """Rows returned by a SELECT-like statement."""

    columns: tuple[str, ...]
    rows: tuple[tuple[str | None, ...], ...]

    @property
    def row_count(self) -> int:
        return len(self.rows)


@dataclass(frozen=True, slots=True)
class CommandResult:
    """Outcome of a statement that returns no rows (INSERT, CREATE, ...)."""

    status: str
    affected_rows: int | None = None


@dataclass(frozen=True, slots=True)
class ErrorResult:
    """A statement-level error; data, not a control-flow failure."""

    message: str


ResultSet = Union[TabularResult, CommandResult, ErrorResult]

ConnectCallback = Callable[[ConnectionManagerError | None], None]
QueryCallback = Callable[
    [ConnectionManagerError | None, Sequence[ResultSet] | None, float | None],
    None,
]
Identity = Hashable


@dataclass(frozen=True, slots=True)
class QueryRequest:
    """A query waiting for (or holding) its connection."""

    sql: str
    on_complete: QueryCallback


@dataclass(frozen=True, slots=True)
class ConnectionStatus:
    """Side-effect free view of a connection for status displays."""

    phase: Phase
    metadata: ConnectionMetadata | None = None
    queue_depth: int = 0

    def describe(self) -> str:
        text = self.phase.value
        if self.metadata is not None:
            text += f" ({self.metadata.describe()})"
        if self.queue_depth > 0:
            text += f" [{self.queue_depth} queued]"
        return text


DISCONNECTED_STATUS = ConnectionStatus(phase=Phase.DISCONNECTED)


__all__ = [
    "CommandResult",
    "ConnectCallback",
    "ConnectionMetadata",
    "ConnectionStatus",
    "DISCONNECTED_STATUS",
    "ErrorResult",
    "Identity",
    "Phase",
    "QueryCallback",
    "QueryRequest",
    "ResultSet",
    "TabularResult",
]
