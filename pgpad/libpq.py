"""Non-blocking libpq binding used by the connection registry.

The registry never talks to psycopg directly; it drives a ``WireClient``
through libpq's asynchronous contract (``PQconnectStart``/``PQconnectPoll``,
``PQsendQuery``/``PQconsumeInput``/``PQisBusy``/``PQgetResult``). The
production implementation wraps :mod:`psycopg.pq`, psycopg's thin layer over
libpq, so no protocol logic lives here.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Protocol, runtime_checkable

import psycopg
from psycopg import pq
from psycopg.conninfo import conninfo_to_dict, make_conninfo

from .models import ConnectionMetadata


class WireClientError(RuntimeError):
    """Raised when libpq rejects a call; carries libpq's message text."""


class PollStatus(Enum):
    """What a connection in progress needs next."""

    NEEDS_READ = "needs_read"
    NEEDS_WRITE = "needs_write"
    OK = "ok"
    FAILED = "failed"


@runtime_checkable
class WireClient(Protocol):
    """Capabilities the registry requires from a libpq-style client."""

    def start_connect(self, target: str) -> Any: ...

    def poll_connect(self, handle: Any) -> PollStatus: ...

    def set_nonblocking(self, handle: Any) -> None: ...

    def socket_descriptor(self, handle: Any) -> int: ...

    def connection_healthy(self, handle: Any) -> bool: ...

    def send_query(self, handle: Any, sql: str) -> None: ...

    def flush(self, handle: Any) -> bool: ...

    def consume_input(self, handle: Any) -> None: ...

    def is_busy(self, handle: Any) -> bool: ...

    def next_result(self, handle: Any) -> Any | None: ...

    def abort_copy(self, handle: Any, status: int) -> bool: ...

    def connection_metadata(self, handle: Any) -> ConnectionMetadata: ...

    def last_error_text(self, handle: Any) -> str: ...

    def close(self, handle: Any) -> None: ...


COPY_ABORT_MESSAGE = b"COPY streams are not supported"

_POLL_STATUS = {
    pq.PollingStatus.READING: PollStatus.NEEDS_READ,
    pq.PollingStatus.WRITING: PollStatus.NEEDS_WRITE,
    pq.PollingStatus.OK: PollStatus.OK,
    pq.PollingStatus.FAILED: PollStatus.FAILED,
}


def decode(value: bytes | None) -> str:
    """Decode libpq text; the server is asked for UTF-8 output."""

    if value is None:
        return ""
    return value.decode("utf-8", errors="replace")


class PsycopgWireClient:
    """``WireClient`` backed by ``psycopg.pq.PGconn``."""

    def start_connect(self, target: str) -> pq.abc.PGconn:
        conninfo = with_utf8_encoding(target)
        try:
            pgconn = pq.PGconn.connect_start(conninfo.encode("utf-8"))
        except MemoryError as exc:  # pragma: no cover - libpq allocation failure
            raise WireClientError("PQconnectStart returned NULL") from exc
        if pgconn.status == pq.ConnStatus.BAD:
            message = decode(pgconn.error_message).strip() or "connection failed"
            pgconn.finish()
            raise WireClientError(message)
        return pgconn

    def poll_connect(self, handle: pq.abc.PGconn) -> PollStatus:
        status = handle.connect_poll()
        return _POLL_STATUS.get(status, PollStatus.FAILED)

    def set_nonblocking(self, handle: pq.abc.PGconn) -> None:
        try:
            handle.nonblocking = 1
        except psycopg.OperationalError as exc:
            raise WireClientError(self.last_error_text(handle) or str(exc)) from exc

    def socket_descriptor(self, handle: pq.abc.PGconn) -> int:
        try:
            return handle.socket
        except psycopg.OperationalError as exc:
            raise WireClientError("could not get connection socket") from exc

    def connection_healthy(self, handle: pq.abc.PGconn) -> bool:
        return handle.status == pq.ConnStatus.OK

    def send_query(self, handle: pq.abc.PGconn, sql: str) -> None:
        try:
            handle.send_query(sql.encode("utf-8"))
        except psycopg.OperationalError as exc:
            raise WireClientError(self.last_error_text(handle) or str(exc)) from exc

    def flush(self, handle: pq.abc.PGconn) -> bool:
        try:
            return handle.flush() == 0
        except psycopg.OperationalError as exc:
            raise WireClientError(self.last_error_text(handle) or str(exc)) from exc

    def consume_input(self, handle: pq.abc.PGconn) -> None:
        try:
            handle.consume_input()
        except psycopg.OperationalError as exc:
            raise WireClientError(self.last_error_text(handle) or str(exc)) from exc

    def is_busy(self, handle: pq.abc.PGconn) -> bool:
        return bool(handle.is_busy())

    def next_result(self, handle: pq.abc.PGconn) -> pq.abc.PGresult | None:
        return handle.get_result()

    def abort_copy(self, handle: pq.abc.PGconn, status: int) -> bool:
        """End a COPY started by the server; ``False`` when more input is needed.

        Outgoing rows are read and discarded until the server ends the copy.
        An incoming copy is terminated with an error message, which makes the
        server fail the statement.
        """

        try:
            if status == pq.ExecStatus.COPY_OUT:
                while True:
                    nbytes, _ = handle.get_copy_data(1)
                    if nbytes == -1:
                        return True
                    if nbytes == 0:
                        return False
            if handle.put_copy_end(COPY_ABORT_MESSAGE) == 0:
                return False
            if handle.flush() != 0:
                raise WireClientError("could not send COPY termination")
            return True
        except psycopg.OperationalError as exc:
            raise WireClientError(self.last_error_text(handle) or str(exc)) from exc

    def connection_metadata(self, handle: pq.abc.PGconn) -> ConnectionMetadata:
        return ConnectionMetadata(
            user=decode(handle.user),
            host=decode(handle.host),
            database=decode(handle.db),
        )

    def last_error_text(self, handle: pq.abc.PGconn) -> str:
        return decode(handle.error_message).strip()

    def close(self, handle: pq.abc.PGconn) -> None:
        handle.finish()


def with_utf8_encoding(target: str) -> str:
    """Return ``target`` asking for UTF-8 output unless it picks an encoding."""

    try:
        params = conninfo_to_dict(target)
    except psycopg.ProgrammingError as exc:
        raise WireClientError(str(exc)) from exc
    if "client_encoding" in params:
        return target
    return make_conninfo(target, client_encoding="UTF8")


__all__ = [
    "PollStatus",
    "PsycopgWireClient",
    "WireClient",
    "WireClientError",
    "decode",
    "with_utf8_encoding",
]
