"""Instrumented fakes for the wire client and readiness notifier."""

from __future__ import annotations

import asyncio
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Sequence

from psycopg import pq

from pgpad.libpq import PollStatus, WireClientError
from pgpad.models import ConnectionMetadata
from pgpad.notifier import Interest, Registration


@dataclass
class FakeResult:
    """Stand-in for ``psycopg.pq.PGresult``."""

    status: int
    columns: tuple[str, ...] = ()
    rows: tuple[tuple[str | None, ...], ...] = ()
    command: str = ""
    affected: int | None = None
    message: str = ""

    @classmethod
    def tuples(cls, columns: Sequence[str], rows: Sequence[Sequence[str | None]]) -> FakeResult:
        return cls(pq.ExecStatus.TUPLES_OK, tuple(columns), tuple(tuple(row) for row in rows))

    @classmethod
    def command_ok(cls, status: str, affected: int | None = None) -> FakeResult:
        return cls(pq.ExecStatus.COMMAND_OK, command=status, affected=affected)

    @classmethod
    def fatal(cls, message: str) -> FakeResult:
        return cls(pq.ExecStatus.FATAL_ERROR, message=message)

    @classmethod
    def empty(cls) -> FakeResult:
        return cls(pq.ExecStatus.EMPTY_QUERY)

    @property
    def nfields(self) -> int:
        return len(self.columns)

    @property
    def ntuples(self) -> int:
        return len(self.rows)

    def fname(self, col: int) -> bytes:
        return self.columns[col].encode()

    def get_value(self, row: int, col: int) -> bytes | None:
        value = self.rows[row][col]
        return None if value is None else value.encode()

    @property
    def command_status(self) -> bytes:
        return self.command.encode()

    @property
    def command_tuples(self) -> int | None:
        return self.affected

    @property
    def error_message(self) -> bytes:
        return self.message.encode()


@dataclass(eq=False)
class FakeHandle:
    target: str
    fd: int
    poll_script: list[PollStatus]
    closed: bool = False
    healthy: bool = True
    nonblocking: bool = False
    error: str = ""
    pending: deque[FakeResult] | None = None
    busy_left: int = 0
    flush_left: int = 0
    copy_left: int = 0


class FakeWireClient:
    """Scriptable ``WireClient`` that records every call it receives."""

    def __init__(
        self,
        *,
        connect_script: Sequence[PollStatus] = (PollStatus.OK,),
        start_error: str | None = None,
        busy_cycles: int = 0,
        flush_cycles: int = 0,
        copy_cycles: int = 0,
    ) -> None:
        self.connect_script = list(connect_script)
        self.start_error = start_error
        self.busy_cycles = busy_cycles
        self.flush_cycles = flush_cycles
        self.copy_cycles = copy_cycles
        self.copy_error: str | None = None
        self.aborted_copies: list[int] = []
        self.calls: list[str] = []
        self.sent: list[str] = []
        self.handles: list[FakeHandle] = []
        self.results: dict[str, list[FakeResult]] = {}
        self.reject_send: str | None = None
        self.consume_error: str | None = None
        self.connect_error = "could not connect to server"
        self.socket_error = False
        self.metadata = ConnectionMetadata(user="alice", host="localhost", database="app")
        self._next_fd = 100

    def respond(self, sql: str, *results: FakeResult) -> None:
        self.results[sql] = list(results)

    def start_connect(self, target: str) -> FakeHandle:
        self.calls.append("start_connect")
        if self.start_error:
            raise WireClientError(self.start_error)
        self._next_fd += 1
        handle = FakeHandle(target=target, fd=self._next_fd, poll_script=list(self.connect_script))
        self.handles.append(handle)
        return handle

    def poll_connect(self, handle: FakeHandle) -> PollStatus:
        self.calls.append("poll_connect")
        status = handle.poll_script.pop(0)
        if status is PollStatus.FAILED:
            handle.error = self.connect_error
        return status

    def set_nonblocking(self, handle: FakeHandle) -> None:
        self.calls.append("set_nonblocking")
        handle.nonblocking = True

    def socket_descriptor(self, handle: FakeHandle) -> int:
        self.calls.append("socket_descriptor")
        if self.socket_error:
            raise WireClientError("could not get connection socket")
        return handle.fd

    def connection_healthy(self, handle: FakeHandle) -> bool:
        self.calls.append("connection_healthy")
        return handle.healthy

    def send_query(self, handle: FakeHandle, sql: str) -> None:
        self.calls.append("send_query")
        assert not handle.closed, "send on a closed handle"
        assert handle.pending is None, "second query sent while one is in flight"
        if self.reject_send:
            raise WireClientError(self.reject_send)
        self.sent.append(sql)
        default = [FakeResult.tuples(("?column?",), [("1",)])]
        handle.pending = deque(self.results.get(sql, default))
        handle.busy_left = self.busy_cycles
        handle.flush_left = self.flush_cycles
        handle.copy_left = self.copy_cycles

    def flush(self, handle: FakeHandle) -> bool:
        self.calls.append("flush")
        if handle.flush_left > 0:
            handle.flush_left -= 1
            return False
        return True

    def consume_input(self, handle: FakeHandle) -> None:
        self.calls.append("consume_input")
        if self.consume_error:
            raise WireClientError(self.consume_error)

    def is_busy(self, handle: FakeHandle) -> bool:
        self.calls.append("is_busy")
        if handle.busy_left > 0:
            handle.busy_left -= 1
            return True
        return False

    def next_result(self, handle: FakeHandle) -> FakeResult | None:
        self.calls.append("next_result")
        if not handle.pending:
            handle.pending = None
            return None
        return handle.pending.popleft()

    def abort_copy(self, handle: FakeHandle, status: int) -> bool:
        self.calls.append("abort_copy")
        if self.copy_error:
            raise WireClientError(self.copy_error)
        if handle.copy_left > 0:
            handle.copy_left -= 1
            return False
        self.aborted_copies.append(status)
        return True

    def connection_metadata(self, handle: FakeHandle) -> ConnectionMetadata:
        self.calls.append("connection_metadata")
        return self.metadata

    def last_error_text(self, handle: FakeHandle) -> str:
        return handle.error

    def close(self, handle: FakeHandle) -> None:
        self.calls.append("close")
        assert not handle.closed, "handle released twice"
        handle.closed = True


@dataclass(eq=False)
class FakeNotifier:
    """Notifier driven by hand; asserts one registration per socket."""

    history: list[Registration] = field(default_factory=list)
    pending: list[Registration] = field(default_factory=list)
    scheduled: deque[tuple[Callable[..., Any], tuple[Any, ...]]] = field(default_factory=deque)
    fail_registration: bool = False

    def register_once(self, fd: int, interest: Interest, callback: Callable[[], None]) -> Registration:
        assert not any(reg.fd == fd for reg in self.pending), "second registration on one socket"
        if self.fail_registration:
            raise OSError("bad file descriptor")
        registration = Registration(fd=fd, interest=interest, callback=callback)
        self.pending.append(registration)
        self.history.append(registration)
        return registration

    def cancel(self, registration: Registration) -> None:
        registration.active = False
        if registration in self.pending:
            self.pending.remove(registration)

    def call_soon(self, callback: Callable[..., Any], *args: Any) -> None:
        self.scheduled.append((callback, args))

    def close(self) -> None:
        for registration in list(self.pending):
            self.cancel(registration)

    def fire(self, fd: int | None = None) -> Registration:
        """Make one pending registration's socket ready."""

        registration = next(reg for reg in self.pending if fd is None or reg.fd == fd)
        self.pending.remove(registration)
        registration.active = False
        registration.callback()
        return registration

    def run_scheduled(self) -> int:
        count = 0
        while self.scheduled:
            callback, args = self.scheduled.popleft()
            callback(*args)
            count += 1
        return count

    def run_until_idle(self, limit: int = 100) -> None:
        """Fire registrations and scheduled callbacks until nothing is left."""

        for _ in range(limit):
            self.run_scheduled()
            if not self.pending:
                return
            self.fire()
        raise AssertionError("notifier did not go idle")


class LoopNotifier(FakeNotifier):
    """Fake notifier whose scheduled callbacks run on the asyncio loop."""

    def call_soon(self, callback: Callable[..., Any], *args: Any) -> None:
        asyncio.get_running_loop().call_soon(callback, *args)


class Recorder:
    """Collects completion callback invocations."""

    def __init__(self) -> None:
        self.calls: list[tuple[Any, ...]] = []

    def __call__(self, *args: Any) -> None:
        self.calls.append(args)

    @property
    def errors(self) -> list[Any]:
        return [call[0] for call in self.calls]
