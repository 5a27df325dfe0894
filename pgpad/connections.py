"""Per-document connection registry with asynchronous connect and query.

Every document owns at most one libpq connection. Connections are driven as
small state machines on a single event loop: a step runs until libpq needs
the socket to become readable or writable, registers exactly one readiness
notification and returns. Nothing in here blocks.

Phases::

    DISCONNECTED -> CONNECTING -> READY <-> BUSY
                         |          |        |
                         +--------> ERROR <--+

Queries submitted while a connection is CONNECTING or BUSY wait in a FIFO
queue and run one at a time once the connection is READY again.
"""

from __future__ import annotations

import logging
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Iterator

from .errors import (
    Cancelled,
    ConfigError,
    ConnectError,
    ConnectionLost,
    ConnectionManagerError,
    InvalidState,
    IoError,
    NotConnected,
    SendError,
)
from .libpq import PollStatus, WireClient, WireClientError
from .models import (
    DISCONNECTED_STATUS,
    ConnectCallback,
    ConnectionMetadata,
    ConnectionStatus,
    Identity,
    Phase,
    QueryCallback,
    QueryRequest,
)
from .notifier import Interest, ReadinessNotifier, Registration
from .query import ResultCollector

LOG = logging.getLogger(__name__)

TargetResolver = Callable[[Identity], str]


@dataclass(eq=False)
class ConnectionState:
    """Mutable bookkeeping for one document connection."""

    identity: Identity
    handle: Any
    target: str
    phase: Phase = Phase.CONNECTING
    registration: Registration | None = None
    queue: deque[QueryRequest] = field(default_factory=deque)
    metadata: ConnectionMetadata | None = None
    in_flight: QueryRequest | None = None
    connect_waiters: list[ConnectCallback] = field(default_factory=list)


class ConnectionRegistry:
    """Owns every document connection and all of their phase transitions.

    Completion callbacks are always delivered through the notifier's
    ``call_soon`` boundary, never from inside the call that triggered them.
    The one exception is :meth:`ensure_connected` on a connection that is
    already usable, which answers synchronously.

    When ``cancel_abandoned`` is false, callbacks of queued requests dropped
    by a disconnect or a failed operation are never invoked. When true, each
    of them (and any pending connect or in-flight query callback dropped by
    :meth:`disconnect`) receives a :class:`~pgpad.errors.Cancelled` error.
    """

    def __init__(
        self,
        client: WireClient,
        notifier: ReadinessNotifier,
        *,
        resolve_target: TargetResolver | None = None,
        cancel_abandoned: bool = False,
    ) -> None:
        self._client = client
        self._notifier = notifier
        self._resolve_target = resolve_target or _no_target
        self._cancel_abandoned = cancel_abandoned
        self._connections: dict[Identity, ConnectionState] = {}

    def __contains__(self, identity: Identity) -> bool:
        return identity in self._connections

    def __iter__(self) -> Iterator[Identity]:
        return iter(tuple(self._connections))

    def __len__(self) -> int:
        return len(self._connections)

    def ensure_connected(self, identity: Identity, on_result: ConnectCallback) -> None:
        """Make sure ``identity`` has a usable connection, then call back."""

        state = self._connections.get(identity)
        if state is not None:
            if state.phase in (Phase.READY, Phase.BUSY):
                on_result(None)
                return
            if state.phase is Phase.CONNECTING:
                state.connect_waiters.append(on_result)
                return
        try:
            target = self._resolve_target(identity)
        except ConfigError as exc:
            self._deliver(on_result, exc)
            return
        self.connect(identity, target, on_result)

    def connect(self, identity: Identity, target: str, on_result: ConnectCallback) -> None:
        """Replace any connection for ``identity`` with a new attempt on ``target``."""

        self.disconnect(identity)
        try:
            handle = self._client.start_connect(target)
        except WireClientError as exc:
            LOG.warning("Connect failed to start", extra={"identity": str(identity), "reason": str(exc)})
            self._deliver(on_result, ConnectError(str(exc)))
            return
        state = ConnectionState(identity=identity, handle=handle, target=target)
        state.connect_waiters.append(on_result)
        self._connections[identity] = state
        LOG.debug("Connecting", extra={"identity": str(identity)})
        self._poll_connect(state)

    def send_query(self, identity: Identity, sql: str, on_complete: QueryCallback) -> None:
        """Run ``sql`` on the connection for ``identity``, queueing if it is not ready."""

        state = self._connections.get(identity)
        if state is None:
            self._deliver(on_complete, NotConnected("no connection for this document"), None, None)
            return
        request = QueryRequest(sql=sql, on_complete=on_complete)
        if state.phase in (Phase.CONNECTING, Phase.BUSY):
            state.queue.append(request)
            LOG.debug(
                "Query queued",
                extra={"identity": str(identity), "queue_depth": len(state.queue)},
            )
            return
        if state.phase is not Phase.READY:
            self._deliver(
                on_complete,
                InvalidState(f"connection is in state: {state.phase.value}"),
                None,
                None,
            )
            return
        self._run_query(state, request)

    def disconnect(self, identity: Identity) -> None:
        """Tear down the connection for ``identity``; a no-op when absent."""

        state = self._connections.pop(identity, None)
        if state is None:
            return
        pending_connect = list(state.connect_waiters)
        in_flight = state.in_flight
        dropped = self._release(state)
        LOG.debug("Disconnected", extra={"identity": str(identity)})
        if self._cancel_abandoned:
            for waiter in pending_connect:
                self._deliver(waiter, Cancelled("connection closed before it was established"))
            if in_flight is not None:
                dropped.insert(0, in_flight)
        self._abandon(dropped)

    def disconnect_all(self) -> None:
        """Disconnect every tracked document (process shutdown)."""

        for identity in tuple(self._connections):
            self.disconnect(identity)

    def status(self, identity: Identity) -> ConnectionStatus:
        """Report phase, server metadata and queue depth without side effects."""

        state = self._connections.get(identity)
        if state is None:
            return DISCONNECTED_STATUS
        return ConnectionStatus(
            phase=state.phase,
            metadata=state.metadata,
            queue_depth=len(state.queue),
        )

    # -- connect state machine -------------------------------------------

    def _poll_connect(self, state: ConnectionState) -> None:
        if not self._is_current(state):
            return
        try:
            status = self._client.poll_connect(state.handle)
        except WireClientError as exc:
            self._fail_connect(state, ConnectError(str(exc)))
            return
        if status is PollStatus.OK:
            self._on_connected(state)
        elif status is PollStatus.FAILED:
            message = self._client.last_error_text(state.handle) or "connection failed"
            self._fail_connect(state, ConnectError(message))
        else:
            interest = Interest.READ if status is PollStatus.NEEDS_READ else Interest.WRITE
            try:
                self._await_socket(state, interest, lambda: self._poll_connect(state))
            except IoError as exc:
                self._fail_connect(state, exc)

    def _on_connected(self, state: ConnectionState) -> None:
        try:
            self._client.set_nonblocking(state.handle)
        except WireClientError as exc:
            self._fail_connect(state, ConnectError(str(exc)))
            return
        state.metadata = self._client.connection_metadata(state.handle)
        state.phase = Phase.READY
        LOG.info(
            "Connected",
            extra={"identity": str(state.identity), "server": state.metadata.describe()},
        )
        waiters, state.connect_waiters = state.connect_waiters, []
        for waiter in waiters:
            self._deliver(waiter, None)
        self._drain_queue(state)

    def _fail_connect(self, state: ConnectionState, error: ConnectionManagerError) -> None:
        LOG.warning("Connect failed", extra={"identity": str(state.identity), "reason": str(error)})
        waiters, state.connect_waiters = state.connect_waiters, []
        self._connections.pop(state.identity, None)
        dropped = self._release(state)
        state.phase = Phase.ERROR
        for waiter in waiters:
            self._deliver(waiter, error)
        self._abandon(dropped)

    # -- query state machine ---------------------------------------------

    def _run_query(self, state: ConnectionState, request: QueryRequest) -> None:
        if not self._client.connection_healthy(state.handle):
            state.phase = Phase.ERROR
            LOG.warning("Connection lost before sending query", extra={"identity": str(state.identity)})
            self._deliver(request.on_complete, ConnectionLost("connection lost"), None, None)
            self._abandon(self._drop_queue(state))
            return
        try:
            self._client.send_query(state.handle, request.sql)
        except WireClientError as exc:
            self._deliver(request.on_complete, SendError(str(exc)), None, None)
            return
        state.phase = Phase.BUSY
        state.in_flight = request
        collector = ResultCollector(self._client, state.handle)
        started = time.perf_counter()
        LOG.debug("Query sent", extra={"identity": str(state.identity)})
        self._flush_query(state, request, collector, started)

    def _flush_query(
        self,
        state: ConnectionState,
        request: QueryRequest,
        collector: ResultCollector,
        started: float,
    ) -> None:
        if not self._is_current(state):
            return
        try:
            flushed = self._client.flush(state.handle)
        except WireClientError as exc:
            self._fail_query(state, request, IoError(f"error sending query: {exc}"))
            return
        try:
            if flushed:
                self._await_socket(
                    state,
                    Interest.READ,
                    lambda: self._on_query_readable(state, request, collector, started),
                )
            else:
                self._await_socket(
                    state,
                    Interest.WRITE,
                    lambda: self._flush_query(state, request, collector, started),
                )
        except IoError as exc:
            self._fail_query(state, request, exc)

    def _on_query_readable(
        self,
        state: ConnectionState,
        request: QueryRequest,
        collector: ResultCollector,
        started: float,
    ) -> None:
        if not self._is_current(state):
            return
        try:
            self._client.consume_input(state.handle)
        except WireClientError as exc:
            self._fail_query(state, request, IoError(f"error consuming input: {exc}"))
            return
        try:
            complete = collector.collect()
        except WireClientError as exc:
            self._fail_query(state, request, IoError(f"error reading results: {exc}"))
            return
        if not complete:
            try:
                self._await_socket(
                    state,
                    Interest.READ,
                    lambda: self._on_query_readable(state, request, collector, started),
                )
            except IoError as exc:
                self._fail_query(state, request, exc)
            return
        elapsed_ms = (time.perf_counter() - started) * 1000
        results = collector.results
        state.phase = Phase.READY
        state.in_flight = None
        LOG.debug(
            "Query complete",
            extra={"identity": str(state.identity), "results": len(results), "elapsed_ms": elapsed_ms},
        )
        self._deliver(request.on_complete, None, results, elapsed_ms)
        self._drain_queue(state)

    def _fail_query(self, state: ConnectionState, request: QueryRequest, error: ConnectionManagerError) -> None:
        LOG.warning("Query failed", extra={"identity": str(state.identity), "reason": str(error)})
        self._clear_registration(state)
        state.phase = Phase.ERROR
        state.in_flight = None
        self._deliver(request.on_complete, error, None, None)
        self._abandon(self._drop_queue(state))

    def _drain_queue(self, state: ConnectionState) -> None:
        while state.queue and state.phase is Phase.READY and self._is_current(state):
            self._run_query(state, state.queue.popleft())

    # -- helpers -----------------------------------------------------------

    def _await_socket(self, state: ConnectionState, interest: Interest, resume: Callable[[], None]) -> None:
        self._clear_registration(state)
        try:
            fd = self._client.socket_descriptor(state.handle)
        except WireClientError as exc:
            raise IoError(str(exc)) from exc

        def _ready() -> None:
            state.registration = None
            resume()

        try:
            state.registration = self._notifier.register_once(fd, interest, _ready)
        except (OSError, ValueError) as exc:
            raise IoError(f"could not watch connection socket: {exc}") from exc

    def _clear_registration(self, state: ConnectionState) -> None:
        if state.registration is not None:
            self._notifier.cancel(state.registration)
            state.registration = None

    def _release(self, state: ConnectionState) -> list[QueryRequest]:
        self._clear_registration(state)
        if state.handle is not None:
            self._client.close(state.handle)
            state.handle = None
        state.phase = Phase.DISCONNECTED
        state.in_flight = None
        state.connect_waiters = []
        return self._drop_queue(state)

    @staticmethod
    def _drop_queue(state: ConnectionState) -> list[QueryRequest]:
        dropped = list(state.queue)
        state.queue.clear()
        return dropped

    def _abandon(self, requests: list[QueryRequest]) -> None:
        if not requests:
            return
        if not self._cancel_abandoned:
            LOG.debug("Abandoned queued queries", extra={"count": len(requests)})
            return
        for request in requests:
            self._deliver(request.on_complete, Cancelled("query was cancelled"), None, None)

    def _is_current(self, state: ConnectionState) -> bool:
        return self._connections.get(state.identity) is state

    def _deliver(self, callback: Callable[..., None], *args: Any) -> None:
        self._notifier.call_soon(callback, *args)


def _no_target(identity: Identity) -> str:
    raise ConfigError(f"no connection target configured for {identity!r}")


__all__ = ["ConnectionRegistry", "ConnectionState", "TargetResolver"]
