"""Session manager exposing the connection registry as awaitables."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Sequence

from .config import AppConfig
from .connections import ConnectionRegistry
from .document import resolve_target
from .errors import ConfigError, ConnectionManagerError
from .libpq import PsycopgWireClient, WireClient
from .models import ConnectionStatus, Identity, ResultSet
from .notifier import ReadinessNotifier

LOG = logging.getLogger(__name__)

SessionListener = Callable[[Identity, ConnectionStatus], None]
LinesProvider = Callable[[], Sequence[str]]


@dataclass(frozen=True, slots=True)
class QueryOutcome:
    """Everything one query execution produced."""

    result_sets: tuple[ResultSet, ...]
    elapsed_ms: float


class SessionManager:
    """Per-document connection orchestrator for the Textual app.

    Documents register a callable returning their current lines; line 1 of
    those lines names the connection target. The registry is created with
    ``cancel_abandoned`` so every awaited operation settles, either with a
    result or with a :class:`~pgpad.errors.ConnectionManagerError`.
    """

    def __init__(
        self,
        config: AppConfig,
        *,
        notifier: ReadinessNotifier,
        client: WireClient | None = None,
    ) -> None:
        self._config = config
        self._documents: dict[Identity, LinesProvider] = {}
        self._listeners: set[SessionListener] = set()
        self._registry = ConnectionRegistry(
            client or PsycopgWireClient(),
            notifier,
            resolve_target=self._resolve_target,
            cancel_abandoned=True,
        )

    @property
    def registry(self) -> ConnectionRegistry:
        """Expose the underlying registry for tests."""

        return self._registry

    @property
    def documents(self) -> tuple[Identity, ...]:
        """Identities of the open documents."""

        return tuple(self._documents)

    def open_document(self, identity: Identity, lines: LinesProvider) -> None:
        """Track a document; nothing connects until it is first used."""

        self._documents[identity] = lines

    def close_document(self, identity: Identity) -> None:
        """Forget a document and release its connection."""

        self._documents.pop(identity, None)
        self.disconnect(identity)

    def status(self, identity: Identity) -> ConnectionStatus:
        return self._registry.status(identity)

    async def connect(self, identity: Identity) -> ConnectionStatus:
        """Connect the document if needed and return its status."""

        future: asyncio.Future[None] = asyncio.get_running_loop().create_future()

        def _done(error: ConnectionManagerError | None) -> None:
            _settle(future, error, None)

        self._registry.ensure_connected(identity, _done)
        self._notify(identity)
        try:
            await future
        finally:
            self._notify(identity)
        return self.status(identity)

    async def run_query(self, identity: Identity, sql: str) -> QueryOutcome:
        """Run ``sql`` on an existing connection (queued behind earlier queries)."""

        future: asyncio.Future[QueryOutcome] = asyncio.get_running_loop().create_future()

        def _done(
            error: ConnectionManagerError | None,
            results: Sequence[ResultSet] | None,
            elapsed_ms: float | None,
        ) -> None:
            outcome = None
            if error is None:
                outcome = QueryOutcome(result_sets=tuple(results or ()), elapsed_ms=elapsed_ms or 0.0)
            _settle(future, error, outcome)

        self._registry.send_query(identity, sql, _done)
        self._notify(identity)
        try:
            return await future
        finally:
            self._notify(identity)

    async def execute(self, identity: Identity, sql: str) -> QueryOutcome:
        """Lazily connect, then run ``sql``."""

        await self.connect(identity)
        return await self.run_query(identity, sql)

    async def reconnect(self, identity: Identity) -> ConnectionStatus:
        """Drop the current connection and establish a fresh one."""

        self.disconnect(identity)
        return await self.connect(identity)

    def disconnect(self, identity: Identity) -> None:
        if identity not in self._registry:
            return
        self._registry.disconnect(identity)
        self._notify(identity)

    def shutdown(self) -> None:
        """Close every connection (application exit)."""

        identities = tuple(self._registry)
        self._registry.disconnect_all()
        for identity in identities:
            self._notify(identity)

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """Subscribe to status changes; returns an unsubscribe handle."""

        self._listeners.add(listener)

        def _unsubscribe() -> None:
            self._listeners.discard(listener)

        return _unsubscribe

    def _resolve_target(self, identity: Identity) -> str:
        lines = self._documents.get(identity)
        if lines is None:
            raise ConfigError(f"unknown document: {identity!r}")
        return resolve_target(lines(), self._config)

    def _notify(self, identity: Identity) -> None:
        status = self.status(identity)
        for listener in tuple(self._listeners):
            try:
                listener(identity, status)
            except Exception:
                LOG.exception("Session listener failed", extra={"identity": str(identity)})


def _settle(future: asyncio.Future, error: ConnectionManagerError | None, value: object) -> None:
    if future.done():
        return
    if error is not None:
        future.set_exception(error)
    else:
        future.set_result(value)


__all__ = ["LinesProvider", "QueryOutcome", "SessionListener", "SessionManager"]
