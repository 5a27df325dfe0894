"""Status bar widget that mirrors the active document's connection."""

from __future__ import annotations

from typing import Callable

from textual.widgets import Static

from pgpad.models import ConnectionStatus, Identity
from pgpad.session import SessionManager


class StatusBar(Static):
    """Compact status strip rendered above Textual's footer."""

    DEFAULT_CSS = """
    StatusBar {
        height: 1;
        padding: 0 1;
        background: $surface-darken-3;
        color: $text;
    }
    """

    def __init__(self, session_manager: SessionManager) -> None:
        super().__init__("", id="status-bar", markup=False)
        self._session_manager = session_manager
        self._unsubscribe: Callable[[], None] | None = None
        self._identity: Identity | None = None
        self._title = ""

    async def on_mount(self) -> None:
        self._unsubscribe = self._session_manager.subscribe(self._handle_status)

    def on_unmount(self) -> None:
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None

    def track(self, identity: Identity | None, title: str = "") -> None:
        """Follow the connection of another document."""

        self._identity = identity
        self._title = title
        if identity is None:
            self.update("")
            return
        self._show_status(self._session_manager.status(identity))

    def _handle_status(self, identity: Identity, status: ConnectionStatus) -> None:
        if identity != self._identity:
            return
        self._show_status(status)

    def _show_status(self, status: ConnectionStatus) -> None:
        parts = [self._title or "untitled", status.describe()]
        self.update(" | ".join(parts))


__all__ = ["StatusBar"]
