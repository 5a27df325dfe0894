"""Textual application entry point for pgpad."""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Sequence

from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.widgets import Footer, Header, TabbedContent, TabPane

from .config import AppConfig, load_config, save_config
from .errors import ConnectionManagerError
from .libpq import WireClient
from .logging_setup import configure_logging
from .notifier import AsyncioNotifier
from .session import SessionManager
from .widgets import QueryDocument, StatusBar

LOG = logging.getLogger(__name__)

SCRATCH_TEMPLATE = "-- host=localhost dbname=postgres\n\nSELECT 1;\n"
RESULTS_HEIGHT_STEP = 2
MIN_RESULTS_HEIGHT = 3


def _load_app_config() -> AppConfig:
    """Load configuration with a small wrapper for future overrides."""

    return load_config()


class PgpadApp(App[None]):
    """SQL editor where every open document keeps its own connection."""

    CSS = """
    Screen {
        layout: vertical;
    }
    #documents {
        height: 1fr;
    }
    """

    BINDINGS = [
        Binding("ctrl+e", "execute", "Execute", priority=True),
        Binding("ctrl+t", "status", "Status", priority=True),
        Binding("ctrl+r", "reconnect", "Reconnect", priority=True),
        Binding("ctrl+d", "disconnect", "Disconnect", priority=True),
        Binding("ctrl+n", "new_document", "New", priority=True),
        Binding("ctrl+s", "save_document", "Save", priority=True),
        Binding("ctrl+w", "close_document", "Close", priority=True),
        Binding("ctrl+up", "grow_results", "Results +", priority=True),
        Binding("ctrl+down", "shrink_results", "Results -", priority=True),
    ]

    def __init__(
        self,
        paths: Sequence[Path] = (),
        *,
        config: AppConfig | None = None,
        client: WireClient | None = None,
    ) -> None:
        self._config = config or _load_app_config()
        super().__init__()
        self._paths = tuple(paths)
        self._notifier = AsyncioNotifier()
        self._session_manager = SessionManager(self._config, notifier=self._notifier, client=client)
        self._status_bar: StatusBar | None = None
        self._counter = 0

    def compose(self) -> ComposeResult:
        """Compose the root layout."""

        yield Header(show_clock=True)
        yield TabbedContent(id="documents")
        self._status_bar = StatusBar(self._session_manager)
        yield self._status_bar
        yield Footer()

    async def on_mount(self) -> None:
        if self._config.theme in self.available_themes:
            self.theme = self._config.theme
        for path in self._paths:
            await self.open_document(path)
        if not self._paths:
            await self.open_document(None)

    @property
    def session_manager(self) -> SessionManager:
        """Expose the session manager for tests."""

        return self._session_manager

    @property
    def active_document(self) -> QueryDocument | None:
        tabs = self.query_one("#documents", TabbedContent)
        pane = tabs.active_pane
        if pane is None:
            return None
        return pane.query_one(QueryDocument)

    async def open_document(self, path: Path | None) -> QueryDocument:
        """Open ``path`` (or a scratch document) in a new tab."""

        self._counter += 1
        identity = f"doc-{self._counter}"
        text = SCRATCH_TEMPLATE
        if path is not None and path.exists():
            text = path.read_text()
        document = QueryDocument(identity, self._session_manager, self._config, text=text, path=path)
        tabs = self.query_one("#documents", TabbedContent)
        await tabs.add_pane(TabPane(document.title, document, id=identity))
        tabs.active = identity
        self._track(document)
        return document

    def action_execute(self) -> None:
        document = self.active_document
        if document is not None:
            document.execute()

    def action_status(self) -> None:
        document = self.active_document
        if document is None:
            return
        status = self._session_manager.status(document.identity)
        self.notify(f"{document.title}: {status.describe()}")

    def action_disconnect(self) -> None:
        document = self.active_document
        if document is None:
            return
        if document.identity not in self._session_manager.registry:
            self.notify("No active connection.", severity="warning")
            return
        self._session_manager.disconnect(document.identity)
        self.notify("Disconnected.")

    def action_reconnect(self) -> None:
        document = self.active_document
        if document is not None:
            self.run_worker(self._reconnect(document), group="connections", exit_on_error=False)

    async def action_new_document(self) -> None:
        await self.open_document(None)

    def action_save_document(self) -> None:
        document = self.active_document
        if document is None:
            return
        if document.save():
            self.notify(f"Saved {document.path}.")
        else:
            self.notify("Scratch documents have no file to save to.", severity="warning")

    async def action_close_document(self) -> None:
        document = self.active_document
        if document is None:
            return
        self._session_manager.close_document(document.identity)
        tabs = self.query_one("#documents", TabbedContent)
        await tabs.remove_pane(document.identity)
        self._track(self.active_document)

    def action_grow_results(self) -> None:
        self._resize_results(RESULTS_HEIGHT_STEP)

    def action_shrink_results(self) -> None:
        self._resize_results(-RESULTS_HEIGHT_STEP)

    def remember_results_height(self, height: int) -> None:
        """Apply the results pane height to every document and persist it."""

        for document in self.query(QueryDocument):
            document.set_results_height(height)
        if self._config.layout.results_height == height:
            return
        self._config = self._config.with_layout(results_height=height)
        save_config(self._config)

    def watch_theme(self, theme: str) -> None:
        if theme == self._config.theme:
            return
        self._config = self._config.with_theme(theme)
        save_config(self._config)

    def on_unmount(self) -> None:
        self._session_manager.shutdown()
        self._notifier.close()

    def on_tabbed_content_tab_activated(self, event: TabbedContent.TabActivated) -> None:
        self._track(self.active_document)

    async def _reconnect(self, document: QueryDocument) -> None:
        try:
            status = await self._session_manager.reconnect(document.identity)
        except ConnectionManagerError as exc:
            self.notify(f"Reconnect failed: {exc}", severity="error")
            return
        self.notify(f"Reconnected: {status.describe()}")

    def _resize_results(self, delta: int) -> None:
        document = self.active_document
        if document is None:
            return
        current = self._config.layout.results_height or document.results_height
        self.remember_results_height(max(MIN_RESULTS_HEIGHT, current + delta))

    def _track(self, document: QueryDocument | None) -> None:
        if self._status_bar is None:
            return
        if document is None:
            self._status_bar.track(None)
        else:
            self._status_bar.track(document.identity, document.title)


def main(argv: Sequence[str] | None = None) -> None:
    """Invoke the Textual application."""

    parser = argparse.ArgumentParser(prog="pgpad", description=__doc__)
    parser.add_argument("files", nargs="*", type=Path, help="SQL documents to open")
    args = parser.parse_args(argv)
    config = _load_app_config()
    configure_logging(config)
    LOG.info("Starting pgpad", extra={"documents": len(args.files)})
    PgpadApp(args.files, config=config).run()


if __name__ == "__main__":
    main()
