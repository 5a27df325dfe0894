"""Editor pane for one SQL document plus its result view."""

from __future__ import annotations

from pathlib import Path
from typing import Sequence

from rich.text import Text
from textual.app import ComposeResult
from textual.containers import Container, VerticalScroll
from textual.widgets import Static, TextArea

from pgpad.config import AppConfig
from pgpad.display import flatten, format_error, format_results
from pgpad.document import paragraph_range, prepare_query
from pgpad.errors import ConnectionManagerError
from pgpad.session import QueryOutcome, SessionManager


class QueryDocument(Container):
    """A document with its own connection, editor and results pane."""

    DEFAULT_CSS = """
    QueryDocument {
        layout: vertical;
        height: 1fr;
    }

    QueryDocument TextArea {
        height: 2fr;
        border: round $primary 40%;
    }

    QueryDocument TextArea:focus {
        border: round $primary;
    }

    QueryDocument #results-scroll {
        height: 1fr;
        border-top: solid $surface-darken-2;
        background: $surface;
    }

    QueryDocument #results {
        padding: 0 1;
    }
    """

    def __init__(
        self,
        identity: str,
        session_manager: SessionManager,
        config: AppConfig,
        *,
        text: str = "",
        path: Path | None = None,
    ) -> None:
        super().__init__(id=f"{identity}-body")
        self.identity = identity
        self.path = path
        self._session_manager = session_manager
        self._config = config
        self._initial_text = text
        self._editor: TextArea | None = None
        self._results: Static | None = None

    def compose(self) -> ComposeResult:
        yield TextArea(self._initial_text, id=f"{self.identity}-editor")
        results = VerticalScroll(Static("", id="results"), id="results-scroll")
        if self._config.layout.results_height is not None:
            results.styles.height = self._config.layout.results_height
        yield results

    def on_mount(self) -> None:
        self._editor = self.query_one(TextArea)
        self._results = self.query_one("#results", Static)
        self._session_manager.open_document(self.identity, self.lines)

    def on_unmount(self) -> None:
        self._session_manager.close_document(self.identity)

    @property
    def title(self) -> str:
        return self.path.name if self.path else "untitled"

    def lines(self) -> Sequence[str]:
        """Current editor content split into lines."""

        if self._editor is None:
            return self._initial_text.split("\n")
        return self._editor.text.split("\n")

    def selected_range(self) -> tuple[int, int]:
        """1-indexed line range: the selection, or the paragraph at the cursor."""

        if self._editor is None:
            return (1, len(self.lines()))
        selection = self._editor.selection
        if selection.start != selection.end:
            start, end = sorted((selection.start, selection.end))
            last = end[0]
            if end[1] == 0 and end[0] > start[0]:
                last -= 1
            return (start[0] + 1, last + 1)
        row, _ = self._editor.cursor_location
        return paragraph_range(self.lines(), row + 1)

    def execute(self) -> None:
        """Run the selected SQL in the background."""

        lines = self.lines()
        first, last = self.selected_range()
        sql = prepare_query(lines, first, last)
        if sql is None:
            self.notify("No query to execute.", severity="warning")
            return
        self.run_worker(self._execute(sql), group="queries", exit_on_error=False)

    @property
    def results_height(self) -> int:
        """Rows currently given to the results pane."""

        return self.query_one("#results-scroll", VerticalScroll).size.height

    def set_results_height(self, height: int) -> None:
        self.query_one("#results-scroll", VerticalScroll).styles.height = height

    def save(self) -> bool:
        """Write the editor content back to its file."""

        if self.path is None:
            return False
        self.path.write_text("\n".join(self.lines()))
        return True

    def show_lines(self, lines: Sequence[str]) -> None:
        if self._results is None:
            return
        self._results.update(Text("\n".join(flatten(lines))))

    def show_error(self, message: str) -> None:
        self.show_lines([format_error(message)])

    async def _execute(self, sql: str) -> None:
        try:
            outcome = await self._session_manager.execute(self.identity, sql)
        except ConnectionManagerError as exc:
            self.show_error(str(exc))
            return
        self._render_outcome(outcome)

    def _render_outcome(self, outcome: QueryOutcome) -> None:
        elapsed = outcome.elapsed_ms if self._config.show_timing else None
        self.show_lines(
            format_results(outcome.result_sets, elapsed, max_rows=self._config.max_result_rows)
        )


__all__ = ["QueryDocument"]
