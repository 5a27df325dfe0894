"""Widget library for the Textual UI."""

from __future__ import annotations

from .query_document import QueryDocument
from .status_bar import StatusBar

__all__ = ["QueryDocument", "StatusBar"]
