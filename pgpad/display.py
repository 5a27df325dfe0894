"""psql-style text rendering of query results."""

from __future__ import annotations

from typing import Sequence, assert_never

from .models import CommandResult, ErrorResult, ResultSet, TabularResult

NULL_DISPLAY = "NULL"


def format_results(
    results: Sequence[ResultSet],
    elapsed_ms: float | None = None,
    *,
    max_rows: int | None = None,
) -> list[str]:
    """Render result sets as display lines, separated by blank lines."""

    lines: list[str] = []
    for index, result in enumerate(results):
        if index:
            lines.append("")
        if isinstance(result, TabularResult):
            lines.extend(format_table(result, max_rows=max_rows))
        elif isinstance(result, CommandResult):
            lines.append(result.status or "OK")
        elif isinstance(result, ErrorResult):
            lines.append(format_error(result.message))
        else:
            assert_never(result)
    if elapsed_ms is not None:
        lines.append("")
        lines.append(f"Time: {elapsed_ms:.3f} ms")
    return lines


def format_table(result: TabularResult, *, max_rows: int | None = None) -> list[str]:
    """Render one tabular result with aligned columns and a row count footer."""

    rows = result.rows if max_rows is None else result.rows[:max_rows]
    cells = [[NULL_DISPLAY if value is None else value for value in row] for row in rows]
    widths = [len(name) for name in result.columns]
    for row in cells:
        for col, value in enumerate(row):
            widths[col] = max(widths[col], len(value))

    lines = ["|".join(f" {name.ljust(widths[col])} " for col, name in enumerate(result.columns))]
    lines.append("+".join("-" * (width + 2) for width in widths))
    for row in cells:
        lines.append("|".join(f" {value.ljust(widths[col])} " for col, value in enumerate(row)))
    count = result.row_count
    lines.append(f"({count} row{'' if count == 1 else 's'})")
    if len(rows) < count:
        lines.append(f"(showing first {len(rows)})")
    return lines


def format_error(message: str) -> str:
    """Prefix ``message`` with ``ERROR:`` unless the server already did."""

    text = message.rstrip()
    if text.startswith("ERROR:"):
        return text
    return f"ERROR: {text}"


def flatten(lines: Sequence[str]) -> list[str]:
    """Split any embedded newlines so each entry is one display row."""

    flat: list[str] = []
    for line in lines:
        flat.extend(line.split("\n"))
    return flat


__all__ = ["NULL_DISPLAY", "flatten", "format_error", "format_results", "format_table"]
