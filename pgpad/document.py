"""Text conventions for SQL documents.

A document names its connection on line 1 as an SQL comment::

    -- host=localhost dbname=mydb
    -- SELECT count(*) FROM ({query}) AS q

Line 1 may instead reference a configured profile (``-- @Local``). Comment
lines that follow, up to the first blank or non-comment line, form an
optional wrapper template; when it contains ``{query}`` every executed query
is substituted into it.
"""

from __future__ import annotations

import re
from typing import Sequence

from .config import AppConfig
from .errors import ConfigError

_COMMENT = re.compile(r"^\s*--\s*(.*)")
_WRAPPER_LINE = re.compile(r"^\s*--\s?(.*)")
_TRAILING_COMMENT = re.compile(r"^(.*?)\s+--[^'\"]*$")
_PLACEHOLDER = "{query}"
_WRAPPER_SCAN_LIMIT = 100


def parse_conninfo(lines: Sequence[str]) -> str:
    """Return the connection info from line 1, without the comment prefix."""

    if not lines:
        raise ConfigError("document is empty")
    match = _COMMENT.match(lines[0])
    if not match or not match.group(1).strip():
        raise ConfigError(
            "line 1 must be an SQL comment with connection info, e.g.: -- host=localhost dbname=mydb"
        )
    return match.group(1).strip()


def resolve_target(lines: Sequence[str], config: AppConfig) -> str:
    """Resolve the connection string for a document.

    ``-- @name`` on line 1 selects a configured profile. Without a usable
    line 1 the configured default profile, if any, is used.
    """

    try:
        conninfo = parse_conninfo(lines)
    except ConfigError:
        if not config.default_profile:
            raise
        conninfo = f"@{config.default_profile}"
    if not conninfo.startswith("@"):
        return conninfo
    name = conninfo[1:].strip()
    profile = config.profile(name)
    if profile is None:
        raise ConfigError(f"unknown connection profile: {name}")
    target = profile.conninfo()
    if not target:
        raise ConfigError(f"connection profile '{name}' has no connection settings")
    return target


def extract_query(lines: Sequence[str], first: int, last: int) -> str:
    """Join lines ``first``..``last`` (1-indexed, inclusive) into one query.

    Trailing ``--`` comments preceded by whitespace are dropped unless the
    comment contains a quote character, as are blank lines.
    """

    fragments: list[str] = []
    for line in lines[max(first, 1) - 1 : last]:
        match = _TRAILING_COMMENT.match(line)
        stripped = (match.group(1) if match else line).rstrip()
        if stripped:
            fragments.append(stripped)
    return "\n".join(fragments)


def find_wrapper(lines: Sequence[str]) -> str | None:
    """Return the wrapper template following line 1, if it has ``{query}``."""

    fragments: list[str] = []
    for line in lines[1:_WRAPPER_SCAN_LIMIT]:
        match = _WRAPPER_LINE.match(line)
        if not match:
            break
        content = match.group(1)
        if not content.strip():
            break
        fragments.append(content)
    if not fragments:
        return None
    wrapper = "\n".join(fragments)
    if _PLACEHOLDER not in wrapper:
        return None
    return wrapper


def apply_wrapper(lines: Sequence[str], sql: str) -> str:
    """Substitute ``sql`` into the document's wrapper template, if any."""

    wrapper = find_wrapper(lines)
    if wrapper is None:
        return sql
    return wrapper.replace(_PLACEHOLDER, sql)


def prepare_query(lines: Sequence[str], first: int, last: int) -> str | None:
    """Extract and wrap the query in a line range; ``None`` if it is blank."""

    sql = extract_query(lines, first, last)
    if not sql.strip():
        return None
    return apply_wrapper(lines, sql)


def paragraph_range(lines: Sequence[str], cursor_line: int) -> tuple[int, int]:
    """Return the 1-indexed block of non-blank lines around ``cursor_line``."""

    count = len(lines)
    if count == 0:
        return (1, 1)
    current = min(max(cursor_line, 1), count)
    first = current
    while first > 1 and lines[first - 2].strip():
        first -= 1
    last = current
    while last < count and lines[last].strip():
        last += 1
    return (first, last)


__all__ = [
    "apply_wrapper",
    "extract_query",
    "find_wrapper",
    "paragraph_range",
    "parse_conninfo",
    "prepare_query",
    "resolve_target",
]
