"""Result-set collection for completed asynchronous queries."""

from __future__ import annotations

import logging
from typing import Any

from psycopg import pq

from .libpq import WireClient, decode
from .models import CommandResult, ErrorResult, ResultSet, TabularResult

LOG = logging.getLogger(__name__)

COPY_UNSUPPORTED = "COPY streams are not supported"

_TABULAR = {pq.ExecStatus.TUPLES_OK, pq.ExecStatus.SINGLE_TUPLE}
_COPY = {pq.ExecStatus.COPY_OUT, pq.ExecStatus.COPY_IN, pq.ExecStatus.COPY_BOTH}


class ResultCollector:
    """Accumulates the result sets of one query across readable events.

    libpq requires ``PQgetResult`` to be called until it returns NULL before
    the connection accepts another command. :meth:`collect` reads whatever
    is available without blocking and reports whether that point was
    reached. Statement errors become :class:`ErrorResult` entries and
    collection continues with the next result. A COPY is ended from the
    client side (outgoing data discarded, incoming copy terminated) and
    recorded as an error entry.
    """

    def __init__(self, client: WireClient, handle: Any) -> None:
        self._client = client
        self._handle = handle
        self._copy_status: int | None = None
        self.results: list[ResultSet] = []

    def collect(self) -> bool:
        """Read every available result; ``True`` once all results are in.

        Raises ``WireClientError`` when a COPY cannot be ended.
        """

        while True:
            if self._copy_status is not None:
                if not self._client.abort_copy(self._handle, self._copy_status):
                    return False
                self._copy_status = None
            if self._client.is_busy(self._handle):
                return False
            res = self._client.next_result(self._handle)
            if res is None:
                return True
            status = res.status
            if status in _COPY:
                LOG.warning("Ending unsupported COPY stream", extra={"status": int(status)})
                self.results.append(ErrorResult(COPY_UNSUPPORTED))
                self._copy_status = int(status)
                continue
            self.results.append(classify_result(res))


def classify_result(res: Any) -> ResultSet:
    """Convert one ``PGresult``-like object into a :data:`ResultSet`."""

    status = res.status
    if status in _TABULAR:
        ncols = res.nfields
        columns = tuple(decode(res.fname(col)) for col in range(ncols))
        rows = tuple(
            tuple(_cell(res.get_value(row, col)) for col in range(ncols))
            for row in range(res.ntuples)
        )
        return TabularResult(columns=columns, rows=rows)
    if status == pq.ExecStatus.COMMAND_OK:
        return CommandResult(
            status=decode(res.command_status),
            affected_rows=res.command_tuples,
        )
    if status == pq.ExecStatus.EMPTY_QUERY:
        return ErrorResult("empty query")
    message = decode(res.error_message).strip()
    if not message:
        message = f"unexpected result status: {pq.ExecStatus(status).name}"
    return ErrorResult(message)


def _cell(value: bytes | None) -> str | None:
    if value is None:
        return None
    return decode(value)


__all__ = ["COPY_UNSUPPORTED", "ResultCollector", "classify_result"]
