"""Tests for the psycopg-backed wire client."""

from __future__ import annotations

import psycopg
import pytest
from psycopg import pq
from psycopg.conninfo import conninfo_to_dict

from pgpad.libpq import PollStatus, PsycopgWireClient, WireClientError, decode, with_utf8_encoding
from pgpad.models import ConnectionMetadata


class _FakePGconn:
    started_with: bytes | None = None
    start_status = pq.ConnStatus.STARTED

    def __init__(self) -> None:
        self.status = self.start_status
        self.error_message = b""
        self.finished = False
        self.poll_result = pq.PollingStatus.READING
        self.flush_result = 0
        self.user = b"alice"
        self.host = b"localhost"
        self.db = b"app"

    @classmethod
    def connect_start(cls, conninfo: bytes) -> _FakePGconn:
        cls.started_with = conninfo
        conn = cls()
        if conn.status == pq.ConnStatus.BAD:
            conn.error_message = b'invalid connection option "bogus"\n'
        return conn

    def connect_poll(self) -> pq.PollingStatus:
        return self.poll_result

    @property
    def socket(self) -> int:
        raise psycopg.OperationalError("the connection is lost")

    def flush(self) -> int:
        return self.flush_result

    def consume_input(self) -> None:
        self.error_message = b"server closed the connection unexpectedly\n"
        raise psycopg.OperationalError("consuming input failed")

    def finish(self) -> None:
        self.finished = True


@pytest.fixture
def fake_pgconn(monkeypatch: pytest.MonkeyPatch) -> type[_FakePGconn]:
    monkeypatch.setattr("pgpad.libpq.pq.PGconn", _FakePGconn)
    monkeypatch.setattr(_FakePGconn, "start_status", pq.ConnStatus.STARTED)
    return _FakePGconn


def test_with_utf8_encoding_adds_client_encoding() -> None:
    params = conninfo_to_dict(with_utf8_encoding("host=localhost dbname=app"))

    assert params == {"host": "localhost", "dbname": "app", "client_encoding": "UTF8"}


def test_with_utf8_encoding_respects_explicit_encoding() -> None:
    target = "dbname=app client_encoding=LATIN1"

    assert with_utf8_encoding(target) == target


def test_with_utf8_encoding_accepts_uris() -> None:
    params = conninfo_to_dict(with_utf8_encoding("postgresql://alice@db.example.com/app"))

    assert params["host"] == "db.example.com"
    assert params["client_encoding"] == "UTF8"


def test_with_utf8_encoding_rejects_malformed_targets() -> None:
    with pytest.raises(WireClientError):
        with_utf8_encoding("dbname")


def test_start_connect_passes_encoded_conninfo(fake_pgconn: type[_FakePGconn]) -> None:
    client = PsycopgWireClient()

    handle = client.start_connect("dbname=app")

    assert isinstance(handle, _FakePGconn)
    assert fake_pgconn.started_with is not None
    assert b"client_encoding=UTF8" in fake_pgconn.started_with
    assert client.poll_connect(handle) is PollStatus.NEEDS_READ


def test_start_connect_reports_bad_connection(
    fake_pgconn: type[_FakePGconn], monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setattr(fake_pgconn, "start_status", pq.ConnStatus.BAD)
    client = PsycopgWireClient()

    with pytest.raises(WireClientError, match='invalid connection option "bogus"'):
        client.start_connect("dbname=app")


@pytest.mark.parametrize(
    ("status", "expected"),
    [
        (pq.PollingStatus.WRITING, PollStatus.NEEDS_WRITE),
        (pq.PollingStatus.OK, PollStatus.OK),
        (pq.PollingStatus.FAILED, PollStatus.FAILED),
    ],
)
def test_poll_connect_maps_libpq_status(
    fake_pgconn: type[_FakePGconn], status: pq.PollingStatus, expected: PollStatus
) -> None:
    handle = fake_pgconn()
    handle.poll_result = status

    assert PsycopgWireClient().poll_connect(handle) is expected


def test_io_failures_become_wire_client_errors(fake_pgconn: type[_FakePGconn]) -> None:
    client = PsycopgWireClient()
    handle = fake_pgconn()

    with pytest.raises(WireClientError, match="could not get connection socket"):
        client.socket_descriptor(handle)
    with pytest.raises(WireClientError, match="server closed the connection unexpectedly"):
        client.consume_input(handle)


def test_flush_reports_pending_output(fake_pgconn: type[_FakePGconn]) -> None:
    client = PsycopgWireClient()
    handle = fake_pgconn()

    assert client.flush(handle) is True
    handle.flush_result = 1
    assert client.flush(handle) is False


def test_connection_metadata_and_close(fake_pgconn: type[_FakePGconn]) -> None:
    client = PsycopgWireClient()
    handle = fake_pgconn()

    assert client.connection_metadata(handle) == ConnectionMetadata(user="alice", host="localhost", database="app")
    client.close(handle)
    assert handle.finished is True


def test_decode_replaces_invalid_bytes() -> None:
    assert decode(None) == ""
    assert decode(b"caf\xc3\xa9") == "café"
    assert decode(b"\xff") == "�"
