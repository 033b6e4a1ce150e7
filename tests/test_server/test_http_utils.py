"""Tests for JSON and NDJSON response helpers."""

import json

import pytest
from conftest import DummyHandler

from status_digest.errors import ProtocolError
from status_digest.server.http_utils import (
    NDJSON_CONTENT_TYPE,
    read_json_body,
    send_error_response,
    send_json_response,
    start_ndjson_response,
    write_ndjson_line,
)


def test_send_json_response() -> None:
    handler = DummyHandler()
    payload = {"total": 2, "candidates": []}
    expected_body = json.dumps(payload, ensure_ascii=False).encode("utf-8")

    send_json_response(handler, payload)

    assert handler.status == 200
    assert handler.header("Content-Type") == "application/json; charset=utf-8"
    assert handler.header("Content-Length") == str(len(expected_body))
    assert handler.headers_ended is True
    assert handler.wfile.getvalue() == expected_body


def test_send_error_response() -> None:
    handler = DummyHandler()

    send_error_response(handler, "Unknown mode: 'x'", 400)

    assert handler.status == 400
    assert handler.json() == {"error": "Unknown mode: 'x'"}


def test_read_json_body() -> None:
    handler = DummyHandler(b'{"mode": "discover"}')
    assert read_json_body(handler) == {"mode": "discover"}


def test_read_json_body_empty() -> None:
    assert read_json_body(DummyHandler()) == {}
    assert read_json_body(DummyHandler(b"   ")) == {}


def test_read_json_body_invalid() -> None:
    handler = DummyHandler(b"{nope")
    with pytest.raises(ProtocolError, match="Request body is not valid JSON"):
        read_json_body(handler)


def test_ndjson_lines() -> None:
    handler = DummyHandler()

    start_ndjson_response(handler)
    write_ndjson_line(handler, {"kind": "start"})
    write_ndjson_line(handler, {"kind": "info", "msg": "Fixé"})

    assert handler.status == 200
    assert handler.header("Content-Type") == NDJSON_CONTENT_TYPE
    assert handler.header("Cache-Control") == "no-store"
    assert handler.wfile.getvalue().decode("utf-8").endswith('"Fixé"}\n')
    assert handler.lines() == [
        {"kind": "start"},
        {"kind": "info", "msg": "Fixé"},
    ]
