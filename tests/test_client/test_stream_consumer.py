"""Tests for the NDJSON consumer and the status client."""

import json
from typing import Any

import httpx
import pytest

from status_digest.client.stream import ProgressLog, StatusClient, StreamConsumer
from status_digest.errors import BackendError, ProtocolError
from status_digest.status.protocol import (
    ErrorEvent,
    InfoEvent,
    InvalidEvent,
    PhaseEvent,
    ValidEvent,
    WarnEvent,
)

BASE_URL = "http://status.test"


def ndjson(*events: dict[str, Any]) -> bytes:
    return "".join(json.dumps(event) + "\n" for event in events).encode("utf-8")


class TestStreamConsumer:
    """Test line splitting and parsing."""

    def test_partial_chunks(self) -> None:
        """Test that events split across chunks are reassembled."""
        consumer = StreamConsumer()

        first = consumer.feed('{"kind": "start"}\n{"kind": "in')
        second = consumer.feed(b'fo", "msg": "Running 2 Bugzilla search(es)"}\n')

        assert [e.kind for e in first] == ["start"]
        assert second == [InfoEvent(msg="Running 2 Bugzilla search(es)")]
        assert consumer.terminal is None

    def test_blank_lines_and_terminal(self) -> None:
        """Test that blank lines are skipped and the terminal event recorded."""
        consumer = StreamConsumer()

        events = consumer.feed('\n\n{"kind": "done", "output": "ok", "ids": [1]}\n')

        assert len(events) == 1
        assert consumer.terminal is not None
        assert consumer.terminal.kind == "done"

    def test_close_flushes_tail(self) -> None:
        """Test a final line without a trailing newline."""
        consumer = StreamConsumer()

        assert consumer.feed('{"kind": "error", "msg": "boom"}') == []
        assert consumer.close() == [ErrorEvent(msg="boom")]
        assert consumer.terminal == ErrorEvent(msg="boom")

    @pytest.mark.parametrize("line", ["not json", '{"kind": "bogus"}', '{"kind": "info"}'])
    def test_malformed_line(self, line: str) -> None:
        """Test that unknown or invalid events are protocol errors."""
        with pytest.raises(ProtocolError, match="Malformed stream line"):
            StreamConsumer().feed(line + "\n")


class TestProgressLog:
    """Test progress lines."""

    def test_lines_and_counts(self) -> None:
        """Test each event kind's rendering."""
        echoed: list[str] = []
        log = ProgressLog(echo=echoed.append)

        for event in [
            InfoEvent(msg="Candidates after initial query: 3"),
            WarnEvent(msg="Patch context is not available"),
            PhaseEvent(name="summarize", total=2),
            ValidEvent(id=1, summary="Fix"),
            InvalidEvent(id=2, summary="Old", reason="no recent history in window"),
            ErrorEvent(msg="summarizer: down"),
        ]:
            log(event)

        assert log.valid == 1
        assert log.invalid == 1
        assert echoed == log.lines == [
            "Candidates after initial query: 3",
            "warning: Patch context is not available",
            "summarize (2)",
            "excluded 2: no recent history in window",
            "error: summarizer: down",
        ]


class TestStatusClient:
    """Test driving the server over a mock transport."""

    def make_client(self, handler: Any) -> StatusClient:
        transport = httpx.MockTransport(handler)
        return StatusClient(BASE_URL, client=httpx.Client(transport=transport))

    def test_run_paged(self) -> None:
        """Test discover, two pages and finalize with the collected ids."""
        bodies: list[dict[str, Any]] = []

        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/api/status"
            body = json.loads(request.content)
            bodies.append(body)
            if body["mode"] == "discover":
                return httpx.Response(
                    200,
                    json={"total": 3, "since": "2026-10-11T12:00:00Z", "candidates": []},
                )
            if body["mode"] == "page" and body["cursor"] == 0:
                return httpx.Response(
                    200,
                    json={"qualifiedIds": [1], "nextCursor": 2, "total": 3, "excluded": 1},
                )
            if body["mode"] == "page":
                return httpx.Response(200, json={"qualifiedIds": [3], "total": 3})
            return httpx.Response(200, json={"output": "report", "ids": body["ids"]})

        pages = []
        result = self.make_client(handler).run_paged(
            {"components": ["Firefox"]}, page_size=2, on_page=pages.append
        )

        assert [b["mode"] for b in bodies] == ["discover", "page", "page", "finalize"]
        assert "since" not in bodies[0]
        assert bodies[1]["pageSize"] == 2
        assert {b["since"] for b in bodies[1:]} == {"2026-10-11T12:00:00Z"}
        assert bodies[-1]["ids"] == [1, 3]
        assert len(pages) == 2
        assert result.output == "report"

    def test_run_paged_without_candidates(self) -> None:
        """Test that an empty enumeration goes straight to finalize."""
        modes: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            body = json.loads(request.content)
            modes.append(body["mode"])
            if body["mode"] == "discover":
                return httpx.Response(200, json={"total": 0})
            return httpx.Response(200, json={"output": "_No changes._"})

        result = self.make_client(handler).run_paged({"whiteboards": ["[fxa]"]})

        assert modes == ["discover", "finalize"]
        assert result.ids == []

    def test_error_response(self) -> None:
        """Test that server errors carry the server's message."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(400, json={"error": "Unknown mode: 'x'"})

        with pytest.raises(BackendError, match="status server 400: Unknown mode"):
            self.make_client(handler).run_paged({})

    def test_run_stream(self) -> None:
        """Test that stream events reach the callback and the terminal is returned."""

        def handler(request: httpx.Request) -> httpx.Response:
            assert json.loads(request.content)["mode"] == "stream"
            assert request.headers["Accept"] == "application/x-ndjson"
            return httpx.Response(
                200,
                content=ndjson(
                    {"kind": "start"},
                    {"kind": "valid", "id": 1, "summary": "Fix"},
                    {"kind": "done", "output": "report", "ids": [1]},
                ),
            )

        log = ProgressLog()
        terminal = self.make_client(handler).run_stream({"components": ["Firefox"]}, log)

        assert terminal.kind == "done"
        assert log.valid == 1

    def test_stream_without_terminal(self) -> None:
        """Test that a truncated stream is a protocol error."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=ndjson({"kind": "start"}))

        with pytest.raises(ProtocolError, match="without a terminal event"):
            self.make_client(handler).run_stream({})
