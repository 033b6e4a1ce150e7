"""Tests for the status route."""

import json
from typing import Any
from unittest.mock import AsyncMock

import httpx
import pytest
from conftest import (
    BUGZILLA_URL,
    DummyHandler,
    FakeTracker,
    make_issue,
    resolved_history,
)

from status_digest.errors import BackendError, ConfigurationError
from status_digest.server.routes import STATUS_PATH, handle_post, wants_stream
from status_digest.status.controller import parse_request
from status_digest.trackers.bugzilla import BugzillaAdapter


def post(
    controller: Any,
    body: Any,
    *,
    query: str = "",
    headers: dict[str, str] | None = None,
    check_config: Any = None,
) -> DummyHandler:
    raw = body if isinstance(body, bytes) else json.dumps(body).encode("utf-8")
    handler = DummyHandler(raw, headers)
    handled = handle_post(
        handler,
        controller,
        path=STATUS_PATH,
        query=query,
        check_config=check_config or (lambda request: None),
    )
    assert handled is True
    return handler


@pytest.fixture
def bugzilla() -> FakeTracker:
    return FakeTracker(
        "bugzilla",
        [make_issue(101), make_issue(102)],
        [resolved_history(101), resolved_history(102)],
    )


class TestWantsStream:
    """Test how streaming is selected."""

    @pytest.mark.parametrize(
        "body,query,accept,expected",
        [
            ({"mode": "stream"}, "", None, True),
            ({}, "stream=1", None, True),
            ({}, "stream=true", None, True),
            ({}, "", "application/x-ndjson", True),
            ({"mode": "discover"}, "stream=0", "application/json", False),
        ],
    )
    def test_selection(
        self, body: dict, query: str, accept: str | None, expected: bool
    ) -> None:
        """Test mode, query string and Accept header."""
        assert wants_stream(parse_request(body), query, accept) is expected


class TestHandlePost:
    """Test JSON responses and error mapping."""

    def test_other_path(self, make_controller: Any) -> None:
        """Test that unknown paths are left to the caller."""
        controller, _ = make_controller()
        handler = DummyHandler()
        assert not handle_post(
            handler,
            controller,
            path="/api/other",
            query="",
            check_config=lambda request: None,
        )
        assert handler.status is None

    def test_discover(self, make_controller: Any, bugzilla: FakeTracker) -> None:
        """Test a successful JSON mode."""
        controller, _ = make_controller(bugzilla)

        handler = post(controller, {"mode": "discover", "components": ["Firefox:Sync"]})

        assert handler.status == 200
        payload = handler.json()
        assert payload["total"] == 2
        assert [c["id"] for c in payload["candidates"]] == [101, 102]
        assert payload["restricted"] == {"security": 0, "confidential": 0}
        assert bugzilla.closed

    def test_unknown_mode(self, make_controller: Any) -> None:
        """Test that protocol errors are 400."""
        controller, _ = make_controller()

        handler = post(controller, {"mode": "bogus"})

        assert handler.status == 400
        assert handler.json() == {"error": "Unknown mode: 'bogus'"}

    def test_invalid_json(self, make_controller: Any) -> None:
        """Test that an unparseable body is 400."""
        controller, _ = make_controller()

        handler = post(controller, b"{nope")

        assert handler.status == 400
        assert "not valid JSON" in handler.json()["error"]

    def test_missing_configuration(self, make_controller: Any) -> None:
        """Test that missing credentials are 500 and name the variable."""
        controller, _ = make_controller()

        def check(request: Any) -> None:
            raise ConfigurationError("missing", missing=["BUGZILLA_API_KEY"])

        handler = post(controller, {"mode": "discover"}, check_config=check)

        assert handler.status == 500
        assert handler.json() == {"error": "Server missing BUGZILLA_API_KEY"}

    def test_backend_failure(self, make_controller: Any, bugzilla: FakeTracker) -> None:
        """Test that tracker failures are 502."""
        bugzilla.search = AsyncMock(side_effect=BackendError("Bugzilla", "down", 503))
        controller, _ = make_controller(bugzilla)

        handler = post(controller, {"mode": "discover", "whiteboards": ["[fxa]"]})

        assert handler.status == 502
        assert handler.json() == {"error": "Bugzilla 503: down"}

    def test_malformed_tracker_payload(self, make_controller: Any) -> None:
        """Test that an unusable search payload is a 502, not a crash."""

        def respond(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"bugs": [{"summary": "no id"}]})

        client = httpx.AsyncClient(transport=httpx.MockTransport(respond))
        adapter = BugzillaAdapter("secret-key", BUGZILLA_URL, client=client)
        controller, _ = make_controller(adapter)

        handler = post(controller, {"mode": "discover", "whiteboards": ["[fxa]"]})

        assert handler.status == 502
        assert handler.json() == {"error": "Bugzilla: malformed bug payload"}

    def test_oneshot(self, make_controller: Any, bugzilla: FakeTracker) -> None:
        """Test that a body without mode returns the finished report."""
        controller, _ = make_controller(bugzilla)

        handler = post(controller, {"components": ["Firefox"]})

        assert handler.status == 200
        payload = handler.json()
        assert payload["ids"] == [101, 102]
        assert "## Highlights" in payload["output"]


class TestStreamResponse:
    """Test NDJSON streaming."""

    def test_stream_events(self, make_controller: Any, bugzilla: FakeTracker) -> None:
        """Test that events are written one per line, ending with done."""
        controller, _ = make_controller(bugzilla)

        handler = post(controller, {"mode": "stream", "components": ["Firefox"]})

        assert handler.status == 200
        assert handler.header("Content-Type").startswith("application/x-ndjson")
        lines = handler.lines()
        kinds = [line["kind"] for line in lines]
        assert kinds[0] == "start"
        assert kinds[-1] == "done"
        assert [line["id"] for line in lines if line["kind"] == "valid"] == [101, 102]
        assert lines[-1]["ids"] == [101, 102]
        assert bugzilla.closed

    def test_accept_header_selects_stream(
        self, make_controller: Any, bugzilla: FakeTracker
    ) -> None:
        """Test streaming without an explicit mode."""
        controller, _ = make_controller(bugzilla)

        handler = post(
            controller,
            {"components": ["Firefox"]},
            headers={"Accept": "application/x-ndjson"},
        )

        assert handler.lines()[-1]["kind"] == "done"

    def test_stream_error_event(self, make_controller: Any, bugzilla: FakeTracker) -> None:
        """Test that a summarizer failure ends the stream with an error line."""
        agent = AsyncMock()
        agent.run.side_effect = RuntimeError("rate limited")
        controller, _ = make_controller(bugzilla, agent=agent)

        handler = post(controller, {"components": ["Firefox"]}, query="stream=1")

        assert handler.status == 200
        last = handler.lines()[-1]
        assert last == {"kind": "error", "msg": "summarizer: rate limited"}

    def test_config_error_before_stream(self, make_controller: Any) -> None:
        """Test that configuration is checked before NDJSON headers are sent."""
        controller, _ = make_controller()

        def check(request: Any) -> None:
            raise ConfigurationError("missing", missing=["JIRA_URL", "JIRA_API_KEY"])

        handler = post(
            controller,
            {"mode": "stream", "jiraProjects": ["FXA"]},
            check_config=check,
        )

        assert handler.status == 500
        assert handler.json() == {"error": "Server missing JIRA_URL or JIRA_API_KEY"}
