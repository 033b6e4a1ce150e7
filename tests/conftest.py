"""Test configuration and fixtures."""

import io
import json
from datetime import datetime, timezone
from typing import Any, Callable, Sequence
from unittest.mock import AsyncMock

import pytest

from status_digest.ai.models import ImpactAssessment, SummaryResponse
from status_digest.status.controller import StatusController
from status_digest.status.history import (
    qualifies_by_bugzilla_history,
    qualifies_by_jira_history,
)
from status_digest.trackers.base import HistoryVerdict, ProgressHooks
from status_digest.trackers.models import (
    Assignee,
    ChangeHistory,
    HistoryChange,
    HistoryEntry,
    Issue,
    IssueId,
)
from status_digest.trackers.registry import Trackers

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)
RECENT = "2026-10-17T09:30:00Z"
STALE = "2026-09-01T09:30:00Z"
BUGZILLA_URL = "https://bugzilla.example.org"
JIRA_URL = "https://example.atlassian.net"


def make_issue(
    issue_id: IssueId,
    *,
    source: str = "bugzilla",
    groups: Sequence[str] = (),
    **fields: Any,
) -> Issue:
    """Issue with sensible defaults for the given tracker."""
    base = BUGZILLA_URL if source == "bugzilla" else JIRA_URL
    path = f"show_bug.cgi?id={issue_id}" if source == "bugzilla" else f"browse/{issue_id}"
    defaults: dict[str, Any] = {
        "summary": f"Issue {issue_id}",
        "project": "Firefox" if source == "bugzilla" else "FXA",
        "component": "Sync",
        "status": "RESOLVED" if source == "bugzilla" else "Done",
        "status_category": None if source == "bugzilla" else "done",
        "resolution": "FIXED" if source == "bugzilla" else "Done",
        "assignee": Assignee(name="Dev Person", email="dev@example.com"),
        "updated": RECENT,
        "url": f"{base}/{path}",
    }
    defaults.update(fields)
    return Issue(
        id=issue_id,
        labels=tuple(groups),
        is_secure=bool(groups) and any(
            word in g.lower() for g in groups for word in ("security", "confidential")
        ),
        source=source,
        **defaults,
    )


def resolved_history(issue_id: IssueId, when: str = RECENT) -> ChangeHistory:
    """Bugzilla history with a RESOLVED/FIXED transition at ``when``."""
    return ChangeHistory(
        id=issue_id,
        entries=[
            HistoryEntry(
                when=when,
                who="dev@example.com",
                changes=[
                    HistoryChange(field="status", removed="ASSIGNED", added="RESOLVED"),
                    HistoryChange(field="resolution", removed="", added="FIXED"),
                ],
            )
        ],
    )


def done_changelog(key: str, when: str = RECENT) -> ChangeHistory:
    """Jira changelog with a transition to Done at ``when``."""
    return ChangeHistory(
        id=key,
        entries=[
            HistoryEntry(
                when=when,
                changes=[
                    HistoryChange(field="status", removed="In Progress", added="Done")
                ],
            )
        ],
    )


class FakeTracker:
    """In-memory tracker adapter; every search returns every stored issue."""

    def __init__(
        self,
        source: str,
        issues: Sequence[Issue] = (),
        histories: Sequence[ChangeHistory] = (),
        web_url: str | None = None,
    ):
        self.source = source
        self.web_url = web_url or (BUGZILLA_URL if source == "bugzilla" else JIRA_URL)
        self.issues = list(issues)
        self.histories = {str(h.id): h for h in histories}
        self.queries: list[str] = []
        self.history_requests: list[list[IssueId]] = []
        self.metabug_children: list[int] = []
        self.closed = False

    async def search(self, query: str) -> list[Issue]:
        self.queries.append(query)
        return list(self.issues)

    def build_project_query(self, project: str, days: int) -> str:
        return f"project = {project} AND statusCategory = Done AND updated >= -{days}d"

    async def fetch_changelogs(
        self, ids: Sequence[IssueId], hooks: ProgressHooks | None = None
    ) -> list[ChangeHistory]:
        self.history_requests.append(list(ids))
        return [self.histories[str(i)] for i in ids if str(i) in self.histories]

    async def fetch_issues(self, ids: Sequence[IssueId]) -> list[Issue]:
        wanted = {str(i) for i in ids}
        return [issue for issue in self.issues if str(issue.id) in wanted]

    async def fetch_metabug_children(
        self, metabug_ids: Sequence[int], hooks: ProgressHooks | None = None
    ) -> list[int]:
        return list(self.metabug_children) if metabug_ids else []

    def qualifies(self, history: ChangeHistory, since: datetime) -> HistoryVerdict:
        if self.source == "bugzilla":
            return qualifies_by_bugzilla_history(history, since)
        return qualifies_by_jira_history(history, since)

    async def aclose(self) -> None:
        self.closed = True


class DummyHandler:
    """Request handler double recording the response."""

    def __init__(self, body: bytes = b"", headers: dict[str, str] | None = None) -> None:
        self.headers = dict(headers or {})
        if body and "Content-Length" not in self.headers:
            self.headers["Content-Length"] = str(len(body))
        self.rfile = io.BytesIO(body)
        self.wfile = io.BytesIO()
        self.status: int | None = None
        self.response_headers: list[tuple[str, str]] = []
        self.headers_ended = False

    def send_response(self, status: int) -> None:
        self.status = status

    def send_header(self, key: str, value: str) -> None:
        self.response_headers.append((key, value))

    def end_headers(self) -> None:
        self.headers_ended = True

    def header(self, name: str) -> str | None:
        for key, value in self.response_headers:
            if key == name:
                return value
        return None

    def json(self) -> Any:
        return json.loads(self.wfile.getvalue())

    def lines(self) -> list[dict[str, Any]]:
        return [json.loads(line) for line in self.wfile.getvalue().splitlines()]


@pytest.fixture
def summary_response() -> SummaryResponse:
    """Summarizer output mentioning bugs 101-103."""
    return SummaryResponse(
        assessments=[
            ImpactAssessment(
                bug_id=101,
                impact_score=8,
                short_reason="Sync no longer drops tabs",
                demo_suggestion="Open tabs on two devices and watch them sync.",
            ),
            ImpactAssessment(bug_id=102, impact_score=3, short_reason="Log cleanup"),
        ],
        summary_md=(
            "## Highlights\n"
            "- Fixed tab sync (Bug 101)\n"
            "- Faster login (Bug 102)\n"
            "- Cleaner logs (Bug 103)\n\n"
            "## Demo suggestions\n"
            "- Model-written demo that should be replaced"
        ),
    )


@pytest.fixture
def mock_agent(summary_response: SummaryResponse) -> AsyncMock:
    """Agent double returning ``summary_response``."""
    agent = AsyncMock()
    agent.run.return_value.output = summary_response
    return agent


@pytest.fixture
def make_controller(
    mock_agent: AsyncMock,
) -> Callable[..., tuple[StatusController, Trackers]]:
    """Build a controller over fake trackers with a fixed clock."""

    def factory(
        bugzilla: FakeTracker | None = None,
        jira: FakeTracker | None = None,
        **kwargs: Any,
    ) -> tuple[StatusController, Trackers]:
        trackers = Trackers(bugzilla=bugzilla, jira=jira)
        controller = StatusController(
            lambda request: trackers,
            agent=kwargs.pop("agent", mock_agent),
            clock=kwargs.pop("clock", lambda: NOW),
            **kwargs,
        )
        return controller, trackers

    return factory
