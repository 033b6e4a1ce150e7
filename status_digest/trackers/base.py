"""Capability set every tracker backend implements."""

import logging
from datetime import datetime
from typing import Protocol, Sequence

from pydantic import BaseModel, ValidationError

from .models import ChangeHistory, Issue, IssueId, TrackerSource

logger = logging.getLogger(__name__)

PAGE_SIZE = 100
FETCH_CONCURRENCY = 8

# Raised while converting a response that lacks fields or has the wrong shape.
MALFORMED_PAYLOAD_ERRORS = (
    KeyError,
    TypeError,
    ValueError,
    AttributeError,
    ValidationError,
)


class HistoryVerdict(BaseModel):
    """Outcome of checking one change history against the report window."""

    ok: bool
    reason: str | None = None
    detail: str | None = None


class ProgressHooks:
    """Receives progress from long-running tracker calls.

    The default implementation only logs; the streaming transport overrides
    these to emit events.
    """

    def info(self, msg: str) -> None:
        logger.info(msg)

    def warn(self, msg: str) -> None:
        logger.warning(msg)

    def phase(self, name: str, total: int | None = None) -> None:
        logger.debug("phase %s (total=%s)", name, total)

    def progress(self, name: str, current: int, total: int | None = None) -> None:
        logger.debug("%s %d/%s", name, current, total)


class TrackerAdapter(Protocol):
    """Search, query building and history access for one tracker."""

    source: TrackerSource
    web_url: str

    async def search(self, query: str) -> list[Issue]:
        """Run a native query, paging at ``PAGE_SIZE`` until exhausted."""
        ...

    def build_project_query(self, project: str, days: int) -> str:
        """Query for issues in ``project`` done within the last ``days``."""
        ...

    async def fetch_changelogs(
        self, ids: Sequence[IssueId], hooks: ProgressHooks | None = None
    ) -> list[ChangeHistory]:
        """Per-issue ordered history; issues that fail to load are skipped."""
        ...

    async def fetch_issues(self, ids: Sequence[IssueId]) -> list[Issue]:
        """Full details for the given ids."""
        ...

    def qualifies(self, history: ChangeHistory, since: datetime) -> HistoryVerdict:
        """Whether the history shows a completion inside the window."""
        ...

    async def aclose(self) -> None: ...


class MetabugTracker(TrackerAdapter, Protocol):
    """Tracker that can expand metabugs into their dependency trees."""

    async def fetch_metabug_children(
        self, metabug_ids: Sequence[int], hooks: ProgressHooks | None = None
    ) -> list[int]: ...
