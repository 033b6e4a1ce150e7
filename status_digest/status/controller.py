"""Mode dispatcher for discover, page, finalize, oneshot and stream requests.

Every call is self-contained: ``page`` re-derives the enumeration for the
filter in its body and resumes at an integer offset, so no server-side
session survives between requests. Discover returns the window start it
used as ``since``; page and finalize bodies carry it back so every call of
one run sees the same window. The only shared state is the response cache
behind the adapters, which a request may bypass with ``noCache``.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncGenerator, AsyncIterator, Callable, Sequence

import pydantic
from pydantic_ai import Agent

from ..ai.agents import summary_agent
from ..ai.models import SummaryResponse
from ..ai.summarizer import summarize_issues
from ..errors import ProtocolError, StatusDigestError
from ..trackers.base import ProgressHooks
from ..trackers.models import Issue
from ..trackers.patches import PatchContextLoader
from ..trackers.query import build_buglist_url, build_jira_browse_url
from ..trackers.registry import Trackers
from ..utils.time import days_ago, parse_timestamp, to_iso
from .collector import (
    NO_HISTORY_REASON,
    CandidateCollection,
    collect_candidates,
    fetch_details,
    qualify_candidates,
)
from .history import ReasonTally
from .protocol import (
    MODES,
    CandidateRef,
    DiscoverResponse,
    DoneEvent,
    ErrorEvent,
    FinalizeResponse,
    InfoEvent,
    InvalidEvent,
    PageResponse,
    PhaseEvent,
    ProgressEvent,
    StartEvent,
    StatusRequest,
    StreamEvent,
    ValidEvent,
    WarnEvent,
)
from .report import (
    ReportLink,
    compose_empty_report,
    compose_report,
    render_output,
    trim_for_summary,
)
from .rules import RestrictionTally, partition_restricted

logger = logging.getLogger(__name__)

MAX_DISCOVER_CANDIDATES = 500

TrackerFactory = Callable[[StatusRequest], Trackers]
PatchLoaderFactory = Callable[[Trackers], PatchContextLoader | None]
StatusResponse = DiscoverResponse | PageResponse | FinalizeResponse


class EventHooks(ProgressHooks):
    """Progress hooks that also buffer stream events."""

    def __init__(self) -> None:
        self.events: list[StreamEvent] = []

    def info(self, msg: str) -> None:
        super().info(msg)
        self.events.append(InfoEvent(msg=msg))

    def warn(self, msg: str) -> None:
        super().warn(msg)
        self.events.append(WarnEvent(msg=msg))

    def phase(self, name: str, total: int | None = None) -> None:
        super().phase(name, total)
        self.events.append(PhaseEvent(name=name, total=total))

    def progress(self, name: str, current: int, total: int | None = None) -> None:
        super().progress(name, current, total)
        self.events.append(ProgressEvent(name=name, current=current, total=total))

    def drain(self) -> list[StreamEvent]:
        events, self.events = self.events, []
        return events


def parse_request(body: Any) -> StatusRequest:
    """Validate a request body.

    Raises:
        ProtocolError: If the body is not an object, fails validation, or
            names an unknown mode
    """
    if not isinstance(body, dict):
        raise ProtocolError("Request body must be a JSON object")
    try:
        request = StatusRequest.model_validate(body)
    except pydantic.ValidationError as e:
        raise ProtocolError(f"Invalid request: {e}") from e
    if request.mode is not None and request.mode not in MODES:
        raise ProtocolError(f"Unknown mode: {request.mode!r}")
    return request


def parse_cursor(cursor: int | str | None) -> int:
    """Cursors are non-negative integer offsets into the enumeration."""
    if cursor is None:
        return 0
    if isinstance(cursor, str):
        if not cursor.strip().isdigit():
            raise ProtocolError(f"Invalid cursor: {cursor!r}")
        cursor = int(cursor.strip())
    if cursor < 0:
        raise ProtocolError(f"Invalid cursor: {cursor}")
    return cursor


class StatusController:
    """Runs one status request in the mode it names."""

    def __init__(
        self,
        tracker_factory: TrackerFactory,
        agent: Agent[None, SummaryResponse] = summary_agent,
        patch_loader_factory: PatchLoaderFactory | None = None,
        max_candidates: int = MAX_DISCOVER_CANDIDATES,
        clock: Callable[[], datetime] | None = None,
    ):
        """Initialize the controller.

        Args:
            tracker_factory: Builds the adapters a request needs
            agent: Summarizer agent
            patch_loader_factory: Builds a patch context loader, if supported
            max_candidates: Cap on candidate references returned by discover
            clock: Current time source
        """
        self.tracker_factory = tracker_factory
        self.agent = agent
        self.patch_loader_factory = patch_loader_factory
        self.max_candidates = max_candidates
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def since(self, request: StatusRequest) -> datetime:
        """Start of the report window.

        A ``since`` returned by discover is reused as is. Otherwise the start
        is floored to the hour so repeated enumerations build the same
        queries and hit the response cache.
        """
        if request.since:
            return parse_timestamp(request.since)
        start = days_ago(request.days, now=self.clock())
        return start.replace(minute=0, second=0, microsecond=0)

    @asynccontextmanager
    async def _trackers(self, request: StatusRequest) -> AsyncIterator[Trackers]:
        trackers = self.tracker_factory(request)
        try:
            yield trackers
        finally:
            await trackers.aclose()

    async def dispatch(self, body: Any) -> StatusResponse:
        """Validate a raw body and run it; a missing mode means oneshot."""
        return await self.run(parse_request(body))

    async def run(self, request: StatusRequest) -> StatusResponse:
        match request.mode or "oneshot":
            case "discover":
                return await self.discover(request)
            case "page":
                return await self.page(request)
            case "finalize":
                return await self.finalize(request)
            case "oneshot":
                return await self.oneshot(request)
            case "stream":
                raise ProtocolError("stream mode requires a streaming transport")
            case mode:
                raise ProtocolError(f"Unknown mode: {mode!r}")

    async def discover(
        self, request: StatusRequest, hooks: ProgressHooks | None = None
    ) -> DiscoverResponse:
        """Enumerate public candidates; ``total`` tells the caller how far to page."""
        since = self.since(request)
        async with self._trackers(request) as trackers:
            collection = await collect_candidates(
                trackers, request.status_filter, since, hooks
            )
        refs = [
            CandidateRef(
                id=issue.id,
                last_change_time=issue.updated,
                product=issue.project,
                component=issue.component,
            )
            for issue in collection.candidates[: self.max_candidates]
        ]
        return DiscoverResponse(
            total=len(collection.candidates),
            since=to_iso(since),
            candidates=refs,
            restricted=collection.restricted,
        )

    async def page(
        self, request: StatusRequest, hooks: ProgressHooks | None = None
    ) -> PageResponse:
        """Qualify one slice of the enumeration starting at ``request.cursor``.

        Raises:
            ProtocolError: If the cursor is malformed or past the end
        """
        cursor = parse_cursor(request.cursor)
        since = self.since(request)
        reasons = ReasonTally()
        async with self._trackers(request) as trackers:
            collection = await collect_candidates(
                trackers, request.status_filter, since, hooks
            )
            total = len(collection.candidates)
            if cursor > total or (cursor == total and total > 0):
                raise ProtocolError(
                    f"Cursor {cursor} does not match an enumeration of {total} candidate(s)"
                )
            end = min(cursor + request.page_size, total)
            qualification = await qualify_candidates(
                trackers, collection.candidates[cursor:end], since, hooks, reasons
            )
        if request.debug:
            self._log_reasons(reasons, hooks, end - cursor)
        return PageResponse(
            qualified_ids=[issue.id for issue in qualification.qualified],
            next_cursor=end if end < total else None,
            total=total,
            excluded=len(qualification.rejected),
            restricted=collection.restricted,
        )

    async def finalize(
        self, request: StatusRequest, hooks: ProgressHooks | None = None
    ) -> FinalizeResponse:
        """Build the report, from explicit ids when given or a full enumeration."""
        if request.ids is None:
            return await self.oneshot(request, hooks)

        async with self._trackers(request) as trackers:
            tally = RestrictionTally()
            issues = await fetch_details(trackers, request.ids)
            public = partition_restricted(issues, tally)
            if tally.total:
                (hooks or ProgressHooks()).info(
                    f"Restricted candidates removed: {tally.describe()}"
                )
            output = await self._report(trackers, request, public, tally, hooks)
        return FinalizeResponse(
            output=output, ids=[issue.id for issue in public], restricted=tally
        )

    async def oneshot(
        self, request: StatusRequest, hooks: ProgressHooks | None = None
    ) -> FinalizeResponse:
        """Discover, page through and finalize in one call."""
        since = self.since(request)
        reasons = ReasonTally()
        async with self._trackers(request) as trackers:
            collection = await collect_candidates(
                trackers, request.status_filter, since, hooks
            )
            qualified = await self._qualify_all(
                trackers, collection, request, since, hooks, reasons
            )
            output = await self._report(
                trackers, request, qualified, collection.restricted, hooks
            )
        if request.debug:
            self._log_reasons(reasons, hooks, len(collection.candidates))
        return FinalizeResponse(
            output=output,
            ids=[issue.id for issue in qualified],
            restricted=collection.restricted,
        )

    async def stream(
        self, request: StatusRequest
    ) -> AsyncGenerator[StreamEvent, None]:
        """Evaluate candidates incrementally, ending with one done or error event."""
        hooks = EventHooks()
        since = self.since(request)
        reasons = ReasonTally()
        yield StartEvent()
        try:
            async with self._trackers(request) as trackers:
                collection = await collect_candidates(
                    trackers, request.status_filter, since, hooks
                )
                for event in hooks.drain():
                    yield event

                valid: list[Issue] = []
                candidates = collection.candidates
                for start in range(0, len(candidates), request.page_size):
                    batch = candidates[start : start + request.page_size]
                    qualification = await qualify_candidates(
                        trackers, batch, since, hooks, reasons
                    )
                    for event in hooks.drain():
                        yield event
                    reasons_by_key = {
                        issue.key: why for issue, why in qualification.rejected
                    }
                    for issue in batch:
                        if issue.key in reasons_by_key:
                            yield InvalidEvent(
                                id=issue.id,
                                summary=issue.summary,
                                reason=reasons_by_key[issue.key],
                            )
                        else:
                            valid.append(issue)
                            yield ValidEvent(
                                id=issue.id,
                                summary=issue.summary,
                                assignee=issue.assignee.display,
                            )

                if request.debug:
                    self._log_reasons(reasons, hooks, len(candidates))
                output = await self._report(
                    trackers, request, valid, collection.restricted, hooks
                )
                for event in hooks.drain():
                    yield event
            yield DoneEvent(
                output=output,
                ids=[issue.id for issue in valid],
                restricted=collection.restricted,
            )
        except StatusDigestError as e:
            logger.warning("Stream failed: %s", e)
            for event in hooks.drain():
                yield event
            yield ErrorEvent(msg=str(e))

    async def _qualify_all(
        self,
        trackers: Trackers,
        collection: CandidateCollection,
        request: StatusRequest,
        since: datetime,
        hooks: ProgressHooks | None,
        reasons: ReasonTally,
    ) -> list[Issue]:
        qualified: list[Issue] = []
        candidates = collection.candidates
        for start in range(0, len(candidates), request.page_size):
            qualification = await qualify_candidates(
                trackers,
                candidates[start : start + request.page_size],
                since,
                hooks,
                reasons,
            )
            qualified.extend(qualification.qualified)
        return qualified

    def _links(
        self, trackers: Trackers, request: StatusRequest, issues: Sequence[Issue]
    ) -> list[ReportLink]:
        links: list[ReportLink] = []
        status_filter = request.status_filter
        bug_ids = [issue.id for issue in issues if issue.source == "bugzilla"]
        jira_keys = [str(issue.id) for issue in issues if issue.source == "jira"]

        wants_bugzilla = bool(bug_ids) or status_filter.uses_bugzilla
        if trackers.bugzilla is not None and (wants_bugzilla or not jira_keys):
            url = build_buglist_url(
                trackers.bugzilla.web_url,
                to_iso(self.since(request)),
                components=status_filter.components,
                whiteboards=status_filter.whiteboards,
                assignees=status_filter.assignees,
                ids=bug_ids,
            )
            links.append(("View bugs in Bugzilla", url))
        if trackers.jira is not None and (jira_keys or status_filter.uses_jira):
            links.append(
                ("View issues in Jira", build_jira_browse_url(trackers.jira.web_url, jira_keys))
            )
        return links

    async def _report(
        self,
        trackers: Trackers,
        request: StatusRequest,
        issues: Sequence[Issue],
        restricted: RestrictionTally,
        hooks: ProgressHooks | None,
    ) -> str:
        hooks = hooks or ProgressHooks()
        links = self._links(trackers, request, issues)
        if not issues:
            hooks.info("No qualifying issues; returning the empty report")
            markdown = compose_empty_report(request.days, links, restricted)
            return render_output(markdown, request.format)

        kept, omitted = trim_for_summary(issues)
        if omitted:
            hooks.warn(f"Summarizing the first {len(kept)} issues; {omitted} omitted")

        patch_context = None
        if request.patch_context:
            loader = self.patch_loader_factory(trackers) if self.patch_loader_factory else None
            if loader is None:
                hooks.warn("Patch context is not available for this tracker setup")
            else:
                try:
                    patch_context = await loader.load(kept, hooks)
                finally:
                    loader.close()

        hooks.phase("summarize", total=len(kept))
        summary = await summarize_issues(
            kept,
            request.days,
            request.report_options,
            patch_context,
            agent=self.agent,
        )
        markdown = compose_report(summary, kept, links, restricted, omitted)
        return render_output(markdown, request.format)

    def _log_reasons(
        self, reasons: ReasonTally, hooks: ProgressHooks | None, evaluated: int
    ) -> None:
        hooks = hooks or ProgressHooks()
        covered = evaluated - reasons.counts[NO_HISTORY_REASON]
        hooks.info(f"History coverage: {covered}/{evaluated} candidate(s)")
        for line in reasons.lines():
            hooks.info(f"Excluded by history: {line}")
