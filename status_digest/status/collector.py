"""Candidate collection, restriction partitioning and history qualification."""

import asyncio
import logging
from datetime import datetime
from typing import Awaitable, Callable, Sequence

from pydantic import BaseModel, Field

from ..errors import ValidationError
from ..trackers.base import HistoryVerdict, ProgressHooks, TrackerAdapter
from ..trackers.models import ChangeHistory, Issue, IssueId, TrackerSource
from ..trackers.query import (
    build_assignee_query,
    build_component_queries,
    build_id_queries,
    build_whiteboard_queries,
)
from ..trackers.registry import Trackers, split_ids
from ..utils.time import is_after, to_iso
from .history import ReasonTally
from .protocol import StatusFilter
from .rules import RestrictionTally, partition_restricted

logger = logging.getLogger(__name__)

SOURCE_ORDER: tuple[TrackerSource, ...] = ("bugzilla", "jira")
JIRA_DONE_CATEGORY = "done"
NO_HISTORY_REASON = "no history returned"


class CandidateCollection(BaseModel):
    """Public candidates for one filter, in stable enumeration order."""

    candidates: list[Issue] = Field(default_factory=list)
    restricted: RestrictionTally = Field(default_factory=RestrictionTally)
    union_size: int = 0
    excluded_stale: int = 0


class Qualification(BaseModel):
    """History verdicts for a batch of candidates."""

    qualified: list[Issue] = Field(default_factory=list)
    rejected: list[tuple[Issue, str]] = Field(default_factory=list)


def dedupe_issues(issues: Sequence[Issue]) -> list[Issue]:
    """Drop repeated issues, keeping the first occurrence."""
    seen: set[str] = set()
    unique = []
    for issue in issues:
        if issue.key in seen:
            continue
        seen.add(issue.key)
        unique.append(issue)
    return unique


def _enumeration_key(issue: Issue) -> tuple[int, int, str]:
    numeric = issue.id if isinstance(issue.id, int) else 0
    return (SOURCE_ORDER.index(issue.source), numeric, str(issue.id))


def _jira_snapshot_ok(issue: Issue, since: datetime) -> bool:
    return (issue.status_category or "").lower() == JIRA_DONE_CATEGORY and is_after(
        issue.updated, since
    )


async def _run_queries(
    search: Callable[[str], Awaitable[list[Issue]]], queries: Sequence[str]
) -> list[Issue]:
    pages = await asyncio.gather(*(search(query) for query in queries))
    return [issue for page in pages for issue in page]


async def collect_candidates(
    trackers: Trackers,
    status_filter: StatusFilter,
    since: datetime,
    hooks: ProgressHooks | None = None,
) -> CandidateCollection:
    """Search every configured source and return the public candidates.

    Results from overlapping filters are deduplicated by key, restricted
    issues are counted per category and removed, and the remainder is sorted
    so that repeated enumerations of the same filter line up for paging.

    Args:
        trackers: Adapters for this request
        status_filter: Components, whiteboards, metabugs, assignees and Jira sources
        since: Start of the report window
        hooks: Progress receiver

    Returns:
        Candidate collection with restriction counters
    """
    hooks = hooks or ProgressHooks()
    since_iso = to_iso(since)
    found: list[Issue] = []
    excluded_stale = 0

    if status_filter.uses_bugzilla:
        bugzilla = trackers.metabugs()
        queries = build_component_queries(status_filter.components, since_iso)
        queries += build_whiteboard_queries(status_filter.whiteboards, since_iso)
        assignee_query = build_assignee_query(status_filter.assignees, since_iso)
        if assignee_query:
            queries.append(assignee_query)
        children = await bugzilla.fetch_metabug_children(status_filter.metabugs, hooks)
        queries += build_id_queries(children, since_iso)
        hooks.info(f"Running {len(queries)} Bugzilla search(es)")
        found.extend(await _run_queries(bugzilla.search, queries))

    if status_filter.uses_jira:
        jira = trackers.get("jira")
        queries = list(status_filter.jira_jql)
        queries += [
            jira.build_project_query(project, status_filter.days)
            for project in status_filter.jira_projects
        ]
        jira_issues = await _run_queries(jira.search, queries)
        for issue in dedupe_issues(jira_issues):
            if issue.is_secure or _jira_snapshot_ok(issue, since):
                found.append(issue)
            else:
                excluded_stale += 1

    union = dedupe_issues(found)
    tally = RestrictionTally()
    public = sorted(partition_restricted(union, tally), key=_enumeration_key)

    hooks.info(f"Candidates after initial query: {len(public)}")
    if tally.total:
        hooks.info(f"Restricted candidates removed: {tally.describe()}")
    if excluded_stale:
        logger.debug(
            "Jira filters removed %d issue(s) not done in window", excluded_stale
        )

    return CandidateCollection(
        candidates=public,
        restricted=tally,
        union_size=len(union),
        excluded_stale=excluded_stale,
    )


def _evaluate(
    adapter: TrackerAdapter,
    candidate: Issue,
    histories: dict[str, ChangeHistory],
    since: datetime,
) -> HistoryVerdict:
    history = histories.get(str(candidate.id))
    if history is None:
        raise ValidationError(candidate.id, NO_HISTORY_REASON)
    try:
        return adapter.qualifies(history, since)
    except (TypeError, ValueError) as e:
        raise ValidationError(candidate.id, f"could not evaluate history: {e}") from e


async def qualify_candidates(
    trackers: Trackers,
    candidates: Sequence[Issue],
    since: datetime,
    hooks: ProgressHooks | None = None,
    reasons: ReasonTally | None = None,
) -> Qualification:
    """Check each candidate's change history, preserving candidate order."""
    hooks = hooks or ProgressHooks()
    verdicts: dict[str, tuple[bool, str]] = {}

    for source in SOURCE_ORDER:
        batch = [c for c in candidates if c.source == source]
        if not batch:
            continue
        adapter = trackers.get(source)
        histories = await adapter.fetch_changelogs([c.id for c in batch], hooks)
        by_id = {str(history.id): history for history in histories}
        for candidate in batch:
            try:
                verdict = _evaluate(adapter, candidate, by_id, since)
            except ValidationError as e:
                verdicts[candidate.key] = (False, e.reason)
                continue
            if verdict.ok:
                verdicts[candidate.key] = (True, verdict.detail or "")
            else:
                reason = verdict.reason or "failed history qualification"
                verdicts[candidate.key] = (False, reason)

    result = Qualification()
    for candidate in candidates:
        ok, why = verdicts[candidate.key]
        if ok:
            result.qualified.append(candidate)
        else:
            result.rejected.append((candidate, why))
            if reasons is not None:
                reasons.bump(why, candidate.id)
    return result


async def fetch_details(trackers: Trackers, ids: Sequence[IssueId]) -> list[Issue]:
    """Fetch full issues for explicit ids, in the order requested."""
    grouped = split_ids(ids)
    fetched: list[Issue] = []
    for source in SOURCE_ORDER:
        if grouped[source]:
            fetched.extend(await trackers.get(source).fetch_issues(grouped[source]))
    by_key = {issue.key: issue for issue in fetched}
    ordered = []
    for source in SOURCE_ORDER:
        for issue_id in grouped[source]:
            issue = by_key.get(f"{source}:{issue_id}")
            if issue is not None:
                ordered.append(issue)
    return dedupe_issues(ordered)
