"""Bugzilla REST adapter."""

import asyncio
import logging
import re
from datetime import datetime
from typing import Any, Sequence

import httpx

from ..config import DEFAULT_BUGZILLA_HOST
from ..errors import BackendError, ConfigurationError
from ..status.history import qualifies_by_bugzilla_history
from ..status.rules import is_restricted
from ..utils.time import days_ago, to_iso
from .base import (
    FETCH_CONCURRENCY,
    MALFORMED_PAYLOAD_ERRORS,
    PAGE_SIZE,
    HistoryVerdict,
    ProgressHooks,
)
from .cache import ResponseCache
from .models import (
    Assignee,
    ChangeHistory,
    HistoryChange,
    HistoryEntry,
    Issue,
    IssueId,
)
from .query import build_id_queries, build_product_query

logger = logging.getLogger(__name__)

_NOBODY = re.compile(r"^nobody", re.IGNORECASE)
_NAME_CLEANUPS = (
    re.compile(r"\s*\|.*$"),  # out-of-office suffix
    re.compile(r"\s*\(:[^)]*\)"),  # (:nick)
    re.compile(r"\s*\([^)]*\s[^)]*\)"),  # (multi word note)
    re.compile(r"\s*\([^)]*\)\s*$"),  # trailing (note)
    re.compile(r"\s*\[[^\]]*\s[^\]]*\]"),  # [multi word note]
    re.compile(r"\s*\[:\w+\]"),  # [:nick]
    re.compile(r"\s*\[\w+\]"),  # [nick]
)


def clean_username(name: str | None) -> str | None:
    """Strip nicknames and status notes from a Bugzilla real name.

    Examples:
        "John Doe (please needinfo? me)" -> "John Doe"
        "Jane Smith [:jsmith]" -> "Jane Smith"
        "Nobody; OK to take it and work on it" -> "Unassigned"
    """
    if name is None:
        return None
    cleaned = name.strip()
    if not cleaned:
        return None
    if _NOBODY.match(cleaned):
        return "Unassigned"
    for pattern in _NAME_CLEANUPS:
        cleaned = pattern.sub("", cleaned)
    return cleaned.strip() or None


class BugzillaAdapter:
    """Bugzilla REST client implementing the tracker capability set."""

    source = "bugzilla"

    def __init__(
        self,
        api_key: str | None,
        host: str = DEFAULT_BUGZILLA_HOST,
        *,
        cache: ResponseCache | None = None,
        skip_cache: bool = False,
        client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ):
        """Initialize the adapter.

        Args:
            api_key: Bugzilla API key, sent as a header
            host: Bugzilla base URL without the ``/rest`` suffix
            cache: Shared response cache
            skip_cache: Bypass ``cache`` for this adapter's requests
            client: Preconfigured HTTP client, mainly for tests
            timeout: Request timeout in seconds

        Raises:
            ConfigurationError: If the API key is missing
        """
        if not api_key:
            raise ConfigurationError(
                "BUGZILLA_API_KEY is required", missing=["BUGZILLA_API_KEY"]
            )
        if not host:
            raise ConfigurationError(
                "BUGZILLA_HOST is required", missing=["BUGZILLA_HOST"]
            )
        self.api_key = api_key
        self.host = host.rstrip("/")
        self.web_url = self.host
        self.cache = None if skip_cache else cache
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=timeout)

    async def __aenter__(self) -> "BugzillaAdapter":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    async def _get(self, path: str, query: str = "") -> Any:
        url = f"{self.host}/rest{path}"
        if query:
            url = f"{url}?{query}"

        if self.cache is not None:
            cached = self.cache.get(url)
            if cached is not None:
                return cached

        try:
            response = await self.client.get(
                url,
                headers={
                    "X-BUGZILLA-API-KEY": self.api_key,
                    "Accept": "application/json",
                },
            )
        except httpx.HTTPError as e:
            raise BackendError("Bugzilla", str(e)) from e
        if response.is_error:
            raise BackendError("Bugzilla", response.text[:500], response.status_code)
        try:
            payload = response.json()
        except ValueError as e:
            raise BackendError(
                "Bugzilla", "malformed JSON response", response.status_code
            ) from e

        if self.cache is not None:
            self.cache.put(url, payload)
        return payload

    def _convert_bug(self, bug: dict[str, Any]) -> Issue:
        """Convert a REST bug payload to our model."""
        detail = bug.get("assigned_to_detail") or {}
        email = bug.get("assigned_to")
        name = clean_username(
            detail.get("real_name") or detail.get("name") or detail.get("nick")
        )
        groups = tuple(bug.get("groups") or ())
        bug_id = int(bug["id"])
        return Issue(
            id=bug_id,
            summary=bug.get("summary") or "",
            project=bug.get("product") or "",
            component=bug.get("component") or "",
            status=bug.get("status") or "",
            resolution=bug.get("resolution") or None,
            assignee=Assignee(name=name, email=email),
            updated=bug.get("last_change_time"),
            resolved_at=bug.get("cf_last_resolved"),
            labels=groups,
            is_secure=is_restricted(groups),
            url=f"{self.host}/show_bug.cgi?id={bug_id}",
            source="bugzilla",
        )

    async def search(self, query: str) -> list[Issue]:
        """Run a ``/rest/bug`` search, paging until every match is loaded.

        Args:
            query: URL-encoded Bugzilla search parameters

        Returns:
            Matching bugs in the order Bugzilla returned them
        """
        issues: list[Issue] = []
        offset = 0
        while True:
            page_query = f"{query}&limit={PAGE_SIZE}&offset={offset}"
            payload = await self._get("/bug", page_query)
            bugs = payload.get("bugs") if isinstance(payload, dict) else None
            if not isinstance(bugs, list):
                raise BackendError("Bugzilla", "search response has no bug list")

            try:
                issues.extend(self._convert_bug(bug) for bug in bugs)
            except MALFORMED_PAYLOAD_ERRORS as e:
                raise BackendError("Bugzilla", "malformed bug payload") from e
            offset += len(bugs)

            total = payload.get("total_matches")
            if len(bugs) < PAGE_SIZE:
                break
            if isinstance(total, int) and len(issues) >= total:
                break
        logger.debug("Bugzilla search returned %d bug(s): %s", len(issues), query)
        return issues

    def build_project_query(self, project: str, days: int) -> str:
        return build_product_query(project, to_iso(days_ago(days)))

    async def fetch_metabug_children(
        self, metabug_ids: Sequence[int], hooks: ProgressHooks | None = None
    ) -> list[int]:
        """Ids of bugs that a metabug depends on or blocks."""
        if not metabug_ids:
            return []
        hooks = hooks or ProgressHooks()
        hooks.info(f"Fetching metabugs: {', '.join(str(i) for i in metabug_ids)}")
        payload = await self._get(
            "/bug",
            f"id={','.join(str(i) for i in metabug_ids)}"
            "&include_fields=id,depends_on,blocks",
        )
        children: dict[int, None] = {}
        for bug in payload.get("bugs", []):
            for child in [*(bug.get("depends_on") or []), *(bug.get("blocks") or [])]:
                children[int(child)] = None
        return list(children)

    async def fetch_issues(self, ids: Sequence[IssueId]) -> list[Issue]:
        """Fetch bug details in chunks, concurrently."""
        bug_ids = [int(i) for i in ids]
        if not bug_ids:
            return []
        semaphore = asyncio.Semaphore(FETCH_CONCURRENCY)

        async def run(query: str) -> list[Issue]:
            async with semaphore:
                return await self.search(query)

        chunks = await asyncio.gather(*(run(q) for q in build_id_queries(bug_ids)))
        return [issue for chunk in chunks for issue in chunk]

    async def _fetch_history(self, bug_id: int) -> ChangeHistory:
        payload = await self._get(f"/bug/{bug_id}/history")
        bugs = payload.get("bugs") if isinstance(payload, dict) else None
        if not bugs:
            return ChangeHistory(id=bug_id)
        try:
            entries = [
                HistoryEntry(
                    when=item.get("when", ""),
                    who=item.get("who"),
                    changes=[
                        HistoryChange(
                            field=change.get("field_name", ""),
                            removed=change.get("removed"),
                            added=change.get("added"),
                        )
                        for change in item.get("changes") or []
                    ],
                )
                for item in bugs[0].get("history") or []
            ]
        except MALFORMED_PAYLOAD_ERRORS as e:
            raise BackendError("Bugzilla", "malformed history payload") from e
        return ChangeHistory(id=bug_id, entries=entries)

    async def fetch_changelogs(
        self, ids: Sequence[IssueId], hooks: ProgressHooks | None = None
    ) -> list[ChangeHistory]:
        """Fetch each bug's history; failures are reported and skipped."""
        hooks = hooks or ProgressHooks()
        bug_ids = [int(i) for i in ids]
        semaphore = asyncio.Semaphore(FETCH_CONCURRENCY)
        done = 0
        hooks.phase("histories", total=len(bug_ids))

        async def run(bug_id: int) -> ChangeHistory | None:
            nonlocal done
            async with semaphore:
                try:
                    return await self._fetch_history(bug_id)
                except BackendError as e:
                    hooks.warn(f"Skipping history for #{bug_id} ({e})")
                    return None
                finally:
                    done += 1
                    hooks.progress("histories", done, len(bug_ids))

        results = await asyncio.gather(*(run(bug_id) for bug_id in bug_ids))
        return [history for history in results if history is not None]

    async def fetch_comments(self, bug_id: int) -> list[dict[str, Any]]:
        """Comments on a bug, oldest first."""
        payload = await self._get(f"/bug/{bug_id}/comment")
        bug = (payload.get("bugs") or {}).get(str(bug_id)) or {}
        return list(bug.get("comments") or [])

    def qualifies(self, history: ChangeHistory, since: datetime) -> HistoryVerdict:
        return qualifies_by_bugzilla_history(history, since)
