"""Jira Cloud REST adapter."""

import asyncio
import logging
from datetime import datetime
from typing import Any, Sequence

import httpx

from ..errors import BackendError, ConfigurationError
from ..status.history import qualifies_by_jira_history
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
from .query import build_jira_key_queries, build_jira_project_query

logger = logging.getLogger(__name__)

ISSUE_FIELDS = (
    "key",
    "summary",
    "status",
    "resolution",
    "resolutiondate",
    "updated",
    "project",
    "components",
    "assignee",
    "labels",
    "security",
)


class JiraAdapter:
    """Jira REST client implementing the tracker capability set."""

    source = "jira"

    def __init__(
        self,
        base_url: str | None,
        api_key: str | None,
        *,
        cache: ResponseCache | None = None,
        skip_cache: bool = False,
        client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ):
        """Initialize the adapter.

        Args:
            base_url: Jira site URL, e.g. https://example.atlassian.net
            api_key: Bearer token
            cache: Shared response cache
            skip_cache: Bypass ``cache`` for this adapter's requests
            client: Preconfigured HTTP client, mainly for tests
            timeout: Request timeout in seconds

        Raises:
            ConfigurationError: If the URL or token is missing
        """
        if not base_url:
            raise ConfigurationError("JIRA_URL is required", missing=["JIRA_URL"])
        if not api_key:
            raise ConfigurationError(
                "JIRA_API_KEY is required", missing=["JIRA_API_KEY"]
            )
        self.base_url = base_url.rstrip("/")
        self.web_url = self.base_url
        self.api_key = api_key
        self.cache = None if skip_cache else cache
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=timeout)

    async def __aenter__(self) -> "JiraAdapter":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    async def _get(self, path: str, params: dict[str, Any]) -> Any:
        request = self.client.build_request(
            "GET",
            f"{self.base_url}/rest/api/3{path}",
            params=params,
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Accept": "application/json",
            },
        )
        cache_key = str(request.url)

        if self.cache is not None:
            cached = self.cache.get(cache_key)
            if cached is not None:
                return cached

        try:
            response = await self.client.send(request)
        except httpx.HTTPError as e:
            raise BackendError("Jira", str(e)) from e
        if response.is_error:
            raise BackendError("Jira", response.text[:500], response.status_code)
        try:
            payload = response.json()
        except ValueError as e:
            raise BackendError(
                "Jira", "malformed JSON response", response.status_code
            ) from e

        if self.cache is not None:
            self.cache.put(cache_key, payload)
        return payload

    def _convert_issue(self, raw: dict[str, Any]) -> Issue:
        """Convert a REST issue payload to our model."""
        fields = raw.get("fields") or {}
        status = fields.get("status") or {}
        assignee = fields.get("assignee") or {}
        components = fields.get("components") or []
        security = fields.get("security")
        return Issue(
            id=raw["key"],
            summary=fields.get("summary") or "",
            project=(fields.get("project") or {}).get("key", ""),
            component=components[0].get("name", "") if components else "",
            status=status.get("name", ""),
            status_category=(status.get("statusCategory") or {}).get("key"),
            resolution=(fields.get("resolution") or {}).get("name"),
            assignee=Assignee(
                name=assignee.get("displayName"), email=assignee.get("emailAddress")
            ),
            updated=fields.get("updated"),
            resolved_at=fields.get("resolutiondate"),
            labels=tuple(fields.get("labels") or ()),
            is_secure=bool(security),
            security_level=security.get("name") if isinstance(security, dict) else None,
            url=f"{self.base_url}/browse/{raw['key']}",
            source="jira",
        )

    async def search(self, query: str) -> list[Issue]:
        """Run a JQL search, paging until the reported total is reached.

        Args:
            query: JQL expression

        Returns:
            Matching issues in the order Jira returned them
        """
        issues: list[Issue] = []
        start_at = 0
        while True:
            payload = await self._get(
                "/search",
                {
                    "jql": query,
                    "startAt": start_at,
                    "maxResults": PAGE_SIZE,
                    "fields": ",".join(ISSUE_FIELDS),
                },
            )
            page = payload.get("issues") if isinstance(payload, dict) else None
            if not isinstance(page, list):
                raise BackendError("Jira", "search response has no issue list")

            try:
                issues.extend(self._convert_issue(raw) for raw in page)
            except MALFORMED_PAYLOAD_ERRORS as e:
                raise BackendError("Jira", "malformed issue payload") from e
            start_at += len(page)

            total = payload.get("total")
            if not page or len(page) < PAGE_SIZE:
                break
            if isinstance(total, int) and start_at >= total:
                break
        logger.debug("Jira search returned %d issue(s): %s", len(issues), query)
        return issues

    def build_project_query(self, project: str, days: int) -> str:
        return build_jira_project_query(project, days)

    async def fetch_issues(self, ids: Sequence[IssueId]) -> list[Issue]:
        """Fetch issue details with chunked ``key IN`` searches."""
        keys = [str(i) for i in ids]
        if not keys:
            return []
        semaphore = asyncio.Semaphore(FETCH_CONCURRENCY)

        async def run(query: str) -> list[Issue]:
            async with semaphore:
                return await self.search(query)

        chunks = await asyncio.gather(*(run(q) for q in build_jira_key_queries(keys)))
        return [issue for chunk in chunks for issue in chunk]

    async def _fetch_changelog(self, key: str) -> ChangeHistory:
        entries: list[HistoryEntry] = []
        start_at = 0
        while True:
            payload = await self._get(
                f"/issue/{key}/changelog",
                {"startAt": start_at, "maxResults": PAGE_SIZE},
            )
            try:
                values = payload.get("values") or []
                entries.extend(
                    HistoryEntry(
                        when=value.get("created", ""),
                        who=(value.get("author") or {}).get("displayName"),
                        changes=[
                            HistoryChange(
                                field=item.get("field", ""),
                                removed=item.get("fromString"),
                                added=item.get("toString"),
                            )
                            for item in value.get("items") or []
                        ],
                    )
                    for value in values
                )
            except MALFORMED_PAYLOAD_ERRORS as e:
                raise BackendError("Jira", "malformed changelog payload") from e
            start_at += len(values)
            total = payload.get("total")
            if payload.get("isLast") or not values:
                break
            if isinstance(total, int) and start_at >= total:
                break
        return ChangeHistory(id=key, entries=entries)

    async def fetch_changelogs(
        self, ids: Sequence[IssueId], hooks: ProgressHooks | None = None
    ) -> list[ChangeHistory]:
        """Fetch each issue's changelog; failures are reported and skipped."""
        hooks = hooks or ProgressHooks()
        keys = [str(i) for i in ids]
        semaphore = asyncio.Semaphore(FETCH_CONCURRENCY)
        done = 0
        hooks.phase("jira-changelogs", total=len(keys))

        async def run(key: str) -> ChangeHistory | None:
            nonlocal done
            async with semaphore:
                try:
                    return await self._fetch_changelog(key)
                except BackendError as e:
                    hooks.warn(f"Skipping changelog for {key} ({e})")
                    return None
                finally:
                    done += 1
                    hooks.progress("jira-changelogs", done, len(keys))

        results = await asyncio.gather(*(run(key) for key in keys))
        return [history for history in results if history is not None]

    def qualifies(self, history: ChangeHistory, since: datetime) -> HistoryVerdict:
        return qualifies_by_jira_history(history, since)
