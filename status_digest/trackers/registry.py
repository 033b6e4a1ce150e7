"""Selection of tracker adapters for a request."""

from typing import Iterable

from ..config import DigestConfig
from ..errors import ConfigurationError
from .base import MetabugTracker, TrackerAdapter
from .bugzilla import BugzillaAdapter
from .cache import ResponseCache
from .jira import JiraAdapter
from .models import IssueId, TrackerSource


def source_of(issue_id: IssueId) -> TrackerSource:
    """Bugzilla ids are numeric; anything else is a Jira key."""
    if isinstance(issue_id, int) or str(issue_id).isdigit():
        return "bugzilla"
    return "jira"


def split_ids(ids: Iterable[IssueId]) -> dict[TrackerSource, list[IssueId]]:
    """Group ids by tracker, normalizing Bugzilla ids to int."""
    grouped: dict[TrackerSource, list[IssueId]] = {"bugzilla": [], "jira": []}
    for issue_id in ids:
        source = source_of(issue_id)
        grouped[source].append(int(issue_id) if source == "bugzilla" else issue_id)
    return grouped


class Trackers:
    """Adapters configured for one request, keyed by source."""

    def __init__(
        self,
        bugzilla: MetabugTracker | None = None,
        jira: TrackerAdapter | None = None,
    ):
        self.bugzilla = bugzilla
        self.jira = jira

    def get(self, source: TrackerSource) -> TrackerAdapter:
        adapter = self.bugzilla if source == "bugzilla" else self.jira
        if adapter is None:
            name = "JIRA_URL" if source == "jira" else "BUGZILLA_API_KEY"
            raise ConfigurationError(f"{name} is required", missing=[name])
        return adapter

    def metabugs(self) -> MetabugTracker:
        if self.bugzilla is None:
            raise ConfigurationError(
                "BUGZILLA_API_KEY is required", missing=["BUGZILLA_API_KEY"]
            )
        return self.bugzilla

    async def aclose(self) -> None:
        for adapter in (self.bugzilla, self.jira):
            if adapter is not None:
                await adapter.aclose()


def build_trackers(
    config: DigestConfig,
    *,
    jira: bool = False,
    cache: ResponseCache | None = None,
    skip_cache: bool = False,
) -> Trackers:
    """Construct the adapters a request needs.

    Args:
        config: Environment configuration
        jira: Whether the request uses Jira sources
        cache: Response cache shared across requests
        skip_cache: Bypass the cache for this request

    Raises:
        ConfigurationError: If a required credential or URL is missing
    """
    if jira:
        config.require_jira()
    bugzilla_adapter = BugzillaAdapter(
        config.bugzilla_api_key,
        config.bugzilla_host,
        cache=cache,
        skip_cache=skip_cache,
    )
    jira_adapter = None
    if jira:
        jira_adapter = JiraAdapter(
            config.jira_url,
            config.jira_api_key,
            cache=cache,
            skip_cache=skip_cache,
        )
    return Trackers(bugzilla=bugzilla_adapter, jira=jira_adapter)
