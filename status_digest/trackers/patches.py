"""Commit patch context for bugs landed through GitHub."""

import asyncio
import logging
import re
from typing import Sequence

import requests
from github import Auth, Github
from github.Commit import Commit
from github.GithubException import GithubException
from pydantic import BaseModel, Field

from ..errors import BackendError
from .base import FETCH_CONCURRENCY, ProgressHooks
from .bugzilla import BugzillaAdapter
from .models import Issue

logger = logging.getLogger(__name__)

LANDING_BOT = "pulsebot"
COMMIT_URL = re.compile(
    r"https?://github\.com/([\w.-]+)/([\w.-]+)/commit/([0-9a-f]{7,40})", re.IGNORECASE
)
SKIPPED_FILES = (
    re.compile(r"(^|/)(package-lock\.json|yarn\.lock|pnpm-lock\.yaml)$"),
    re.compile(r"(^|/)(Cargo\.lock|Gemfile\.lock|poetry\.lock)$"),
    re.compile(r"\.(min|bundle)\.js$"),
    re.compile(r"(^|/)(dist|build|target)/"),
    re.compile(r"\.generated\."),
)
MAX_CONTEXT_CHARS = 8000


class CommitPatch(BaseModel):
    """A landed commit and its diff."""

    url: str
    message: str = ""
    patch: str = ""
    skipped_files: list[str] = Field(default_factory=list)
    error: str | None = None


def extract_commit_urls(text: str) -> list[str]:
    """GitHub commit URLs in ``text``, without duplicates."""
    seen: dict[str, None] = {}
    for match in COMMIT_URL.finditer(text or ""):
        seen[match.group(0)] = None
    return list(seen)


def is_skipped_file(filename: str) -> bool:
    """Lockfiles, minified bundles and build output carry no signal."""
    return any(pattern.search(filename) for pattern in SKIPPED_FILES)


def smart_truncate(content: str, limit: int = MAX_CONTEXT_CHARS) -> str:
    """Keep 60% of ``limit`` from the start and the rest from the end."""
    if len(content) <= limit:
        return content
    head = int(limit * 0.6)
    tail = int(limit * 0.4) - 50
    return (
        f"{content[:head]}\n\n... [truncated {len(content) - limit} characters] ..."
        f"\n\n{content[-tail:]}"
    )


def format_patch_context(patches: Sequence[CommitPatch]) -> str:
    """Combine one issue's commits into a bounded prompt excerpt."""
    blocks = []
    skipped: list[str] = []
    for entry in patches:
        lines = [f"Commit: {entry.url}"]
        if entry.error:
            lines.append(f"Note: {entry.error}")
        if entry.message:
            lines.append(f"Message: {entry.message}")
        if entry.patch.strip():
            lines.append(f"Patch:\n{entry.patch}")
        elif entry.skipped_files:
            lines.append("Patch: [Only generated/lock files changed]")
        skipped.extend(entry.skipped_files)
        blocks.append("\n".join(lines))
    if not blocks:
        return ""
    text = smart_truncate("\n\n".join(blocks))
    if skipped:
        unique = list(dict.fromkeys(skipped))
        more = f", +{len(unique) - 3} more" if len(unique) > 3 else ""
        text += f"\n[Filtered out: {', '.join(unique[:3])}{more}]"
    return text


class PatchContextLoader:
    """Loads landed-commit diffs for Bugzilla bugs via PyGithub."""

    def __init__(self, bugzilla: BugzillaAdapter, token: str | None = None):
        """Initialize the loader.

        Args:
            bugzilla: Adapter used to read bug comments
            token: Optional GitHub token; anonymous access is rate limited
        """
        self.bugzilla = bugzilla
        self.github = Github(auth=Auth.Token(token)) if token else Github()

    def close(self) -> None:
        """Release the GitHub client's connection pool."""
        self.github.close()

    def _convert_commit(self, url: str, commit: Commit) -> CommitPatch:
        """Convert a PyGithub commit to our model."""
        diffs = []
        skipped = []
        for changed in commit.files:
            if is_skipped_file(changed.filename):
                skipped.append(changed.filename)
                continue
            if changed.patch:
                name = changed.filename
                diffs.append(f"diff --git a/{name} b/{name}\n{changed.patch}")
        return CommitPatch(
            url=url,
            message=commit.commit.message,
            patch="\n".join(diffs),
            skipped_files=skipped,
        )

    def get_commit_patch(self, url: str) -> CommitPatch:
        """Fetch one commit; errors are recorded on the result."""
        match = COMMIT_URL.match(url)
        if not match:
            return CommitPatch(url=url, error="not a GitHub commit URL")
        owner, repo, sha = match.groups()
        try:
            commit = self.github.get_repo(f"{owner}/{repo}").get_commit(sha)
            return self._convert_commit(url, commit)
        except GithubException as e:
            return CommitPatch(url=url, error=f"GitHub {e.status}")
        except requests.RequestException as e:
            return CommitPatch(url=url, error=f"GitHub request failed: {e}")

    async def commit_urls_for(self, bug_id: int) -> list[str]:
        """Commit URLs from the landing bot's last comment on a bug."""
        comments = await self.bugzilla.fetch_comments(bug_id)
        landed = [c for c in comments if LANDING_BOT in (c.get("creator") or "")]
        if not landed:
            return []
        return extract_commit_urls(landed[-1].get("text") or "")

    async def load(
        self, issues: Sequence[Issue], hooks: ProgressHooks | None = None
    ) -> dict[str, str]:
        """Patch context per Bugzilla issue id; issues without commits are omitted."""
        hooks = hooks or ProgressHooks()
        bugs = [issue for issue in issues if issue.source == "bugzilla"]
        semaphore = asyncio.Semaphore(FETCH_CONCURRENCY)
        hooks.phase("patch-context", total=len(bugs))

        async def run(issue: Issue) -> tuple[str, str]:
            async with semaphore:
                try:
                    urls = await self.commit_urls_for(int(issue.id))
                    patches = [
                        await asyncio.to_thread(self.get_commit_patch, url)
                        for url in urls
                    ]
                except (
                    BackendError,
                    GithubException,
                    requests.RequestException,
                ) as e:
                    hooks.warn(f"Patch context failed for #{issue.id} ({e})")
                    return str(issue.id), ""
                return str(issue.id), format_patch_context(patches)

        results = await asyncio.gather(*(run(issue) for issue in bugs))
        context = {issue_id: text for issue_id, text in results if text}
        logger.debug(
            "Loaded patch context for %d of %d bug(s)", len(context), len(bugs)
        )
        return context
