"""Prompt assembly and summarizer calls."""

import json
import logging
from typing import Any, Mapping, Sequence

from pydantic_ai import Agent

from ..errors import BackendError
from ..status.protocol import ReportOptions
from ..trackers.models import Issue
from .agents import summary_agent
from .models import SummaryResponse
from .prompts import AUDIENCE_HINTS, IMPACT_RUBRIC, LENGTH_HINTS, TASKS, VOICE_HINTS

logger = logging.getLogger(__name__)


def _issue_payload(issue: Issue) -> dict[str, Any]:
    return {
        "id": issue.id,
        "tracker": issue.source,
        "summary": issue.summary,
        "product": issue.project,
        "component": issue.component,
        "assignee": {
            "name": issue.assignee.display,
            "email": issue.assignee.email or "",
        },
        "url": issue.url,
    }


def format_summary_prompt(
    issues: Sequence[Issue],
    days: int,
    options: ReportOptions,
    patch_context: Mapping[str, str] | None = None,
) -> str:
    """Format issues into the summarizer prompt.

    Args:
        issues: Public, qualified issues to summarize
        days: Report window in days
        options: Voice, audience and model options
        patch_context: Optional commit excerpts keyed by issue id

    Returns:
        Formatted prompt string
    """
    bugzilla = [_issue_payload(i) for i in issues if i.source == "bugzilla"]
    jira = [_issue_payload(i) for i in issues if i.source == "jira"]

    sections = [
        VOICE_HINTS[options.voice],
        AUDIENCE_HINTS[options.audience].strip(),
        f"Keep the overall summary {LENGTH_HINTS[options.audience]}",
        f"Data window: last {days} days.",
    ]
    if bugzilla:
        sections.append(f"Bugzilla bugs (done/fixed):\n{json.dumps(bugzilla)}")
    if jira:
        sections.append(f"Jira issues (done/resolved):\n{json.dumps(jira)}")
    if not issues:
        sections.append("No bugs or issues to summarize.")
    sections.extend([IMPACT_RUBRIC.strip(), TASKS.strip()])

    if patch_context:
        excerpts = [
            f"Issue {issue_id}:\n{text}"
            for issue_id, text in patch_context.items()
            if text
        ]
        if excerpts:
            sections.append(
                "Patch context (use it to sharpen impact scores):\n\n"
                + "\n\n".join(excerpts)
            )

    return "\n\n".join(sections)


async def summarize_issues(
    issues: Sequence[Issue],
    days: int,
    options: ReportOptions,
    patch_context: Mapping[str, str] | None = None,
    agent: Agent[None, SummaryResponse] = summary_agent,
) -> SummaryResponse:
    """Summarize issues with the given agent.

    Args:
        issues: Public, qualified issues to summarize
        days: Report window in days
        options: Report options; ``options.model`` selects the model
        patch_context: Optional commit excerpts keyed by issue id
        agent: PydanticAI agent to run

    Returns:
        Structured summary

    Raises:
        BackendError: If the model call fails
    """
    prompt = format_summary_prompt(issues, days, options, patch_context)
    logger.debug("Summarizing %d issue(s) with %s", len(issues), options.model)
    try:
        result = await agent.run(prompt, model=options.model)
    except Exception as e:
        raise BackendError("summarizer", str(e)) from e
    return result.output
