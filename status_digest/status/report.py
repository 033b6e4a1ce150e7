"""Composition of the final report from the summarizer output."""

import re
from typing import Sequence

from ..ai.models import ImpactAssessment, SummaryResponse
from ..markdown import markdown_to_html, markdown_to_text
from ..trackers.models import Issue
from .protocol import OutputFormat
from .rules import RestrictionTally

MAX_ISSUES_FOR_SUMMARY = 60
MAX_HIGHLIGHTS = 5
HIGHLIGHT_MIN_SCORE = 6

_DEMO_SECTION = re.compile(r"(^|\n)+#{0,3}\s*Demo suggestions[\s\S]*$", re.IGNORECASE)

ReportLink = tuple[str, str]


def trim_for_summary(
    issues: Sequence[Issue], limit: int = MAX_ISSUES_FOR_SUMMARY
) -> tuple[list[Issue], int]:
    """Keep the first ``limit`` issues; return them with the omitted count."""
    kept = list(issues[:limit])
    return kept, len(issues) - len(kept)


def _links_markdown(links: Sequence[ReportLink]) -> str:
    return "\n\n".join(f"[{label}]({url})" for label, url in links)


def _restricted_note(restricted: RestrictionTally) -> str:
    return (
        f"_Note: {restricted.total} restricted candidate(s) omitted "
        f"({restricted.describe()})._"
    )


def _issue_label(issue: Issue) -> str:
    return f"Bug {issue.id}" if issue.source == "bugzilla" else str(issue.id)


def build_highlights(
    assessments: Sequence[ImpactAssessment], issues: Sequence[Issue]
) -> list[str]:
    """Top demo suggestions as Markdown bullets.

    An assessment that names an issue outside the report (restricted or not
    qualified) keeps its slot as a "candidate omitted" entry.
    """
    by_id = {str(issue.id): issue for issue in issues}
    ranked = sorted(
        (a for a in assessments if a.impact_score >= HIGHLIGHT_MIN_SCORE),
        key=lambda a: a.impact_score,
        reverse=True,
    )
    lines = []
    for assessment in ranked[:MAX_HIGHLIGHTS]:
        issue = by_id.get(str(assessment.bug_id))
        if issue is None:
            lines.append("- _Candidate omitted._")
            continue
        line = f"- [{_issue_label(issue)}]({issue.url})"
        suggestion = assessment.demo_suggestion or assessment.short_reason
        lines.append(f"{line}: {suggestion}" if suggestion else line)
    return lines


def compose_report(
    summary: SummaryResponse,
    issues: Sequence[Issue],
    links: Sequence[ReportLink],
    restricted: RestrictionTally,
    omitted_for_size: int = 0,
) -> str:
    """Assemble the Markdown report.

    Args:
        summary: Summarizer output
        issues: Issues that were sent to the summarizer
        links: Footer links back to the trackers
        restricted: Restricted issues removed during the run
        omitted_for_size: Qualified issues left out of the model call

    Returns:
        Markdown text
    """
    body = _DEMO_SECTION.sub("", summary.summary_md or "").strip()
    parts = [body] if body else []
    if omitted_for_size:
        parts.append(
            f"_Note: {omitted_for_size} additional issue(s) were omitted from "
            "the AI summary due to size limits._"
        )
    highlights = build_highlights(summary.assessments, issues)
    if highlights:
        parts.append("## Demo suggestions\n" + "\n".join(highlights))
    if restricted.total:
        parts.append(_restricted_note(restricted))
    if links:
        parts.append(_links_markdown(links))
    return "\n\n".join(parts)


def compose_empty_report(
    days: int, links: Sequence[ReportLink], restricted: RestrictionTally
) -> str:
    """Report used when nothing qualified; never empty."""
    parts = [f"_No user-impacting changes in the last {days} days._"]
    if restricted.total:
        parts.append(_restricted_note(restricted))
    parts.append(_links_markdown(links))
    return "\n\n".join(part for part in parts if part)


def render_output(markdown: str, output_format: OutputFormat) -> str:
    """Render Markdown in the requested output format."""
    if output_format == "html":
        return markdown_to_html(markdown)
    if output_format == "text":
        return markdown_to_text(markdown)
    return markdown
