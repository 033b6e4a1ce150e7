"""Change-history qualification for resolved issues."""

from collections import Counter
from datetime import datetime

from ..trackers.base import HistoryVerdict
from ..trackers.models import ChangeHistory, IssueId
from ..utils.time import is_after

RESOLVED_STATUSES = {"RESOLVED", "VERIFIED", "CLOSED"}
JIRA_DONE_WORDS = ("done", "resolved", "closed", "complete")
MAX_REASON_EXAMPLES = 6


def qualifies_by_bugzilla_history(
    history: ChangeHistory, since: datetime
) -> HistoryVerdict:
    """Check a Bugzilla history for a resolution inside the window.

    A bug qualifies when an entry at or after ``since`` moves its status to
    RESOLVED, VERIFIED or CLOSED, or sets the resolution to FIXED.
    """
    if not history.entries:
        return HistoryVerdict(ok=False, reason="no history entries")

    saw_recent = False
    for entry in history.entries:
        if not is_after(entry.when, since):
            continue
        saw_recent = True
        detail = None
        for change in entry.changes:
            field = change.field.lower()
            if field in ("status", "bug_status") and change.added in RESOLVED_STATUSES:
                detail = f"status {change.added} on {entry.when}"
            if field == "resolution" and change.added == "FIXED":
                detail = f"resolution FIXED on {entry.when}"
        if detail:
            return HistoryVerdict(ok=True, detail=detail)

    if not saw_recent:
        return HistoryVerdict(ok=False, reason="no recent history in window")
    return HistoryVerdict(
        ok=False, reason="no qualifying transitions (bug_status/resolution)"
    )


def qualifies_by_jira_history(
    history: ChangeHistory, since: datetime
) -> HistoryVerdict:
    """Check a Jira changelog for a transition to done inside the window."""
    if not history.entries:
        return HistoryVerdict(ok=False, reason="no changelog entries")

    saw_recent = False
    for entry in history.entries:
        if not is_after(entry.when, since):
            continue
        saw_recent = True
        for change in entry.changes:
            field = change.field.lower()
            to_value = (change.added or "").lower()
            from_value = (change.removed or "").lower()

            if field == "status" and any(word in to_value for word in JIRA_DONE_WORDS):
                return HistoryVerdict(
                    ok=True, detail=f"status -> {change.added} on {entry.when}"
                )
            if field == "statuscategory" and to_value in ("done", "complete"):
                return HistoryVerdict(
                    ok=True, detail=f"statusCategory -> {change.added} on {entry.when}"
                )
            if (
                field == "resolution"
                and to_value
                and to_value != "unresolved"
                and from_value in ("", "null")
            ):
                return HistoryVerdict(
                    ok=True, detail=f"resolution -> {change.added} on {entry.when}"
                )

    if not saw_recent:
        return HistoryVerdict(ok=False, reason="no recent changelog in window")
    return HistoryVerdict(
        ok=False,
        reason="no qualifying transitions (status/statusCategory/resolution)",
    )


class ReasonTally:
    """Counts why candidates failed qualification, keeping a few examples."""

    def __init__(self) -> None:
        self.counts: Counter[str] = Counter()
        self.examples: dict[str, list[IssueId]] = {}

    def bump(self, reason: str, issue_id: IssueId) -> None:
        self.counts[reason] += 1
        examples = self.examples.setdefault(reason, [])
        if len(examples) < MAX_REASON_EXAMPLES:
            examples.append(issue_id)

    def lines(self) -> list[str]:
        return [
            f"{reason}: {count} (e.g. {', '.join(str(i) for i in self.examples[reason])})"
            for reason, count in self.counts.most_common()
        ]
