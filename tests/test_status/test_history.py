"""Tests for change-history qualification."""

from datetime import datetime, timezone

from status_digest.status.history import (
    ReasonTally,
    qualifies_by_bugzilla_history,
    qualifies_by_jira_history,
)
from status_digest.trackers.models import ChangeHistory, HistoryChange, HistoryEntry

SINCE = datetime(2026, 10, 11, tzinfo=timezone.utc)


def history(when: str, *changes: tuple[str, str | None, str | None]) -> ChangeHistory:
    return ChangeHistory(
        id=1,
        entries=[
            HistoryEntry(
                when=when,
                changes=[
                    HistoryChange(field=field, removed=removed, added=added)
                    for field, removed, added in changes
                ],
            )
        ],
    )


class TestBugzillaHistory:
    """Test Bugzilla qualification rules."""

    def test_resolved_in_window(self) -> None:
        """Test a status change to RESOLVED inside the window."""
        verdict = qualifies_by_bugzilla_history(
            history("2026-10-15T10:00:00Z", ("bug_status", "NEW", "RESOLVED")), SINCE
        )
        assert verdict.ok
        assert "RESOLVED" in verdict.detail

    def test_fixed_resolution(self) -> None:
        """Test that resolution FIXED alone qualifies."""
        verdict = qualifies_by_bugzilla_history(
            history("2026-10-15T10:00:00Z", ("resolution", "", "FIXED")), SINCE
        )
        assert verdict.ok

    def test_no_entries(self) -> None:
        """Test an empty history."""
        verdict = qualifies_by_bugzilla_history(ChangeHistory(id=1), SINCE)
        assert not verdict.ok
        assert verdict.reason == "no history entries"

    def test_old_resolution(self) -> None:
        """Test a resolution before the window."""
        verdict = qualifies_by_bugzilla_history(
            history("2026-09-01T10:00:00Z", ("status", "NEW", "RESOLVED")), SINCE
        )
        assert verdict.reason == "no recent history in window"

    def test_recent_unrelated_change(self) -> None:
        """Test recent activity that does not resolve the bug."""
        verdict = qualifies_by_bugzilla_history(
            history("2026-10-15T10:00:00Z", ("priority", "P3", "P1")), SINCE
        )
        assert verdict.reason == "no qualifying transitions (bug_status/resolution)"

    def test_wontfix_does_not_qualify(self) -> None:
        """Test that non-FIXED resolutions without a status change are ignored."""
        verdict = qualifies_by_bugzilla_history(
            history("2026-10-15T10:00:00Z", ("resolution", "", "WONTFIX")), SINCE
        )
        assert not verdict.ok


class TestJiraHistory:
    """Test Jira qualification rules."""

    def test_status_done(self) -> None:
        """Test a transition to Done."""
        verdict = qualifies_by_jira_history(
            history("2026-10-15T10:00:00.000+0000", ("status", "In Review", "Done")),
            SINCE,
        )
        assert verdict.ok

    def test_status_category(self) -> None:
        """Test a statusCategory change to done."""
        verdict = qualifies_by_jira_history(
            history("2026-10-15T10:00:00Z", ("statusCategory", "indeterminate", "done")),
            SINCE,
        )
        assert verdict.ok

    def test_resolution_set(self) -> None:
        """Test a resolution set from empty."""
        verdict = qualifies_by_jira_history(
            history("2026-10-15T10:00:00Z", ("resolution", None, "Fixed")), SINCE
        )
        assert verdict.ok

    def test_resolution_changed_only(self) -> None:
        """Test that changing an existing resolution does not qualify."""
        verdict = qualifies_by_jira_history(
            history("2026-10-15T10:00:00Z", ("resolution", "Duplicate", "Fixed")),
            SINCE,
        )
        assert verdict.reason == (
            "no qualifying transitions (status/statusCategory/resolution)"
        )

    def test_stale(self) -> None:
        """Test changes before the window."""
        verdict = qualifies_by_jira_history(
            history("2026-01-15T10:00:00Z", ("status", "Open", "Done")), SINCE
        )
        assert verdict.reason == "no recent changelog in window"

    def test_empty(self) -> None:
        """Test an empty changelog."""
        verdict = qualifies_by_jira_history(ChangeHistory(id="FXA-1"), SINCE)
        assert verdict.reason == "no changelog entries"


class TestReasonTally:
    """Test exclusion reason bookkeeping."""

    def test_examples_are_capped(self) -> None:
        """Test that at most six example ids are kept per reason."""
        tally = ReasonTally()
        for issue_id in range(10):
            tally.bump("stale", issue_id)
        tally.bump("missing", 99)

        lines = tally.lines()

        assert lines[0] == "stale: 10 (e.g. 0, 1, 2, 3, 4, 5)"
        assert lines[1] == "missing: 1 (e.g. 99)"
