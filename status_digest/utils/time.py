"""Timestamp helpers for tracker payloads and report windows."""

import re
from datetime import datetime, timedelta, timezone

_COMPACT_OFFSET = re.compile(r"([+-]\d{2})(\d{2})$")


def parse_timestamp(value: str) -> datetime:
    """Parse a tracker timestamp into an aware datetime.

    Supports:
    - Bugzilla: 2024-01-01T10:00:00Z
    - Jira: 2024-01-01T10:00:00.000+0000
    - Plain dates: 2024-01-01 (treated as UTC midnight)

    Args:
        value: Timestamp string

    Returns:
        Timezone-aware datetime

    Raises:
        ValueError: If the timestamp is not ISO 8601
    """
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    text = _COMPACT_OFFSET.sub(r"\1:\2", text)
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        raise ValueError(f"Unable to parse timestamp '{value}'")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def is_after(value: str | None, since: datetime) -> bool:
    """True when ``value`` parses and falls on or after ``since``."""
    if not value:
        return False
    try:
        return parse_timestamp(value) >= since
    except ValueError:
        return False


def days_ago(days: int, now: datetime | None = None) -> datetime:
    """Start of the reporting window, ``days`` before ``now``."""
    now = now or datetime.now(timezone.utc)
    return now - timedelta(days=days)


def to_iso(moment: datetime) -> str:
    """Format as the second-precision UTC form Bugzilla accepts."""
    return moment.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
