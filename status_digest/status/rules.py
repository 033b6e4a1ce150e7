"""Restriction filter deciding which issues may appear in a public report."""

import re
from typing import Iterable, Literal

from pydantic import BaseModel

from ..trackers.models import Issue

RestrictionCategory = Literal["security", "confidential"]

# Checked in order; the first match decides the category.
RESTRICTED_GROUP_PATTERNS: tuple[tuple[RestrictionCategory, re.Pattern[str]], ...] = (
    ("security", re.compile(r"security", re.IGNORECASE)),
    ("confidential", re.compile(r"confidential", re.IGNORECASE)),
)


def restriction_category(groups: Iterable[str]) -> RestrictionCategory | None:
    """Classify a group/label set, or ``None`` when it is public."""
    groups = list(groups)
    for category, pattern in RESTRICTED_GROUP_PATTERNS:
        if any(pattern.search(group) for group in groups):
            return category
    return None


def is_restricted(groups: Iterable[str]) -> bool:
    """True when any group names a security or confidentiality class."""
    return restriction_category(groups) is not None


def issue_restriction(issue: Issue) -> RestrictionCategory | None:
    """Restriction category of an issue, including backend security markers."""
    category = restriction_category(issue.labels)
    if category is None and issue.is_secure:
        category = restriction_category([issue.security_level or ""]) or "security"
    return category


class RestrictionTally(BaseModel):
    """Number of restricted issues removed, per category."""

    security: int = 0
    confidential: int = 0

    @property
    def total(self) -> int:
        return self.security + self.confidential

    def record(self, category: RestrictionCategory) -> None:
        if category == "security":
            self.security += 1
        else:
            self.confidential += 1

    def describe(self) -> str:
        return f"{self.security} security, {self.confidential} confidential"


def partition_restricted(
    issues: Iterable[Issue], tally: RestrictionTally
) -> list[Issue]:
    """Return the public issues, counting every restricted one in ``tally``."""
    public = []
    for issue in issues:
        category = issue_restriction(issue)
        if category is None:
            public.append(issue)
        else:
            tally.record(category)
    return public
