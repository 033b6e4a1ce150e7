"""Pydantic models for tracker data."""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

TrackerSource = Literal["bugzilla", "jira"]
IssueId = int | str


class Assignee(BaseModel):
    """Person an issue is assigned to."""

    model_config = ConfigDict(frozen=True)

    name: str | None = Field(None, description="Display name")
    email: str | None = Field(None, description="Email address or login")

    @property
    def display(self) -> str:
        if self.name:
            return self.name
        if self.email:
            return self.email.split("@")[0]
        return "Unassigned"


class Issue(BaseModel):
    """Canonical issue shape shared by every tracker.

    Built from a Bugzilla bug or a Jira issue; never mutated afterwards.
    """

    model_config = ConfigDict(frozen=True)

    id: IssueId = Field(..., description="Bugzilla bug number or Jira issue key")
    summary: str = ""
    project: str = Field("", description="Bugzilla product or Jira project key")
    component: str = ""
    status: str = ""
    status_category: str | None = Field(
        None, description="Jira status category key, e.g. 'done'"
    )
    resolution: str | None = None
    assignee: Assignee = Field(default_factory=Assignee)
    updated: str | None = Field(None, description="Last change timestamp")
    resolved_at: str | None = Field(None, description="Resolution timestamp")
    labels: tuple[str, ...] = Field(
        default=(), description="Bugzilla groups or Jira labels"
    )
    is_secure: bool = Field(False, description="Backend restriction marker present")
    security_level: str | None = Field(None, description="Jira security level name")
    url: str | None = None
    source: TrackerSource = "bugzilla"

    @property
    def key(self) -> str:
        """Dedup key, unique across trackers."""
        return f"{self.source}:{self.id}"


class ProductComponent(BaseModel):
    """Bugzilla product with an optional component."""

    model_config = ConfigDict(frozen=True)

    product: str
    component: str | None = None

    @classmethod
    def parse(cls, value: str) -> "ProductComponent":
        """Parse ``PRODUCT`` or ``PRODUCT:COMPONENT``.

        Raises:
            ValueError: If the product or component part is empty
        """
        product, sep, component = value.partition(":")
        product = product.strip()
        component = component.strip()
        if not product or (sep and not component):
            raise ValueError(f"expected PRODUCT[:COMPONENT], got {value!r}")
        return cls(product=product, component=component or None)

    def __str__(self) -> str:
        return f"{self.product}:{self.component}" if self.component else self.product


class HistoryChange(BaseModel):
    """A single field change inside a history entry."""

    field: str
    removed: str | None = None
    added: str | None = None


class HistoryEntry(BaseModel):
    """Changes made together at one moment."""

    when: str
    who: str | None = None
    changes: list[HistoryChange] = Field(default_factory=list)


class ChangeHistory(BaseModel):
    """Ordered change history of one issue."""

    id: IssueId
    entries: list[HistoryEntry] = Field(default_factory=list)
