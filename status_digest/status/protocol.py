"""Wire models for the status endpoint.

Bodies use camelCase keys on the wire; the models accept either form.
"""

from typing import Annotated, Any, Literal, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from ..config import DEFAULT_DAYS, DEFAULT_MODEL
from ..trackers.models import IssueId, ProductComponent
from ..utils.time import parse_timestamp, to_iso
from .rules import RestrictionTally

MODES = ("discover", "page", "finalize", "oneshot", "stream")
DEFAULT_PAGE_SIZE = 35
MAX_PAGE_SIZE = 200

OutputFormat = Literal["md", "html", "text"]
Voice = Literal["normal", "pirate", "snazzy-robot"]
Audience = Literal["technical", "product", "leadership"]


class WireModel(BaseModel):
    """Base for models exchanged as JSON."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="ignore"
    )

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class StatusFilter(WireModel):
    """Which issues a report covers."""

    components: list[ProductComponent] = Field(default_factory=list)
    whiteboards: list[str] = Field(default_factory=list)
    metabugs: list[int] = Field(default_factory=list)
    assignees: list[str] = Field(default_factory=list)
    jira_projects: list[str] = Field(default_factory=list)
    jira_jql: list[str] = Field(default_factory=list)
    days: int = Field(DEFAULT_DAYS, description="Report window in days")

    @field_validator("days")
    @classmethod
    def clamp_days(cls, value: int) -> int:
        return max(1, value)

    @field_validator("components", mode="before")
    @classmethod
    def parse_components(cls, values: Any) -> Any:
        if not isinstance(values, list):
            return values
        return [
            ProductComponent.parse(value) if isinstance(value, str) else value
            for value in values
        ]

    @field_validator("whiteboards", "assignees", "jira_projects", "jira_jql")
    @classmethod
    def drop_blank(cls, values: list[str]) -> list[str]:
        return [value.strip() for value in values if value and value.strip()]

    @property
    def uses_jira(self) -> bool:
        return bool(self.jira_projects or self.jira_jql)

    @property
    def uses_bugzilla(self) -> bool:
        return bool(
            self.components or self.whiteboards or self.metabugs or self.assignees
        )

    @property
    def is_empty(self) -> bool:
        return not (self.uses_bugzilla or self.uses_jira)


class ReportOptions(WireModel):
    """How the final report is written and rendered."""

    model: str = DEFAULT_MODEL
    format: OutputFormat = "md"
    voice: Voice = "normal"
    audience: Audience = "technical"
    patch_context: bool = False


class StatusRequest(StatusFilter, ReportOptions):
    """A POST body for any mode."""

    mode: str | None = None
    cursor: int | str | None = None
    page_size: int = Field(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE)
    ids: list[IssueId] | None = None
    no_cache: bool = False
    debug: bool = False
    since: str | None = Field(
        None, description="Window start returned by discover; pins later calls"
    )

    @field_validator("since")
    @classmethod
    def normalize_since(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return to_iso(parse_timestamp(value))

    @model_validator(mode="after")
    def default_audience_for_ids(self) -> "StatusRequest":
        if self.ids is not None and "audience" not in self.model_fields_set:
            self.audience = "product"
        return self

    @property
    def status_filter(self) -> StatusFilter:
        return StatusFilter.model_validate(
            self.model_dump(include=set(StatusFilter.model_fields))
        )

    @property
    def report_options(self) -> ReportOptions:
        return ReportOptions.model_validate(
            self.model_dump(include=set(ReportOptions.model_fields))
        )


class CandidateRef(WireModel):
    """Minimal reference to a discovered candidate."""

    id: IssueId
    last_change_time: str | None = Field(None, alias="last_change_time")
    product: str = ""
    component: str = ""


class DiscoverResponse(WireModel):
    total: int
    since: str | None = None
    candidates: list[CandidateRef] = Field(default_factory=list)
    restricted: RestrictionTally = Field(default_factory=RestrictionTally)


class PageResponse(WireModel):
    qualified_ids: list[IssueId] = Field(default_factory=list)
    next_cursor: int | None = None
    total: int
    excluded: int = 0
    restricted: RestrictionTally = Field(default_factory=RestrictionTally)


class FinalizeResponse(WireModel):
    output: str
    ids: list[IssueId] = Field(default_factory=list)
    restricted: RestrictionTally = Field(default_factory=RestrictionTally)


class StartEvent(WireModel):
    kind: Literal["start"] = "start"


class InfoEvent(WireModel):
    kind: Literal["info"] = "info"
    msg: str


class WarnEvent(WireModel):
    kind: Literal["warn"] = "warn"
    msg: str


class PhaseEvent(WireModel):
    kind: Literal["phase"] = "phase"
    name: str
    total: int | None = None


class ProgressEvent(WireModel):
    kind: Literal["progress"] = "progress"
    name: str
    current: int
    total: int | None = None


class ValidEvent(WireModel):
    kind: Literal["valid"] = "valid"
    id: IssueId
    summary: str
    assignee: str | None = None


class InvalidEvent(WireModel):
    kind: Literal["invalid"] = "invalid"
    id: IssueId
    summary: str
    reason: str


class DoneEvent(WireModel):
    kind: Literal["done"] = "done"
    output: str
    ids: list[IssueId] = Field(default_factory=list)
    restricted: RestrictionTally = Field(default_factory=RestrictionTally)


class ErrorEvent(WireModel):
    kind: Literal["error"] = "error"
    msg: str


StreamEvent = Annotated[
    Union[
        StartEvent,
        InfoEvent,
        WarnEvent,
        PhaseEvent,
        ProgressEvent,
        ValidEvent,
        InvalidEvent,
        DoneEvent,
        ErrorEvent,
    ],
    Field(discriminator="kind"),
]

stream_event_adapter: TypeAdapter[StreamEvent] = TypeAdapter(StreamEvent)

TERMINAL_KINDS = ("done", "error")
