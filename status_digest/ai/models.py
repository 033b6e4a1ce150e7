"""Pydantic models for summarizer responses."""

from pydantic import BaseModel, ConfigDict, Field


class ImpactAssessment(BaseModel):
    """The model's judgement of one issue's user impact."""

    bug_id: int | str = Field(description="Bugzilla bug number or Jira issue key")
    impact_score: int = Field(ge=0, le=10, description="User impact from 1 to 10")
    short_reason: str = Field("", description="One-line reason for the score")
    demo_suggestion: str | None = Field(
        None, description="One-sentence demo idea for high-impact changes"
    )


class SummaryResponse(BaseModel):
    """Structured response for the weekly summary."""

    model_config = ConfigDict(extra="ignore")

    assessments: list[ImpactAssessment] = Field(default_factory=list)
    summary_md: str = Field(description="Markdown summary of user-facing changes")
