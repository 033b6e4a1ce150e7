"""AI summarization of resolved issues."""

from .agents import summary_agent
from .models import ImpactAssessment, SummaryResponse
from .summarizer import format_summary_prompt, summarize_issues

__all__ = [
    "ImpactAssessment",
    "SummaryResponse",
    "summary_agent",
    "format_summary_prompt",
    "summarize_issues",
]
