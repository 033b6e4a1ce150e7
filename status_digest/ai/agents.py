"""PydanticAI agents for report summarization."""

from pydantic_ai import Agent

from .models import SummaryResponse
from .prompts import SUMMARY_PROMPT

# The model is chosen per request and passed to ``run``.
summary_agent = Agent(
    output_type=SummaryResponse,
    instructions=SUMMARY_PROMPT,
    retries=2,
)
