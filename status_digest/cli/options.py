"""Standardized CLI option definitions shared by the report and watch commands."""

import typer

from ..config import DEFAULT_DAYS, DEFAULT_MODEL
from ..server.app import DEFAULT_HOST, DEFAULT_PORT

# Filter options - which issues the report covers
COMPONENT_OPTION = typer.Option(
    None,
    "--component",
    "-c",
    help="Bugzilla PRODUCT[:COMPONENT] (can be used multiple times)",
)

WHITEBOARD_OPTION = typer.Option(
    None, "--whiteboard", "-w", help="Whiteboard substring (can be used multiple times)"
)

METABUG_OPTION = typer.Option(
    None, "--metabug", help="Metabug id whose dependencies are included"
)

ASSIGNEE_OPTION = typer.Option(
    None, "--assignee", "-a", help="Assignee email (can be used multiple times)"
)

JIRA_PROJECT_OPTION = typer.Option(
    None, "--jira-project", help="Jira project key (can be used multiple times)"
)

JIRA_JQL_OPTION = typer.Option(
    None, "--jira-jql", help="Raw JQL search (can be used multiple times)"
)

DAYS_OPTION = typer.Option(
    DEFAULT_DAYS, "--days", "-d", min=1, help="Report window in days"
)

# Output options - how the report is written
FORMAT_OPTION = typer.Option("md", "--format", "-f", help="Output format: md, html, text")

MODEL_OPTION = typer.Option(
    DEFAULT_MODEL,
    "--model",
    "-m",
    help="AI model to use (e.g., 'openai:gpt-5-mini')",
)

VOICE_OPTION = typer.Option(
    "normal", "--voice", help="Writing voice: normal, pirate, snazzy-robot"
)

AUDIENCE_OPTION = typer.Option(
    "technical", "--audience", help="Audience: technical, product, leadership"
)

# Behavior options
NO_CACHE_OPTION = typer.Option(
    False, "--no-cache", help="Bypass the 24h tracker response cache"
)

PATCH_CONTEXT_OPTION = typer.Option(
    False, "--patch-context", help="Include landed GitHub commit diffs in the prompt"
)

DEBUG_OPTION = typer.Option(False, "--debug", help="Enable debug logging")

# Server options
HOST_OPTION = typer.Option(DEFAULT_HOST, "--host", help="Interface to bind")

PORT_OPTION = typer.Option(DEFAULT_PORT, "--port", "-p", help="Port to listen on")

SERVER_URL_OPTION = typer.Option(
    f"http://{DEFAULT_HOST}:{DEFAULT_PORT}",
    "--server",
    "-s",
    help="Base URL of a running status server",
)

PAGED_OPTION = typer.Option(
    False, "--paged", help="Use discover/page/finalize instead of streaming"
)
