"""CLI commands that build a status report locally or through a server."""

import asyncio
import logging
from typing import Any

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from ..client.stream import ProgressLog, StatusClient
from ..config import DigestConfig
from ..errors import ConfigurationError, StatusDigestError
from ..server.app import build_controller
from ..status.controller import parse_request
from ..status.protocol import StatusRequest
from ..trackers.base import ProgressHooks
from ..trackers.models import ProductComponent
from .options import (
    ASSIGNEE_OPTION,
    AUDIENCE_OPTION,
    COMPONENT_OPTION,
    DAYS_OPTION,
    DEBUG_OPTION,
    FORMAT_OPTION,
    JIRA_JQL_OPTION,
    JIRA_PROJECT_OPTION,
    METABUG_OPTION,
    MODEL_OPTION,
    NO_CACHE_OPTION,
    PAGED_OPTION,
    PATCH_CONTEXT_OPTION,
    SERVER_URL_OPTION,
    VOICE_OPTION,
    WHITEBOARD_OPTION,
)

console = Console()
err_console = Console(stderr=True)


class ConsoleHooks(ProgressHooks):
    """Progress hooks that print to stderr."""

    def info(self, msg: str) -> None:
        super().info(msg)
        err_console.print(f"[dim]{escape(msg)}[/dim]", highlight=False)

    def warn(self, msg: str) -> None:
        super().warn(msg)
        err_console.print(f"⚠️  {escape(msg)}", style="yellow", highlight=False)


def configure_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


def parse_components(values: list[str] | None) -> list[ProductComponent]:
    pairs = []
    for value in values or []:
        try:
            pairs.append(ProductComponent.parse(value))
        except ValueError as e:
            err_console.print(f"❌ Bad --component {escape(repr(value))}: {e}")
            raise typer.Exit(1)
    return pairs


def build_request_body(
    *,
    component: list[str] | None,
    whiteboard: list[str] | None,
    metabug: list[int] | None,
    assignee: list[str] | None,
    jira_project: list[str] | None,
    jira_jql: list[str] | None,
    days: int,
    output_format: str,
    model: str,
    voice: str,
    audience: str,
    no_cache: bool,
    patch_context: bool,
    debug: bool,
) -> dict[str, Any]:
    """Request body in wire form; shared by local and remote runs."""
    return {
        "components": [
            {"product": pair.product, "component": pair.component}
            for pair in parse_components(component)
        ],
        "whiteboards": whiteboard or [],
        "metabugs": metabug or [],
        "assignees": assignee or [],
        "jiraProjects": jira_project or [],
        "jiraJql": jira_jql or [],
        "days": days,
        "format": output_format,
        "model": model,
        "voice": voice,
        "audience": audience,
        "noCache": no_cache,
        "patchContext": patch_context,
        "debug": debug,
    }


def _validated(body: dict[str, Any]) -> StatusRequest:
    try:
        request = parse_request(body)
    except StatusDigestError as e:
        err_console.print(f"❌ Error: {escape(str(e))}")
        raise typer.Exit(1)
    if request.is_empty:
        err_console.print(
            "❌ Error: give at least one --component, --whiteboard, --metabug, "
            "--assignee, --jira-project or --jira-jql"
        )
        raise typer.Exit(1)
    return request


def report(
    component: list[str] | None = COMPONENT_OPTION,
    whiteboard: list[str] | None = WHITEBOARD_OPTION,
    metabug: list[int] | None = METABUG_OPTION,
    assignee: list[str] | None = ASSIGNEE_OPTION,
    jira_project: list[str] | None = JIRA_PROJECT_OPTION,
    jira_jql: list[str] | None = JIRA_JQL_OPTION,
    days: int = DAYS_OPTION,
    output_format: str = FORMAT_OPTION,
    model: str = MODEL_OPTION,
    voice: str = VOICE_OPTION,
    audience: str = AUDIENCE_OPTION,
    no_cache: bool = NO_CACHE_OPTION,
    patch_context: bool = PATCH_CONTEXT_OPTION,
    debug: bool = DEBUG_OPTION,
) -> None:
    """Summarize recently resolved issues.

    Examples:
        status-digest report --component Firefox:Sync --days 14
        status-digest report --whiteboard "[fxsync]" --format html
        status-digest report --jira-project FXA --assignee dev@example.com
    """
    configure_logging(debug)
    request = _validated(
        build_request_body(
            component=component,
            whiteboard=whiteboard,
            metabug=metabug,
            assignee=assignee,
            jira_project=jira_project,
            jira_jql=jira_jql,
            days=days,
            output_format=output_format,
            model=model,
            voice=voice,
            audience=audience,
            no_cache=no_cache,
            patch_context=patch_context,
            debug=debug,
        )
    )

    try:
        DigestConfig().validate(jira=request.uses_jira)
    except ConfigurationError as e:
        err_console.print(f"❌ Error: {escape(str(e))}")
        raise typer.Exit(1)

    controller = build_controller()
    try:
        response = asyncio.run(controller.oneshot(request, ConsoleHooks()))
    except StatusDigestError as e:
        err_console.print(f"❌ Error: {escape(str(e))}")
        raise typer.Exit(1)

    if response.restricted.total:
        err_console.print(
            f"🔒 Restricted issues omitted: {response.restricted.describe()}"
        )
    err_console.print(f"✅ Report covers {len(response.ids)} issue(s)")
    typer.echo(response.output)


def watch(
    server: str = SERVER_URL_OPTION,
    component: list[str] | None = COMPONENT_OPTION,
    whiteboard: list[str] | None = WHITEBOARD_OPTION,
    metabug: list[int] | None = METABUG_OPTION,
    assignee: list[str] | None = ASSIGNEE_OPTION,
    jira_project: list[str] | None = JIRA_PROJECT_OPTION,
    jira_jql: list[str] | None = JIRA_JQL_OPTION,
    days: int = DAYS_OPTION,
    output_format: str = FORMAT_OPTION,
    model: str = MODEL_OPTION,
    voice: str = VOICE_OPTION,
    audience: str = AUDIENCE_OPTION,
    no_cache: bool = NO_CACHE_OPTION,
    patch_context: bool = PATCH_CONTEXT_OPTION,
    paged: bool = PAGED_OPTION,
    debug: bool = DEBUG_OPTION,
) -> None:
    """Run a report on a status server and show its progress.

    Examples:
        status-digest watch --component Firefox:Sync
        status-digest watch --server http://127.0.0.1:8787 --paged --days 14
    """
    configure_logging(debug)
    request = _validated(
        build_request_body(
            component=component,
            whiteboard=whiteboard,
            metabug=metabug,
            assignee=assignee,
            jira_project=jira_project,
            jira_jql=jira_jql,
            days=days,
            output_format=output_format,
            model=model,
            voice=voice,
            audience=audience,
            no_cache=no_cache,
            patch_context=patch_context,
            debug=debug,
        )
    )
    body = request.to_wire()

    with StatusClient(server) as client:
        try:
            if paged:
                result = client.run_paged(
                    body,
                    on_page=lambda page: err_console.print(
                        f"[dim]page: {len(page.qualified_ids)} qualified, "
                        f"{page.excluded} excluded of {page.total}[/dim]",
                        highlight=False,
                    ),
                )
                output, restricted = result.output, result.restricted
            else:
                progress = ProgressLog(
                    echo=lambda line: err_console.print(
                        f"[dim]{escape(line)}[/dim]", highlight=False
                    )
                )
                terminal = client.run_stream(body, on_event=progress)
                if terminal.kind == "error":
                    err_console.print(f"❌ Error: {escape(terminal.msg)}")
                    raise typer.Exit(1)
                err_console.print(
                    f"✅ {progress.valid} valid, {progress.invalid} excluded"
                )
                output, restricted = terminal.output, terminal.restricted
        except StatusDigestError as e:
            err_console.print(f"❌ Error: {escape(str(e))}")
            raise typer.Exit(1)

    if restricted.total:
        err_console.print(f"🔒 Restricted issues omitted: {restricted.describe()}")
    typer.echo(output)
