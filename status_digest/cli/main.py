"""Main CLI entry point."""

import typer
from dotenv import load_dotenv
from rich.console import Console

from .report import report, watch
from .serve import serve

# Load environment variables from .env file
load_dotenv()

app = typer.Typer(
    name="status-digest",
    help="Status digests of recently resolved Bugzilla and Jira issues",
    add_completion=False,
    context_settings={"help_option_names": ["-h", "--help"]},
)
console = Console()


app.command(name="report", context_settings={"help_option_names": ["-h", "--help"]})(
    report
)
app.command(name="serve", context_settings={"help_option_names": ["-h", "--help"]})(
    serve
)
app.command(name="watch", context_settings={"help_option_names": ["-h", "--help"]})(
    watch
)


@app.command(context_settings={"help_option_names": ["-h", "--help"]})
def version() -> None:
    """Show version information."""
    from status_digest import __version__

    console.print(f"Status Digest v{__version__}")


if __name__ == "__main__":
    app()
