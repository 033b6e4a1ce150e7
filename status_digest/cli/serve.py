"""CLI command for running the status HTTP server."""

from rich.console import Console

from ..config import DigestConfig
from ..server.app import serve as run_server
from .options import DEBUG_OPTION, HOST_OPTION, PORT_OPTION
from .report import configure_logging

console = Console()


def serve(
    host: str = HOST_OPTION,
    port: int = PORT_OPTION,
    debug: bool = DEBUG_OPTION,
) -> None:
    """Serve POST /api/status for browsers and `status-digest watch`.

    Credentials are read per request, so a server started without them
    answers 500 until the environment is fixed.
    """
    configure_logging(debug)
    missing = DigestConfig().missing()
    if missing:
        console.print(
            f"⚠️  Missing {', '.join(missing)}; requests will fail until set",
            style="yellow",
        )
    console.print(f"🚀 Listening on http://{host}:{port}/api/status")
    try:
        run_server(host, port)
    except KeyboardInterrupt:
        console.print("👋 Stopped")
