"""Threaded HTTP server exposing the status controller."""

import logging
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import cast
from urllib.parse import urlparse

from ..config import DigestConfig
from ..status.controller import StatusController
from ..status.protocol import StatusRequest
from ..trackers.cache import ResponseCache
from ..trackers.patches import PatchContextLoader
from ..trackers.registry import Trackers, build_trackers
from .routes import ConfigCheck, handle_post

logger = logging.getLogger(__name__)

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8787


def build_controller(cache: ResponseCache | None = None) -> StatusController:
    """Controller whose adapters read credentials from the environment per request."""
    shared_cache = cache if cache is not None else ResponseCache()

    def tracker_factory(request: StatusRequest) -> Trackers:
        config = DigestConfig()
        return build_trackers(
            config,
            jira=request.uses_jira,
            cache=shared_cache,
            skip_cache=request.no_cache,
        )

    def patch_loader_factory(trackers: Trackers) -> PatchContextLoader | None:
        if trackers.bugzilla is None:
            return None
        return PatchContextLoader(trackers.bugzilla, DigestConfig().github_token)

    return StatusController(tracker_factory, patch_loader_factory=patch_loader_factory)


def check_environment(request: StatusRequest) -> None:
    """Raise ``ConfigurationError`` naming every variable the request needs."""
    DigestConfig().validate(jira=request.uses_jira)


class StatusHTTPServer(ThreadingHTTPServer):
    daemon_threads = True

    def __init__(
        self,
        address: tuple[str, int],
        controller: StatusController,
        check_config: ConfigCheck = check_environment,
    ):
        super().__init__(address, StatusHandler)
        self.controller = controller
        self.check_config = check_config


class StatusHandler(BaseHTTPRequestHandler):
    server_version = "StatusDigest"

    def log_message(self, format: str, *args: object) -> None:  # noqa: A003
        logger.debug("%s - %s", self.address_string(), format % args)

    def do_POST(self) -> None:  # noqa: N802
        parsed = urlparse(self.path)
        server = cast(StatusHTTPServer, self.server)
        if handle_post(
            self,
            server.controller,
            path=parsed.path,
            query=parsed.query,
            check_config=server.check_config,
        ):
            return
        self.send_response(404)
        self.end_headers()


def serve(host: str = DEFAULT_HOST, port: int = DEFAULT_PORT) -> None:
    server = StatusHTTPServer((host, port), build_controller())
    logger.info("Serving status digests on http://%s:%d/api/status", host, port)
    try:
        server.serve_forever()
    finally:
        server.server_close()
