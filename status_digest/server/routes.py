"""Request routing for ``POST /api/status``."""

import asyncio
import logging
import queue
import threading
from http.server import BaseHTTPRequestHandler
from typing import Callable
from urllib.parse import parse_qs

from ..errors import (
    BackendError,
    ConfigurationError,
    ProtocolError,
    StatusDigestError,
)
from ..status.controller import StatusController, parse_request
from ..status.protocol import ErrorEvent, StatusRequest, StreamEvent
from .http_utils import (
    read_json_body,
    send_error_response,
    send_json_response,
    start_ndjson_response,
    write_ndjson_line,
)

logger = logging.getLogger(__name__)

STATUS_PATH = "/api/status"
STREAM_QUEUE_SIZE = 64
PUT_TIMEOUT = 0.5

ConfigCheck = Callable[[StatusRequest], None]

_END = object()


def wants_stream(request: StatusRequest, query: str, accept: str | None) -> bool:
    """Streaming is selected by mode, ``?stream=1`` or the Accept header."""
    if request.mode == "stream":
        return True
    if parse_qs(query).get("stream", [""])[0] in ("1", "true"):
        return True
    return "application/x-ndjson" in (accept or "")


def configuration_message(error: ConfigurationError) -> str:
    if error.missing:
        return f"Server missing {' or '.join(error.missing)}"
    return f"Server missing configuration: {error}"


def handle_post(
    handler: BaseHTTPRequestHandler,
    controller: StatusController,
    *,
    path: str,
    query: str,
    check_config: ConfigCheck,
) -> bool:
    """Serve a status request; returns False for paths this route does not own."""
    if path != STATUS_PATH:
        return False

    try:
        request = parse_request(read_json_body(handler))
        check_config(request)
        if wants_stream(request, query, handler.headers.get("Accept")):
            stream_response(handler, controller, request)
            return True
        response = asyncio.run(controller.run(request))
    except ProtocolError as e:
        send_error_response(handler, str(e), 400)
        return True
    except ConfigurationError as e:
        logger.error("Configuration error: %s", e)
        send_error_response(handler, configuration_message(e), 500)
        return True
    except BackendError as e:
        logger.warning("Backend error: %s", e)
        send_error_response(handler, str(e), 502)
        return True

    send_json_response(handler, response.to_wire())
    return True


def stream_response(
    handler: BaseHTTPRequestHandler,
    controller: StatusController,
    request: StatusRequest,
) -> None:
    """Write stream events as NDJSON while a worker thread produces them.

    The queue is bounded so a slow reader holds the producer back. A
    disconnect stops the producer; nothing is re-enumerated.
    """
    events: queue.Queue = queue.Queue(maxsize=STREAM_QUEUE_SIZE)
    stop = threading.Event()

    def offer(item: object) -> bool:
        while not stop.is_set():
            try:
                events.put(item, timeout=PUT_TIMEOUT)
                return True
            except queue.Full:
                continue
        return False

    async def produce() -> None:
        stream = controller.stream(request)
        try:
            async for event in stream:
                if not offer(event):
                    break
        finally:
            await stream.aclose()

    def run() -> None:
        try:
            asyncio.run(produce())
        except StatusDigestError as e:
            offer(ErrorEvent(msg=str(e)))
        except Exception as e:
            logger.exception("Stream producer failed")
            offer(ErrorEvent(msg=f"Internal error: {e}"))
        finally:
            offer(_END)

    start_ndjson_response(handler)
    producer = threading.Thread(target=run, name="status-stream", daemon=True)
    producer.start()
    try:
        while True:
            item = events.get()
            if item is _END:
                break
            event: StreamEvent = item  # type: ignore[assignment]
            write_ndjson_line(handler, event.to_wire())
    except (BrokenPipeError, ConnectionResetError):
        logger.info("Client disconnected; stopping stream")
    finally:
        stop.set()
        producer.join()
