import json
from http.server import BaseHTTPRequestHandler
from typing import Any

from ..errors import ProtocolError

NDJSON_CONTENT_TYPE = "application/x-ndjson; charset=utf-8"


def send_json_response(
    handler: BaseHTTPRequestHandler,
    payload: dict,
    status: int = 200,
) -> None:
    body = json.dumps(payload, ensure_ascii=False).encode("utf-8")
    handler.send_response(status)
    handler.send_header("Content-Type", "application/json; charset=utf-8")
    handler.send_header("Content-Length", str(len(body)))
    handler.end_headers()
    handler.wfile.write(body)


def send_error_response(
    handler: BaseHTTPRequestHandler, message: str, status: int
) -> None:
    send_json_response(handler, {"error": message}, status=status)


def read_json_body(handler: BaseHTTPRequestHandler) -> Any:
    """Decoded request body; an empty body reads as ``{}``.

    Raises:
        ProtocolError: If the body is not valid JSON
    """
    length = int(handler.headers.get("Content-Length", "0") or 0)
    raw = handler.rfile.read(length).decode("utf-8") if length else ""
    if not raw.strip():
        return {}
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        raise ProtocolError(f"Request body is not valid JSON: {e.msg}") from e


def start_ndjson_response(handler: BaseHTTPRequestHandler) -> None:
    handler.send_response(200)
    handler.send_header("Content-Type", NDJSON_CONTENT_TYPE)
    handler.send_header("Cache-Control", "no-store")
    handler.send_header("X-Accel-Buffering", "no")
    handler.end_headers()


def write_ndjson_line(handler: BaseHTTPRequestHandler, payload: dict) -> None:
    line = json.dumps(payload, ensure_ascii=False) + "\n"
    handler.wfile.write(line.encode("utf-8"))
    handler.wfile.flush()
