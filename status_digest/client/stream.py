"""Client side of the status endpoint: NDJSON consumer and paged driver."""

import json
import logging
from typing import Any, Callable, Iterator

import httpx
from pydantic import ValidationError as PydanticValidationError

from ..errors import BackendError, ProtocolError
from ..status.protocol import (
    DEFAULT_PAGE_SIZE,
    TERMINAL_KINDS,
    DiscoverResponse,
    FinalizeResponse,
    PageResponse,
    StreamEvent,
    stream_event_adapter,
)

logger = logging.getLogger(__name__)

EventCallback = Callable[[StreamEvent], None]


class StreamConsumer:
    """Splits an NDJSON byte stream into events.

    Chunks may end mid-line; the partial tail is held until the next chunk
    or ``close``. Blank lines are ignored. A line that is not a known event
    raises ``ProtocolError``.
    """

    def __init__(self) -> None:
        self._buffer = ""
        self.terminal: StreamEvent | None = None

    def _parse(self, line: str) -> StreamEvent | None:
        line = line.strip()
        if not line:
            return None
        try:
            event = stream_event_adapter.validate_python(json.loads(line))
        except (json.JSONDecodeError, PydanticValidationError) as e:
            raise ProtocolError(f"Malformed stream line: {line[:200]}") from e
        if event.kind in TERMINAL_KINDS:
            self.terminal = event
        return event

    def feed(self, chunk: str | bytes) -> list[StreamEvent]:
        if isinstance(chunk, bytes):
            chunk = chunk.decode("utf-8")
        self._buffer += chunk
        *lines, self._buffer = self._buffer.split("\n")
        return [event for event in map(self._parse, lines) if event is not None]

    def close(self) -> list[StreamEvent]:
        """Parse whatever is left after the last newline."""
        rest, self._buffer = self._buffer, ""
        event = self._parse(rest)
        return [event] if event is not None else []


class ProgressLog:
    """Collects progress lines and validity counts from stream events."""

    def __init__(self, echo: Callable[[str], None] | None = None):
        self.lines: list[str] = []
        self.valid = 0
        self.invalid = 0
        self.echo = echo

    def _add(self, line: str) -> None:
        self.lines.append(line)
        if self.echo:
            self.echo(line)

    def __call__(self, event: StreamEvent) -> None:
        match event.kind:
            case "info":
                self._add(event.msg)
            case "warn":
                self._add(f"warning: {event.msg}")
            case "phase":
                total = f" ({event.total})" if event.total is not None else ""
                self._add(f"{event.name}{total}")
            case "valid":
                self.valid += 1
            case "invalid":
                self.invalid += 1
                self._add(f"excluded {event.id}: {event.reason}")
            case "error":
                self._add(f"error: {event.msg}")


class StatusClient:
    """Drives a running status server over HTTP."""

    def __init__(
        self,
        base_url: str,
        *,
        client: httpx.Client | None = None,
        timeout: float = 300.0,
    ):
        self.base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self.client = client or httpx.Client(timeout=timeout)

    def __enter__(self) -> "StatusClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        if self._owns_client:
            self.client.close()

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/api/status"

    def _post(self, body: dict[str, Any]) -> dict[str, Any]:
        try:
            response = self.client.post(self.endpoint, json=body)
        except httpx.HTTPError as e:
            raise BackendError("status server", str(e)) from e
        if response.is_error:
            raise BackendError(
                "status server", _error_message(response), response.status_code
            )
        return response.json()

    def iter_stream(self, body: dict[str, Any]) -> Iterator[StreamEvent]:
        """Yield events until the terminal one."""
        consumer = StreamConsumer()
        payload = {**body, "mode": "stream"}
        try:
            with self.client.stream(
                "POST",
                self.endpoint,
                json=payload,
                headers={"Accept": "application/x-ndjson"},
            ) as response:
                if response.is_error:
                    response.read()
                    raise BackendError(
                        "status server", _error_message(response), response.status_code
                    )
                for chunk in response.iter_text():
                    yield from consumer.feed(chunk)
                yield from consumer.close()
        except httpx.HTTPError as e:
            raise BackendError("status server", str(e)) from e
        if consumer.terminal is None:
            raise ProtocolError("Stream ended without a terminal event")

    def run_stream(
        self, body: dict[str, Any], on_event: EventCallback | None = None
    ) -> StreamEvent:
        """Consume a stream and return its terminal event."""
        terminal = None
        for event in self.iter_stream(body):
            if on_event:
                on_event(event)
            if event.kind in TERMINAL_KINDS:
                terminal = event
        if terminal is None:
            raise ProtocolError("Stream ended without a terminal event")
        return terminal

    def run_paged(
        self,
        body: dict[str, Any],
        page_size: int = DEFAULT_PAGE_SIZE,
        on_page: Callable[[PageResponse], None] | None = None,
    ) -> FinalizeResponse:
        """discover, then page until the cursor runs out, then finalize with the ids."""
        discovered = DiscoverResponse.model_validate(
            self._post({**body, "mode": "discover"})
        )
        logger.info("Discovered %d candidate(s)", discovered.total)
        if discovered.since:
            body = {**body, "since": discovered.since}

        ids: list = []
        cursor: int | None = 0
        while cursor is not None and discovered.total:
            page = PageResponse.model_validate(
                self._post(
                    {**body, "mode": "page", "cursor": cursor, "pageSize": page_size}
                )
            )
            ids.extend(page.qualified_ids)
            if on_page:
                on_page(page)
            cursor = page.next_cursor

        return FinalizeResponse.model_validate(
            self._post({**body, "mode": "finalize", "ids": ids})
        )


def _error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text[:500]
    if isinstance(payload, dict) and "error" in payload:
        return str(payload["error"])
    return response.text[:500]
