"""Exception types shared across status-digest."""


class StatusDigestError(Exception):
    """Base class for all status-digest errors."""


class ConfigurationError(StatusDigestError, ValueError):
    """A required credential or endpoint URL is missing."""

    def __init__(self, message: str, missing: list[str] | None = None):
        super().__init__(message)
        self.missing = missing or []


class BackendError(StatusDigestError):
    """A tracker or the summarizer returned a failure or malformed payload."""

    def __init__(self, backend: str, message: str, status_code: int | None = None):
        self.backend = backend
        self.status_code = status_code
        prefix = f"{backend} {status_code}" if status_code else backend
        super().__init__(f"{prefix}: {message}")


class ProtocolError(StatusDigestError):
    """Unknown mode, malformed request body, or an out-of-range cursor."""


class ValidationError(StatusDigestError):
    """A single candidate could not be evaluated during streaming."""

    def __init__(self, issue_id: int | str, reason: str):
        super().__init__(f"#{issue_id}: {reason}")
        self.issue_id = issue_id
        self.reason = reason
