"""Error taxonomy & redaction helpers.

Every failure the sync engine raises derives from ``IssueSyncError`` so the
CLI can tell a failed pass apart from a programming error. The categories
map one-to-one onto how the reconcilers react:

- ``TransportError``        retried by :mod:`issuesync.retry`
- ``RetryExhausted``        retry budget spent; carries the last response body
- ``UnexpectedResponseShape`` backend returned the wrong kind of value
- ``DecodeFailure``         generated JIRA comment could not be parsed
- ``ValidationError``       malformed configuration, raised before any remote call
- ``RequestFailed``         a request that cannot succeed on retry (bad URL, invalid header)

``classify_error`` and ``redact`` prepare an exception for safe logging.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

import requests

_SENSITIVE_PATTERNS: list[re.Pattern[str]] = [
    re.compile(r"ghp_[A-Za-z0-9]{20,40}"),  # GitHub classic tokens
    re.compile(r"github_pat_\w{20,}"),  # GitHub fine-grained tokens
    re.compile(r"gho_[A-Za-z0-9]{20,40}"),  # GitHub OAuth tokens
    re.compile(r"(?i)(authorization:\s*(?:basic|bearer)\s+)[A-Za-z0-9+/=._-]+"),
]

_REDACTION_PLACEHOLDER = "<redacted>"


class IssueSyncError(RuntimeError):
    """Base class for all sync failures."""


class TransportError(IssueSyncError):
    """A remote call failed in a way worth retrying (network error or HTTP error status)."""

    def __init__(
        self,
        message: str,
        *,
        status: int | None = None,
        response_text: str | None = None,
    ):
        super().__init__(message)
        self.status = status
        self.response_text = response_text


class RetryExhausted(TransportError):
    """The backoff budget ran out; ``response_text`` holds the last error body."""

    def __init__(
        self,
        message: str,
        *,
        attempts: int,
        status: int | None = None,
        response_text: str | None = None,
    ):
        super().__init__(message, status=status, response_text=response_text)
        self.attempts = attempts

    @property
    def detail(self) -> str:
        """Remote error body when one was received, else the message."""
        if self.response_text:
            return self.response_text
        return str(self)


class UnexpectedResponseShape(IssueSyncError):
    def __init__(self, operation: str, expected: str, received: Any):
        super().__init__(
            f"{operation} failed: expected {expected}; got {type(received).__name__}: {received!r}"
        )
        self.operation = operation
        self.expected = expected
        self.received = received


class DecodeFailure(IssueSyncError):
    def __init__(self, body: str):
        preview = body[:80].replace("\n", "\\n")
        super().__init__(f"generated comment could not be decoded: {preview!r}")
        self.body = body


class ValidationError(IssueSyncError):
    """Configuration is malformed or incomplete."""


class RequestFailed(IssueSyncError):
    """The HTTP library rejected a request in a way retrying cannot fix."""


# Dropped or garbled responses; worth another attempt.
TRANSIENT_REQUEST_ERRORS: tuple[type[requests.RequestException], ...] = (
    requests.ConnectionError,
    requests.Timeout,
    requests.exceptions.ChunkedEncodingError,
    requests.exceptions.ContentDecodingError,
)


def request_error(message: str, exc: requests.RequestException) -> IssueSyncError:
    """Translate a ``requests`` exception into the sync error taxonomy."""
    if isinstance(exc, TRANSIENT_REQUEST_ERRORS):
        return TransportError(f"{message}: {exc}")
    return RequestFailed(f"{message}: {exc}")


@dataclass
class ErrorInfo:
    category: str
    message: str
    original_type: str
    transient: bool = False
    details: dict[str, Any] | None = None


def redact(text: str) -> str:
    """Replace credentials found in ``text`` with a placeholder."""
    if not text:
        return text
    redacted = text
    for pat in _SENSITIVE_PATTERNS:
        if pat.groups:
            redacted = pat.sub(lambda m: m.group(1) + _REDACTION_PLACEHOLDER, redacted)
        else:
            redacted = pat.sub(_REDACTION_PLACEHOLDER, redacted)
    return redacted


def classify_error(exc: BaseException) -> ErrorInfo:
    """Best-effort classification of an exception for structured logs.

    Typed sync errors map directly; anything else falls back to keyword
    sniffing on the message.
    """
    msg = str(exc) if exc else ""
    name = exc.__class__.__name__
    if isinstance(exc, RetryExhausted):
        details: dict[str, Any] = {"attempts": exc.attempts}
        if exc.status is not None:
            details["status"] = exc.status
        return ErrorInfo("retry_exhausted", redact(exc.detail), name, details=details)
    if isinstance(exc, TransportError):
        return ErrorInfo("transport", redact(msg), name, transient=True)
    if isinstance(exc, UnexpectedResponseShape):
        return ErrorInfo("unexpected_response", redact(msg), name)
    if isinstance(exc, DecodeFailure):
        return ErrorInfo("decode", redact(msg), name)
    if isinstance(exc, ValidationError):
        return ErrorInfo("config", redact(msg), name)
    if isinstance(exc, RequestFailed):
        return ErrorInfo("request", redact(msg), name)

    low = msg.lower()
    if "rate limit" in low or "secondary rate" in low:
        return ErrorInfo("github.rate_limit", redact(msg), name, transient=True)
    if any(k in low for k in ("timeout", "timed out", "connection reset", "temporarily unavailable")):
        return ErrorInfo("network", redact(msg), name, transient=True)
    return ErrorInfo("generic", redact(msg), name)


__all__ = [
    "IssueSyncError",
    "TransportError",
    "RetryExhausted",
    "UnexpectedResponseShape",
    "DecodeFailure",
    "ValidationError",
    "RequestFailed",
    "TRANSIENT_REQUEST_ERRORS",
    "ErrorInfo",
    "classify_error",
    "redact",
    "request_error",
]
