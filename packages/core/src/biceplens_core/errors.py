"""Error taxonomy shared by the review pipeline and the CLI.

Only ConfigurationError, authentication failures and AggregateFailure are
fatal for a run. Everything else is isolated to one category or one thread
and reported next to the successful results.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    TIMEOUT = "timeout"
    RATE_LIMITED = "rate_limited"
    AUTH_FAILED = "auth_failed"
    SERVER_ERROR = "server_error"
    BAD_REQUEST = "bad_request"
    NOT_FOUND = "not_found"


# Kinds worth another attempt after a backoff delay.
RETRYABLE_KINDS = frozenset({ErrorKind.TIMEOUT, ErrorKind.RATE_LIMITED, ErrorKind.SERVER_ERROR})


class BicepLensError(Exception):
    """Base class for every error raised by biceplens."""

    collaborator = "biceplens"


class ConfigurationError(BicepLensError):
    """Missing or unusable input: best-practices document, severity bound, category name."""

    collaborator = "configuration"


class _KindedError(BicepLensError):
    retryable_kinds: frozenset = RETRYABLE_KINDS

    def __init__(self, kind: ErrorKind, message: str, status_code: int | None = None):
        super().__init__(message)
        self.kind = kind
        self.status_code = status_code

    @property
    def retryable(self) -> bool:
        return self.kind in self.retryable_kinds

    @property
    def is_auth_failure(self) -> bool:
        return self.kind is ErrorKind.AUTH_FAILED

    def __str__(self) -> str:
        return f"{self.kind.value}: {super().__str__()}"


class TransportError(_KindedError):
    """The completion service failed to answer."""

    collaborator = "completion"


class SearchError(BicepLensError):
    """The example search backend failed. Always downgraded to an empty result."""

    collaborator = "search"


class ParseError(BicepLensError):
    """A completion block could not be turned into a Finding."""

    collaborator = "parser"


class HostApiError(_KindedError):
    """The pull-request host rejected or failed a request."""

    collaborator = "host"
    # Not-found is retried on the host side: freshly created threads can lag behind listings.
    retryable_kinds = RETRYABLE_KINDS | {ErrorKind.NOT_FOUND}


class ReviewCancelled(BicepLensError):
    """The run-level timeout fired or the user interrupted the run."""


class AggregateFailure(BicepLensError):
    """Every reviewed category failed, so there is nothing to report."""

    collaborator = "completion"

    def __init__(self, reasons: dict):
        self.reasons = reasons
        detail = "; ".join(f"{category}: {reason}" for category, reason in reasons.items())
        super().__init__(f"all categories failed ({detail})")


def classify_status(status_code: int | None) -> ErrorKind:
    """Map an HTTP status code to an ErrorKind."""
    if status_code in (401, 403):
        return ErrorKind.AUTH_FAILED
    if status_code == 404:
        return ErrorKind.NOT_FOUND
    if status_code in (408, 504):
        return ErrorKind.TIMEOUT
    if status_code == 429:
        return ErrorKind.RATE_LIMITED
    if status_code is not None and status_code >= 500:
        return ErrorKind.SERVER_ERROR
    return ErrorKind.BAD_REQUEST
