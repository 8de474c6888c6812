#!/usr/bin/env python3
"""Error taxonomy for the ZetaFlow resolver.

Source clients raise ``SourceError``; the search orchestrator surfaces every
failure to its callers as a ``SearchError`` carrying a stable type tag.
"""

import asyncio
from enum import Enum
from typing import Any

import httpx


class SearchErrorType(str, Enum):
    """Stable error tags surfaced to consumers."""
    INVALID_INPUT = "INVALID_INPUT"
    NOT_FOUND = "NOT_FOUND"
    NETWORK_ERROR = "NETWORK_ERROR"
    TIMEOUT = "TIMEOUT"
    RATE_LIMITED = "RATE_LIMITED"
    UNKNOWN = "UNKNOWN"


class SourceError(Exception):
    """Failure reported by a chain-native or cross-chain source client.

    Attributes:
        error_type: Taxonomy tag for the failure
        status_code: HTTP status code, when the source answered with one
        operation: Name of the operation that failed
    """

    def __init__(
        self,
        error_type: SearchErrorType,
        message: str,
        status_code: int | None = None,
        operation: str | None = None,
    ) -> None:
        super().__init__(message)
        self.error_type = error_type
        self.status_code = status_code
        self.operation = operation

    @property
    def is_not_found(self) -> bool:
        return self.error_type is SearchErrorType.NOT_FOUND

    def __str__(self) -> str:
        message = super().__str__()
        if self.operation:
            return f"{self.operation}: {message}"
        return message


class SearchError(Exception):
    """Typed failure surfaced by the search orchestrator."""

    def __init__(
        self,
        error_type: SearchErrorType,
        message: str,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.type = error_type
        self.message = message
        self.context: dict[str, Any] = dict(context or {})

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for display."""
        return {
            "type": self.type.value,
            "message": self.message,
            "context": self.context,
        }


class NormalizationError(ValueError):
    """Raised when a raw payload lacks a field the canonical record requires."""


_STATUS_TYPES: dict[int, SearchErrorType] = {
    400: SearchErrorType.INVALID_INPUT,
    404: SearchErrorType.NOT_FOUND,
    408: SearchErrorType.TIMEOUT,
    422: SearchErrorType.INVALID_INPUT,
    429: SearchErrorType.RATE_LIMITED,
}


def error_type_for_status(status_code: int) -> SearchErrorType:
    """Map an HTTP status code onto the taxonomy."""
    if status_code in _STATUS_TYPES:
        return _STATUS_TYPES[status_code]
    if status_code >= 500:
        return SearchErrorType.NETWORK_ERROR
    return SearchErrorType.UNKNOWN


def status_of(error: BaseException) -> int | None:
    match error:
        case SourceError(status_code=int() as status):
            return status
        case httpx.HTTPStatusError():
            return error.response.status_code
    # aiohttp.ClientResponseError (raised through web3's async provider) exposes .status
    status = getattr(error, "status", None)
    return status if isinstance(status, int) else None


def classify_exception(error: BaseException) -> SearchErrorType:
    """Map an arbitrary exception onto the error taxonomy."""
    if isinstance(error, SourceError):
        return error.error_type
    if isinstance(error, (asyncio.TimeoutError, httpx.TimeoutException)):
        return SearchErrorType.TIMEOUT

    if (status := status_of(error)) is not None:
        return error_type_for_status(status)

    if isinstance(error, (httpx.TransportError, ConnectionError)):
        return SearchErrorType.NETWORK_ERROR

    message = str(error).lower()
    if "timeout" in message or "timed out" in message:
        return SearchErrorType.TIMEOUT
    if "rate limit" in message or "too many requests" in message:
        return SearchErrorType.RATE_LIMITED
    if "not found" in message:
        return SearchErrorType.NOT_FOUND
    if "invalid" in message:
        return SearchErrorType.INVALID_INPUT
    if "connect" in message or "fetch" in message or isinstance(error, OSError):
        return SearchErrorType.NETWORK_ERROR
    return SearchErrorType.UNKNOWN


def is_non_retryable(error: BaseException) -> bool:
    """Return True for failures that retrying cannot fix.

    Invalid input, "not found" and client-side (4xx) failures are final.
    Rate limiting (429) is the one 4xx status that is retried.
    """
    status = status_of(error)
    if status is not None and 400 <= status < 500 and status != 429:
        return True

    if classify_exception(error) in (SearchErrorType.INVALID_INPUT, SearchErrorType.NOT_FOUND):
        return True

    message = str(error).lower()
    return "invalid" in message or "not found" in message
