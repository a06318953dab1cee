"""
Exceptions for the proposal resolution pipeline.

Provides a small hierarchy with HTTP-like error codes so that the API layer
and the logs describe failures consistently. Only `NetworkError` ever leaves
the fetch client; the other types are raised and caught inside the pipeline
or used to build error payloads.
"""
import asyncio
from typing import Optional

import httpx


class ProposalResolverError(Exception):
    """Base exception for all pipeline errors."""

    def __init__(self, message: str, code: int = 500, retryable: bool = False):
        super().__init__(message)
        self.message = message
        self.code = code
        self.retryable = retryable

    def to_dict(self) -> dict:
        """Convert to dictionary for API responses."""
        return {
            "error_code": self.code,
            "error_message": self.message,
            "retryable": self.retryable,
        }


class UnrecognizedUrlError(ProposalResolverError):
    """400 - The URL does not point at a supported proposal."""

    def __init__(self, url: str = "", reason: str = "unsupported url"):
        self.url = url
        self.reason = reason
        message = f"Unrecognized proposal URL '{url}': {reason}" if url else f"Unrecognized proposal URL: {reason}"
        super().__init__(message, code=400, retryable=False)


class NetworkError(ProposalResolverError):
    """503 - A fetch failed after exhausting its attempts."""

    def __init__(self, url: str, attempts: int, cause: Optional[BaseException] = None):
        self.url = url
        self.attempts = attempts
        self.cause = cause
        detail = f"{type(cause).__name__}: {cause}" if cause is not None else "unknown error"
        super().__init__(
            f"Failed to fetch after {attempts} attempts: {detail}. URL: {url}",
            code=503,
            retryable=True,
        )


class SourceUnavailableError(ProposalResolverError):
    """502 - One data tier could not answer; other tiers may still succeed."""

    def __init__(self, source: str, message: str = ""):
        self.source = source
        super().__init__(message or f"Source '{source}' unavailable", code=502, retryable=True)


class ResolutionFailedError(ProposalResolverError):
    """404 - Every applicable tier failed or the identifier was invalid."""

    def __init__(self, url: str = "", message: str = ""):
        self.url = url
        super().__init__(message or f"Could not resolve proposal for '{url}'", code=404, retryable=False)


# ============================================
# Exception Classification Helpers
# ============================================

_TRANSIENT_HTTPX_ERRORS = (
    httpx.TimeoutException,
    httpx.NetworkError,
    httpx.RemoteProtocolError,
    httpx.ProxyError,
)


def is_transient_error(error: BaseException) -> bool:
    """Check if an exception is a transport-level failure worth retrying."""
    if isinstance(error, ProposalResolverError):
        return error.retryable
    if isinstance(error, _TRANSIENT_HTTPX_ERRORS):
        return True
    # asyncio.TimeoutError is an alias of TimeoutError from 3.11 on
    return isinstance(error, (ConnectionError, TimeoutError, asyncio.TimeoutError))
