"""Fetch failure taxonomy.

Every remote failure surfaces as a FetchFailed subclass with the original
exception kept as ``cause`` (and chained as ``__cause__``).
"""

from __future__ import annotations


class FetchFailed(Exception):
    """A remote fetch did not produce a usable payload."""

    def __init__(self, message: str, cause: BaseException | None = None):
        super().__init__(message)
        self.cause = cause


class NetworkFailure(FetchFailed):
    """Timeout or connection error."""


class UpstreamFailure(FetchFailed):
    """Remote API answered with a non-success status."""

    def __init__(
        self,
        message: str,
        status_code: int,
        cause: BaseException | None = None,
    ):
        super().__init__(message, cause)
        self.status_code = status_code


class DecodeFailure(FetchFailed):
    """Response body is not the expected shape."""
