"""Exception hierarchy for tagstream listings."""

from __future__ import annotations

import asyncio
from typing import Optional


class TagstreamError(Exception):
    """Base exception for tagstream errors."""


class ConfigError(TagstreamError, ValueError):
    """Raised for invalid configuration, filters or ceilings.

    Always raised before any network call is made.
    """


class UpstreamListError(TagstreamError):
    """Raised when the primary listing API fails. Aborts the whole listing."""

    def __init__(self, message: str, *, page: Optional[int] = None) -> None:
        super().__init__(message)
        self.page = page


class EnrichmentError(TagstreamError):
    """A tag lookup page failed. Soft: affected identifiers carry no tags."""

    def __init__(self, message: str, *, batch_start: int, page: int) -> None:
        super().__init__(message)
        self.batch_start = batch_start
        self.page = page


class DetailFetchError(TagstreamError):
    """A per-item detail fetch failed. Soft: only that item is dropped."""

    def __init__(self, message: str, *, identifier: str) -> None:
        super().__init__(message)
        self.identifier = identifier


class ResourceNotFoundError(DetailFetchError):
    """The resource vanished between listing and detail read."""


class ApiResponseError(TagstreamError):
    """Non-success HTTP status returned by an upstream API."""

    def __init__(self, status: int, url: str, message: str = "") -> None:
        super().__init__(f"HTTP {status} for {url}" + (f": {message}" if message else ""))
        self.status = status
        self.url = url


class CancellationError(asyncio.CancelledError):
    """The listing session was cancelled.

    Derives from asyncio.CancelledError rather than TagstreamError so that
    ``except Exception`` soft-failure handlers never absorb it.
    """
