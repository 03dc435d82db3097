"""Shared fixtures and in-memory fakes for the upstream APIs."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from typing import Any, Optional

import pytest

from tagstream.exceptions import ResourceNotFoundError
from tagstream.http.protocols import ListingPage, TagPage
from tagstream.http.rate_limiter import MinIntervalRateLimiter
from tagstream.models.resources import ResourceItem


def make_items(count: int, prefix: str = "res") -> list[ResourceItem]:
    return [ResourceItem(identifier=f"{prefix}-{i:04d}", display_name=f"Resource {i}") for i in range(count)]


class FakeListingApi:
    """Pages through a fixed item list; tokens are stringified offsets."""

    def __init__(
        self,
        items: Sequence[ResourceItem],
        max_page_size: int = 50,
        fail_on_page: Optional[int] = None,
        delay: float = 0.0,
    ):
        self.items = list(items)
        self.max_page_size = max_page_size
        self.fail_on_page = fail_on_page
        self.delay = delay
        self.calls: list[tuple[Optional[str], int]] = []

    async def list_page(self, page_token: Optional[str], page_size: int) -> ListingPage:
        self.calls.append((page_token, page_size))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_on_page is not None and len(self.calls) == self.fail_on_page:
            raise ConnectionError("listing endpoint unavailable")
        offset = int(page_token) if page_token else 0
        end = offset + page_size
        next_token = str(end) if end < len(self.items) else None
        return ListingPage(items=self.items[offset:end], next_token=next_token)


class FakeTaggingApi:
    """
    Serves tags from a dict, ``page_size`` mappings per response.

    ``fail_calls`` holds 1-based call numbers that raise.
    """

    def __init__(
        self,
        tags: dict[str, dict[str, str]],
        max_identifiers: int = 100,
        page_size: Optional[int] = None,
        fail_calls: Sequence[int] = (),
    ):
        self.tags = tags
        self.max_identifiers = max_identifiers
        self.page_size = page_size
        self.fail_calls = set(fail_calls)
        self.calls: list[tuple[list[str], Optional[str]]] = []

    async def get_tag_page(self, identifiers: Sequence[str], page_token: Optional[str] = None) -> TagPage:
        self.calls.append((list(identifiers), page_token))
        await asyncio.sleep(0)
        if len(self.calls) in self.fail_calls:
            raise ConnectionError("tag endpoint throttled")
        found = [(i, self.tags[i]) for i in identifiers if i in self.tags]
        if self.page_size is None:
            return TagPage(mappings=dict(found))
        offset = int(page_token) if page_token else 0
        end = offset + self.page_size
        next_token = str(end) if end < len(found) else None
        return TagPage(mappings=dict(found[offset:end]), next_token=next_token)


class FakeDetailApi:
    """Describes items after ``delay`` seconds, tracking peak concurrency."""

    def __init__(
        self,
        missing: Sequence[str] = (),
        failing: Sequence[str] = (),
        deleted: Sequence[str] = (),
        delay: float = 0.0,
    ):
        self.missing = set(missing)
        self.failing = set(failing)
        self.deleted = set(deleted)
        self.delay = delay
        self.calls: list[str] = []
        self.completed: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def describe(self, item: ResourceItem) -> Optional[dict[str, Any]]:
        self.calls.append(item.identifier)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
            if item.identifier in self.missing:
                raise ResourceNotFoundError(f"{item.identifier} gone", identifier=item.identifier)
            if item.identifier in self.failing:
                raise RuntimeError("detail backend error")
            if item.identifier in self.deleted:
                return None
            self.completed.append(item.identifier)
            return {"identifier": item.identifier, "size": len(item.identifier)}
        finally:
            self.in_flight -= 1


class FakeResourceApi:
    """All three protocols on one object, as the Lister expects."""

    def __init__(self, listing: FakeListingApi, tagging: FakeTaggingApi, detail: Optional[FakeDetailApi] = None):
        self.listing = listing
        self.tagging = tagging
        self.detail = detail or FakeDetailApi()
        self.max_page_size = listing.max_page_size
        self.max_identifiers = tagging.max_identifiers

    async def list_page(self, page_token, page_size):
        return await self.listing.list_page(page_token, page_size)

    async def get_tag_page(self, identifiers, page_token=None):
        return await self.tagging.get_tag_page(identifiers, page_token)

    async def describe(self, item):
        return await self.detail.describe(item)


class RecordingSink:
    """Event sink that keeps every event."""

    def __init__(self):
        self.events = []

    def __call__(self, event):
        self.events.append(event)

    def types(self):
        return [event.type for event in self.events]


@pytest.fixture
def limiter():
    """Rate limiter with no minimum intervals, so tests run at full speed."""
    return MinIntervalRateLimiter()


@pytest.fixture
def sink():
    return RecordingSink()
