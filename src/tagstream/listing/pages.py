"""Lazy paginated enumeration of primary items."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncGenerator
from typing import Optional

from ..concurrency.cancellation import guard
from ..exceptions import ConfigError, UpstreamListError
from ..http.protocols import ListingApi
from ..http.rate_limiter import MinIntervalRateLimiter, OperationKind
from ..models.events import EventSink, EventType, ListingEvent, emit_safely
from ..models.resources import ResourceItem
from .filters import ItemFilter

logger = logging.getLogger(__name__)


class PageSource:
    """
    Walks the listing API one page at a time, on demand.

    Every page fetch is preceded by an acquire of the LIST gate and asks
    for the configured page size (the API maximum by default). Nothing is
    fetched until the consumer asks for it, and once the consumer stops
    pulling no further page is requested.

    A source is single-use: iterate it once.

    Example:
        source = PageSource(api, limiter)

        async for item, error in source.enumerate():
            if error:
                print(f"Listing failed: {error}")
                break
            print(item.identifier)
    """

    def __init__(
        self,
        api: ListingApi,
        rate_limiter: MinIntervalRateLimiter,
        *,
        page_size: Optional[int] = None,
        stop: Optional[asyncio.Event] = None,
        sink: Optional[EventSink] = None,
        progress_every_pages: int = 10,
    ) -> None:
        """
        Initialize the page source.

        Args:
            api: Primary listing API
            rate_limiter: Limiter providing the LIST gate
            page_size: Items per page (None = API maximum)
            stop: Session stop signal
            sink: Observability sink for page and progress events
            progress_every_pages: Pages between progress events

        Raises:
            ConfigError: If page_size is outside 1..api.max_page_size
        """
        max_size = api.max_page_size
        size = max_size if page_size is None else page_size
        if size < 1 or size > max_size:
            raise ConfigError(f"page_size must be between 1 and {max_size}, got {size}")
        if progress_every_pages < 1:
            raise ConfigError(f"progress_every_pages must be >= 1, got {progress_every_pages}")

        self.page_size = size
        self._api = api
        self._limiter = rate_limiter
        self._stop = stop
        self._sink = sink
        self._progress_every = progress_every_pages
        self._started = False

        self.pages_fetched = 0
        self.items_seen = 0

    def _claim(self) -> None:
        if self._started:
            raise RuntimeError("PageSource can only be iterated once")
        self._started = True

    async def pages(self, item_filter: Optional[ItemFilter] = None) -> AsyncGenerator[list[ResourceItem], None]:
        """
        Yield the filtered items of each page, one list per page.

        A page is yielded whole or not at all.

        Raises:
            UpstreamListError: If a page fetch fails; the walk ends there
            CancellationError: If the session stop signal fires
        """
        self._claim()
        start = time.monotonic()
        token: Optional[str] = None
        finished = False

        logger.info(f"Starting listing (page_size={self.page_size}, interval={self._limiter.interval(OperationKind.LIST)}s)")
        try:
            while True:
                await self._limiter.acquire(OperationKind.LIST, self._stop)

                page_number = self.pages_fetched + 1
                try:
                    page = await guard(self._api.list_page(token, self.page_size), self._stop, "list page")
                except Exception as e:
                    logger.error(
                        f"Listing page {page_number} failed after {self.pages_fetched} pages "
                        f"and {self.items_seen} items: {e}"
                    )
                    raise UpstreamListError(f"listing resources: {e}", page=page_number) from e

                if page.next_token is not None and page.next_token == token:
                    raise UpstreamListError(
                        f"listing resources: continuation token repeated on page {page_number}",
                        page=page_number,
                    )

                self.pages_fetched += 1
                self.items_seen += len(page.items)
                self._page_telemetry(len(page.items), start)

                if item_filter is None:
                    items = list(page.items)
                else:
                    items = [item for item in page.items if item_filter(item)]
                yield items

                token = page.next_token
                if not token:
                    break

            finished = True
            elapsed = time.monotonic() - start
            logger.info(
                f"Completed listing: {self.pages_fetched} pages, {self.items_seen} items "
                f"in {elapsed:.1f}s"
            )
        finally:
            if not finished:
                logger.debug(f"Listing ended early after {self.pages_fetched} pages, {self.items_seen} items")

    async def enumerate(
        self,
        item_filter: Optional[ItemFilter] = None,
    ) -> AsyncGenerator[tuple[Optional[ResourceItem], Optional[UpstreamListError]], None]:
        """
        Yield ``(item, None)`` per accepted item, or one ``(None, error)``.

        The error pair, if any, is the last thing yielded.

        Args:
            item_filter: Predicate applied per item; rejected items are skipped
        """
        walk = self.pages(item_filter)
        try:
            while True:
                try:
                    items = await walk.__anext__()
                except StopAsyncIteration:
                    return
                except UpstreamListError as e:
                    yield None, e
                    return
                for item in items:
                    yield item, None
        finally:
            await walk.aclose()

    def _page_telemetry(self, count: int, start: float) -> None:
        emit_safely(
            self._sink,
            ListingEvent(type=EventType.PAGE_FETCHED, page=self.pages_fetched, count=count),
        )
        if self.pages_fetched % self._progress_every:
            return
        elapsed = time.monotonic() - start
        rate = self.items_seen / elapsed if elapsed > 0 else 0.0
        logger.info(
            f"Listing progress: {self.pages_fetched} pages, {self.items_seen} items, "
            f"{elapsed:.0f}s elapsed, {rate:.1f} items/s"
        )
        emit_safely(
            self._sink,
            ListingEvent(
                type=EventType.LISTING_PROGRESS,
                page=self.pages_fetched,
                total=self.items_seen,
                elapsed_seconds=elapsed,
                message=f"Listed {self.items_seen} items in {self.pages_fetched} pages",
            ),
        )
