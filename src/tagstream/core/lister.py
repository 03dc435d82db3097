"""Main Lister class with streaming result API."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncGenerator
from types import TracebackType
from typing import Any, Callable, Optional

from ..exceptions import ConfigError
from ..http import AsyncApiClient, MinIntervalRateLimiter, OperationKind, RestResourceApi
from ..listing.filters import ItemFilter
from ..listing.session import ListingSession
from ..listing.stream import StreamEmitter
from ..models.config import RateLimitConfig, TagstreamConfig
from ..models.events import EventSink, ListingStats, LoggingEventSink
from ..models.profiles import apply_profile
from ..models.resources import EnrichedResult


def rate_limiter_from_config(config: RateLimitConfig) -> MinIntervalRateLimiter:
    """Build a limiter with one gate per operation kind."""
    return MinIntervalRateLimiter(
        {
            OperationKind.LIST: config.list_interval,
            OperationKind.TAG_LOOKUP: config.tag_interval,
            OperationKind.DETAIL: config.detail_interval,
        }
    )


class Lister:
    """
    Primary API for tagstream - streaming enriched listings.

    The Lister owns the HTTP transport; each ``stream()`` call opens a new
    listing session on top of it. Pass the same ``rate_limiter`` to several
    Listers to make them share one throughput budget.

    Example:
        config = TagstreamConfig(api={"base_url": "https://api.example.com"})

        async with Lister(config) as lister:
            async for result in lister.stream(limit=500):
                if result.is_error:
                    print(f"Error: {result.error}")
                    break
                print(result.item.identifier, result.tags)

        print(f"Stats: {lister.stats.to_dict()}")
    """

    def __init__(
        self,
        config: TagstreamConfig,
        *,
        rate_limiter: Optional[MinIntervalRateLimiter] = None,
        item_filter: Optional[ItemFilter] = None,
        sink: Optional[EventSink] = None,
        api: Optional[Any] = None,
    ):
        """
        Initialize the Lister.

        Args:
            config: Configuration; profile defaults are applied automatically
            rate_limiter: Caller-owned limiter to share (default: a new one
                built from config.rate_limits)
            item_filter: Predicate applied to every listed item
            sink: Observability sink (default: LoggingEventSink)
            api: Object implementing the listing, tagging and detail
                protocols; replaces the REST transport when given

        Raises:
            ConfigError: If no API is given and config.api.base_url is unset
        """
        self.config = apply_profile(config)
        if api is None and not self.config.api.base_url:
            raise ConfigError("api.base_url is required")

        self._rate_limiter = rate_limiter or rate_limiter_from_config(self.config.rate_limits)
        self._item_filter = item_filter
        self._sink = sink if sink is not None else LoggingEventSink()
        self._api = api
        self._client: Optional[AsyncApiClient] = None
        self._session: Optional[ListingSession] = None

    @property
    def rate_limiter(self) -> MinIntervalRateLimiter:
        return self._rate_limiter

    @property
    def stats(self) -> ListingStats:
        """Statistics of the most recent listing."""
        if self._session is None:
            return ListingStats()
        return self._session.stats

    def cancel(self) -> None:
        """
        Cancel the listing in progress.

        Its stream raises CancellationError at the next suspension point.
        """
        if self._session is not None:
            self._session.cancel()

    async def __aenter__(self) -> Lister:
        """Enter async context and open the HTTP transport."""
        if self._api is None:
            api_config = self.config.api
            if api_config.base_url is None:
                raise ConfigError("api.base_url is required")
            self._client = AsyncApiClient(
                api_config.base_url,
                token=api_config.token,
                max_retries=api_config.max_retries,
                user_agent=api_config.user_agent,
                proxy=api_config.proxy,
                connect_timeout=float(api_config.connect_timeout),
                read_timeout=float(api_config.read_timeout),
            )
            await self._client.__aenter__()
            self._api = RestResourceApi(self._client, api_config)
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Exit async context and close the HTTP transport."""
        if self._client is not None:
            await self._client.__aexit__(exc_type, exc_val, exc_tb)
            self._client = None
            self._api = None

    def stream(self, limit: Optional[int] = None) -> AsyncGenerator[EnrichedResult, None]:
        """
        Start a listing and return its lazy result stream.

        Args:
            limit: Maximum results (None = config.listing.limit)

        Raises:
            ConfigError: On invalid settings, before any network call
        """
        if self._api is None:
            raise RuntimeError("Lister not initialized. Use 'async with' context manager.")

        session = ListingSession(
            listing_api=self._api,
            rate_limiter=self._rate_limiter,
            tagging_api=self._api if self.config.enrichment.enabled else None,
            detail_api=self._api if self.config.detail.enabled else None,
            sink=self._sink,
        )
        emitter = StreamEmitter(session, self.config, item_filter=self._item_filter, limit=limit)
        self._session = session
        return emitter.stream()


def list_blocking(
    config: TagstreamConfig,
    on_result: Callable[[EnrichedResult], Optional[bool]],
    **kwargs: Any,
) -> ListingStats:
    """
    Blocking listing with a per-result callback.

    The callback decides whether to continue: returning False stops the
    listing, anything else asks for the next result.

    WARNING: Do not call from within an existing event loop. Use the async
    Lister API instead.

    Args:
        config: Listing configuration
        on_result: Called with every result, including a final error result
        **kwargs: Passed to Lister (rate_limiter, item_filter, sink, api)

    Returns:
        Statistics of the listing

    Example:
        seen = []

        def collect(result):
            seen.append(result)
            return len(seen) < 10

        stats = list_blocking(config, collect)
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        pass
    else:
        raise RuntimeError("list_blocking() called from async context. Use 'async with Lister()' instead.")

    async def _run() -> ListingStats:
        async with Lister(config, **kwargs) as lister:
            results = lister.stream()
            try:
                async for result in results:
                    if on_result(result) is False:
                        break
            finally:
                await results.aclose()
            return lister.stats

    return asyncio.run(_run())
