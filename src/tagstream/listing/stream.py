"""Composition of listing, enrichment and detail into one lazy stream."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncGenerator
from contextlib import aclosing
from typing import Any, Optional

from ..concurrency.pool import ConcurrentDetailFetcher, DetailOutcome
from ..exceptions import CancellationError, ConfigError, UpstreamListError
from ..models.config import EnrichmentScope, TagstreamConfig
from ..models.events import EventType
from ..models.resources import EnrichedResult, EnrichmentMap, ResourceItem
from .enrichment import BatchEnricher
from .filters import IdentifierFilter, ItemFilter, combine_filters
from .pages import PageSource
from .session import ListingSession

logger = logging.getLogger(__name__)


class StreamEmitter:
    """
    Lazy, cancellable stream of enriched listing results.

    Production only advances when the consumer asks for the next result:
    with the default ``page`` scope a page is listed, its items are
    enriched and emitted, and only then is the next page requested. With
    the ``all`` scope every item is listed before the first one is
    enriched.

    Stopping is the consumer's call: ``break`` out of the loop (or
    ``aclose()`` the iterator) and no further page, tag lookup or detail
    fetch is started. A listing failure is reported as one final error
    result.

    Example:
        emitter = StreamEmitter(session, config)

        async with contextlib.aclosing(emitter.stream()) as results:
            async for result in results:
                if result.is_error:
                    print(f"Listing failed: {result.error}")
                elif should_stop(result):
                    break
    """

    def __init__(
        self,
        session: ListingSession,
        config: TagstreamConfig,
        *,
        item_filter: Optional[ItemFilter] = None,
        limit: Optional[int] = None,
    ) -> None:
        """
        Build and validate every component of the listing.

        Args:
            session: Per-invocation APIs, limiter, stop signal and sink
            config: Listing, enrichment and detail settings
            item_filter: Extra predicate ANDed with the configured patterns
            limit: Maximum results to emit (None = config.listing.limit)

        Raises:
            ConfigError: On any invalid setting; raised before any network call
        """
        self._session = session
        self._config = config
        self._limit = config.listing.limit if limit is None else limit
        if self._limit is not None and self._limit < 0:
            raise ConfigError(f"limit must be >= 0, got {self._limit}")

        self._filter = combine_filters(
            IdentifierFilter(config.listing.include_patterns, config.listing.exclude_patterns),
            item_filter,
        )

        self._pages = PageSource(
            session.listing_api,
            session.rate_limiter,
            page_size=config.listing.page_size,
            stop=session.stop,
            sink=session.sink,
            progress_every_pages=config.listing.progress_every_pages,
        )

        self._enricher: Optional[BatchEnricher] = None
        if config.enrichment.enabled:
            if session.tagging_api is None:
                raise ConfigError("Enrichment is enabled but the session has no tagging API")
            self._enricher = BatchEnricher(
                session.tagging_api,
                session.rate_limiter,
                batch_size=config.enrichment.batch_size,
                max_concurrent_batches=config.enrichment.max_concurrent_batches,
                stop=session.stop,
                sink=session.sink,
            )

        self._fetcher: Optional[ConcurrentDetailFetcher] = None
        if config.detail.enabled:
            if session.detail_api is None:
                raise ConfigError("Detail fetching is enabled but the session has no detail API")
            self._fetcher = ConcurrentDetailFetcher(
                session.detail_api,
                session.rate_limiter,
                stop=session.stop,
                on_stop=config.detail.on_stop,
            )

        self._started = False
        self._start_time = 0.0

    async def _groups(self) -> AsyncGenerator[list[ResourceItem], None]:
        """Items handed to one enrichment pass: a page, or everything."""
        async with aclosing(self._pages.pages(self._filter)) as pages:
            if self._config.enrichment.scope == EnrichmentScope.PAGE:
                async for items in pages:
                    self._session.stats.pages_fetched = self._pages.pages_fetched
                    self._session.stats.items_listed = self._pages.items_seen
                    if items:
                        yield items
                return

            collected: list[ResourceItem] = []
            async for items in pages:
                collected.extend(items)
            self._session.stats.pages_fetched = self._pages.pages_fetched
            self._session.stats.items_listed = self._pages.items_seen
            logger.info(f"Collected {len(collected)} resources before enrichment")
        if collected:
            yield collected

    async def _enrich(self, items: list[ResourceItem]) -> EnrichmentMap:
        if self._enricher is None:
            return {}
        tags_map = await self._enricher.enrich(items)
        report = self._enricher.last_report
        self._session.stats.batches += report.batches
        self._session.stats.degraded_batches += report.degraded
        return tags_map

    def _merge(
        self,
        item: ResourceItem,
        tags_map: EnrichmentMap,
        detail: Optional[dict[str, Any]] = None,
    ) -> EnrichedResult:
        tags = dict(tags_map.get(item.identifier, {}))
        if tags:
            self._session.stats.items_tagged += 1
        return EnrichedResult(item=item, tags=tags, detail=detail)

    def _drop(self, outcome: DetailOutcome) -> None:
        self._session.stats.details_dropped += 1
        if outcome.not_found:
            logger.debug(f"Skipping {outcome.item.identifier}: no longer exists")
            return
        logger.warning(f"Dropping {outcome.item.identifier}: {outcome.error}")
        self._session.emit(
            EventType.DETAIL_DROPPED,
            identifier=outcome.item.identifier,
            error=str(outcome.error),
            message=f"Detail fetch failed for {outcome.item.identifier}",
        )

    async def _emit_group(self, items: list[ResourceItem]) -> AsyncGenerator[EnrichedResult, None]:
        tags_map = await self._enrich(items)

        if self._fetcher is None:
            for item in items:
                yield self._merge(item, tags_map)
            return

        async with aclosing(self._fetcher.fetch_all(items, self._config.detail.concurrency)) as outcomes:
            async for outcome in outcomes:
                if outcome.ok:
                    yield self._merge(outcome.item, tags_map, outcome.detail)
                else:
                    self._drop(outcome)

    def _progress(self) -> None:
        stats = self._session.stats
        if stats.items_emitted % self._config.listing.progress_every_items:
            return
        elapsed = time.monotonic() - self._start_time
        rate = stats.items_emitted / elapsed if elapsed > 0 else 0.0
        logger.info(f"Progress update: {stats.items_emitted} processed, {elapsed:.1f}s, {rate:.1f}/s")
        self._session.emit(
            EventType.EMIT_PROGRESS,
            count=stats.items_emitted,
            elapsed_seconds=elapsed,
            message=f"Emitted {stats.items_emitted} resources",
        )

    async def stream(self) -> AsyncGenerator[EnrichedResult, None]:
        """
        Yield enriched results until the listing ends or the consumer stops.

        Yields:
            EnrichedResult per listed item (tags always a dict), then, only
            on a listing failure, one final result with ``error`` set

        Raises:
            CancellationError: If the session is cancelled
        """
        if self._started:
            raise RuntimeError("StreamEmitter.stream() can only be consumed once")
        self._started = True

        session = self._session
        stats = session.stats
        self._start_time = time.monotonic()
        outcome = "failed"

        session.emit(EventType.STARTED, message="Starting listing")
        try:
            if self._limit == 0:
                outcome = "limit"
                return
            try:
                async with aclosing(self._groups()) as groups:
                    async for items in groups:
                        async with aclosing(self._emit_group(items)) as results:
                            async for result in results:
                                if session.cancelled:
                                    raise CancellationError("listing cancelled")
                                stats.items_emitted += 1
                                yield result
                                self._progress()
                                if self._limit is not None and stats.items_emitted >= self._limit:
                                    outcome = "limit"
                                    return
            except UpstreamListError as e:
                stats.duration_seconds = time.monotonic() - self._start_time
                session.emit(EventType.FAILED, error=str(e), message="Listing failed")
                outcome = "terminal"
                yield EnrichedResult.failure(e)
                return
            outcome = "completed"
        except GeneratorExit:
            if outcome != "terminal":
                outcome = "stopped"
            raise
        except asyncio.CancelledError:
            outcome = "cancelled"
            raise
        finally:
            stats.duration_seconds = time.monotonic() - self._start_time
            self._finish(outcome)

    def _finish(self, outcome: str) -> None:
        stats = self._session.stats
        stats.pages_fetched = self._pages.pages_fetched
        stats.items_listed = self._pages.items_seen
        summary = (
            f"{stats.items_emitted} emitted, {stats.items_tagged} tagged, "
            f"{stats.pages_fetched} pages, {stats.degraded_batches} degraded batches, "
            f"{stats.details_dropped} dropped in {stats.duration_seconds:.1f}s"
        )
        if outcome == "completed":
            logger.info(f"Listing completed: {summary}")
            self._session.emit(EventType.COMPLETED, count=stats.items_emitted, message=f"Listing completed: {summary}")
        elif outcome in ("stopped", "limit"):
            reason = "limit reached" if outcome == "limit" else "stopped by caller"
            logger.info(f"Listing {reason}: {summary}")
            self._session.emit(EventType.STOPPED, count=stats.items_emitted, message=f"Listing {reason}")
        elif outcome == "cancelled":
            logger.info(f"Listing cancelled: {summary}")
            self._session.emit(EventType.CANCELLED, count=stats.items_emitted, message="Listing cancelled")
        elif outcome == "failed":
            logger.error(f"Listing aborted: {summary}")
            self._session.emit(EventType.FAILED, message="Listing aborted")
