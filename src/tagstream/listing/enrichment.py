"""Batched tag enrichment through the tag lookup API."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Optional

from ..concurrency.cancellation import guard
from ..exceptions import ConfigError, EnrichmentError
from ..http.protocols import TaggingApi
from ..http.rate_limiter import MinIntervalRateLimiter, OperationKind
from ..models.events import EventSink, EventType, ListingEvent, emit_safely
from ..models.resources import EnrichmentMap, ResourceItem

logger = logging.getLogger(__name__)


@dataclass
class EnrichmentReport:
    """Outcome of one ``enrich()`` call."""

    items: int = 0
    batches: int = 0
    degraded: int = 0
    tagged: int = 0
    elapsed_seconds: float = 0.0
    errors: list[EnrichmentError] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return self.degraded == 0


def make_batches(items: Sequence[ResourceItem], batch_size: int) -> list[list[ResourceItem]]:
    """Split items into consecutive batches of at most ``batch_size``."""
    if batch_size < 1:
        raise ConfigError(f"batch_size must be >= 1, got {batch_size}")
    return [list(items[i : i + batch_size]) for i in range(0, len(items), batch_size)]


class BatchEnricher:
    """
    Builds an identifier -> tags map for a set of items.

    Items are split into batches no larger than the tag API accepts; each
    batch is looked up page by page, every page passing the TAG_LOOKUP
    gate. A failing page abandons the rest of its batch but keeps what was
    already merged, so a tag API outage degrades output to missing tags
    instead of failing the listing.

    Example:
        enricher = BatchEnricher(tag_api, limiter, batch_size=100)
        tags = await enricher.enrich(items)
        for item in items:
            print(item.identifier, tags.get(item.identifier, {}))
    """

    def __init__(
        self,
        api: TaggingApi,
        rate_limiter: MinIntervalRateLimiter,
        *,
        batch_size: int = 100,
        max_concurrent_batches: int = 1,
        stop: Optional[asyncio.Event] = None,
        sink: Optional[EventSink] = None,
    ) -> None:
        """
        Initialize the enricher.

        Args:
            api: Tag lookup API
            rate_limiter: Limiter providing the TAG_LOOKUP gate
            batch_size: Identifiers per lookup (at most api.max_identifiers)
            max_concurrent_batches: Batches looked up concurrently
            stop: Session stop signal
            sink: Observability sink for batch and warning events

        Raises:
            ConfigError: If batch_size or max_concurrent_batches is out of range
        """
        if batch_size < 1 or batch_size > api.max_identifiers:
            raise ConfigError(f"batch_size must be between 1 and {api.max_identifiers}, got {batch_size}")
        if max_concurrent_batches < 1:
            raise ConfigError(f"max_concurrent_batches must be >= 1, got {max_concurrent_batches}")

        self.batch_size = batch_size
        self._api = api
        self._limiter = rate_limiter
        self._max_concurrent = max_concurrent_batches
        self._stop = stop
        self._sink = sink
        self.last_report = EnrichmentReport()

    async def enrich(self, items: Sequence[ResourceItem]) -> EnrichmentMap:
        """
        Look up tags for ``items``.

        Never raises for upstream failures: identifiers whose lookup failed
        are simply absent from the map. Only cancellation propagates.

        Returns:
            Map from identifier to its non-empty tag set
        """
        tags_map: EnrichmentMap = {}
        report = EnrichmentReport(items=len(items))
        self.last_report = report
        if not items:
            return tags_map

        start = time.monotonic()
        batches = make_batches(items, self.batch_size)
        report.batches = len(batches)

        if self._max_concurrent == 1 or len(batches) == 1:
            for index, batch in enumerate(batches):
                await self._enrich_batch(index * self.batch_size, batch, tags_map, report)
        else:
            gate = asyncio.Semaphore(self._max_concurrent)

            async def run(batch_start: int, batch: list[ResourceItem]) -> None:
                async with gate:
                    await self._enrich_batch(batch_start, batch, tags_map, report)

            tasks = [
                asyncio.create_task(run(index * self.batch_size, batch)) for index, batch in enumerate(batches)
            ]
            try:
                await asyncio.gather(*tasks)
            finally:
                for task in tasks:
                    task.cancel()
                await asyncio.gather(*tasks, return_exceptions=True)

        report.tagged = len(tags_map)
        report.elapsed_seconds = time.monotonic() - start
        logger.info(
            f"Batch tag fetch completed: {len(items)} resources, {report.tagged} tagged, "
            f"{report.batches} batches ({report.degraded} degraded) in {report.elapsed_seconds:.2f}s"
        )
        return tags_map

    async def _enrich_batch(
        self,
        batch_start: int,
        batch: list[ResourceItem],
        tags_map: EnrichmentMap,
        report: EnrichmentReport,
    ) -> None:
        identifiers = list(dict.fromkeys(item.identifier for item in batch))
        wanted = set(identifiers)
        token: Optional[str] = None
        page_number = 0
        merged = 0

        logger.debug(f"Fetching tags in batch (batch_start={batch_start}, batch_size={len(identifiers)})")
        while True:
            await self._limiter.acquire(OperationKind.TAG_LOOKUP, self._stop)
            page_number += 1
            try:
                page = await guard(self._api.get_tag_page(identifiers, token), self._stop, "tag lookup")
            except Exception as e:
                error = EnrichmentError(
                    f"tag lookup failed (batch_start={batch_start}, page={page_number}): {e}",
                    batch_start=batch_start,
                    page=page_number,
                )
                error.__cause__ = e
                report.degraded += 1
                report.errors.append(error)
                logger.warning(f"Failed to fetch tags batch: {error}")
                emit_safely(
                    self._sink,
                    ListingEvent(
                        type=EventType.ENRICHMENT_DEGRADED,
                        batch_start=batch_start,
                        page=page_number,
                        count=len(identifiers),
                        error=str(e),
                        message=f"Tags unavailable for part of batch at {batch_start}",
                    ),
                )
                return

            unexpected = 0
            for identifier, tags in page.mappings.items():
                if identifier not in wanted:
                    unexpected += 1
                elif tags:
                    tags_map[identifier] = dict(tags)
                    merged += 1
            if unexpected:
                logger.warning(f"Tag lookup returned {unexpected} unrequested identifiers (batch_start={batch_start})")
                emit_safely(
                    self._sink,
                    ListingEvent(
                        type=EventType.WARNING,
                        batch_start=batch_start,
                        page=page_number,
                        count=unexpected,
                        message="Ignored tags for unrequested identifiers",
                    ),
                )

            logger.debug(
                f"Tag page received (batch_start={batch_start}, page={page_number}, "
                f"mappings={len(page.mappings)})"
            )
            token = page.next_token
            if not token:
                break

        emit_safely(
            self._sink,
            ListingEvent(
                type=EventType.BATCH_ENRICHED,
                batch_start=batch_start,
                page=page_number,
                count=merged,
                total=len(identifiers),
            ),
        )
