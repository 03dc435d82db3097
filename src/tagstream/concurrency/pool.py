"""Bounded worker pool for per-item detail fetches."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncGenerator, Sequence
from dataclasses import dataclass
from typing import Any, Optional

from ..exceptions import ConfigError, DetailFetchError, ResourceNotFoundError
from ..http.protocols import DetailApi
from ..http.rate_limiter import MinIntervalRateLimiter, OperationKind
from ..models.config import StopPolicy
from ..models.resources import ResourceItem
from .cancellation import guard

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DetailOutcome:
    """Result of one detail fetch: either ``detail`` or ``error`` is set."""

    item: ResourceItem
    detail: Optional[dict[str, Any]] = None
    error: Optional[DetailFetchError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def not_found(self) -> bool:
        return isinstance(self.error, ResourceNotFoundError)


class ConcurrentDetailFetcher:
    """
    Fetches per-item detail with at most ``concurrency`` calls in flight.

    A semaphore is the admission gate; finished fetches report through a
    single result queue, so outcomes arrive in completion order. Every
    call also passes the DETAIL gate of the shared rate limiter, which is
    what actually bounds throughput; pool width only bounds how many calls
    wait on it at once.

    A failing item never aborts the others: its error is captured on its
    own outcome.

    Example:
        fetcher = ConcurrentDetailFetcher(api, limiter)

        async with contextlib.aclosing(fetcher.fetch_all(items, 8)) as outcomes:
            async for outcome in outcomes:
                if outcome.ok:
                    print(outcome.item.identifier, outcome.detail)
    """

    def __init__(
        self,
        api: DetailApi,
        rate_limiter: MinIntervalRateLimiter,
        *,
        stop: Optional[asyncio.Event] = None,
        on_stop: StopPolicy = StopPolicy.ABANDON,
    ) -> None:
        """
        Initialize the fetcher.

        Args:
            api: Single-item detail API
            rate_limiter: Limiter providing the DETAIL gate
            stop: Session stop signal observed by every fetch
            on_stop: Whether closing the iterator early cancels in-flight
                fetches (ABANDON) or lets those already past the DETAIL
                gate finish (DRAIN)
        """
        self._api = api
        self._limiter = rate_limiter
        self._stop = stop
        self._on_stop = on_stop

    async def _describe(self, item: ResourceItem) -> dict[str, Any]:
        detail = await guard(self._api.describe(item), self._stop, f"detail {item.identifier}")
        if detail is None:
            # logically deleted between listing and detail read
            raise ResourceNotFoundError(f"{item.identifier} no longer exists", identifier=item.identifier)
        return detail

    async def fetch_all(
        self,
        items: Sequence[ResourceItem],
        concurrency: int,
    ) -> AsyncGenerator[DetailOutcome, None]:
        """
        Fetch detail for every item, yielding outcomes as they complete.

        Each submitted item appears exactly once unless the consumer stops
        early. Closing the iterator releases every task before returning.

        Args:
            items: Items to describe
            concurrency: Maximum fetches in flight

        Raises:
            ConfigError: If concurrency is below 1
            CancellationError: If the session stop signal fires
        """
        if concurrency < 1:
            raise ConfigError(f"concurrency must be >= 1, got {concurrency}")
        if not items:
            return

        gate = asyncio.Semaphore(concurrency)
        results: asyncio.Queue[DetailOutcome] = asyncio.Queue()
        in_flight: set[asyncio.Task[None]] = set()
        # tasks that already passed the DETAIL gate
        gated: set[asyncio.Task[Any]] = set()

        async def fetch_one(item: ResourceItem) -> None:
            try:
                await self._limiter.acquire(OperationKind.DETAIL, self._stop)
                task = asyncio.current_task()
                if task is not None:
                    gated.add(task)
                outcome = DetailOutcome(item=item, detail=await self._describe(item))
            except DetailFetchError as e:
                outcome = DetailOutcome(item=item, error=e)
            except Exception as e:
                error = DetailFetchError(f"detail fetch for {item.identifier} failed: {e}", identifier=item.identifier)
                error.__cause__ = e
                outcome = DetailOutcome(item=item, error=error)
            finally:
                gate.release()
            results.put_nowait(outcome)

        async def admit() -> None:
            for item in items:
                await gate.acquire()
                task = asyncio.create_task(fetch_one(item), name=f"tagstream-detail-{item.identifier}")
                in_flight.add(task)
                task.add_done_callback(in_flight.discard)

        feeder = asyncio.create_task(admit(), name="tagstream-detail-admission")
        delivered = 0
        try:
            while delivered < len(items):
                outcome = await guard(results.get(), self._stop, "detail results")
                delivered += 1
                yield outcome
        finally:
            feeder.cancel()
            await asyncio.gather(feeder, return_exceptions=True)
            pending = list(in_flight)
            if pending:
                # DRAIN only lets calls already past the gate finish
                for task in pending:
                    if self._on_stop == StopPolicy.ABANDON or task not in gated:
                        task.cancel()
                logger.debug(f"Releasing {len(pending)} in-flight detail fetches ({self._on_stop.value})")
                await asyncio.gather(*pending, return_exceptions=True)
