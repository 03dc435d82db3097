"""Per-invocation listing state."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Optional

from ..http.protocols import DetailApi, ListingApi, TaggingApi
from ..http.rate_limiter import MinIntervalRateLimiter
from ..models.events import EventSink, EventType, ListingEvent, ListingStats, emit_safely


@dataclass
class ListingSession:
    """
    Everything one listing call needs, torn down with its stream.

    The rate limiter is the only member that may be shared with other
    sessions; the stop signal, stats and everything derived from them are
    private to this listing.

    Attributes:
        listing_api: Primary listing API
        rate_limiter: Caller-owned limiter, possibly shared
        tagging_api: Tag lookup API (None disables enrichment)
        detail_api: Detail API (None disables detail fetches)
        sink: Observability sink
        stop: Early-termination signal observed at every suspension point
        stats: Counters for this listing
    """

    listing_api: ListingApi
    rate_limiter: MinIntervalRateLimiter
    tagging_api: Optional[TaggingApi] = None
    detail_api: Optional[DetailApi] = None
    sink: Optional[EventSink] = None
    stop: asyncio.Event = field(default_factory=asyncio.Event)
    stats: ListingStats = field(default_factory=ListingStats)

    def cancel(self) -> None:
        """
        Cancel the listing.

        Every rate-limiter wait, in-flight upstream call and pending detail
        fetch raises CancellationError at its next suspension point.
        """
        self.stop.set()

    @property
    def cancelled(self) -> bool:
        return self.stop.is_set()

    def emit(self, type: EventType, **fields: Any) -> None:
        emit_safely(self.sink, ListingEvent(type=type, **fields))
