"""Lifecycle event types emitted to the observability sink."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    """Types of events emitted during a listing."""

    # Lifecycle events
    STARTED = "started"
    COMPLETED = "completed"
    FAILED = "failed"
    STOPPED = "stopped"
    CANCELLED = "cancelled"

    # Listing phase
    PAGE_FETCHED = "page_fetched"
    LISTING_PROGRESS = "listing_progress"

    # Enrichment phase
    BATCH_ENRICHED = "batch_enriched"
    ENRICHMENT_DEGRADED = "enrichment_degraded"

    # Detail phase
    DETAIL_DROPPED = "detail_dropped"

    # Emission
    EMIT_PROGRESS = "emit_progress"
    WARNING = "warning"


@dataclass
class ListingEvent:
    """
    Event emitted during a listing.

    Events are a pure side channel: nothing the sink does changes what the
    stream yields.

    Example:
        def on_event(event: ListingEvent) -> None:
            if event.type == EventType.PAGE_FETCHED:
                print(f"page {event.page}: {event.count} items")

        lister = Lister(config, sink=on_event)
    """

    type: EventType

    # Timestamp (always UTC)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    # Common fields
    message: Optional[str] = None
    error: Optional[str] = None
    identifier: Optional[str] = None

    # Progress tracking
    page: Optional[int] = None
    count: Optional[int] = None
    total: Optional[int] = None
    batch_start: Optional[int] = None
    elapsed_seconds: Optional[float] = None

    @property
    def is_error(self) -> bool:
        """Check if this is an error event."""
        return self.type == EventType.FAILED

    @property
    def is_warning(self) -> bool:
        return self.type in (EventType.WARNING, EventType.ENRICHMENT_DEGRADED, EventType.DETAIL_DROPPED)


# Type alias for the observability collaborator
EventSink = Callable[[ListingEvent], None]


class LoggingEventSink:
    """Default sink: writes each event to the ``tagstream.events`` logger."""

    _LEVELS = {
        EventType.FAILED: logging.ERROR,
        EventType.WARNING: logging.WARNING,
        EventType.ENRICHMENT_DEGRADED: logging.WARNING,
        EventType.DETAIL_DROPPED: logging.WARNING,
        EventType.PAGE_FETCHED: logging.DEBUG,
        EventType.BATCH_ENRICHED: logging.DEBUG,
    }

    def __init__(self, logger_name: str = "tagstream.events") -> None:
        self._logger = logging.getLogger(logger_name)

    def __call__(self, event: ListingEvent) -> None:
        level = self._LEVELS.get(event.type, logging.INFO)
        if not self._logger.isEnabledFor(level):
            return
        text = event.message or event.type.value
        if event.error:
            text = f"{text}: {event.error}"
        self._logger.log(level, text, extra={"event_type": event.type.value})


def emit_safely(sink: Optional[EventSink], event: ListingEvent) -> None:
    """Deliver an event, never letting a broken sink affect the listing."""
    if sink is None:
        return
    try:
        sink(event)
    except Exception:
        logger.warning(f"Event sink raised while handling {event.type.value}", exc_info=True)


@dataclass
class ListingStats:
    """
    Cumulative statistics for one listing.

    Collected during the listing and final once the stream ends.
    """

    pages_fetched: int = 0
    items_listed: int = 0
    items_emitted: int = 0
    items_tagged: int = 0
    batches: int = 0
    degraded_batches: int = 0
    details_dropped: int = 0
    duration_seconds: float = 0.0

    @property
    def rate_per_second(self) -> float:
        if self.duration_seconds <= 0:
            return 0.0
        return self.items_emitted / self.duration_seconds

    def to_dict(self) -> dict[str, Any]:
        """Convert stats to dictionary for serialization."""
        return {
            "pages_fetched": self.pages_fetched,
            "items_listed": self.items_listed,
            "items_emitted": self.items_emitted,
            "items_tagged": self.items_tagged,
            "batches": self.batches,
            "degraded_batches": self.degraded_batches,
            "details_dropped": self.details_dropped,
            "duration_seconds": round(self.duration_seconds, 2),
            "rate_per_second": round(self.rate_per_second, 1),
        }
