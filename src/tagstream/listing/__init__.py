"""Paginated listing, tag enrichment and result streaming."""

from .enrichment import BatchEnricher, EnrichmentReport, make_batches
from .filters import IdentifierFilter, ItemFilter, combine_filters
from .pages import PageSource
from .session import ListingSession
from .stream import StreamEmitter

__all__ = [
    "BatchEnricher",
    "EnrichmentReport",
    "IdentifierFilter",
    "ItemFilter",
    "ListingSession",
    "PageSource",
    "StreamEmitter",
    "combine_filters",
    "make_batches",
]
