"""Listing entry points for tagstream."""

from ..listing.session import ListingSession
from .lister import Lister, list_blocking, rate_limiter_from_config

__all__ = [
    "Lister",
    "ListingSession",
    "list_blocking",
    "rate_limiter_from_config",
]
