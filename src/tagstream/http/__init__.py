"""HTTP transport, upstream API protocols and rate limiting for tagstream."""

from .client import AsyncApiClient
from .protocols import DetailApi, ListingApi, ListingPage, TaggingApi, TagPage
from .rate_limiter import MinIntervalRateLimiter, OperationKind
from .rest import RestResourceApi

__all__ = [
    "AsyncApiClient",
    "DetailApi",
    "ListingApi",
    "ListingPage",
    "MinIntervalRateLimiter",
    "OperationKind",
    "RestResourceApi",
    "TagPage",
    "TaggingApi",
]
