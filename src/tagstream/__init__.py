"""
tagstream - Stream paginated resource listings enriched with batched tag lookups.

Usage:
    from tagstream import Lister, TagstreamConfig

    config = TagstreamConfig(api={"base_url": "https://api.example.com"})

    async with Lister(config) as lister:
        async for result in lister.stream():
            print(result.item.identifier, result.tags)
"""

__version__ = "1.0.0"

from .core.lister import Lister, list_blocking
from .exceptions import (
    ApiResponseError,
    CancellationError,
    ConfigError,
    DetailFetchError,
    EnrichmentError,
    ResourceNotFoundError,
    TagstreamError,
    UpstreamListError,
)
from .http.rate_limiter import MinIntervalRateLimiter, OperationKind
from .models.config import (
    ApiConfig,
    DetailConfig,
    EnrichmentConfig,
    EnrichmentScope,
    ListingConfig,
    ProfileName,
    RateLimitConfig,
    StopPolicy,
    TagstreamConfig,
    load_config,
)
from .models.events import EventType, ListingEvent, ListingStats
from .models.resources import EnrichedResult, ResourceItem

__all__ = [
    "__version__",
    # Core
    "Lister",
    "list_blocking",
    "MinIntervalRateLimiter",
    "OperationKind",
    # Config
    "TagstreamConfig",
    "ApiConfig",
    "RateLimitConfig",
    "ListingConfig",
    "EnrichmentConfig",
    "EnrichmentScope",
    "DetailConfig",
    "StopPolicy",
    "ProfileName",
    "load_config",
    # Events
    "EventType",
    "ListingEvent",
    "ListingStats",
    # Resources
    "EnrichedResult",
    "ResourceItem",
    # Errors
    "TagstreamError",
    "ConfigError",
    "UpstreamListError",
    "EnrichmentError",
    "DetailFetchError",
    "ResourceNotFoundError",
    "CancellationError",
    "ApiResponseError",
]
