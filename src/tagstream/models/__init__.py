"""Tagstream configuration, event and resource models."""

from .config import (
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
from .events import EventSink, EventType, ListingEvent, ListingStats, LoggingEventSink
from .profiles import PROFILES, apply_profile
from .resources import EnrichedResult, EnrichmentMap, ResourceItem

__all__ = [
    # Config
    "ApiConfig",
    "DetailConfig",
    "EnrichmentConfig",
    "EnrichmentScope",
    "ListingConfig",
    "ProfileName",
    "RateLimitConfig",
    "StopPolicy",
    "TagstreamConfig",
    "load_config",
    # Events
    "EventSink",
    "EventType",
    "ListingEvent",
    "ListingStats",
    "LoggingEventSink",
    # Profiles
    "PROFILES",
    "apply_profile",
    # Resources
    "EnrichedResult",
    "EnrichmentMap",
    "ResourceItem",
]
