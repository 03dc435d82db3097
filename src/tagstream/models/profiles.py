"""Built-in throughput profiles."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel

from .config import ProfileName, TagstreamConfig

PROFILES: dict[ProfileName, dict[str, Any]] = {
    ProfileName.CONSERVATIVE: {
        # One call per second for every kind; SDK-side retries eat the rest of the quota
        "rate_limits": {
            "list_interval": 1.0,
            "tag_interval": 1.0,
            "detail_interval": 1.0,
        },
        "detail": {
            "concurrency": 2,
        },
    },
    ProfileName.STANDARD: {
        "rate_limits": {
            "list_interval": 0.2,
            "tag_interval": 0.2,
            "detail_interval": 0.1,
        },
        "enrichment": {
            "max_concurrent_batches": 2,
        },
        "detail": {
            "concurrency": 10,
        },
    },
    ProfileName.CUSTOM: {
        # No overrides - use explicit config
    },
}


def _explicit_fields(model: BaseModel) -> dict[str, Any]:
    """Nested dict of the values the user actually set."""
    explicit: dict[str, Any] = {}
    for name in model.model_fields_set:
        value = getattr(model, name)
        if isinstance(value, BaseModel):
            explicit[name] = _explicit_fields(value)
        else:
            explicit[name] = value
    return explicit


def _deep_update(base: dict, overrides: dict) -> dict:
    result = base.copy()
    for key, override_value in overrides.items():
        if key in result and isinstance(result[key], dict) and isinstance(override_value, dict):
            result[key] = _deep_update(result[key], override_value)
        else:
            result[key] = override_value
    return result


def apply_profile(config: TagstreamConfig) -> TagstreamConfig:
    """
    Apply profile defaults to config, preserving user overrides.

    Profile values override Pydantic defaults, but explicit user values
    take precedence over profile values.

    Example:
        >>> config = TagstreamConfig(profile=ProfileName.STANDARD)
        >>> apply_profile(config).detail.concurrency
        10
        >>> config = TagstreamConfig(profile=ProfileName.STANDARD, detail={"concurrency": 3})
        >>> apply_profile(config).detail.concurrency
        3
    """
    profile_overrides = PROFILES.get(config.profile, {})
    if not profile_overrides:
        return config

    merged = _deep_update(config.model_dump(), profile_overrides)
    merged = _deep_update(merged, _explicit_fields(config))
    return TagstreamConfig.model_validate(merged)
