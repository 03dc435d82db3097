"""Pydantic configuration models for tagstream."""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field, ValidationError

from ..exceptions import ConfigError


class ProfileName(str, Enum):
    """Built-in throughput profiles."""

    CONSERVATIVE = "conservative"
    STANDARD = "standard"
    CUSTOM = "custom"


class EnrichmentScope(str, Enum):
    """How much of the listing is handed to one enrichment pass."""

    PAGE = "page"
    ALL = "all"


class StopPolicy(str, Enum):
    """What the detail worker pool does with in-flight fetches on early stop."""

    ABANDON = "abandon"
    DRAIN = "drain"


def _expand_env_var(value: Optional[str]) -> Optional[str]:
    """Expand environment variable references in a string.

    Supports $VAR and ${VAR} syntax. Returns original value if
    the env var is not set.
    """
    import os
    import re

    if value is None:
        return None

    pattern = r"\$\{([^}]+)\}|\$([A-Za-z_][A-Za-z0-9_]*)"

    def replace(match: re.Match) -> str:
        var_name = match.group(1) or match.group(2)
        return os.environ.get(var_name, match.group(0))

    return re.sub(pattern, replace, value)


class ApiConfig(BaseModel):
    """Upstream API endpoints and HTTP transport settings."""

    base_url: Optional[str] = Field(None, description="Base URL of the resource API")
    list_path: str = Field("/resources", description="Path of the paginated listing endpoint")
    tags_path: str = Field("/tags:lookup", description="Path of the batched tag lookup endpoint")
    detail_path: str = Field(
        "/resources/{identifier}",
        description="Path template of the single-item detail endpoint",
    )
    max_page_size: int = Field(50, ge=1, description="Largest page size the listing API accepts")
    max_identifiers: int = Field(100, ge=1, description="Most identifiers one tag lookup accepts")
    token: Optional[str] = Field(None, description="Bearer token ($VAR expansion supported)")
    user_agent: Optional[str] = Field(None, description="Custom User-Agent header")
    proxy: Optional[str] = Field(None, description="HTTP/HTTPS proxy URL")
    max_retries: int = Field(3, ge=0, description="Maximum retry attempts for failed requests")
    connect_timeout: int = Field(10, ge=1, description="Connection timeout in seconds")
    read_timeout: int = Field(30, ge=1, description="Read timeout in seconds")

    model_config = {"extra": "forbid"}

    def model_post_init(self, __context: object) -> None:
        """Expand environment variables in the token after init."""
        if self.token:
            object.__setattr__(self, "token", _expand_env_var(self.token))


class RateLimitConfig(BaseModel):
    """Minimum seconds between consecutive calls, per operation kind."""

    list_interval: float = Field(1.0, ge=0, description="Seconds between listing page calls")
    tag_interval: float = Field(0.2, ge=0, description="Seconds between tag lookup page calls")
    detail_interval: float = Field(1.0, ge=0, description="Seconds between detail fetch calls")

    model_config = {"extra": "forbid"}


class ListingConfig(BaseModel):
    """Configuration for primary listing and emission."""

    page_size: Optional[int] = Field(
        None,
        ge=1,
        description="Items per listing page (None = API maximum)",
    )
    limit: Optional[int] = Field(None, ge=0, description="Maximum items to emit (None = unlimited)")
    include_patterns: list[str] = Field(default_factory=list, description="Identifier globs to include")
    exclude_patterns: list[str] = Field(default_factory=list, description="Identifier globs to exclude")
    progress_every_pages: int = Field(10, ge=1, description="Pages between listing progress events")
    progress_every_items: int = Field(100, ge=1, description="Emitted items between progress events")

    model_config = {"extra": "forbid"}


class EnrichmentConfig(BaseModel):
    """Configuration for batched tag enrichment."""

    enabled: bool = Field(True, description="Attach tags from the tag lookup API")
    scope: EnrichmentScope = Field(
        EnrichmentScope.PAGE,
        description="Enrich each page as it arrives, or the full set at once",
    )
    batch_size: int = Field(100, ge=1, description="Identifiers per tag lookup batch")
    max_concurrent_batches: int = Field(1, ge=1, description="Tag lookup batches run concurrently")

    model_config = {"extra": "forbid"}


class DetailConfig(BaseModel):
    """Configuration for concurrent per-item detail fetches."""

    enabled: bool = Field(False, description="Fetch per-item detail before emission")
    concurrency: int = Field(5, ge=1, description="Worker pool width")
    on_stop: StopPolicy = Field(
        StopPolicy.ABANDON,
        description="Abandon or drain in-flight fetches when the consumer stops",
    )

    model_config = {"extra": "forbid"}


class TagstreamConfig(BaseModel):
    """
    Root configuration model for tagstream.

    Example:
        config = TagstreamConfig(
            api=ApiConfig(base_url="https://api.example.com"),
            enrichment=EnrichmentConfig(scope=EnrichmentScope.ALL),
        )

    YAML format:
        profile: conservative
        api:
          base_url: https://api.example.com
          token: $API_TOKEN
        listing:
          limit: 500
        detail:
          enabled: true
          concurrency: 8
    """

    profile: ProfileName = Field(
        ProfileName.CUSTOM,
        description="Built-in profile to apply (conservative, standard, custom)",
    )

    api: ApiConfig = Field(default_factory=ApiConfig)
    rate_limits: RateLimitConfig = Field(default_factory=RateLimitConfig)
    listing: ListingConfig = Field(default_factory=ListingConfig)
    enrichment: EnrichmentConfig = Field(default_factory=EnrichmentConfig)
    detail: DetailConfig = Field(default_factory=DetailConfig)

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        "INFO",
        description="Logging level",
    )
    log_file: Optional[Path] = Field(None, description="Log file path")

    model_config = {"extra": "forbid"}

    def to_yaml(self) -> str:
        """Serialize config to YAML string."""
        import yaml

        return yaml.dump(self.model_dump(mode="json", exclude_none=True), default_flow_style=False)

    @classmethod
    def from_yaml(cls, yaml_str: str) -> TagstreamConfig:
        """Load config from YAML string."""
        import yaml

        data = yaml.safe_load(yaml_str) or {}
        return cls.model_validate(data)

    @classmethod
    def from_yaml_file(cls, path: Path) -> TagstreamConfig:
        """Load config from YAML file."""
        return cls.from_yaml(path.read_text())


def load_config(source: Optional[Path] = None, **overrides: Any) -> TagstreamConfig:
    """
    Build a validated config from an optional YAML file plus overrides.

    Overrides are merged section by section on top of the file contents.

    Raises:
        ConfigError: If the file is unreadable or any value fails validation
    """
    import yaml

    data: dict[str, Any] = {}
    if source is not None:
        try:
            data = yaml.safe_load(source.read_text()) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Cannot read config {source}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"Config {source} must contain a mapping")

    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(data.get(key), dict):
            data[key] = {**data[key], **value}
        else:
            data[key] = value

    try:
        return TagstreamConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(str(e)) from e
