"""Item filtering for listings."""

from __future__ import annotations

import fnmatch
import logging
from typing import Callable, Optional

from ..exceptions import ConfigError
from ..models.resources import ResourceItem

logger = logging.getLogger(__name__)

ItemFilter = Callable[[ResourceItem], bool]


class IdentifierFilter:
    """
    Filter items based on include/exclude identifier patterns.

    Uses glob-style patterns (*, ?, [seq], [!seq]).

    Example:
        keep = IdentifierFilter(
            include_patterns=["/aws/lambda/*"],
            exclude_patterns=["/aws/lambda/test-*"],
        )
        if keep(item):
            process(item)
    """

    def __init__(
        self,
        include_patterns: Optional[list[str]] = None,
        exclude_patterns: Optional[list[str]] = None,
    ):
        """
        Initialize the pattern filter.

        Args:
            include_patterns: Patterns that identifiers must match (any)
            exclude_patterns: Patterns that identifiers must NOT match (any)

        Raises:
            ConfigError: If a pattern is empty or not a string
        """
        self.include_patterns = list(include_patterns or [])
        self.exclude_patterns = list(exclude_patterns or [])
        for pattern in self.include_patterns + self.exclude_patterns:
            if not isinstance(pattern, str) or not pattern:
                raise ConfigError(f"Invalid identifier pattern: {pattern!r}")

    def __bool__(self) -> bool:
        return bool(self.include_patterns or self.exclude_patterns)

    def __call__(self, item: ResourceItem) -> bool:
        identifier = item.identifier

        # If include patterns specified, identifier must match at least one
        if self.include_patterns and not any(fnmatch.fnmatchcase(identifier, p) for p in self.include_patterns):
            return False

        # If exclude patterns specified, identifier must NOT match any
        return not (
            self.exclude_patterns and any(fnmatch.fnmatchcase(identifier, p) for p in self.exclude_patterns)
        )


def combine_filters(*filters: Optional[ItemFilter]) -> Optional[ItemFilter]:
    """
    Combine filters with AND logic, ignoring None and empty filters.

    Raises:
        ConfigError: If any filter is not callable
    """
    active: list[ItemFilter] = []
    for item_filter in filters:
        if item_filter is None:
            continue
        if not callable(item_filter):
            raise ConfigError(f"Item filter must be callable, got {type(item_filter).__name__}")
        if isinstance(item_filter, IdentifierFilter) and not item_filter:
            continue
        active.append(item_filter)

    if not active:
        return None
    if len(active) == 1:
        return active[0]

    def all_of(item: ResourceItem) -> bool:
        return all(f(item) for f in active)

    return all_of
