"""Protocol definitions for the upstream resource APIs."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol

from ..models.resources import ResourceItem


@dataclass(frozen=True)
class ListingPage:
    """
    One page returned by the primary listing API.

    Attributes:
        items: Items on this page, in API order
        next_token: Continuation token, or None on the last page
    """

    items: list[ResourceItem]
    next_token: Optional[str] = None


@dataclass(frozen=True)
class TagPage:
    """
    One page returned by the tag lookup API.

    Attributes:
        mappings: identifier -> tags for the resources on this page
        next_token: Continuation token, or None on the last page
    """

    mappings: dict[str, dict[str, str]] = field(default_factory=dict)
    next_token: Optional[str] = None


class ListingApi(Protocol):
    """
    Protocol for the paginated primary listing API.

    This abstraction allows for:
    - In-memory fakes in tests
    - Different transports (REST, SDK clients)
    """

    max_page_size: int

    async def list_page(self, page_token: Optional[str], page_size: int) -> ListingPage:
        """
        Fetch one page of items.

        Args:
            page_token: Token from the previous page, or None for the first
            page_size: Items requested (never above max_page_size)

        Raises:
            Exception on failure (after the transport's own retries)
        """
        ...


class TaggingApi(Protocol):
    """Protocol for the batched tag lookup API."""

    max_identifiers: int

    async def get_tag_page(
        self,
        identifiers: Sequence[str],
        page_token: Optional[str] = None,
    ) -> TagPage:
        """
        Fetch one page of tag mappings for a set of identifiers.

        Identifiers with no tags may be absent from the result.
        """
        ...


class DetailApi(Protocol):
    """Protocol for the single-item detail API."""

    async def describe(self, item: ResourceItem) -> Optional[dict[str, Any]]:
        """
        Fetch supplementary detail for one item.

        Returns:
            Detail fields, or None if the resource no longer exists

        Raises:
            ResourceNotFoundError if the API reports the item missing
        """
        ...
