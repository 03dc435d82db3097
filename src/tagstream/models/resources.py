"""Resource records produced and emitted by a listing."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

# identifier -> tag key -> tag value
EnrichmentMap = dict[str, dict[str, str]]


@dataclass(frozen=True)
class ResourceItem:
    """
    One primary record returned by the listing API.

    Attributes:
        identifier: Canonical unique key, used to join tags onto the item
        display_name: Human-readable name, if the provider has one
        attributes: Provider-defined fields, passed through untouched
    """

    identifier: str
    display_name: Optional[str] = None
    attributes: dict[str, Any] = field(default_factory=dict, hash=False, compare=False)

    @property
    def name(self) -> str:
        """Display name, falling back to the identifier."""
        return self.display_name or self.identifier


@dataclass
class EnrichedResult:
    """
    A listed item merged with its tags and, optionally, detail.

    An error result carries no item and is always the last result of a
    listing.

    Example:
        async for result in lister.stream():
            if result.is_error:
                print(f"Listing failed: {result.error}")
                break
            print(result.item.identifier, result.tags)
    """

    item: Optional[ResourceItem] = None
    tags: dict[str, str] = field(default_factory=dict)
    detail: Optional[dict[str, Any]] = None
    error: Optional[Exception] = None

    @property
    def is_error(self) -> bool:
        return self.error is not None

    @classmethod
    def failure(cls, error: Exception) -> EnrichedResult:
        return cls(error=error)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable dictionary."""
        if self.error is not None:
            return {"error": str(self.error), "error_type": type(self.error).__name__}
        if self.item is None:
            raise ValueError("result has neither an item nor an error")
        data: dict[str, Any] = {
            "identifier": self.item.identifier,
            "name": self.item.name,
            "attributes": self.item.attributes,
            "tags": self.tags,
        }
        if self.detail is not None:
            data["detail"] = self.detail
        return data
