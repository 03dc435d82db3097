"""REST implementation of the listing, tagging and detail protocols."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any, Optional

from ..exceptions import ApiResponseError, ResourceNotFoundError
from ..models.config import ApiConfig
from ..models.resources import ResourceItem
from .client import AsyncApiClient
from .protocols import ListingPage, TagPage

logger = logging.getLogger(__name__)


def parse_item(raw: dict[str, Any]) -> ResourceItem:
    """
    Build a ResourceItem from one listing entry.

    The entry must carry ``identifier`` (or ``id``); ``name`` is optional and
    every other field is kept as an attribute.
    """
    identifier = raw.get("identifier", raw.get("id"))
    if not identifier:
        raise ValueError(f"Listing entry has no identifier: {sorted(raw)}")
    attributes = {k: v for k, v in raw.items() if k not in ("identifier", "id", "name")}
    return ResourceItem(identifier=str(identifier), display_name=raw.get("name"), attributes=attributes)


def parse_tags(raw: Any) -> dict[str, str]:
    """Accept tags as a mapping or as a list of {"key", "value"} pairs."""
    if not raw:
        return {}
    if isinstance(raw, dict):
        return {str(k): "" if v is None else str(v) for k, v in raw.items()}
    tags: dict[str, str] = {}
    for tag in raw:
        key = tag.get("key", tag.get("Key"))
        if key is None:
            continue
        value = tag.get("value", tag.get("Value"))
        tags[str(key)] = "" if value is None else str(value)
    return tags


class RestResourceApi:
    """
    Listing, tag lookup and detail APIs served over one JSON REST endpoint.

    Wire format:
        GET  {list_path}?page_size=N&page_token=T
             -> {"items": [{"identifier": ..., "name": ..., ...}], "next_token": ...}
        POST {tags_path} {"identifiers": [...], "page_token": T}
             -> {"mappings": [{"identifier": ..., "tags": {...}}], "next_token": ...}
        GET  {detail_path} (formatted with identifier)
             -> {...}; 404 means the resource is gone

    Example:
        async with AsyncApiClient(config.api.base_url) as client:
            api = RestResourceApi(client, config.api)
            page = await api.list_page(None, api.max_page_size)
    """

    def __init__(self, client: AsyncApiClient, config: ApiConfig) -> None:
        self._client = client
        self._config = config
        self.max_page_size = config.max_page_size
        self.max_identifiers = config.max_identifiers

    async def list_page(self, page_token: Optional[str], page_size: int) -> ListingPage:
        data = await self._client.request_json(
            "GET",
            self._config.list_path,
            params={"page_size": page_size, "page_token": page_token},
        )
        data = data or {}
        items = [parse_item(raw) for raw in data.get("items", [])]
        return ListingPage(items=items, next_token=data.get("next_token") or None)

    async def get_tag_page(
        self,
        identifiers: Sequence[str],
        page_token: Optional[str] = None,
    ) -> TagPage:
        body: dict[str, Any] = {"identifiers": list(identifiers)}
        if page_token:
            body["page_token"] = page_token
        data = await self._client.request_json("POST", self._config.tags_path, json=body) or {}

        mappings: dict[str, dict[str, str]] = {}
        for mapping in data.get("mappings", []):
            identifier = mapping.get("identifier")
            if identifier:
                mappings[str(identifier)] = parse_tags(mapping.get("tags"))
        return TagPage(mappings=mappings, next_token=data.get("next_token") or None)

    async def describe(self, item: ResourceItem) -> Optional[dict[str, Any]]:
        path = self._config.detail_path.format(identifier=item.identifier)
        try:
            data = await self._client.request_json("GET", path)
        except ApiResponseError as e:
            if e.status == 404:
                raise ResourceNotFoundError(
                    f"{item.identifier} no longer exists", identifier=item.identifier
                ) from e
            raise
        return data if isinstance(data, dict) else None
