"""Supplier price sources."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Any, Iterable, Optional

import httpx
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from pricesync.config import settings
from pricesync.errors import RemoteError, ValidationError, from_pydantic

logger = logging.getLogger(__name__)


class SupplierItem(BaseModel):
    """One priced item offered by a supplier."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    article: str = Field(min_length=1, validation_alias=AliasChoices("article", "sku"))
    name: str = Field(min_length=1, validation_alias=AliasChoices("name", "title"))
    price: Optional[Decimal] = None
    brand: Optional[str] = None
    category: Optional[str] = None
    description: Optional[str] = None
    images: list[str] = Field(default_factory=list)
    attributes: list[dict[str, str]] = Field(default_factory=list)


_items = TypeAdapter(list[SupplierItem])


def parse_items(payload: Any) -> list[SupplierItem]:
    """Accept a bare JSON list or an object with an ``items`` list."""
    if isinstance(payload, dict):
        payload = payload.get("items")
    if not isinstance(payload, list):
        raise ValidationError("supplier feed must be a list or an object with 'items'")
    try:
        return _items.validate_python(payload)
    except PydanticValidationError as e:
        raise from_pydantic(e, "invalid supplier feed") from e


class SupplierSource(ABC):
    """Abstract producer of a supplier's current items."""

    @abstractmethod
    async def fetch_items(self) -> list[SupplierItem]:
        """
        Fetch the supplier's items.

        Raises:
            RemoteError: If the supplier could not be reached or refused
            ValidationError: If the feed has an unexpected shape
        """

    async def close(self) -> None:
        pass


class StaticSupplierSource(SupplierSource):
    """Serves a fixed list of items (sandbox runs)."""

    def __init__(self, items: Iterable[SupplierItem | dict]):
        self._items = [
            item if isinstance(item, SupplierItem) else SupplierItem.model_validate(item)
            for item in items
        ]

    async def fetch_items(self) -> list[SupplierItem]:
        return list(self._items)


class HttpSupplierSource(SupplierSource):
    """JSON price feed over HTTP with bearer-token auth."""

    def __init__(
        self,
        endpoint: str,
        api_key: Optional[str] = None,
        params: Optional[dict] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.endpoint = endpoint
        self.api_key = api_key
        self.params = params or {}
        self._http_client = http_client
        self._owns_client = http_client is None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=settings.supplier_timeout_seconds)
        return self._http_client

    async def close(self) -> None:
        if self._http_client and self._owns_client:
            await self._http_client.aclose()
            self._http_client = None

    async def fetch_items(self) -> list[SupplierItem]:
        client = await self._get_client()
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        try:
            response = await client.get(self.endpoint, params=self.params or None, headers=headers)
        except httpx.HTTPError as e:
            raise RemoteError(0, f"{type(e).__name__}: {e}") from e
        if response.is_error:
            raise RemoteError(response.status_code, response.text)
        try:
            payload = response.json()
        except ValueError as e:
            raise ValidationError("supplier feed is not JSON") from e

        items = parse_items(payload)
        logger.debug(f"Fetched {len(items)} items from {self.endpoint}")
        return items


def source_for_supplier(supplier, http_client: Optional[httpx.AsyncClient] = None) -> SupplierSource:
    """Build the source for a Supplier row."""
    if not supplier.api_endpoint:
        raise ValidationError(f"supplier '{supplier.name}' has no api_endpoint")
    return HttpSupplierSource(
        endpoint=supplier.api_endpoint,
        api_key=supplier.api_key,
        params=supplier.api_parameters or None,
        http_client=http_client,
    )
