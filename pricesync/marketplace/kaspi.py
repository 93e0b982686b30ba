"""Kaspi.kz merchant API client (orders and catalog)."""

from __future__ import annotations

import logging
from typing import Any, Optional, Protocol, Union
from uuid import uuid4

import httpx
from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from pricesync import metrics
from pricesync.config import settings
from pricesync.errors import RemoteError, ValidationError, from_pydantic
from pricesync.marketplace.schemas import (
    Category,
    CategoryAttribute,
    Order,
    OrderEntry,
    OrderEntryChanges,
    OrdersQuery,
    OrderStatus,
    ProductPayload,
    UploadResult,
)

logger = logging.getLogger(__name__)

MEDIA_TYPE = "application/vnd.api+json"

_orders = TypeAdapter(list[Order])
_entries = TypeAdapter(list[OrderEntry])
_categories = TypeAdapter(list[Category])
_attributes = TypeAdapter(list[CategoryAttribute])


class MarketplaceCatalog(Protocol):
    """What the upload step needs from a marketplace."""

    async def add_product(self, product: Union[ProductPayload, dict]) -> UploadResult: ...


def validate_product(product: Union[ProductPayload, dict]) -> ProductPayload:
    """Validate an outbound catalog card; raises ValidationError before any network call."""
    if isinstance(product, ProductPayload):
        # Re-validate: the model may have been built with model_construct or mutated
        product = product.model_dump(mode="json")
    try:
        return ProductPayload.model_validate(product)
    except PydanticValidationError as e:
        raise from_pydantic(e, "invalid product payload") from e


class KaspiClient:
    """
    Thin typed client over the marketplace REST contract.

    Requests carry the ``X-Auth-Token`` header and the JSON:API media type.
    Non-2xx responses raise RemoteError with the remote body verbatim;
    responses that do not match the expected shape raise ValidationError.
    """

    def __init__(
        self,
        auth_token: str,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        page_size: Optional[int] = None,
    ):
        if not auth_token:
            raise ValidationError("marketplace API token is not configured")
        self.auth_token = auth_token
        self.base_url = (base_url or settings.marketplace_base_url).rstrip("/")
        self.timeout = timeout or settings.marketplace_timeout_seconds
        self.page_size = page_size or settings.marketplace_page_size
        self._http_client = http_client
        self._owns_client = http_client is None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.timeout)
        return self._http_client

    async def close(self):
        """Close HTTP client (only if this instance created it)."""
        if self._http_client and self._owns_client:
            await self._http_client.aclose()
            self._http_client = None

    async def __aenter__(self) -> "KaspiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def _request(
        self,
        operation: str,
        method: str,
        endpoint: str,
        params: Optional[dict] = None,
        json: Any = None,
    ) -> Any:
        client = await self._get_client()
        headers = {
            "X-Auth-Token": self.auth_token,
            "Content-Type": MEDIA_TYPE,
            "Accept": MEDIA_TYPE,
        }
        try:
            response = await client.request(
                method,
                f"{self.base_url}{endpoint}",
                params=params,
                json=json,
                headers=headers,
            )
        except httpx.HTTPError as e:
            metrics.record_marketplace_request(operation, success=False)
            raise RemoteError(0, f"{type(e).__name__}: {e}") from e

        if response.is_error:
            metrics.record_marketplace_request(operation, success=False)
            logger.warning(f"Marketplace {operation} failed: {response.status_code}")
            raise RemoteError(response.status_code, response.text)

        metrics.record_marketplace_request(operation, success=True)
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise ValidationError(f"{operation}: response is not JSON") from e

    @staticmethod
    def _parse(adapter: TypeAdapter, payload: Any, operation: str, key: str = "data"):
        if not isinstance(payload, dict) or key not in payload:
            raise ValidationError(f"{operation}: response has no '{key}' member")
        try:
            return adapter.validate_python(payload[key])
        except PydanticValidationError as e:
            raise from_pydantic(e, f"{operation}: unexpected response shape") from e

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------

    async def get_orders(self, query: Optional[OrdersQuery] = None) -> list[Order]:
        """One page of orders, ``page_size`` per page unless the query sets one."""
        query = query or OrdersQuery()
        if query.page_size is None:
            query = query.model_copy(update={"page_size": self.page_size})
        payload = await self._request("get_orders", "GET", "/orders", params=query.to_wire())
        return self._parse(_orders, payload, "get_orders")

    async def find_order(self, order_id: str) -> Optional[Order]:
        """Page through the order list until ``order_id`` turns up."""
        page = 0
        while True:
            orders = await self.get_orders(OrdersQuery(page=page, page_size=self.page_size))
            for order in orders:
                if order.id == order_id:
                    return order
            if len(orders) < self.page_size:
                return None
            page += 1

    async def get_order_entries(self, order_id: str) -> list[OrderEntry]:
        payload = await self._request("get_order_entries", "GET", f"/orders/{order_id}/entries")
        return self._parse(_entries, payload, "get_order_entries")

    async def accept_order(self, order_id: str, code: str) -> None:
        """Accept a NEW order. Callers check the current status first."""
        body = {
            "type": "orders",
            "id": order_id,
            "code": code,
            "status": OrderStatus.ACCEPTED_BY_MERCHANT.value,
        }
        await self._request("accept_order", "POST", f"/orders/{order_id}/status", json=body)
        logger.info(f"Accepted order {code}")

    async def update_order_status(self, order_id: str, status: Union[OrderStatus, str]) -> None:
        status = OrderStatus(status)
        await self._request(
            "update_order_status", "PUT", f"/orders/{order_id}/status", json={"status": status.value}
        )

    async def cancel_order(self, order_id: str) -> None:
        await self._request("cancel_order", "DELETE", f"/orders/{order_id}")

    async def create_waybill(self, order_id: str) -> None:
        await self._request("create_waybill", "POST", f"/orders/{order_id}/waybill")

    async def set_imei(self, order_id: str, imei: str) -> None:
        if not imei or not imei.strip():
            raise ValidationError("IMEI must not be empty")
        await self._request("set_imei", "PUT", f"/orders/{order_id}/imei", json={"imei": imei.strip()})

    async def modify_order_entry(
        self,
        order_id: str,
        entry_id: str,
        changes: Union[OrderEntryChanges, dict],
    ) -> None:
        """Change an entry's quantity or weight, or remove it."""
        if isinstance(changes, dict):
            try:
                changes = OrderEntryChanges.model_validate(changes)
            except PydanticValidationError as e:
                raise from_pydantic(e, "invalid entry changes") from e
        body = changes.to_wire()
        if not body:
            raise ValidationError("no entry changes given")
        await self._request(
            "modify_order_entry", "PUT", f"/orders/{order_id}/entries/{entry_id}", json=body
        )

    # ------------------------------------------------------------------
    # Catalog
    # ------------------------------------------------------------------

    async def get_categories(self) -> list[Category]:
        payload = await self._request("get_categories", "GET", "/categories")
        return self._parse(_categories, payload, "get_categories")

    async def get_category_attributes(self, category_code: str) -> list[CategoryAttribute]:
        payload = await self._request(
            "get_category_attributes", "GET", f"/categories/{category_code}/attributes"
        )
        return self._parse(_attributes, payload, "get_category_attributes")

    async def get_product_schema(self) -> Any:
        return await self._request("get_product_schema", "GET", "/goods/schema")

    async def add_product(self, product: Union[ProductPayload, dict]) -> UploadResult:
        """Submit a new catalog card; returns the upload code and status."""
        validated = validate_product(product)
        payload = await self._request("add_product", "POST", "/goods", json=validated.to_wire())
        try:
            return UploadResult.model_validate(payload)
        except PydanticValidationError as e:
            raise from_pydantic(e, "add_product: unexpected response shape") from e


class DryRunCatalog:
    """Sandbox stand-in: validates payloads and never contacts the marketplace."""

    def __init__(self):
        self.submitted: list[ProductPayload] = []

    async def add_product(self, product: Union[ProductPayload, dict]) -> UploadResult:
        validated = validate_product(product)
        self.submitted.append(validated)
        return UploadResult(upload_code=f"sandbox-{uuid4().hex[:12]}", status="SANDBOX")


def client_for_marketplace(marketplace, http_client: Optional[httpx.AsyncClient] = None) -> KaspiClient:
    """Build a client from a Marketplace row."""
    if not marketplace.api_key:
        raise ValidationError(
            f"API key is not configured for marketplace '{marketplace.name}'"
        )
    return KaspiClient(
        auth_token=marketplace.api_key,
        base_url=marketplace.api_endpoint or None,
        http_client=http_client,
    )


def catalog_for_marketplace(marketplace) -> MarketplaceCatalog:
    """Dry-run catalog for marketplaces in sandbox mode, the live client otherwise."""
    if marketplace.sandbox_mode:
        return DryRunCatalog()
    return client_for_marketplace(marketplace)
