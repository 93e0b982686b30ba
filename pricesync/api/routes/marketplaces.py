"""Marketplace management and order pass-through routes."""

from datetime import datetime
from decimal import Decimal
from typing import Any, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, ConfigDict, Field

from pricesync.api.deps import get_request_context, get_store, require_admin, require_sync_role
from pricesync.auth import RequestContext
from pricesync.db.models import Marketplace
from pricesync.db.store import RecordStore
from pricesync.errors import NotFoundError
from pricesync.marketplace.kaspi import catalog_for_marketplace, client_for_marketplace
from pricesync.marketplace.schemas import (
    OrderEntryChanges,
    OrderStatus,
    OrdersQuery,
    ProductPayload,
    UploadResult,
    order_status_label,
)
from pricesync.pricing.rules import PricingAction

router = APIRouter(prefix="/api/marketplaces", tags=["marketplaces"])


class MarketplaceBase(BaseModel):
    name: str = Field(min_length=1)
    website: Optional[str] = None
    api_endpoint: Optional[str] = None
    api_parameters: dict = Field(default_factory=dict)
    login: Optional[str] = None
    pricing_action: PricingAction = PricingAction.MULTIPLY
    pricing_value: Decimal = Decimal("1.0")
    is_active: bool = True
    sandbox_mode: bool = False


class MarketplaceCreate(MarketplaceBase):
    api_key: Optional[str] = None
    password: Optional[str] = None


class MarketplaceUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    website: Optional[str] = None
    api_key: Optional[str] = None
    api_endpoint: Optional[str] = None
    api_parameters: Optional[dict] = None
    login: Optional[str] = None
    password: Optional[str] = None
    pricing_action: Optional[PricingAction] = None
    pricing_value: Optional[Decimal] = None
    is_active: Optional[bool] = None
    sandbox_mode: Optional[bool] = None


class MarketplaceResponse(MarketplaceBase):
    model_config = ConfigDict(from_attributes=True)

    id: str
    has_api_key: bool
    created_at: datetime
    updated_at: datetime


class StatusUpdate(BaseModel):
    status: OrderStatus


class AcceptOrder(BaseModel):
    code: str = Field(min_length=1)


class ImeiUpdate(BaseModel):
    imei: str


def to_response(marketplace: Marketplace) -> MarketplaceResponse:
    data = {
        key: getattr(marketplace, key)
        for key in MarketplaceResponse.model_fields
        if key != "has_api_key"
    }
    return MarketplaceResponse(has_api_key=bool(marketplace.api_key), **data)


def _pricing_values(data: dict) -> dict:
    if isinstance(data.get("pricing_action"), PricingAction):
        data["pricing_action"] = data["pricing_action"].value
    return data


@router.get("", response_model=List[MarketplaceResponse])
async def list_marketplaces(
    active_only: bool = False,
    store: RecordStore = Depends(get_store),
    ctx: RequestContext = Depends(get_request_context),
):
    criteria = [Marketplace.is_active.is_(True)] if active_only else []
    marketplaces = await store.select(Marketplace, *criteria, order_by=[Marketplace.name])
    return [to_response(m) for m in marketplaces]


@router.get("/{marketplace_id}", response_model=MarketplaceResponse)
async def get_marketplace(
    marketplace_id: str,
    store: RecordStore = Depends(get_store),
    ctx: RequestContext = Depends(get_request_context),
):
    return to_response(await store.get(Marketplace, marketplace_id))


@router.post("", response_model=MarketplaceResponse, status_code=201)
async def create_marketplace(
    data: MarketplaceCreate,
    store: RecordStore = Depends(get_store),
    ctx: RequestContext = Depends(require_admin),
):
    marketplace = await store.insert(Marketplace, _pricing_values(data.model_dump()))
    return to_response(marketplace)


@router.patch("/{marketplace_id}", response_model=MarketplaceResponse)
async def update_marketplace(
    marketplace_id: str,
    data: MarketplaceUpdate,
    store: RecordStore = Depends(get_store),
    ctx: RequestContext = Depends(require_admin),
):
    patch = _pricing_values(data.model_dump(exclude_unset=True))
    return to_response(await store.update(Marketplace, marketplace_id, patch))


@router.delete("/{marketplace_id}", status_code=204)
async def delete_marketplace(
    marketplace_id: str,
    store: RecordStore = Depends(get_store),
    ctx: RequestContext = Depends(require_admin),
):
    """Delete a marketplace; products linked to it become unlinked."""
    await store.delete(Marketplace, marketplace_id)


# ----------------------------------------------------------------------
# Orders
# ----------------------------------------------------------------------


async def _client(store: RecordStore, marketplace_id: str):
    return client_for_marketplace(await store.get(Marketplace, marketplace_id))


@router.get("/{marketplace_id}/orders")
async def list_orders(
    marketplace_id: str,
    filter: Optional[str] = None,
    sort: Optional[str] = None,
    page: Optional[int] = Query(None, ge=0),
    page_size: Optional[int] = Query(None, ge=1),
    store: RecordStore = Depends(get_store),
    ctx: RequestContext = Depends(require_sync_role),
) -> List[dict[str, Any]]:
    """Orders as returned by the marketplace, with a readable status label."""
    query = OrdersQuery(filter=filter, sort=sort, page=page, page_size=page_size)
    async with await _client(store, marketplace_id) as client:
        orders = await client.get_orders(query)
    return [
        {**order.model_dump(mode="json"), "status_label": order_status_label(order.status.value)}
        for order in orders
    ]


@router.get("/{marketplace_id}/orders/{order_id}/entries")
async def list_order_entries(
    marketplace_id: str,
    order_id: str,
    store: RecordStore = Depends(get_store),
    ctx: RequestContext = Depends(require_sync_role),
):
    async with await _client(store, marketplace_id) as client:
        entries = await client.get_order_entries(order_id)
    return [entry.model_dump(mode="json") for entry in entries]


@router.post("/{marketplace_id}/orders/{order_id}/accept", status_code=204)
async def accept_order(
    marketplace_id: str,
    order_id: str,
    data: AcceptOrder,
    store: RecordStore = Depends(get_store),
    ctx: RequestContext = Depends(require_sync_role),
):
    """Accept an order; only orders still in NEW status can be accepted."""
    async with await _client(store, marketplace_id) as client:
        order = await client.find_order(order_id)
        if order is None:
            raise NotFoundError("orders", order_id)
        if order.status != OrderStatus.NEW:
            raise HTTPException(
                status_code=409,
                detail=f"Order {order.code} is {order.status.value}, only NEW orders can be accepted",
            )
        await client.accept_order(order_id, data.code)


@router.put("/{marketplace_id}/orders/{order_id}/status", status_code=204)
async def update_order_status(
    marketplace_id: str,
    order_id: str,
    data: StatusUpdate,
    store: RecordStore = Depends(get_store),
    ctx: RequestContext = Depends(require_sync_role),
):
    async with await _client(store, marketplace_id) as client:
        await client.update_order_status(order_id, data.status)


@router.delete("/{marketplace_id}/orders/{order_id}", status_code=204)
async def cancel_order(
    marketplace_id: str,
    order_id: str,
    store: RecordStore = Depends(get_store),
    ctx: RequestContext = Depends(require_sync_role),
):
    async with await _client(store, marketplace_id) as client:
        await client.cancel_order(order_id)


@router.post("/{marketplace_id}/orders/{order_id}/waybill", status_code=204)
async def create_waybill(
    marketplace_id: str,
    order_id: str,
    store: RecordStore = Depends(get_store),
    ctx: RequestContext = Depends(require_sync_role),
):
    async with await _client(store, marketplace_id) as client:
        await client.create_waybill(order_id)


@router.put("/{marketplace_id}/orders/{order_id}/imei", status_code=204)
async def set_imei(
    marketplace_id: str,
    order_id: str,
    data: ImeiUpdate,
    store: RecordStore = Depends(get_store),
    ctx: RequestContext = Depends(require_sync_role),
):
    async with await _client(store, marketplace_id) as client:
        await client.set_imei(order_id, data.imei)


@router.put("/{marketplace_id}/orders/{order_id}/entries/{entry_id}", status_code=204)
async def modify_order_entry(
    marketplace_id: str,
    order_id: str,
    entry_id: str,
    data: OrderEntryChanges,
    store: RecordStore = Depends(get_store),
    ctx: RequestContext = Depends(require_sync_role),
):
    async with await _client(store, marketplace_id) as client:
        await client.modify_order_entry(order_id, entry_id, data)


@router.get("/{marketplace_id}/categories")
async def list_categories(
    marketplace_id: str,
    store: RecordStore = Depends(get_store),
    ctx: RequestContext = Depends(require_sync_role),
):
    async with await _client(store, marketplace_id) as client:
        categories = await client.get_categories()
    return [c.model_dump(mode="json") for c in categories]


@router.get("/{marketplace_id}/categories/{category_code}/attributes")
async def list_category_attributes(
    marketplace_id: str,
    category_code: str,
    store: RecordStore = Depends(get_store),
    ctx: RequestContext = Depends(require_sync_role),
):
    async with await _client(store, marketplace_id) as client:
        attributes = await client.get_category_attributes(category_code)
    return [a.model_dump(mode="json") for a in attributes]


@router.get("/{marketplace_id}/product-schema")
async def product_schema(
    marketplace_id: str,
    store: RecordStore = Depends(get_store),
    ctx: RequestContext = Depends(require_sync_role),
):
    async with await _client(store, marketplace_id) as client:
        return await client.get_product_schema()


@router.post("/{marketplace_id}/products", response_model=UploadResult, status_code=201)
async def add_product(
    marketplace_id: str,
    data: ProductPayload,
    store: RecordStore = Depends(get_store),
    ctx: RequestContext = Depends(require_sync_role),
):
    """
    Submit one catalog card.

    Marketplaces in sandbox mode validate the card without sending it; a
    rejection by the marketplace comes back as 502 with its response text.
    """
    marketplace = await store.get(Marketplace, marketplace_id)
    catalog = catalog_for_marketplace(marketplace)
    try:
        return await catalog.add_product(data)
    finally:
        close = getattr(catalog, "close", None)
        if close is not None:
            await close()
