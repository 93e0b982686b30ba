"""Supplier management routes."""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field

from pricesync.api.deps import get_request_context, get_store, require_admin
from pricesync.auth import RequestContext
from pricesync.db.models import Marketplace, Supplier, SupplierCustomization
from pricesync.db.store import RecordStore

router = APIRouter(prefix="/api/suppliers", tags=["suppliers"])


class SupplierBase(BaseModel):
    name: str = Field(min_length=1)
    address: Optional[str] = None
    contact_email: Optional[str] = None
    contact_phone: Optional[str] = None
    api_endpoint: Optional[str] = None
    api_parameters: dict = Field(default_factory=dict)
    website_login: Optional[str] = None
    name_comparison_enabled: bool = False
    auto_name_update: bool = False
    one_by_one_mode: bool = False
    upload_to_all_marketplaces: bool = True
    is_active: bool = True
    sandbox_mode: bool = False


class SupplierCreate(SupplierBase):
    api_key: Optional[str] = None
    website_password: Optional[str] = None


class SupplierUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    address: Optional[str] = None
    contact_email: Optional[str] = None
    contact_phone: Optional[str] = None
    api_endpoint: Optional[str] = None
    api_key: Optional[str] = None
    api_parameters: Optional[dict] = None
    website_login: Optional[str] = None
    website_password: Optional[str] = None
    name_comparison_enabled: Optional[bool] = None
    auto_name_update: Optional[bool] = None
    one_by_one_mode: Optional[bool] = None
    upload_to_all_marketplaces: Optional[bool] = None
    is_active: Optional[bool] = None
    sandbox_mode: Optional[bool] = None


class SupplierResponse(SupplierBase):
    """Credentials are never echoed back; only whether they are set."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    has_api_key: bool
    created_at: datetime
    updated_at: datetime


class CustomizationUpdate(BaseModel):
    is_enabled: bool


class CustomizationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    supplier_id: str
    marketplace_id: str
    is_enabled: bool


def to_response(supplier: Supplier) -> SupplierResponse:
    data = {key: getattr(supplier, key) for key in SupplierResponse.model_fields if key != "has_api_key"}
    return SupplierResponse(has_api_key=bool(supplier.api_key), **data)


@router.get("", response_model=List[SupplierResponse])
async def list_suppliers(
    active_only: bool = False,
    store: RecordStore = Depends(get_store),
    ctx: RequestContext = Depends(get_request_context),
):
    """List suppliers by name."""
    criteria = [Supplier.is_active.is_(True)] if active_only else []
    suppliers = await store.select(Supplier, *criteria, order_by=[Supplier.name])
    return [to_response(s) for s in suppliers]


@router.get("/{supplier_id}", response_model=SupplierResponse)
async def get_supplier(
    supplier_id: str,
    store: RecordStore = Depends(get_store),
    ctx: RequestContext = Depends(get_request_context),
):
    return to_response(await store.get(Supplier, supplier_id))


@router.post("", response_model=SupplierResponse, status_code=201)
async def create_supplier(
    data: SupplierCreate,
    store: RecordStore = Depends(get_store),
    ctx: RequestContext = Depends(require_admin),
):
    supplier = await store.insert(Supplier, data.model_dump())
    return to_response(supplier)


@router.patch("/{supplier_id}", response_model=SupplierResponse)
async def update_supplier(
    supplier_id: str,
    data: SupplierUpdate,
    store: RecordStore = Depends(get_store),
    ctx: RequestContext = Depends(require_admin),
):
    supplier = await store.update(Supplier, supplier_id, data.model_dump(exclude_unset=True))
    return to_response(supplier)


@router.delete("/{supplier_id}", status_code=204)
async def delete_supplier(
    supplier_id: str,
    store: RecordStore = Depends(get_store),
    ctx: RequestContext = Depends(require_admin),
):
    """Delete a supplier; its products go with it."""
    await store.delete(Supplier, supplier_id)


@router.get("/{supplier_id}/marketplaces", response_model=List[CustomizationResponse])
async def list_customizations(
    supplier_id: str,
    store: RecordStore = Depends(get_store),
    ctx: RequestContext = Depends(get_request_context),
):
    """Per-marketplace upload switches of a supplier."""
    await store.get(Supplier, supplier_id)
    return await store.select(
        SupplierCustomization, SupplierCustomization.supplier_id == supplier_id
    )


@router.put("/{supplier_id}/marketplaces/{marketplace_id}", response_model=CustomizationResponse)
async def set_customization(
    supplier_id: str,
    marketplace_id: str,
    data: CustomizationUpdate,
    store: RecordStore = Depends(get_store),
    ctx: RequestContext = Depends(require_admin),
):
    await store.get(Supplier, supplier_id)
    await store.get(Marketplace, marketplace_id)
    existing = await store.first(
        SupplierCustomization,
        SupplierCustomization.supplier_id == supplier_id,
        SupplierCustomization.marketplace_id == marketplace_id,
    )
    if existing is None:
        return await store.insert(
            SupplierCustomization,
            {"supplier_id": supplier_id, "marketplace_id": marketplace_id, "is_enabled": data.is_enabled},
        )
    return await store.update(SupplierCustomization, existing.id, {"is_enabled": data.is_enabled})
