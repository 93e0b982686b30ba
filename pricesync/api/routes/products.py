"""Product review, repricing and price list export routes."""

import logging
from decimal import Decimal
from pathlib import Path
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from pydantic import BaseModel, Field

from pricesync.api.deps import get_request_context, get_store, require_sync_role
from pricesync.auth import RequestContext
from pricesync.db.models import Marketplace, Product, StorageSettings
from pricesync.db.store import RecordStore
from pricesync.export.pricelist import export_csv, export_filename, export_xlsx, pricelist_rows
from pricesync.pricing.review import PriceReviewService
from pricesync.pricing.rules import PricingAction

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/products", tags=["products"])

MEDIA_TYPES = {
    "csv": "text/csv; charset=utf-8",
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
}


class PricingRequest(BaseModel):
    product_ids: List[str] = Field(min_length=1)
    action: PricingAction
    value: Decimal


class PricingResponse(BaseModel):
    updated: int
    statuses: dict[str, int]
    skipped_ids: List[str]


class ExportSaved(BaseModel):
    path: str
    rows: int


@router.get("")
async def list_products(
    supplier_id: Optional[str] = None,
    marketplace_id: Optional[str] = None,
    limit: int = Query(500, ge=1, le=5000),
    store: RecordStore = Depends(get_store),
    ctx: RequestContext = Depends(get_request_context),
):
    criteria = []
    if supplier_id:
        criteria.append(Product.supplier_id == supplier_id)
    if marketplace_id:
        criteria.append(Product.marketplace_id == marketplace_id)
    products = await store.select(
        Product, *criteria, order_by=[Product.supplier_article], limit=limit
    )
    return [
        {
            "id": p.id,
            "supplier_id": p.supplier_id,
            "supplier_article": p.supplier_article,
            "marketplace_id": p.marketplace_id,
            "marketplace_article": p.marketplace_article,
            "name_supplier": p.name_supplier,
            "name_marketplace": p.name_marketplace,
            "current_price": p.current_price,
            "new_price": p.new_price,
            "price_status": p.price_status,
            "last_updated": p.last_updated,
        }
        for p in products
    ]


@router.get("/review")
async def review(
    supplier_ids: List[str] = Query(..., min_length=1),
    store: RecordStore = Depends(get_store),
    ctx: RequestContext = Depends(require_sync_role),
):
    """Reconciled products of the selected suppliers, ordered by price status."""
    products = await PriceReviewService(store).load_review(supplier_ids)
    return [p.to_dict() for p in products]


@router.post("/pricing", response_model=PricingResponse)
async def apply_pricing(
    data: PricingRequest,
    store: RecordStore = Depends(get_store),
    ctx: RequestContext = Depends(require_sync_role),
):
    """Apply one pricing rule to the selected products."""
    result = await PriceReviewService(store).apply_pricing(data.product_ids, data.action, data.value)
    return PricingResponse(updated=result.updated, statuses=result.statuses, skipped_ids=result.skipped_ids)


async def _export_format(store: RecordStore, requested: Optional[str]) -> str:
    if requested:
        return requested
    storage = await store.first(StorageSettings, StorageSettings.is_active.is_(True))
    return storage.file_format if storage is not None else "xlsx"


async def _render(store: RecordStore, marketplace_id: str, file_format: str) -> tuple[bytes, int]:
    await store.get(Marketplace, marketplace_id)
    products = await store.select(
        Product, Product.marketplace_id == marketplace_id, order_by=[Product.name_marketplace]
    )
    rows = pricelist_rows(products)
    content = export_csv(rows) if file_format == "csv" else export_xlsx(rows)
    return content, len(rows)


@router.get("/export")
async def export_pricelist(
    marketplace_id: str,
    format: Optional[Literal["csv", "xlsx"]] = None,
    store: RecordStore = Depends(get_store),
    ctx: RequestContext = Depends(require_sync_role),
):
    """Download the marketplace's price list."""
    file_format = await _export_format(store, format)
    content, count = await _render(store, marketplace_id, file_format)
    filename = export_filename(file_format)
    logger.info(f"Exported {count} row(s) for marketplace {marketplace_id} as {file_format}")
    return Response(
        content=content,
        media_type=MEDIA_TYPES[file_format],
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/export/save", response_model=ExportSaved)
async def save_pricelist(
    marketplace_id: str,
    store: RecordStore = Depends(get_store),
    ctx: RequestContext = Depends(require_sync_role),
):
    """Write the price list into the active local storage directory."""
    storage = await store.first(StorageSettings, StorageSettings.is_active.is_(True))
    if storage is None or storage.storage_type != "local" or not storage.storage_path:
        raise HTTPException(status_code=409, detail="No active local storage configured")

    content, count = await _render(store, marketplace_id, storage.file_format)
    directory = Path(storage.storage_path)
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / export_filename(storage.file_format)
    path.write_bytes(content)
    logger.info(f"Saved price list ({count} rows) to {path}")
    return ExportSaved(path=str(path), rows=count)
