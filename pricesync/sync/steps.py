"""Step executors for download and upload runs."""

import logging
from typing import Callable, Optional, Sequence

from pricesync.db.models import Marketplace, Product, Supplier, SupplierCustomization, utcnow
from pricesync.db.store import RecordStore
from pricesync.marketplace.kaspi import MarketplaceCatalog, catalog_for_marketplace
from pricesync.pricing.review import load_marketplace_matches
from pricesync.sync.orchestrator import ProgressReporter, SyncTarget
from pricesync.sync.sources import SupplierItem, SupplierSource, source_for_supplier

logger = logging.getLogger(__name__)

SourceFactory = Callable[[Supplier], SupplierSource]
CatalogFactory = Callable[[Marketplace], MarketplaceCatalog]


class DownloadStepExecutor:
    """Fetch a supplier's items and upsert them as products of that supplier."""

    def __init__(self, store: RecordStore, source_factory: SourceFactory = source_for_supplier):
        self.store = store
        self.source_factory = source_factory

    async def __call__(self, target: SyncTarget, report: ProgressReporter) -> None:
        supplier = await self.store.get(Supplier, target.id)
        source = self.source_factory(supplier)
        try:
            items = await source.fetch_items()
        finally:
            await source.close()

        existing = await self.store.select(
            Product, Product.supplier_id == supplier.id, Product.marketplace_id.is_(None)
        )
        by_article = {p.supplier_article: p for p in existing}

        total = len(items)
        report(0, total)
        for done, item in enumerate(items, start=1):
            # Repeated articles in one feed update the same row
            by_article[item.article] = await self.upsert(supplier, item, by_article.get(item.article))
            report(done, total)

        logger.info(f"Downloaded {total} item(s) from supplier '{supplier.name}'")

    async def upsert(self, supplier: Supplier, item: SupplierItem, product: Optional[Product]) -> Product:
        """Insert a new product or refresh the price (and maybe name) of an existing one."""
        catalog = _catalog_fields(item)
        if product is None:
            return await self.store.insert(
                Product,
                {
                    "supplier_id": supplier.id,
                    "supplier_article": item.article,
                    "name_supplier": item.name,
                    "current_price": item.price,
                    "name_comparison_enabled": supplier.name_comparison_enabled,
                    "auto_name_update": supplier.auto_name_update,
                    "last_updated": utcnow(),
                    **catalog,
                },
            )

        patch = {"current_price": item.price, "last_updated": utcnow(), **catalog}
        if item.name != product.name_supplier:
            if product.auto_name_update or supplier.auto_name_update:
                patch["name_supplier"] = item.name
            elif product.name_comparison_enabled or supplier.name_comparison_enabled:
                logger.warning(
                    f"Name mismatch for {item.article}: "
                    f"stored '{product.name_supplier}' vs supplier '{item.name}'"
                )
        return await self.store.update(Product, product.id, patch)


def _catalog_fields(item: SupplierItem) -> dict:
    fields = {
        "brand": item.brand,
        "category_code": item.category,
        "description": item.description,
        "image_urls": item.images or None,
        "attributes": item.attributes or None,
    }
    return {key: value for key, value in fields.items() if value is not None}


def build_payload(product: Product, listing: Optional[Product] = None) -> dict:
    """
    Catalog card for a supplier product.

    The SKU and title prefer the matched listing's article and name; catalog
    fields fall back to the listing when the supplier row has none. The dict
    is validated by the catalog before submission.
    """
    def pick(field: str):
        value = getattr(product, field)
        if value in (None, "", []) and listing is not None:
            value = getattr(listing, field)
        return value

    title = (listing.name_marketplace if listing is not None else None) or product.name_supplier
    return {
        "sku": (listing.marketplace_article if listing is not None else None) or product.supplier_article,
        "title": title,
        "brand": pick("brand") or "",
        "category": pick("category_code") or "",
        "description": pick("description") or "",
        "images": [{"url": url} for url in (pick("image_urls") or [])],
        "attributes": [
            {"code": str(a.get("code", "")), "value": str(a.get("value", ""))}
            for a in (pick("attributes") or [])
        ],
    }


class UploadStepExecutor:
    """Submit the repriced products matched to a marketplace."""

    def __init__(
        self,
        store: RecordStore,
        catalog_factory: CatalogFactory = catalog_for_marketplace,
        product_ids: Optional[Sequence[str]] = None,
    ):
        self.store = store
        self.catalog_factory = catalog_factory
        self.product_ids = list(product_ids) if product_ids is not None else None

    def for_selection(self, product_ids: Optional[Sequence[str]]) -> "UploadStepExecutor":
        return UploadStepExecutor(self.store, self.catalog_factory, product_ids)

    async def __call__(self, target: SyncTarget, report: ProgressReporter) -> None:
        marketplace = await self.store.get(Marketplace, target.id)
        matches = await load_marketplace_matches(self.store, marketplace.id, self.product_ids)
        allowed = await self.allowed_suppliers(marketplace.id, {p.supplier_id for p, _ in matches})
        pending = [
            (p, listing) for p, listing in matches if p.new_price is not None and p.supplier_id in allowed
        ]

        catalog = self.catalog_factory(marketplace)
        total = len(pending)
        report(0, total)
        try:
            for done, (product, listing) in enumerate(pending, start=1):
                result = await catalog.add_product(build_payload(product, listing))
                await self.store.update(Product, product.id, {"last_updated": utcnow()})
                logger.debug(
                    f"Submitted {product.supplier_article} to '{marketplace.name}' "
                    f"(upload_code: {result.upload_code}, status: {result.status})"
                )
                report(done, total)
        finally:
            close = getattr(catalog, "close", None)
            if close is not None:
                await close()

        logger.info(f"Uploaded {total} product(s) to marketplace '{marketplace.name}'")

    async def allowed_suppliers(self, marketplace_id: str, supplier_ids: set) -> set:
        """
        Suppliers whose products may go to this marketplace.

        Suppliers uploading to all marketplaces pass unless switched off for
        this one; the rest pass only where explicitly switched on.
        """
        supplier_ids = {sid for sid in supplier_ids if sid is not None}
        if not supplier_ids:
            return set()
        suppliers = await self.store.select(Supplier, Supplier.id.in_(sorted(supplier_ids)))
        switches = await self.store.select(
            SupplierCustomization,
            SupplierCustomization.marketplace_id == marketplace_id,
            SupplierCustomization.supplier_id.in_(sorted(supplier_ids)),
        )
        enabled = {c.supplier_id: c.is_enabled for c in switches}
        return {
            s.id
            for s in suppliers
            if enabled.get(s.id, s.upload_to_all_marketplaces)
        }
