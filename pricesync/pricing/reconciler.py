"""Join supplier product rows to marketplace product rows by article."""

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterable, Optional

from pricesync.db.models import Product

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


@dataclass
class EnrichedProduct:
    """A supplier product with the matched marketplace name and article."""

    id: str
    supplier_id: Optional[str]
    supplier_article: str
    marketplace_id: Optional[str]
    marketplace_article: Optional[str]
    name_supplier: str
    name_marketplace: Optional[str]
    display_name: str
    current_price: Optional[Decimal]
    new_price: Optional[Decimal]
    price_status: str
    pricing_action: Optional[str]
    pricing_value: Optional[Decimal]
    matched: bool

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "supplier_id": self.supplier_id,
            "supplier_article": self.supplier_article,
            "marketplace_id": self.marketplace_id,
            "marketplace_article": self.marketplace_article,
            "name_supplier": self.name_supplier,
            "name_marketplace": self.name_marketplace,
            "display_name": self.display_name,
            "current_price": self.current_price,
            "new_price": self.new_price,
            "price_status": self.price_status,
            "pricing_action": self.pricing_action,
            "pricing_value": self.pricing_value,
            "matched": self.matched,
        }


def _recency(product: Product) -> datetime:
    stamp = product.updated_at or product.last_updated
    if stamp is None:
        return _EPOCH
    if stamp.tzinfo is None:
        return stamp.replace(tzinfo=timezone.utc)
    return stamp


def build_article_index(marketplace_products: Iterable[Product]) -> dict[str, Product]:
    """
    Index marketplace rows by ``marketplace_article``.

    Rows without a marketplace link or article are ignored. When several rows
    share an article, the most recently updated row wins; rows with equal
    timestamps resolve to the one that comes later in the input.
    """
    index: dict[str, Product] = {}
    for row in marketplace_products:
        if row.marketplace_id is None or not row.marketplace_article:
            continue
        current = index.get(row.marketplace_article)
        if current is None or _recency(row) >= _recency(current):
            index[row.marketplace_article] = row
    return index


def reconcile(
    supplier_products: Iterable[Product],
    marketplace_products: Iterable[Product],
) -> list[EnrichedProduct]:
    """
    Enrich supplier products with their marketplace counterparts.

    Each supplier row is looked up by ``supplier_article`` in the marketplace
    index. The display name prefers a non-empty marketplace name over the
    supplier name. Inputs are not modified and supplier row ids are kept.
    """
    index = build_article_index(marketplace_products)
    enriched = []
    for product in supplier_products:
        match = index.get(product.supplier_article)
        name_marketplace = match.name_marketplace if match else None
        enriched.append(
            EnrichedProduct(
                id=product.id,
                supplier_id=product.supplier_id,
                supplier_article=product.supplier_article,
                marketplace_id=product.marketplace_id,
                marketplace_article=match.marketplace_article if match else None,
                name_supplier=product.name_supplier,
                name_marketplace=name_marketplace,
                display_name=name_marketplace or product.name_supplier,
                current_price=product.current_price,
                new_price=product.new_price,
                price_status=product.price_status or "unchanged",
                pricing_action=product.pricing_action,
                pricing_value=product.pricing_value,
                matched=match is not None,
            )
        )
    return enriched
