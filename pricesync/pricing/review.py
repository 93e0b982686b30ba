"""Manual price review: reconcile, reprice and classify a supplier selection."""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, Optional, Sequence, Union

from pricesync import metrics
from pricesync.config import settings
from pricesync.db.models import AutomationSettings, Marketplace, Product, utcnow
from pricesync.db.store import RecordStore
from pricesync.pricing.reconciler import EnrichedProduct, build_article_index, reconcile
from pricesync.pricing.rules import (
    PriceStatus,
    PricingAction,
    PricingRule,
    classify_price_change,
    quantize_price,
    status_sort_key,
)

logger = logging.getLogger(__name__)


def default_rule() -> PricingRule:
    return PricingRule(
        action=PricingAction(settings.default_pricing_action),
        value=Decimal(str(settings.default_pricing_value)),
    )


def resolve_rule(product: Product, marketplace: Optional[Marketplace] = None) -> PricingRule:
    """
    Pick the pricing rule for a product.

    The product's own rule wins when both action and value are set, then the
    marketplace default, then the configured default.
    """
    if product.pricing_action and product.pricing_value is not None:
        return PricingRule(PricingAction(product.pricing_action), Decimal(str(product.pricing_value)))
    if marketplace is not None and marketplace.pricing_action:
        return PricingRule(
            PricingAction(marketplace.pricing_action), Decimal(str(marketplace.pricing_value))
        )
    return default_rule()


def requires_manual_review(kind: str, automation: Optional[AutomationSettings]) -> bool:
    """True when a finished download run must pause for review before any upload."""
    if kind != "download":
        return False
    return automation is None or not automation.auto_mode_enabled


def sort_for_review(products: Iterable[EnrichedProduct]) -> list[EnrichedProduct]:
    """Stable sort by price status: increased, decreased, unchanged, missing, other."""
    return sorted(products, key=lambda p: status_sort_key(p.price_status))


@dataclass
class RepriceResult:
    """Outcome of applying a pricing rule to a selection."""

    updated: int = 0
    statuses: dict[str, int] = field(default_factory=dict)
    skipped_ids: list[str] = field(default_factory=list)


class PriceReviewService:
    """Builds the review list and writes repricing results back to the store."""

    def __init__(self, store: RecordStore):
        self.store = store

    async def load_review(self, supplier_ids: Sequence[str]) -> list[EnrichedProduct]:
        """Reconciled, status-sorted products of the given suppliers."""
        if not supplier_ids:
            return []
        supplier_products = await self.store.select(
            Product, Product.supplier_id.in_(list(supplier_ids))
        )
        if not supplier_products:
            return []

        articles = sorted({p.supplier_article for p in supplier_products})
        marketplace_products = await self.store.select(
            Product,
            Product.marketplace_article.in_(articles),
            Product.marketplace_id.is_not(None),
        )
        enriched = reconcile(supplier_products, marketplace_products)
        logger.info(
            "Review list for %d supplier(s): %d products, %d matched",
            len(supplier_ids),
            len(enriched),
            sum(1 for p in enriched if p.matched),
        )
        return sort_for_review(enriched)

    async def apply_pricing(
        self,
        product_ids: Sequence[str],
        action: Union[PricingAction, str],
        value: Union[Decimal, float, int],
    ) -> RepriceResult:
        """Apply one rule to the selected products, persisting each row separately."""
        rule = PricingRule(PricingAction(action), Decimal(str(value)))
        products = await self.store.select(Product, Product.id.in_(list(product_ids)))
        found = {p.id for p in products}
        result = RepriceResult(skipped_ids=[pid for pid in product_ids if pid not in found])

        matched_articles = await self._matched_articles(products)
        for product in products:
            if product.marketplace_id is None and product.supplier_article not in matched_articles:
                status = PriceStatus.MISSING
                new_price = quantize_price(rule.apply(product.current_price), settings.price_precision)
            else:
                new_price, status = self.reprice(product, rule)
            await self.store.update(
                Product,
                product.id,
                {
                    "new_price": new_price,
                    "pricing_action": rule.action.value,
                    "pricing_value": rule.value,
                    "price_status": status.value,
                    "last_updated": utcnow(),
                },
            )
            result.updated += 1
            result.statuses[status.value] = result.statuses.get(status.value, 0) + 1
            metrics.record_repriced(status.value)

        logger.info(
            "Applied %s %s to %d product(s): %s",
            rule.action.value,
            rule.value,
            result.updated,
            result.statuses,
        )
        return result

    async def reprice_with_resolved_rules(self, marketplace: Marketplace) -> RepriceResult:
        """Reprice supplier products matched to a marketplace with their own or inherited rule."""
        matches = await load_marketplace_matches(self.store, marketplace.id)
        result = RepriceResult()
        for product, _listing in matches:
            new_price, status = self.reprice(product, resolve_rule(product, marketplace))
            await self.store.update(
                Product,
                product.id,
                {"new_price": new_price, "price_status": status.value, "last_updated": utcnow()},
            )
            result.updated += 1
            result.statuses[status.value] = result.statuses.get(status.value, 0) + 1
            metrics.record_repriced(status.value)
        return result

    @staticmethod
    def reprice(product: Product, rule: PricingRule) -> tuple[Optional[Decimal], PriceStatus]:
        new_price = quantize_price(rule.apply(product.current_price), settings.price_precision)
        return new_price, classify_price_change(product.current_price, new_price)

    async def _matched_articles(self, products: Sequence[Product]) -> set[str]:
        articles = sorted({p.supplier_article for p in products if p.marketplace_id is None})
        if not articles:
            return set()
        rows = await self.store.select(
            Product,
            Product.marketplace_article.in_(articles),
            Product.marketplace_id.is_not(None),
        )
        return {row.marketplace_article for row in rows}


async def load_marketplace_matches(
    store: RecordStore,
    marketplace_id: str,
    product_ids: Optional[Sequence[str]] = None,
) -> list[tuple[Product, Product]]:
    """
    Supplier rows paired with the marketplace listing they reconcile to.

    Listings are the marketplace's own rows; supplier rows are unlinked rows
    whose ``supplier_article`` equals a listing's ``marketplace_article``.
    ``product_ids`` restricts the supplier rows to a selection.
    """
    listings = await store.select(
        Product,
        Product.marketplace_id == marketplace_id,
        Product.marketplace_article.is_not(None),
    )
    index = build_article_index(listings)
    if not index:
        return []

    criteria = [Product.marketplace_id.is_(None), Product.supplier_article.in_(sorted(index))]
    if product_ids is not None:
        criteria.append(Product.id.in_(list(product_ids)))
    supplier_rows = await store.select(Product, *criteria, order_by=[Product.supplier_article])
    return [(row, index[row.supplier_article]) for row in supplier_rows]
