"""Pricing rule evaluation and price-change classification."""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Optional, Union

Number = Union[Decimal, int, float]


class PricingAction(str, Enum):
    """How a pricing rule transforms the current price."""

    MULTIPLY = "multiply"  # new = current * value
    ADD = "add"  # new = current + value


class PriceStatus(str, Enum):
    """Classification of a product's price change."""

    INCREASED = "increased"
    DECREASED = "decreased"
    UNCHANGED = "unchanged"
    MISSING = "missing"  # no marketplace listing matched; set by the caller


# Display order: actionable price changes first, unknown statuses last
STATUS_ORDER = {
    PriceStatus.INCREASED.value: 0,
    PriceStatus.DECREASED.value: 1,
    PriceStatus.UNCHANGED.value: 2,
    PriceStatus.MISSING.value: 3,
}


def _to_decimal(value: Number) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def compute_new_price(
    current_price: Optional[Number],
    action: Union[PricingAction, str, None],
    value: Number,
) -> Optional[Decimal]:
    """
    Compute a new price from the current price and a pricing rule.

    Args:
        current_price: Current price, None when the product has no price
        action: ``multiply`` or ``add``; any other value leaves the price as is
        value: Factor or addend

    Returns:
        The transformed price, or None when there is no current price
    """
    if current_price is None:
        return None

    current = _to_decimal(current_price)
    action_value = action.value if isinstance(action, PricingAction) else action

    if action_value == PricingAction.MULTIPLY.value:
        return current * _to_decimal(value)
    if action_value == PricingAction.ADD.value:
        return current + _to_decimal(value)
    return current


def classify_price_change(
    old_price: Optional[Number], new_price: Optional[Number]
) -> PriceStatus:
    """Compare the old and new price. Incomparable pairs are ``unchanged``."""
    if old_price is None or new_price is None:
        return PriceStatus.UNCHANGED

    old = _to_decimal(old_price)
    new = _to_decimal(new_price)
    if new > old:
        return PriceStatus.INCREASED
    if new < old:
        return PriceStatus.DECREASED
    return PriceStatus.UNCHANGED


def status_sort_key(status: Union[PriceStatus, str, None]) -> int:
    """Sort key placing increased < decreased < unchanged < missing < anything else."""
    value = status.value if isinstance(status, PriceStatus) else status
    return STATUS_ORDER.get(value, len(STATUS_ORDER))


def quantize_price(price: Optional[Decimal], places: int = 2) -> Optional[Decimal]:
    """Round a price to the storage precision (half up)."""
    if price is None:
        return None
    return price.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class PricingRule:
    """A pricing action plus its numeric parameter."""

    action: PricingAction = PricingAction.MULTIPLY
    value: Decimal = Decimal("1.0")

    def apply(self, current_price: Optional[Number]) -> Optional[Decimal]:
        return compute_new_price(current_price, self.action, self.value)
