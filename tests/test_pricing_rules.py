"""Tests for pricing rule evaluation and price-change classification."""

from decimal import Decimal

import pytest

from pricesync.pricing.rules import (
    PriceStatus,
    PricingAction,
    PricingRule,
    classify_price_change,
    compute_new_price,
    quantize_price,
    status_sort_key,
)


@pytest.mark.parametrize(
    "current, action, value, expected",
    [
        (Decimal("1000"), PricingAction.MULTIPLY, Decimal("1.1"), Decimal("1100.0")),
        (Decimal("1000"), "multiply", 0.9, Decimal("900.0")),
        (Decimal("250.50"), PricingAction.ADD, Decimal("49.50"), Decimal("300.00")),
        (100, "add", -20, Decimal("80")),
    ],
)
def test_compute_new_price(current, action, value, expected):
    assert compute_new_price(current, action, value) == expected


def test_compute_new_price_without_current_price():
    assert compute_new_price(None, PricingAction.MULTIPLY, Decimal("2")) is None
    assert compute_new_price(None, PricingAction.ADD, Decimal("2")) is None


def test_unknown_action_keeps_price():
    assert compute_new_price(Decimal("500"), "discount", Decimal("10")) == Decimal("500")
    assert compute_new_price(Decimal("500"), None, Decimal("10")) == Decimal("500")


def test_float_inputs_do_not_leak_binary_error():
    """0.1 + 0.2 style errors must not appear in stored prices."""
    assert compute_new_price(0.1, "add", 0.2) == Decimal("0.3")


def test_rule_is_pure():
    rule = PricingRule(PricingAction.MULTIPLY, Decimal("1.15"))
    original = Decimal("2000")
    assert rule.apply(original) == rule.apply(original) == Decimal("2300.00")
    assert original == Decimal("2000")


@pytest.mark.parametrize(
    "old, new, expected",
    [
        (Decimal("100"), Decimal("110"), PriceStatus.INCREASED),
        (Decimal("100"), Decimal("90"), PriceStatus.DECREASED),
        (Decimal("100"), Decimal("100.00"), PriceStatus.UNCHANGED),
        (None, Decimal("100"), PriceStatus.UNCHANGED),
        (Decimal("100"), None, PriceStatus.UNCHANGED),
    ],
)
def test_classify_price_change(old, new, expected):
    assert classify_price_change(old, new) == expected


def test_classifier_matches_strict_comparison():
    prices = [Decimal("0"), Decimal("9.99"), Decimal("10"), Decimal("10.01")]
    for old in prices:
        for new in prices:
            status = classify_price_change(old, new)
            expected = (
                PriceStatus.INCREASED if new > old
                else PriceStatus.DECREASED if new < old
                else PriceStatus.UNCHANGED
            )
            assert status == expected


def test_status_sort_order():
    statuses = ["missing", "something", "unchanged", "increased", None, "decreased"]
    ordered = sorted(statuses, key=status_sort_key)
    assert ordered[:4] == ["increased", "decreased", "unchanged", "missing"]
    assert set(ordered[4:]) == {"something", None}


def test_quantize_price_rounds_half_up():
    assert quantize_price(Decimal("1100.005")) == Decimal("1100.01")
    assert quantize_price(Decimal("1100.0")) == Decimal("1100.00")
    assert quantize_price(None) is None


def test_rule_defaults_and_apply():
    rule = PricingRule()
    assert rule.action == PricingAction.MULTIPLY
    assert rule.apply(Decimal("250")) == Decimal("250")

    assert PricingRule(PricingAction.ADD, Decimal("150")).apply(1000) == Decimal("1150")
