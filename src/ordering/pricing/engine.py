"""Checkout arithmetic: subtotal, shipping, discount, tax and total.

Everything here is a pure function of its arguments. Records are read through
their attributes only, so the functions accept ORM rows and plain stand-ins
alike, and nothing is ever written back.

Ordering matters: the subtotal is computed first, shipping and discount are
both derived from it (a percentage discount never applies to shipping), and
the total is assembled last.
"""

from collections.abc import Iterable
from datetime import UTC, datetime
from typing import NamedTuple, Protocol

from promotions.discount.code import DiscountType
from shared.exceptions import (
    BelowMinimum,
    CodeExpired,
    CodeInvalid,
    NotApplicable,
    ShippingUnavailable,
    UsageLimitReached,
    WeightExceeded,
)


class PricedLine(Protocol):
    unit_price: float
    quantity: int


class DiscountQuote(NamedTuple):
    code: str
    amount: float


def _money(amount: float) -> float:
    return round(amount, 2)


def resolve_unit_price(product_price: float, variant_price: float | None = None) -> float:
    """A variant's own price wins over the product's base price."""
    if variant_price is not None:
        return variant_price
    return product_price


def compute_subtotal(lines: Iterable[PricedLine]) -> float:
    return _money(sum(line.unit_price * line.quantity for line in lines))


def compute_weight(lines: Iterable) -> float:
    """Total shipping weight in kg; lines without a known weight count as zero."""
    return sum((getattr(line, "weight", None) or 0.0) * line.quantity for line in lines)


def check_shipping_country(method, country: str | None) -> None:
    allowed = [c.lower() for c in (method.available_countries or [])]
    if allowed and (not country or country.lower() not in allowed):
        raise ShippingUnavailable({"shipping_method_id": [f"{method.name} does not ship to {country}"]})


def compute_shipping_cost(method, subtotal: float, weight: float | None = None) -> float:
    """Shipping cost for ``method``.

    Free once the subtotal reaches the method's free-shipping threshold
    (a threshold of 0 means there is none); otherwise the base cost plus the
    per-kilogram rate for ``weight``.

    Raises:
        WeightExceeded: ``weight`` is above the method's ``max_weight``.
    """
    weight = weight or 0.0
    if method.max_weight is not None and weight > method.max_weight:
        raise WeightExceeded(
            {"weight": [f"Order weight {weight:g}kg exceeds {method.max_weight:g}kg limit for {method.name}"]}
        )

    if (method.min_order_value or 0.0) > 0 and subtotal >= method.min_order_value:
        return 0.0

    return _money(method.base_cost + (method.cost_per_kg or 0.0) * weight)


def compute_discount(
    code,
    subtotal: float,
    category_ids: Iterable[str] = (),
    product_ids: Iterable[str] = (),
    user_usage: int = 0,
    now: datetime | None = None,
) -> DiscountQuote:
    """Validate ``code`` against the order and price it.

    ``user_usage`` is how many times the ordering customer has already
    redeemed the code. Checks run in a fixed order, and the first failure
    is raised as a ``DiscountError`` subclass.
    """
    if code is None or not code.is_active:
        raise CodeInvalid({"discount_code": ["Invalid discount code"]})

    now = now or datetime.now(UTC)
    if now < code.valid_from or now > code.valid_until:
        raise CodeExpired({"discount_code": [f"Discount code {code.code} is not valid at this time"]})

    if code.usage_limit is not None and code.usage_count >= code.usage_limit:
        raise UsageLimitReached({"discount_code": [f"Discount code {code.code} has reached its usage limit"]})

    if code.user_limit and user_usage >= code.user_limit:
        raise UsageLimitReached({"discount_code": [f"You have already used discount code {code.code}"]})

    if subtotal < (code.min_order_value or 0.0):
        raise BelowMinimum({"discount_code": [f"Minimum order value of {code.min_order_value:g} required"]})

    allowed_categories = set(code.applicable_category_ids or [])
    allowed_products = set(code.applicable_product_ids or [])
    if allowed_categories or allowed_products:
        matches = (allowed_categories & set(category_ids)) or (allowed_products & set(product_ids))
        if not matches:
            raise NotApplicable({"discount_code": [f"Discount code {code.code} does not apply to these items"]})

    if code.discount_type == DiscountType.PERCENTAGE.value:
        amount = subtotal * code.discount_value / 100
        if code.max_discount is not None:
            amount = min(amount, code.max_discount)
    else:
        amount = code.discount_value

    return DiscountQuote(code=code.code, amount=_money(max(0.0, min(amount, subtotal))))


def compute_tax(subtotal: float) -> float:  # noqa: ARG001
    """Tax is not charged yet."""
    return 0.0


def compute_total(subtotal: float, shipping_cost: float, discount_amount: float, tax: float = 0.0) -> float:
    return _money(subtotal + shipping_cost - discount_amount + tax)
