"""Discount code lookups that need the customer's order history."""

from sqlalchemy import func, select
from sqlalchemy.orm import Session, sessionmaker

from ordering.order.order import Order, OrderStatus
from ordering.pricing.engine import DiscountQuote, compute_discount
from promotions.discount.code import DiscountCode, find_by_code
from shared.db import get_session_factory, unit_of_work


def count_user_redemptions(session: Session, user_id: str, code: str) -> int:
    """Orders (not cancelled) in which ``user_id`` already used ``code``."""
    return session.scalar(
        select(func.count(Order.id)).where(
            Order.user_id == user_id,
            Order.discount_code == code,
            Order.status != OrderStatus.CANCELLED.value,
        )
    )


def validate_discount(
    user_id: str,
    code: str,
    order_value: float,
    product_ids: list[str] | None = None,
    category_ids: list[str] | None = None,
    session_factory: sessionmaker | None = None,
) -> tuple[DiscountCode, DiscountQuote]:
    """Check a code before checkout without redeeming it.

    Unlike checkout, every rejection is raised to the caller.
    """
    with unit_of_work(session_factory or get_session_factory()) as session:
        discount = find_by_code(session, code)
        user_usage = count_user_redemptions(session, user_id, discount.code) if discount is not None else 0
        quote = compute_discount(
            discount,
            order_value,
            category_ids=category_ids or (),
            product_ids=product_ids or (),
            user_usage=user_usage,
        )
        return discount, quote
