"""Cart read side — the shopper's basket priced against the current catalogue.

Prices and stock shown here are advisory. What a customer actually pays and
takes is settled at checkout.
"""

import structlog
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from ordering.cart.cart import Cart
from ordering.pricing.engine import compute_subtotal, resolve_unit_price
from shared.db import get_session_factory, unit_of_work

logger = structlog.get_logger(__name__)


class CartLine(BaseModel):
    """One priced cart line, read against the current catalogue."""

    item_id: str
    product_id: str
    variant_id: str | None = None
    title: str
    brand: str | None = None
    category_id: str | None = None
    size: str | None = None
    color: str | None = None
    quantity: int
    unit_price: float
    added_price: float
    line_total: float
    available_stock: int
    weight: float | None = None


class CartSnapshot(BaseModel):
    cart_id: str
    lines: list[CartLine]
    subtotal: float
    item_count: int
    total_units: int


def build_snapshot(cart: Cart) -> CartSnapshot:
    """Price every line of ``cart`` from the product and variant rows loaded with it."""
    lines = []
    for item in cart.items:
        product = item.product
        variant = item.variant
        unit_price = resolve_unit_price(product.price, variant.price if variant is not None else None)
        lines.append(
            CartLine(
                item_id=item.id,
                product_id=item.product_id,
                variant_id=item.variant_id,
                title=product.title,
                brand=product.brand,
                category_id=product.category_id,
                size=item.size,
                color=item.color,
                quantity=item.quantity,
                unit_price=unit_price,
                added_price=item.price,
                line_total=round(unit_price * item.quantity, 2),
                available_stock=variant.stock if variant is not None else product.stock,
                weight=product.weight,
            )
        )

    return CartSnapshot(
        cart_id=cart.id,
        lines=lines,
        subtotal=compute_subtotal(lines),
        item_count=len(lines),
        total_units=sum(line.quantity for line in lines),
    )


def load_cart(session: Session, user_id: str, lock: bool = False) -> Cart | None:
    """Fetch the user's cart; ``lock`` holds its row until the transaction ends."""
    query = select(Cart).where(Cart.user_id == user_id)
    if lock:
        query = query.with_for_update()
    return session.scalar(query)


def load_or_create_cart(session: Session, user_id: str) -> Cart:
    cart = load_cart(session, user_id)
    if cart is not None:
        return cart

    try:
        with session.begin_nested():
            cart = Cart(user_id=user_id)
            session.add(cart)
    except IntegrityError:
        # Another request created the cart first
        cart = load_cart(session, user_id)
    else:
        logger.info("Cart created", user_id=user_id, cart_id=cart.id)
    return cart


class CartManager:
    """Read side of the cart: the shopper's basket priced against the catalogue."""

    def __init__(self, session_factory: sessionmaker | None = None):
        self.session_factory = session_factory or get_session_factory()

    def get_or_create(self, user_id: str) -> Cart:
        with unit_of_work(self.session_factory) as session:
            return load_or_create_cart(session, user_id)

    def snapshot(self, user_id: str) -> CartSnapshot:
        with unit_of_work(self.session_factory) as session:
            return build_snapshot(load_or_create_cart(session, user_id))
