"""Order creation — turns a customer's cart into an order.

The whole checkout runs in one database transaction: the order and its item
snapshots are written, every cart line's stock is reserved, the discount
redemption is counted and the cart is emptied. If any step fails, nothing is
kept: no order row, no stock movement, no redemption, and the cart is left as
it was.
"""

import structlog
from protean import handle
from protean.fields import Identifier, String, Text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from fulfillment.shipping.method import ShippingMethod, get_shipping_method
from identity.customer.address import Address, AddressBook
from inventory.stock.ledger import StockLedger, StockLine
from ordering.cart.manager import CartSnapshot, build_snapshot, load_cart
from ordering.domain import ordering
from ordering.order.numbering import generate_order_number
from ordering.order.order import CustomerOrder, Order, OrderItem, OrderStatus, PaymentStatus
from ordering.pricing.discounts import count_user_redemptions
from ordering.pricing.engine import (
    DiscountQuote,
    check_shipping_country,
    compute_discount,
    compute_shipping_cost,
    compute_tax,
    compute_total,
    compute_weight,
)
from promotions.discount.code import claim_usage, find_by_code, normalize_code
from shared.config import get_settings
from shared.db import unit_of_work
from shared.exceptions import (
    DiscountError,
    EmptyCart,
    InsufficientStock,
    InternalError,
    ShippingUnavailable,
)

logger = structlog.get_logger(__name__)


@ordering.command(part_of="CustomerOrder")
class CreateOrder:
    user_id = Identifier(required=True)
    shipping_address_id = Identifier(required=True)
    shipping_method_id = Identifier()
    discount_code = String(max_length=50)
    payment_method = String(max_length=50, default="card")
    notes = Text()


@ordering.command_handler(part_of=CustomerOrder)
class CreateOrderHandler:
    @handle(CreateOrder)
    def create_order(self, command: CreateOrder) -> Order:
        """Place an order for everything in the user's cart.

        Raises:
            AddressNotFound / ShippingMethodNotFound (404), EmptyCart,
            InsufficientStock, ShippingUnavailable, WeightExceeded (400).
            Discount problems never abort the checkout; the order is placed
            without a discount instead.
        """
        settings = get_settings()
        user_id = command.user_id

        with unit_of_work() as session:
            address = AddressBook(session).get_for_user(user_id, command.shipping_address_id)

            # Held until commit so a second checkout of the same cart waits
            cart = load_cart(session, user_id, lock=True)
            if cart is None or cart.is_empty:
                raise EmptyCart()

            snapshot = build_snapshot(cart)
            self._check_availability(snapshot)

            subtotal = snapshot.subtotal
            shipping_method, shipping_cost = self._price_shipping(session, command.shipping_method_id, address, snapshot)
            quote = self._redeem_discount(session, user_id, command.discount_code, snapshot)
            tax = compute_tax(subtotal)
            discount_amount = quote.amount if quote else 0.0
            total = compute_total(subtotal, shipping_cost, discount_amount, tax)

            order = Order(
                user_id=user_id,
                shipping_address_id=address.id,
                contact_email=address.email,
                contact_phone=address.phone,
                shipping_method_id=shipping_method.id if shipping_method else None,
                shipping_method_name=shipping_method.name if shipping_method else None,
                shipping_cost=shipping_cost,
                subtotal=subtotal,
                discount_code=quote.code if quote else None,
                discount_amount=discount_amount,
                tax=tax,
                total=total,
                currency=settings.currency,
                status=OrderStatus.PENDING.value,
                payment_status=PaymentStatus.PENDING.value,
                payment_method=command.payment_method or "card",
                notes=command.notes,
                items=[
                    OrderItem(
                        line_number=number,
                        product_id=line.product_id,
                        variant_id=line.variant_id,
                        product_title=line.title,
                        product_brand=line.brand or "",
                        size=line.size,
                        color=line.color,
                        quantity=line.quantity,
                        price=line.unit_price,
                        subtotal=line.line_total,
                    )
                    for number, line in enumerate(snapshot.lines, start=1)
                ],
            )
            self._insert_with_unique_number(session, order, settings.order_number_attempts)

            StockLedger(session).reserve_lines(
                [StockLine(line.product_id, line.variant_id, line.quantity) for line in snapshot.lines]
            )

            cart.clear()
            session.flush()

            logger.info(
                "Order placed",
                order_id=order.id,
                order_number=order.order_number,
                user_id=user_id,
                lines=len(order.items),
                subtotal=subtotal,
                shipping_cost=shipping_cost,
                discount_amount=discount_amount,
                total=total,
            )
            return order

    # -------------------------------------------------------------------
    # Checkout steps
    # -------------------------------------------------------------------
    @staticmethod
    def _check_availability(snapshot: CartSnapshot) -> None:
        """Fail fast on lines the shelf can no longer cover.

        The reservation that follows is still the authoritative check.
        """
        for line in snapshot.lines:
            if line.quantity > line.available_stock:
                raise InsufficientStock(
                    line.title,
                    line.available_stock,
                    product_id=line.product_id,
                    variant_id=line.variant_id,
                )

    @staticmethod
    def _price_shipping(
        session: Session,
        method_id: str | None,
        address: Address,
        snapshot: CartSnapshot,
    ) -> tuple[ShippingMethod | None, float]:
        if not method_id:
            return None, 0.0

        method = get_shipping_method(session, method_id)
        if not method.is_active:
            raise ShippingUnavailable({"shipping_method_id": ["Selected shipping method is not active"]})

        check_shipping_country(method, address.country)
        cost = compute_shipping_cost(method, snapshot.subtotal, compute_weight(snapshot.lines))
        return method, cost

    @staticmethod
    def _redeem_discount(
        session: Session,
        user_id: str,
        code: str | None,
        snapshot: CartSnapshot,
    ) -> DiscountQuote | None:
        """Price and claim the discount code, or return None if it cannot be used."""
        if not code or not code.strip():
            return None

        discount = find_by_code(session, code)
        user_usage = count_user_redemptions(session, user_id, discount.code) if discount is not None else 0

        try:
            quote = compute_discount(
                discount,
                snapshot.subtotal,
                category_ids=[line.category_id for line in snapshot.lines if line.category_id],
                product_ids=[line.product_id for line in snapshot.lines],
                user_usage=user_usage,
            )
        except DiscountError as exc:
            logger.info("Discount not applied", code=normalize_code(code), reason=exc.code, user_id=user_id)
            return None

        if not claim_usage(session, discount):
            logger.info("Discount not applied", code=discount.code, reason="UsageLimitReached", user_id=user_id)
            return None
        return quote

    @staticmethod
    def _insert_with_unique_number(session: Session, order: Order, attempts: int) -> None:
        """Insert ``order``, drawing a fresh number whenever one is already taken."""
        for attempt in range(1, attempts + 1):
            order.order_number = generate_order_number()
            try:
                with session.begin_nested():
                    session.add(order)
                    session.flush()
                return
            except IntegrityError:
                logger.warning("Order number collision", order_number=order.order_number, attempt=attempt)

        raise InternalError(f"Could not allocate a unique order number after {attempts} attempts")
