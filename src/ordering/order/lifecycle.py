"""Order lifecycle — cancellation, admin status changes, tracking and acceptance.

Every transition loads the order row with ``FOR UPDATE``, so a cancellation
racing an admin status change (or a second cancellation) waits for the first
to commit and then sees its result.
"""

from datetime import datetime

import structlog
from protean import handle
from protean.fields import Date, Identifier, String
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.orm import Session

from inventory.stock.ledger import StockLedger
from ordering.domain import ordering
from ordering.order.order import CustomerOrder, Order, OrderStatus, parse_payment_status, parse_status
from shared.db import unit_of_work
from shared.exceptions import ObjectNotFoundError, ValidationError

logger = structlog.get_logger(__name__)


@ordering.command(part_of="CustomerOrder")
class CancelOrder:
    user_id = Identifier(required=True)
    order_id = Identifier(required=True)


@ordering.command(part_of="CustomerOrder")
class UpdateOrderStatus:
    order_id = Identifier(required=True)
    status = String(max_length=20)
    payment_status = String(max_length=20)
    payment_reference = String(max_length=255)
    estimated_delivery = Date()


@ordering.command(part_of="CustomerOrder")
class AcceptOrder:
    user_id = Identifier(required=True)
    order_id = Identifier(required=True)


class TrackingStep(BaseModel):
    key: str
    label: str
    completed: bool
    completed_at: datetime | None = None


# (key, label, milestone that completes the step)
_TRACKING_STEPS = [
    ("packaging", "Packaging and branding from store", OrderStatus.CONFIRMED),
    ("checking", "Checking goods", OrderStatus.PROCESSING),
    ("shipping", "Shipping", OrderStatus.SHIPPED),
    ("delivery", "Delivery", OrderStatus.DELIVERED),
]


def tracking_checklist(order: Order) -> list[TrackingStep]:
    """Delivery milestones shown to the customer, derived from the order status.

    A step reached without a recorded timestamp reports the order's last
    update time. "Ready for pick up" completes only when the customer accepts
    the delivered order.
    """
    steps = []
    for key, label, milestone in _TRACKING_STEPS:
        completed = order.has_reached(milestone)
        completed_at = None
        if completed:
            completed_at = order.milestone_reached_at(milestone) or order.updated_at
        steps.append(TrackingStep(key=key, label=label, completed=completed, completed_at=completed_at))

    steps.append(
        TrackingStep(
            key="ready_for_pickup",
            label="Ready for pick up",
            completed=order.ready_for_pickup_at is not None,
            completed_at=order.ready_for_pickup_at,
        )
    )
    return steps


def load_order(session: Session, order_id: str, user_id: str | None = None, lock: bool = False) -> Order:
    """Fetch an order, optionally restricted to its owner.

    ``lock`` holds the row until the surrounding transaction ends.
    """
    query = select(Order).where(Order.id == order_id)
    if user_id is not None:
        query = query.where(Order.user_id == user_id)
    if lock:
        query = query.with_for_update()

    order = session.scalar(query)
    if order is None:
        raise ObjectNotFoundError({"order_id": ["Order not found"]}, code="OrderNotFound")
    return order


@ordering.command_handler(part_of=CustomerOrder)
class OrderLifecycleHandler:
    @handle(CancelOrder)
    def cancel_order(self, command: CancelOrder) -> Order:
        """Cancel a pending or confirmed order and put its stock back."""
        with unit_of_work() as session:
            order = load_order(session, command.order_id, command.user_id, lock=True)
            order.cancel()

            ledger = StockLedger(session)
            for item in order.items:
                ledger.release(item.product_id, item.variant_id, item.quantity)

            session.flush()
            logger.info(
                "Order cancelled",
                order_id=order.id,
                order_number=order.order_number,
                user_id=command.user_id,
                released_lines=len(order.items),
            )
            return order

    @handle(UpdateOrderStatus)
    def update_order_status(self, command: UpdateOrderStatus) -> Order:
        """Admin update of status, payment status and delivery estimate.

        Status may only move forward along the fulfilment chain; skipping
        steps is allowed. Cancelling and refunding have their own paths.
        """
        if not any(
            value is not None
            for value in (command.status, command.payment_status, command.payment_reference, command.estimated_delivery)
        ):
            raise ValidationError({"status": ["Nothing to update"]})

        target = parse_status(command.status) if command.status else None
        payment_status = parse_payment_status(command.payment_status) if command.payment_status else None

        with unit_of_work() as session:
            order = load_order(session, command.order_id, lock=True)
            previous = order.status

            if target is not None and order.advance_to(target):
                logger.info(
                    "Order status changed",
                    order_id=order.id,
                    order_number=order.order_number,
                    from_status=previous,
                    to_status=order.status,
                )

            if payment_status is not None or command.payment_reference:
                new_payment_status = payment_status or parse_payment_status(order.payment_status)
                order.set_payment_status(new_payment_status, command.payment_reference)
                logger.info("Payment status recorded", order_id=order.id, payment_status=order.payment_status)

            if command.estimated_delivery is not None:
                order.estimated_delivery = command.estimated_delivery

            session.flush()
            return order

    @handle(AcceptOrder)
    def accept_order(self, command: AcceptOrder) -> Order:
        """Customer marks a delivered order as received."""
        with unit_of_work() as session:
            order = load_order(session, command.order_id, command.user_id, lock=True)
            order.accept()
            session.flush()

            logger.info(
                "Order accepted",
                order_id=order.id,
                order_number=order.order_number,
                user_id=command.user_id,
            )
            return order
