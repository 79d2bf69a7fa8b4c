"""Order aggregate — the immutable result of a checkout.

Totals, contact details and line items are captured once, when the order is
placed, and never re-derived. Afterwards only status fields move.

State Machine:
    PENDING → CONFIRMED → PROCESSING → SHIPPED → DELIVERED
    CANCELLED (from PENDING, CONFIRMED)
    REFUNDED (terminal; reached through a refunded dispute)

Payment status is an independent field:
    PENDING | PAID | FAILED | REFUNDED
"""

from datetime import date, datetime
from enum import Enum

from protean.fields import Identifier
from sqlalchemy import (
    CheckConstraint,
    Date,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    event,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ordering.domain import ordering
from shared.db import Base, UTCDateTime, new_id, utcnow
from shared.exceptions import InternalError, InvalidTransition, ValidationError


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class OrderStatus(Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class PaymentStatus(Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


# Position along the fulfilment chain; admins may only move forward
_PROGRESSION = [
    OrderStatus.PENDING,
    OrderStatus.CONFIRMED,
    OrderStatus.PROCESSING,
    OrderStatus.SHIPPED,
    OrderStatus.DELIVERED,
]
_RANK = {status: rank for rank, status in enumerate(_PROGRESSION)}

# States from which the customer may cancel
_CANCELLABLE_STATES = {OrderStatus.PENDING, OrderStatus.CONFIRMED}

_TERMINAL_STATES = {OrderStatus.CANCELLED, OrderStatus.REFUNDED}

# Milestone timestamp column stamped when each status is reached
_MILESTONE_COLUMNS = {
    OrderStatus.CONFIRMED: "confirmed_at",
    OrderStatus.PROCESSING: "processing_at",
    OrderStatus.SHIPPED: "shipped_at",
    OrderStatus.DELIVERED: "delivered_at",
}


# ---------------------------------------------------------------------------
# Aggregate Root
# ---------------------------------------------------------------------------
class Order(Base):
    __tablename__ = "orders"
    __table_args__ = (
        CheckConstraint("discount_amount <= subtotal", name="ck_orders_discount_within_subtotal"),
        CheckConstraint("total >= 0", name="ck_orders_total_non_negative"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    order_number: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    shipping_address_id: Mapped[str] = mapped_column(String(36), nullable=False)
    contact_email: Mapped[str] = mapped_column(String(255), nullable=False)
    contact_phone: Mapped[str] = mapped_column(String(30), nullable=False)
    shipping_method_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    shipping_method_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    shipping_cost: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    subtotal: Mapped[float] = mapped_column(Float, nullable=False)
    discount_code: Mapped[str | None] = mapped_column(String(50), nullable=True)
    discount_amount: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    tax: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    total: Mapped[float] = mapped_column(Float, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="NGN", nullable=False)
    status: Mapped[str] = mapped_column(String(20), default=OrderStatus.PENDING.value, nullable=False, index=True)
    payment_status: Mapped[str] = mapped_column(String(20), default=PaymentStatus.PENDING.value, nullable=False)
    payment_method: Mapped[str | None] = mapped_column(String(50), nullable=True)
    payment_reference: Mapped[str | None] = mapped_column(String(255), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    estimated_delivery: Mapped[date | None] = mapped_column(Date, nullable=True)
    dispute_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    confirmed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    processing_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    shipped_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    delivered_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    ready_for_pickup_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, onupdate=utcnow)

    items: Mapped[list["OrderItem"]] = relationship(
        back_populates="order",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="OrderItem.line_number",
    )

    # -------------------------------------------------------------------
    # State transition helpers
    # -------------------------------------------------------------------
    @property
    def order_status(self) -> OrderStatus:
        return OrderStatus(self.status)

    @property
    def display_status(self) -> str:
        if self.order_status == OrderStatus.DELIVERED:
            return "Completed"
        return self.status.capitalize()

    @property
    def is_cancellable(self) -> bool:
        return self.order_status in _CANCELLABLE_STATES

    def has_reached(self, milestone: OrderStatus) -> bool:
        """Whether the order has passed ``milestone`` on the fulfilment chain.

        Cancelled and refunded orders keep the milestones they had recorded.
        """
        current = self.order_status
        if current in _RANK:
            return _RANK[current] >= _RANK[milestone]
        column = _MILESTONE_COLUMNS.get(milestone)
        return column is not None and getattr(self, column) is not None

    def milestone_reached_at(self, milestone: OrderStatus) -> datetime | None:
        column = _MILESTONE_COLUMNS.get(milestone)
        return getattr(self, column) if column else None

    def _stamp_milestones(self, target: OrderStatus, now: datetime) -> None:
        for status in _PROGRESSION[1 : _RANK[target] + 1]:
            column = _MILESTONE_COLUMNS[status]
            if getattr(self, column) is None:
                setattr(self, column, now)

    # -------------------------------------------------------------------
    # Order lifecycle transitions
    # -------------------------------------------------------------------
    def cancel(self) -> None:
        """Cancel the order. Only allowed before processing starts."""
        if not self.is_cancellable:
            raise InvalidTransition({"status": [f"Cannot cancel order with status: {self.status}"]})

        now = utcnow()
        self.status = OrderStatus.CANCELLED.value
        self.cancelled_at = now
        self.updated_at = now

    def advance_to(self, target: OrderStatus) -> bool:
        """Move forward along the fulfilment chain, possibly skipping steps.

        Returns False when the order is already in ``target``.
        """
        current = self.order_status
        if target == current:
            return False

        if current in _TERMINAL_STATES:
            raise InvalidTransition({"status": [f"Order is {current.value} and can no longer change status"]})
        if target not in _RANK:
            raise InvalidTransition({"status": [f"Cannot set status to {target.value} directly"]})
        if _RANK[target] < _RANK[current]:
            raise InvalidTransition({"status": [f"Cannot transition from {current.value} to {target.value}"]})

        now = utcnow()
        self._stamp_milestones(target, now)
        self.status = target.value
        self.updated_at = now
        return True

    def set_payment_status(self, payment_status: PaymentStatus, reference: str | None = None) -> None:
        self.payment_status = payment_status.value
        if reference:
            self.payment_reference = reference
        self.updated_at = utcnow()

    def accept(self) -> None:
        """Customer confirms receipt; only a delivered order can be accepted."""
        if self.order_status != OrderStatus.DELIVERED:
            raise InvalidTransition({"status": ["Order must be delivered before it can be accepted"]})

        if self.ready_for_pickup_at is None:
            now = utcnow()
            self.ready_for_pickup_at = now
            self.updated_at = now

    def refund(self) -> None:
        """Force the order into the refunded state after a refunded dispute."""
        now = utcnow()
        self.status = OrderStatus.REFUNDED.value
        self.payment_status = PaymentStatus.REFUNDED.value
        self.updated_at = now

    def attach_dispute(self, dispute_id: str) -> None:
        self.dispute_id = dispute_id
        self.updated_at = utcnow()

    def __repr__(self):
        return f"<Order {self.order_number} {self.status}>"


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
class OrderItem(Base):
    """A line of an order, copied from the cart and catalogue at checkout.

    Product title, brand, size, color and price are snapshots, so the order
    stays auditable when the product is later edited or deleted. Rows are
    written once and never updated.
    """

    __tablename__ = "order_items"
    __table_args__ = (CheckConstraint("quantity >= 1", name="ck_order_items_quantity_positive"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    order_id: Mapped[str] = mapped_column(String(36), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    line_number: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    product_id: Mapped[str] = mapped_column(String(36), nullable=False)
    variant_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    product_title: Mapped[str] = mapped_column(String(255), nullable=False)
    product_brand: Mapped[str | None] = mapped_column(String(100), nullable=True)
    size: Mapped[str | None] = mapped_column(String(50), nullable=True)
    color: Mapped[str | None] = mapped_column(String(50), nullable=True)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    price: Mapped[float] = mapped_column(Float, nullable=False)
    subtotal: Mapped[float] = mapped_column(Float, nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)

    order: Mapped[Order] = relationship(back_populates="items")


@event.listens_for(OrderItem, "before_update")
def _reject_order_item_update(_mapper, _connection, target):
    raise InternalError(f"Order item {target.id} is immutable")


@ordering.aggregate
class CustomerOrder:
    """Stream that checkout and order lifecycle commands are addressed to.

    Order state is kept in the ``orders`` and ``order_items`` tables above.
    """

    user_id = Identifier()


def parse_status(value: str, field: str = "status") -> OrderStatus:
    try:
        return OrderStatus(value)
    except ValueError:
        raise ValidationError({field: [f"Invalid status: {value}"]}) from None


def parse_payment_status(value: str, field: str = "payment_status") -> PaymentStatus:
    try:
        return PaymentStatus(value)
    except ValueError:
        raise ValidationError({field: [f"Invalid payment status: {value}"]}) from None
