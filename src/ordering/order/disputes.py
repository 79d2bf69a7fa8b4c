"""Order disputes — customers raise them, admins resolve them.

An order carries at most one open (pending or under review) dispute at a
time. Resolving a dispute as ``refunded`` forces the order itself into the
refunded state, whatever status it had reached.
"""

from datetime import datetime
from enum import Enum

from protean.fields import Identifier
from sqlalchemy import JSON, Float, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ordering.domain import ordering
from ordering.order.order import Order
from shared.db import Base, UTCDateTime, new_id, utcnow
from shared.exceptions import ValidationError


class DisputeReason(Enum):
    DIDNT_RECEIVE = "didnt_receive"
    TOOK_LONGER_THAN_EXPECTED = "took_longer_than_expected"
    NOT_WHAT_ORDERED = "not_what_ordered"
    DAMAGE_BAD_GOODS = "damage_bad_goods"
    APPLY_FOR_REFUND = "apply_for_refund"
    OTHERS = "others"


class DisputeStatus(Enum):
    PENDING = "pending"
    UNDER_REVIEW = "under_review"
    RESOLVED = "resolved"
    REJECTED = "rejected"
    REFUNDED = "refunded"


OPEN_STATES = {DisputeStatus.PENDING, DisputeStatus.UNDER_REVIEW}
CLOSING_STATES = {DisputeStatus.RESOLVED, DisputeStatus.REJECTED, DisputeStatus.REFUNDED}


class Dispute(Base):
    __tablename__ = "disputes"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    order_id: Mapped[str] = mapped_column(String(36), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    order_item_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("order_items.id"), nullable=True)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    goods_unique_id: Mapped[str] = mapped_column(String(100), nullable=False)
    reasons: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    detailed_explanation: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(String(20), default=DisputeStatus.PENDING.value, nullable=False, index=True)
    admin_response: Mapped[str | None] = mapped_column(Text, nullable=True)
    refund_amount: Mapped[float | None] = mapped_column(Float, nullable=True)
    resolved_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    resolved_by: Mapped[str | None] = mapped_column(String(36), nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, onupdate=utcnow)

    order: Mapped[Order] = relationship(lazy="selectin")


@ordering.aggregate
class OrderDispute:
    """Stream that dispute commands are addressed to; rows live in ``disputes``."""

    order_id = Identifier()


def parse_dispute_status(value: str) -> DisputeStatus:
    try:
        return DisputeStatus(value)
    except ValueError:
        raise ValidationError({"status": [f"Invalid dispute status: {value}"]}) from None


def parse_reasons(values: list[str] | None) -> list[DisputeReason]:
    if not values:
        raise ValidationError({"reasons": ["At least one reason is required"]})
    try:
        return [DisputeReason(value) for value in values]
    except ValueError:
        allowed = ", ".join(reason.value for reason in DisputeReason)
        raise ValidationError({"reasons": [f"Reasons must be among: {allowed}"]}) from None
