"""Dispute desk — commands and handler for raising and resolving disputes."""

import structlog
from protean import handle
from protean.fields import Float, Identifier, List, String, Text
from sqlalchemy import or_, select

from ordering.domain import ordering
from ordering.order.disputes import (
    CLOSING_STATES,
    OPEN_STATES,
    Dispute,
    DisputeStatus,
    OrderDispute,
    parse_dispute_status,
    parse_reasons,
)
from ordering.order.order import Order, OrderItem
from shared.db import unit_of_work, utcnow
from shared.exceptions import InvalidTransition, ObjectNotFoundError, ValidationError

logger = structlog.get_logger(__name__)


@ordering.command(part_of="OrderDispute")
class OpenDispute:
    user_id = Identifier(required=True)
    goods_unique_id = String(required=True, max_length=100)
    reasons = List(content_type=String, required=True)
    detailed_explanation = Text(required=True)
    order_id = Identifier()
    order_item_id = Identifier()


@ordering.command(part_of="OrderDispute")
class ResolveDispute:
    dispute_id = Identifier(required=True)
    admin_id = Identifier(required=True)
    status = String(max_length=20)
    admin_response = Text()
    refund_amount = Float(min_value=0.0)


@ordering.command_handler(part_of=OrderDispute)
class DisputeDeskHandler:
    @handle(OpenDispute)
    def open_dispute(self, command: OpenDispute) -> Dispute:
        reasons = parse_reasons(command.reasons)

        with unit_of_work() as session:
            if command.order_id:
                query = select(Order).where(Order.id == command.order_id)
            else:
                reference = command.goods_unique_id.strip()
                query = select(Order).where(or_(Order.order_number == reference.upper(), Order.id == reference))
            # Locked so two requests cannot both open a dispute on the order
            order = session.scalar(query.where(Order.user_id == command.user_id).with_for_update())
            if order is None:
                raise ObjectNotFoundError({"order_id": ["Order not found"]}, code="OrderNotFound")

            open_dispute = session.scalar(
                select(Dispute.id).where(
                    Dispute.order_id == order.id,
                    Dispute.status.in_([s.value for s in OPEN_STATES]),
                )
            )
            if open_dispute is not None:
                raise ValidationError({"order_id": ["A dispute already exists for this order"]})

            if command.order_item_id:
                item = session.scalar(
                    select(OrderItem).where(OrderItem.id == command.order_item_id, OrderItem.order_id == order.id)
                )
                if item is None:
                    raise ObjectNotFoundError({"order_item_id": ["Order item not found"]}, code="OrderItemNotFound")

            dispute = Dispute(
                order_id=order.id,
                order_item_id=command.order_item_id,
                user_id=command.user_id,
                goods_unique_id=command.goods_unique_id,
                reasons=[reason.value for reason in reasons],
                detailed_explanation=command.detailed_explanation,
                status=DisputeStatus.PENDING.value,
            )
            session.add(dispute)
            session.flush()

            order.attach_dispute(dispute.id)
            dispute.order = order
            session.flush()

            logger.info(
                "Dispute opened",
                dispute_id=dispute.id,
                order_id=order.id,
                user_id=command.user_id,
                reasons=dispute.reasons,
            )
            return dispute

    @handle(ResolveDispute)
    def resolve_dispute(self, command: ResolveDispute) -> Dispute:
        status = parse_dispute_status(command.status) if command.status else None

        with unit_of_work() as session:
            dispute = session.get(Dispute, command.dispute_id, with_for_update=True)
            if dispute is None:
                raise ObjectNotFoundError({"dispute_id": ["Dispute not found"]}, code="DisputeNotFound")

            if DisputeStatus(dispute.status) == DisputeStatus.REFUNDED:
                raise InvalidTransition({"status": ["Dispute has already been refunded"]})

            order = session.scalar(select(Order).where(Order.id == dispute.order_id).with_for_update())
            if command.refund_amount is not None:
                if command.refund_amount > order.total:
                    raise ValidationError({"refund_amount": ["Refund amount cannot exceed the order total"]})
                dispute.refund_amount = command.refund_amount

            if command.admin_response:
                dispute.admin_response = command.admin_response

            if status is not None:
                dispute.status = status.value
                if status in CLOSING_STATES:
                    dispute.resolved_at = utcnow()
                    dispute.resolved_by = command.admin_id

                if status == DisputeStatus.REFUNDED:
                    order.refund()
                    logger.info("Order refunded through dispute", order_id=order.id, dispute_id=dispute.id)

            session.flush()
            logger.info(
                "Dispute updated",
                dispute_id=dispute.id,
                status=dispute.status,
                admin_id=command.admin_id,
            )
            return dispute
