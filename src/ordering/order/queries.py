"""Read side of the ordering context: order history, dispute lists and the admin views."""

from typing import NamedTuple

from sqlalchemy import func, or_, select
from sqlalchemy.orm import sessionmaker
from sqlalchemy.sql import Select

from ordering.order.disputes import Dispute, parse_dispute_status
from ordering.order.lifecycle import load_order
from ordering.order.order import Order, OrderStatus, PaymentStatus
from shared.db import get_session_factory, unit_of_work
from shared.exceptions import ObjectNotFoundError, ValidationError

# Customer-facing order tabs
ORDER_VIEWS = ("unpaid", "to_be_shipped", "shipped", "to_be_reviewed", "disputes")

# Admin filter words that are not stored statuses
_ADMIN_STATUS_ALIASES = {"completed": OrderStatus.DELIVERED.value}


class OrderPage(NamedTuple):
    orders: list[Order]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return -(-self.total // self.limit) if self.total else 0


def _view_filter(query: Select, view: str) -> Select:
    match view:
        case "unpaid":
            return query.where(Order.payment_status == PaymentStatus.PENDING.value)
        case "to_be_shipped":
            return query.where(
                Order.status.in_([OrderStatus.CONFIRMED.value, OrderStatus.PROCESSING.value]),
                Order.payment_status == PaymentStatus.PAID.value,
            )
        case "shipped":
            return query.where(Order.status == OrderStatus.SHIPPED.value)
        case "to_be_reviewed":
            return query.where(Order.status == OrderStatus.DELIVERED.value)
        case "disputes":
            return query.where(Order.dispute_id.is_not(None))
    raise ValidationError({"view": [f"Invalid status. Use one of: {', '.join(ORDER_VIEWS)}"]})


def _check_paging(page: int, limit: int) -> None:
    if page < 1:
        raise ValidationError({"page": ["Page must be at least 1"]})
    if not 1 <= limit <= 100:
        raise ValidationError({"limit": ["Limit must be between 1 and 100"]})


class OrderQueries:
    def __init__(self, session_factory: sessionmaker | None = None):
        self.session_factory = session_factory or get_session_factory()

    def _page(self, query: Select, page: int, limit: int) -> OrderPage:
        _check_paging(page, limit)
        with unit_of_work(self.session_factory) as session:
            total = session.scalar(select(func.count()).select_from(query.order_by(None).subquery()))
            orders = session.scalars(
                query.order_by(Order.created_at.desc(), Order.id).offset((page - 1) * limit).limit(limit)
            ).all()
            return OrderPage(orders=list(orders), total=total, page=page, limit=limit)

    # -------------------------------------------------------------------
    # Customer
    # -------------------------------------------------------------------
    def get_order(self, user_id: str, order_id: str) -> Order:
        with unit_of_work(self.session_factory) as session:
            return load_order(session, order_id, user_id)

    def get_order_by_number(self, user_id: str, order_number: str) -> Order:
        with unit_of_work(self.session_factory) as session:
            order = session.scalar(
                select(Order).where(Order.order_number == order_number.strip().upper(), Order.user_id == user_id)
            )
            if order is None:
                raise ObjectNotFoundError({"order_number": ["Order not found"]}, code="OrderNotFound")
            return order

    def find_for_tracking(self, user_id: str, reference: str) -> Order:
        """Look an order up by its id or its order number."""
        reference = reference.strip()
        with unit_of_work(self.session_factory) as session:
            order = session.scalar(
                select(Order).where(
                    or_(Order.id == reference, Order.order_number == reference.upper()),
                    Order.user_id == user_id,
                )
            )
            if order is None:
                raise ObjectNotFoundError({"order_id": ["Order not found"]}, code="OrderNotFound")
            return order

    def list_user_orders(self, user_id: str, status: str | None = None, page: int = 1, limit: int = 20) -> OrderPage:
        query = select(Order).where(Order.user_id == user_id)
        if status:
            query = query.where(Order.status == status)
        return self._page(query, page, limit)

    def list_user_orders_by_view(self, user_id: str, view: str, page: int = 1, limit: int = 20) -> OrderPage:
        query = _view_filter(select(Order).where(Order.user_id == user_id), view)
        return self._page(query, page, limit)

    # -------------------------------------------------------------------
    # Admin
    # -------------------------------------------------------------------
    def list_all_orders(
        self,
        status: str | None = None,
        payment_status: str | None = None,
        search: str | None = None,
        page: int = 1,
        limit: int = 50,
    ) -> OrderPage:
        query = select(Order)
        if status and status != "all":
            query = query.where(Order.status == _ADMIN_STATUS_ALIASES.get(status, status))
        if payment_status:
            query = query.where(Order.payment_status == payment_status)
        if search and search.strip():
            term = search.strip().lower()
            query = query.where(
                or_(
                    func.lower(Order.order_number).contains(term, autoescape=True),
                    func.lower(Order.contact_email).contains(term, autoescape=True),
                    func.lower(Order.contact_phone).contains(term, autoescape=True),
                )
            )
        return self._page(query, page, limit)

    def get_admin_order(self, order_id: str) -> Order:
        with unit_of_work(self.session_factory) as session:
            return load_order(session, order_id)


# ---------------------------------------------------------------------------
# Disputes
# ---------------------------------------------------------------------------
class DisputePage(NamedTuple):
    disputes: list[Dispute]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return -(-self.total // self.limit) if self.total else 0


def _dispute_status_filter(query: Select, status: str | None) -> Select:
    if status and status != "all":
        query = query.where(Dispute.status == parse_dispute_status(status).value)
    return query


class DisputeQueries:
    def __init__(self, session_factory: sessionmaker | None = None):
        self.session_factory = session_factory or get_session_factory()

    def _page(self, query: Select, page: int, limit: int) -> DisputePage:
        _check_paging(page, limit)
        with unit_of_work(self.session_factory) as session:
            total = session.scalar(select(func.count()).select_from(query.order_by(None).subquery()))
            disputes = session.scalars(
                query.order_by(Dispute.created_at.desc(), Dispute.id).offset((page - 1) * limit).limit(limit)
            ).all()
            return DisputePage(disputes=list(disputes), total=total, page=page, limit=limit)

    def list_user_disputes(self, user_id: str, status: str | None = None, page: int = 1, limit: int = 20) -> DisputePage:
        query = _dispute_status_filter(select(Dispute).where(Dispute.user_id == user_id), status)
        return self._page(query, page, limit)

    def get_dispute(self, user_id: str, dispute_id: str) -> Dispute:
        with unit_of_work(self.session_factory) as session:
            dispute = session.scalar(select(Dispute).where(Dispute.id == dispute_id, Dispute.user_id == user_id))
            if dispute is None:
                raise ObjectNotFoundError({"dispute_id": ["Dispute not found"]}, code="DisputeNotFound")
            return dispute

    def list_all_disputes(self, status: str | None = None, page: int = 1, limit: int = 50) -> DisputePage:
        """Admin view of every customer's disputes, newest first."""
        return self._page(_dispute_status_filter(select(Dispute), status), page, limit)
