"""Application tests for admin status updates and customer acceptance commands."""

from datetime import date

import pytest
from ordering.order.lifecycle import AcceptOrder, CancelOrder, UpdateOrderStatus, tracking_checklist
from ordering.order.order import OrderStatus, PaymentStatus
from ordering.order.queries import OrderQueries
from protean import current_domain
from shared.exceptions import InvalidTransition, ObjectNotFoundError, ValidationError

USER = "user-001"


def _advance(order_id, **changes):
    return current_domain.process(UpdateOrderStatus(order_id=order_id, **changes), asynchronous=False)


def _cancel(user_id, order_id):
    return current_domain.process(CancelOrder(user_id=user_id, order_id=order_id), asynchronous=False)


def _accept(user_id, order_id):
    return current_domain.process(AcceptOrder(user_id=user_id, order_id=order_id), asynchronous=False)


class TestAdvance:
    def test_confirm_pending_order(self, place_order):
        order = place_order()

        updated = _advance(order.id, status="confirmed")

        assert updated.status == OrderStatus.CONFIRMED.value
        assert updated.confirmed_at is not None

    def test_skip_ahead_to_delivered(self, place_order):
        order = place_order()

        updated = _advance(order.id, status="delivered")

        assert updated.status == OrderStatus.DELIVERED.value
        assert updated.display_status == "Completed"
        assert all(step.completed for step in tracking_checklist(updated)[:4])

    def test_backwards_move_is_rejected(self, place_order):
        order = place_order()
        _advance(order.id, status="shipped")

        with pytest.raises(InvalidTransition):
            _advance(order.id, status="processing")

    def test_cancelled_order_cannot_move(self, place_order):
        order = place_order()
        _cancel(USER, order.id)

        with pytest.raises(InvalidTransition):
            _advance(order.id, status="confirmed")

    def test_repeating_current_status_changes_nothing(self, place_order):
        order = place_order()
        first = _advance(order.id, status="confirmed")
        second = _advance(order.id, status="confirmed")
        assert second.confirmed_at == first.confirmed_at

    def test_payment_status_and_reference(self, place_order):
        order = place_order()

        updated = _advance(order.id, payment_status="paid", payment_reference="PSK-123")

        assert updated.payment_status == PaymentStatus.PAID.value
        assert updated.payment_reference == "PSK-123"
        assert updated.status == OrderStatus.PENDING.value

    def test_estimated_delivery(self, place_order):
        order = place_order()

        updated = _advance(order.id, estimated_delivery=date(2026, 11, 2))

        assert updated.estimated_delivery == date(2026, 11, 2)

    def test_empty_update_is_rejected(self, place_order):
        order = place_order()
        with pytest.raises(ValidationError):
            _advance(order.id)

    def test_unknown_status_value(self, place_order):
        order = place_order()
        with pytest.raises(ValidationError):
            _advance(order.id, status="lost")

    def test_unknown_order(self):
        with pytest.raises(ObjectNotFoundError) as exc:
            _advance("missing-order", status="confirmed")
        assert exc.value.code == "OrderNotFound"


class TestAccept:
    def test_accept_delivered_order(self, place_order):
        order = place_order()
        _advance(order.id, status="delivered")

        accepted = _accept(USER, order.id)

        assert accepted.ready_for_pickup_at is not None
        assert tracking_checklist(accepted)[-1].completed is True

    def test_accept_before_delivery(self, place_order):
        order = place_order()
        with pytest.raises(InvalidTransition):
            _accept(USER, order.id)

    def test_accept_someone_elses_order(self, place_order):
        order = place_order()
        _advance(order.id, status="delivered")
        with pytest.raises(ObjectNotFoundError):
            _accept("intruder", order.id)


class TestTracking:
    def test_track_by_order_number(self, session_factory, place_order):
        order = place_order()
        _advance(order.id, status="processing")

        found = OrderQueries(session_factory).find_for_tracking(USER, order.order_number.lower())
        steps = tracking_checklist(found)

        assert found.id == order.id
        assert [step.completed for step in steps] == [True, True, False, False, False]

    def test_track_by_id(self, session_factory, place_order):
        order = place_order()
        assert OrderQueries(session_factory).find_for_tracking(USER, order.id).id == order.id
