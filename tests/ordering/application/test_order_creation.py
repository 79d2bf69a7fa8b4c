"""Application tests for turning a cart into an order with the CreateOrder command."""

import pytest
from catalogue.product.product import Product
from inventory.stock.ledger import StockLedger
from ordering.cart.cart import CartItem
from ordering.cart.items import RemoveFromCart
from ordering.cart.manager import CartManager, load_or_create_cart
from ordering.order.numbering import ORDER_NUMBER_PATTERN
from ordering.order.order import Order, OrderItem, OrderStatus, PaymentStatus
from promotions.discount.code import DiscountCode
from protean import current_domain
from shared.config import Settings
from shared.db import unit_of_work
from shared.exceptions import (
    EmptyCart,
    InsufficientStock,
    InternalError,
    ObjectNotFoundError,
    ShippingUnavailable,
    ValidationError,
)
from sqlalchemy import func, select

USER = "user-001"


def _order_count(session_factory):
    with unit_of_work(session_factory) as session:
        return session.scalar(select(func.count(Order.id)))


def _usage_count(session_factory, code):
    with unit_of_work(session_factory) as session:
        return session.scalar(select(DiscountCode.usage_count).where(DiscountCode.code == code))


class TestCreateOrderFlow:
    def test_cart_becomes_order(self, session_factory, make_product, make_address, add_to_cart, checkout, stock_of):
        product = make_product(title="Classic Tee", brand="Shopfront", price=2000, stock=10)
        address = make_address(USER, email="ada@example.com", phone="+2348000000001")
        add_to_cart(USER, product.id, 3)

        order = checkout(USER, address.id)

        assert ORDER_NUMBER_PATTERN.match(order.order_number)
        assert order.status == OrderStatus.PENDING.value
        assert order.payment_status == PaymentStatus.PENDING.value
        assert order.payment_method == "card"
        assert order.subtotal == 6000
        assert order.shipping_cost == 0
        assert order.discount_amount == 0
        assert order.tax == 0
        assert order.total == 6000
        assert order.contact_email == "ada@example.com"
        assert order.contact_phone == "+2348000000001"
        assert order.shipping_address_id == address.id
        assert stock_of(product.id) == 7
        assert CartManager(session_factory).snapshot(USER).lines == []

    def test_items_snapshot_catalogue_data(self, make_product, make_address, add_to_cart, checkout):
        product = make_product(title="Classic Tee", brand="Shopfront", price=2000, stock=10)
        address = make_address(USER)
        add_to_cart(USER, product.id, 3)

        order = checkout(USER, address.id)

        assert len(order.items) == 1
        item = order.items[0]
        assert item.line_number == 1
        assert item.product_id == product.id
        assert item.product_title == "Classic Tee"
        assert item.product_brand == "Shopfront"
        assert item.quantity == 3
        assert item.price == 2000
        assert item.subtotal == 6000

    def test_missing_brand_is_stored_as_empty_string(self, make_product, make_address, add_to_cart, checkout):
        product = make_product(stock=10)
        address = make_address(USER)
        add_to_cart(USER, product.id)

        assert checkout(USER, address.id).items[0].product_brand == ""

    def test_variant_line_reserves_variant_stock(
        self, make_product, make_variant, make_address, add_to_cart, checkout, stock_of
    ):
        product = make_product(price=2000, stock=0)
        variant = make_variant(product.id, size="L", color="Blue", stock=4, price=2200)
        address = make_address(USER)
        add_to_cart(USER, product.id, 2, variant_id=variant.id)

        order = checkout(USER, address.id)

        item = order.items[0]
        assert (item.size, item.color, item.variant_id) == ("L", "Blue", variant.id)
        assert order.subtotal == 4400
        assert stock_of(product.id, variant.id) == 2
        assert stock_of(product.id) == 2

    def test_order_items_cannot_be_edited(self, session_factory, place_order):
        order = place_order()

        with pytest.raises(InternalError):
            with unit_of_work(session_factory) as session:
                session.get(OrderItem, order.items[0].id).quantity = 99


class TestCreateOrderRejections:
    def test_empty_cart(self, session_factory, make_product, make_address, add_to_cart, checkout):
        product = make_product(stock=10)
        address = make_address(USER)
        item, _ = add_to_cart(USER, product.id)
        current_domain.process(RemoveFromCart(user_id=USER, item_id=item.id), asynchronous=False)

        with pytest.raises(EmptyCart):
            checkout(USER, address.id)

    def test_user_without_cart(self, make_address, checkout):
        address = make_address(USER)
        with pytest.raises(EmptyCart):
            checkout(USER, address.id)

    def test_address_of_another_user(self, make_product, make_address, add_to_cart, checkout):
        product = make_product(stock=10)
        address = make_address("someone-else")
        add_to_cart(USER, product.id)

        with pytest.raises(ObjectNotFoundError) as exc:
            checkout(USER, address.id)
        assert exc.value.code == "AddressNotFound"

    def test_shelf_emptied_after_adding_to_cart(
        self, session_factory, make_product, make_address, add_to_cart, checkout, stock_of
    ):
        product = make_product(stock=5)
        address = make_address(USER)
        add_to_cart(USER, product.id, 3)
        add_to_cart("other-shopper", product.id, 4)
        checkout("other-shopper", make_address("other-shopper").id)

        with pytest.raises(InsufficientStock) as exc:
            checkout(USER, address.id)

        assert exc.value.available == 1
        assert stock_of(product.id) == 1
        assert _order_count(session_factory) == 1
        assert CartManager(session_factory).snapshot(USER).lines[0].quantity == 3


class TestCheckoutRollback:
    def test_failed_reservation_keeps_nothing(
        self, session_factory, monkeypatch, make_product, make_address, make_discount, add_to_cart, checkout, stock_of
    ):
        tee = make_product(price=3000, stock=5)
        tote = make_product(title="Canvas Tote", price=4000, stock=5)
        address = make_address(USER)
        make_discount("SAVE20")
        add_to_cart(USER, tee.id, 2)
        add_to_cart(USER, tote.id, 1)

        original_reserve = StockLedger.reserve
        calls = []

        def reserve_until_second_line(ledger, product_id, variant_id=None, quantity=1):
            calls.append(product_id)
            if len(calls) == 2:
                raise InsufficientStock("Canvas Tote", 0, product_id=product_id)
            return original_reserve(ledger, product_id, variant_id, quantity)

        monkeypatch.setattr(StockLedger, "reserve", reserve_until_second_line)

        with pytest.raises(InsufficientStock):
            checkout(USER, address.id, discount_code="SAVE20")

        assert calls == [tee.id, tote.id]
        assert _order_count(session_factory) == 0
        with unit_of_work(session_factory) as session:
            assert session.scalar(select(func.count(OrderItem.id))) == 0
            assert session.get(Product, tee.id).sales_count == 0
        assert _usage_count(session_factory, "SAVE20") == 0
        assert stock_of(tee.id) == 5
        assert stock_of(tote.id) == 5

        snapshot = CartManager(session_factory).snapshot(USER)
        assert [(line.product_id, line.quantity) for line in snapshot.lines] == [(tee.id, 2), (tote.id, 1)]


class TestVariantOnlyProducts:
    def _legacy_line(self, session_factory, user_id, product_id, quantity):
        """A cart row without a variant, as left behind before variants were required."""
        with unit_of_work(session_factory) as session:
            cart = load_or_create_cart(session, user_id)
            cart.items.append(CartItem(product_id=product_id, quantity=quantity, price=2000))

    def test_line_without_variant_is_refused_at_checkout(
        self, session_factory, make_product, make_variant, make_address, checkout, stock_of
    ):
        product = make_product(stock=0)
        variant = make_variant(product.id, size="M", stock=5)
        address = make_address(USER)
        self._legacy_line(session_factory, USER, product.id, 5)

        with pytest.raises(ValidationError):
            checkout(USER, address.id)

        assert _order_count(session_factory) == 0
        assert stock_of(product.id, variant.id) == 5
        assert stock_of(product.id) == 5
        assert CartManager(session_factory).snapshot(USER).total_units == 5

    def test_two_shoppers_cannot_sell_more_than_the_variant_holds(
        self, session_factory, make_product, make_variant, make_address, add_to_cart, checkout, stock_of
    ):
        product = make_product(stock=0)
        variant = make_variant(product.id, size="M", stock=5)

        with pytest.raises(ValidationError):
            add_to_cart("shopper-a", product.id, 5)
        self._legacy_line(session_factory, "shopper-a", product.id, 5)
        add_to_cart("shopper-b", product.id, 5, variant_id=variant.id)

        checkout("shopper-b", make_address("shopper-b").id)
        with pytest.raises(ValidationError):
            checkout("shopper-a", make_address("shopper-a").id)

        with unit_of_work(session_factory) as session:
            sold = session.scalar(select(func.coalesce(func.sum(OrderItem.quantity), 0)))
            assert session.get(Product, product.id).sales_count == 5
        assert sold == 5
        assert stock_of(product.id, variant.id) == 0
        assert stock_of(product.id) == 0


class TestShipping:
    def test_free_shipping_above_threshold(self, make_shipping_method, place_order):
        method = make_shipping_method(base_cost=1500, min_order_value=5000)
        order = place_order(quantity=3, price=2000, shipping_method_id=method.id)

        assert order.shipping_cost == 0
        assert order.shipping_method_name == "Standard"
        assert order.total == 6000

    def test_base_cost_below_threshold(self, make_shipping_method, place_order):
        method = make_shipping_method(base_cost=1500, min_order_value=5000)
        order = place_order(quantity=2, price=2000, shipping_method_id=method.id)

        assert order.shipping_cost == 1500
        assert order.total == 5500

    def test_unknown_shipping_method(self, place_order):
        with pytest.raises(ObjectNotFoundError) as exc:
            place_order(shipping_method_id="missing-method")
        assert exc.value.code == "ShippingMethodNotFound"

    def test_inactive_shipping_method(self, make_shipping_method, place_order):
        method = make_shipping_method(is_active=False)
        with pytest.raises(ShippingUnavailable):
            place_order(shipping_method_id=method.id)

    def test_country_outside_allow_list_changes_nothing(
        self, session_factory, make_product, make_address, make_shipping_method, add_to_cart, checkout, stock_of
    ):
        method = make_shipping_method(available_countries=["Nigeria"])
        product = make_product(stock=10)
        address = make_address(USER, country="Ghana")
        add_to_cart(USER, product.id, 2)

        with pytest.raises(ShippingUnavailable):
            checkout(USER, address.id, shipping_method_id=method.id)

        assert stock_of(product.id) == 10
        assert _order_count(session_factory) == 0
        assert CartManager(session_factory).snapshot(USER).total_units == 2


class TestDiscounts:
    def test_percentage_discount_is_capped_and_redeemed(self, session_factory, make_discount, place_order):
        make_discount("SAVE20", discount_value=20, max_discount=1000)

        order = place_order(quantity=2, price=5000, discount_code="save20")

        assert order.subtotal == 10000
        assert order.discount_code == "SAVE20"
        assert order.discount_amount == 1000
        assert order.total == 9000
        assert _usage_count(session_factory, "SAVE20") == 1

    def test_unknown_code_places_order_without_discount(self, place_order):
        order = place_order(discount_code="NOPE")
        assert order.discount_code is None
        assert order.discount_amount == 0
        assert order.total == order.subtotal

    def test_code_below_minimum_places_order_without_discount(self, session_factory, make_discount, place_order):
        make_discount("BIGSPEND", min_order_value=50000)

        order = place_order(discount_code="BIGSPEND")

        assert order.discount_amount == 0
        assert _usage_count(session_factory, "BIGSPEND") == 0

    def test_exhausted_code_places_order_without_discount(self, make_discount, place_order):
        make_discount("LASTONE", usage_limit=1, usage_count=1)
        assert place_order(discount_code="LASTONE").discount_code is None

    def test_per_user_limit(self, make_discount, place_order):
        make_discount("ONCE", user_limit=1)

        first = place_order(discount_code="ONCE")
        second = place_order(discount_code="ONCE")

        assert first.discount_code == "ONCE"
        assert second.discount_code is None

    def test_shipping_is_not_discounted(self, make_discount, make_shipping_method, place_order):
        make_discount("HALF", discount_value=50, max_discount=None)
        method = make_shipping_method(base_cost=1500, min_order_value=0)

        order = place_order(quantity=2, price=2000, discount_code="HALF", shipping_method_id=method.id)

        assert order.discount_amount == 2000
        assert order.total == 4000 + 1500 - 2000


class TestOrderNumbers:
    def test_number_collision_draws_a_new_number(self, monkeypatch, place_order):
        numbers = iter(["ORD-1-AAAA", "ORD-1-AAAA", "ORD-2-BBBB"])
        monkeypatch.setattr("ordering.order.creation.generate_order_number", lambda: next(numbers))

        first = place_order()
        second = place_order()

        assert first.order_number == "ORD-1-AAAA"
        assert second.order_number == "ORD-2-BBBB"

    def test_gives_up_after_configured_attempts(
        self,
        session_factory,
        monkeypatch,
        make_product,
        make_address,
        add_to_cart,
        checkout,
        place_order,
        stock_of,
    ):
        monkeypatch.setattr("ordering.order.creation.generate_order_number", lambda: "ORD-1-AAAA")
        place_order()

        product = make_product(stock=10)
        address = make_address(USER)
        add_to_cart(USER, product.id, 2)
        monkeypatch.setattr("ordering.order.creation.get_settings", lambda: Settings(order_number_attempts=2))

        with pytest.raises(InternalError):
            checkout(USER, address.id)

        assert stock_of(product.id) == 10
        assert _order_count(session_factory) == 1
