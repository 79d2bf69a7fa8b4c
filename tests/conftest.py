import os
from datetime import timedelta
from pathlib import Path

import pytest


def pytest_addoption(parser):
    parser.addoption(
        "--env",
        action="store",
        default="test",
        help="Config environment to run tests on",
    )


def pytest_sessionstart(session):
    """Pytest hook to run before collecting tests.

    Select the configuration overlay before any application module reads its
    settings, then activate the ordering domain by pushing its domain_context.
    The activated domain can then be referred to elsewhere as `current_domain`
    """
    os.environ["SHOPFRONT_ENV"] = session.config.option.env

    from shared.config import reset_settings

    reset_settings()

    from ordering.domain import ordering

    ordering.init()
    ordering.domain_context().push()


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their directory location."""
    for item in items:
        # Get the test file path relative to the tests directory
        test_path = Path(item.fspath)

        # Mark tests based on their directory
        if "/domain/" in str(test_path):
            item.add_marker(pytest.mark.domain)
        elif "/application/" in str(test_path):
            item.add_marker(pytest.mark.application)
        elif "/integration/" in str(test_path):
            item.add_marker(pytest.mark.integration)
            # Integration tests are often slower
            if not any(m.name == "fast" for m in item.iter_markers()):
                item.add_marker(pytest.mark.slow)


@pytest.fixture(autouse=True)
def run_around_tests():
    """Fixture to automatically drain the command store after every test"""
    yield

    from protean import current_domain

    current_domain.event_store.store._data_reset()


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------
@pytest.fixture()
def session_factory(tmp_path):
    """A fresh SQLite database file per test, bound as the process-wide default."""
    from shared.db import configure, dispose, setup_db

    factory = configure(f"sqlite:///{tmp_path / 'shopfront.db'}")
    setup_db()

    yield factory

    dispose()


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------
@pytest.fixture()
def make_product(session_factory):
    from catalogue.product.creation import AddProduct, ProductRegistrar
    from shared.db import unit_of_work

    def _make_product(title="Classic Tee", price=2000.0, stock=10, **kwargs):
        with unit_of_work(session_factory) as session:
            return ProductRegistrar(session).add_product(AddProduct(title=title, price=price, stock=stock, **kwargs))

    return _make_product


@pytest.fixture()
def make_variant(session_factory):
    from catalogue.product.creation import AddVariant, ProductRegistrar
    from shared.db import unit_of_work

    def _make_variant(product_id, size="M", color="Black", stock=5, **kwargs):
        with unit_of_work(session_factory) as session:
            return ProductRegistrar(session).add_variant(
                product_id, AddVariant(size=size, color=color, stock=stock, **kwargs)
            )

    return _make_variant


@pytest.fixture()
def make_address(session_factory):
    from identity.customer.address import AddAddress, AddressBook
    from shared.db import unit_of_work

    def _make_address(user_id="user-001", **overrides):
        values = {
            "firstname": "Ada",
            "lastname": "Obi",
            "email": "ada@example.com",
            "phone": "+2348000000001",
            "country": "Nigeria",
            "region": "Lagos",
            "city": "Ikeja",
            "address": "12 Allen Avenue",
        }
        values.update(overrides)
        with unit_of_work(session_factory) as session:
            return AddressBook(session).add(user_id, AddAddress(**values))

    return _make_address


@pytest.fixture()
def make_shipping_method(session_factory):
    from fulfillment.shipping.method import ShippingMethod
    from shared.db import unit_of_work

    def _make_shipping_method(name="Standard", **overrides):
        values = {"base_cost": 1500.0, "min_order_value": 5000.0, "available_countries": []}
        values.update(overrides)
        with unit_of_work(session_factory) as session:
            method = ShippingMethod(name=name, **values)
            session.add(method)
            session.flush()
            return method

    return _make_shipping_method


@pytest.fixture()
def make_discount(session_factory):
    from promotions.discount.code import DiscountCode
    from shared.db import unit_of_work, utcnow

    def _make_discount(code="SAVE20", **overrides):
        now = utcnow()
        values = {
            "discount_type": "percentage",
            "discount_value": 20.0,
            "max_discount": 1000.0,
            "valid_from": now - timedelta(days=1),
            "valid_until": now + timedelta(days=30),
        }
        values.update(overrides)
        with unit_of_work(session_factory) as session:
            discount = DiscountCode(code=code, **values)
            session.add(discount)
            session.flush()
            return discount

    return _make_discount


@pytest.fixture()
def add_to_cart(session_factory):
    from ordering.cart.items import AddToCart
    from protean import current_domain

    def _add_to_cart(user_id, product_id, quantity=1, variant_id=None):
        command = AddToCart(user_id=user_id, product_id=product_id, variant_id=variant_id, quantity=quantity)
        return current_domain.process(command, asynchronous=False)

    return _add_to_cart


@pytest.fixture()
def checkout(session_factory):
    from ordering.order.creation import CreateOrder
    from protean import current_domain

    def _checkout(user_id, shipping_address_id, **kwargs):
        command = CreateOrder(user_id=user_id, shipping_address_id=shipping_address_id, **kwargs)
        return current_domain.process(command, asynchronous=False)

    return _checkout


@pytest.fixture()
def place_order(make_product, make_address, add_to_cart, checkout):
    """Put a product in the user's cart and check it out."""

    def _place_order(user_id="user-001", quantity=3, price=2000.0, stock=10, **kwargs):
        product = make_product(price=price, stock=stock)
        address = make_address(user_id)
        add_to_cart(user_id, product.id, quantity)
        return checkout(user_id, address.id, **kwargs)

    return _place_order


@pytest.fixture()
def stock_of(session_factory):
    from inventory.stock.ledger import StockLedger
    from shared.db import unit_of_work

    def _stock_of(product_id, variant_id=None):
        with unit_of_work(session_factory) as session:
            return StockLedger(session).available(product_id, variant_id)

    return _stock_of


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------
@pytest.fixture()
def auth_headers():
    from identity.auth import create_access_token

    def _auth_headers(user_id="user-001", is_admin=False):
        return {"Authorization": f"Bearer {create_access_token(user_id, is_admin=is_admin)}"}

    return _auth_headers
