"""Shopfront database management CLI.

Provides commands to create and drop the database schema, and to load a
small demo catalogue for local development.

Usage:
    python src/manage.py setup-db   # Create all tables
    python src/manage.py drop-db    # Drop all tables
    python src/manage.py seed       # Create tables and load demo data
"""

import argparse
import sys
from datetime import timedelta

from catalogue.product.creation import AddProduct, AddVariant, ProductRegistrar
from fulfillment.shipping.method import ShippingMethod
from promotions.discount.code import DiscountCode, DiscountType
from shared.config import get_settings
from shared.db import configure, drop_db, setup_db, unit_of_work, utcnow
from shared.logging import configure_logging


def setup_database(database_uri=None):
    """Create the schema for every context."""
    configure(database_uri)
    print("Creating database schema...")
    setup_db()
    print("Done.")


def drop_database(database_uri=None):
    """Drop the schema for every context."""
    configure(database_uri)
    print("Dropping database schema...")
    drop_db()
    print("Done.")


def seed_database(database_uri=None):
    """Load demo products, shipping methods and a welcome discount."""
    setup_database(database_uri)

    with unit_of_work() as session:
        registrar = ProductRegistrar(session)

        tee = registrar.add_product(
            AddProduct(title="Classic Tee", brand="Shopfront", price=2000, weight=0.3, category_id="tops")
        )
        for size, stock in (("S", 10), ("M", 20), ("L", 15)):
            registrar.add_variant(
                tee.id, AddVariant(size=size, color="Black", color_code="#000000", stock=stock, sku=f"TEE-BLK-{size}")
            )

        registrar.add_product(
            AddProduct(title="Canvas Tote", brand="Shopfront", price=3500, weight=0.5, category_id="bags", stock=40)
        )

        session.add_all(
            [
                ShippingMethod(
                    name="Standard",
                    description="Door delivery",
                    delivery_time="3-5 business days",
                    delivery_time_days=5,
                    base_cost=1500,
                    min_order_value=5000,
                    available_countries=["Nigeria"],
                ),
                ShippingMethod(
                    name="Express",
                    description="Next-day delivery",
                    delivery_time="1 business day",
                    delivery_time_days=1,
                    base_cost=3000,
                    cost_per_kg=200,
                    max_weight=20,
                ),
            ]
        )

        now = utcnow()
        session.add(
            DiscountCode(
                code="WELCOME10",
                description="10% off your first order",
                discount_type=DiscountType.PERCENTAGE.value,
                discount_value=10,
                max_discount=1000,
                valid_from=now,
                valid_until=now + timedelta(days=90),
            )
        )

    print("Demo data loaded.")


def main():
    parser = argparse.ArgumentParser(description="Shopfront database management")
    parser.add_argument("--database-uri", help="Override SHOPFRONT_DATABASE_URI")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("setup-db", help="Create all database tables")
    subparsers.add_parser("drop-db", help="Drop all database tables")
    subparsers.add_parser("seed", help="Create tables and load demo data")

    args = parser.parse_args()
    configure_logging(get_settings())

    if args.command == "setup-db":
        setup_database(args.database_uri)
    elif args.command == "drop-db":
        drop_database(args.database_uri)
    elif args.command == "seed":
        seed_database(args.database_uri)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
