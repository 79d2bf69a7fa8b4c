"""Stock ledger — the only writer of product and variant stock counters.

Every reservation is a single conditional UPDATE ("take ``q`` only if at least
``q`` is left"), so two checkouts competing for the last units can never both
succeed. When a variant is involved its stock is authoritative; the product's
aggregate stock is moved by the same amount as a mirror, in the same
transaction, and a product that has variants can only be reserved through
one of them. The ledger never opens or commits transactions itself: it works
inside the caller's unit of work so that a failed checkout rolls every counter
back together with the order.
"""

from typing import NamedTuple

import structlog
from sqlalchemy import case, select, update
from sqlalchemy.orm import Session

from catalogue.product.product import Product, ProductVariant
from shared.exceptions import InsufficientStock, ObjectNotFoundError, ValidationError

logger = structlog.get_logger(__name__)


class StockLine(NamedTuple):
    product_id: str
    variant_id: str | None
    quantity: int


def _not_found(product_id: str, variant_id: str | None) -> ObjectNotFoundError:
    if variant_id is not None:
        return ObjectNotFoundError(
            {"variant_id": [f"Variant {variant_id} not found for product {product_id}"]},
            code="VariantNotFound",
        )
    return ObjectNotFoundError({"product_id": [f"Product {product_id} not found"]}, code="ProductNotFound")


def _validate_quantity(quantity: int) -> None:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
        raise ValidationError({"quantity": ["Quantity must be a positive integer"]})


class StockLedger:
    def __init__(self, session: Session):
        self.session = session

    def available(self, product_id: str, variant_id: str | None = None) -> int:
        """Current sellable quantity. Advisory only; use ``reserve`` to take stock."""
        if variant_id is not None:
            stock = self.session.scalar(
                select(ProductVariant.stock).where(
                    ProductVariant.id == variant_id,
                    ProductVariant.product_id == product_id,
                )
            )
        else:
            stock = self.session.scalar(select(Product.stock).where(Product.id == product_id))

        if stock is None:
            raise _not_found(product_id, variant_id)
        return stock

    def reserve(self, product_id: str, variant_id: str | None = None, quantity: int = 1) -> None:
        """Take ``quantity`` units or fail without changing anything."""
        _validate_quantity(quantity)

        if variant_id is not None:
            taken = self.session.execute(
                update(ProductVariant)
                .where(
                    ProductVariant.id == variant_id,
                    ProductVariant.product_id == product_id,
                    ProductVariant.stock >= quantity,
                )
                .values(stock=ProductVariant.stock - quantity)
                .execution_options(synchronize_session=False)
            )
            if taken.rowcount != 1:
                self._raise_unavailable(product_id, variant_id, quantity)

            mirror = self.session.scalar(select(Product.stock).where(Product.id == product_id))
            if mirror is not None and mirror < quantity:
                logger.warning(
                    "Product stock mirror clamped at zero",
                    product_id=product_id,
                    variant_id=variant_id,
                    mirror=mirror,
                    requested=quantity,
                )

            self.session.execute(
                update(Product)
                .where(Product.id == product_id)
                .values(
                    stock=case((Product.stock >= quantity, Product.stock - quantity), else_=0),
                    sales_count=Product.sales_count + quantity,
                )
                .execution_options(synchronize_session=False)
            )
            self._expire(ProductVariant, variant_id, "stock")
        else:
            taken = self.session.execute(
                update(Product)
                .where(
                    Product.id == product_id,
                    Product.has_variants.is_(False),
                    Product.stock >= quantity,
                )
                .values(
                    stock=Product.stock - quantity,
                    sales_count=Product.sales_count + quantity,
                )
                .execution_options(synchronize_session=False)
            )
            if taken.rowcount != 1:
                self._raise_unavailable(product_id, None, quantity)

        self._expire(Product, product_id, "stock", "sales_count")
        logger.info("Stock reserved", product_id=product_id, variant_id=variant_id, quantity=quantity)

    def release(self, product_id: str, variant_id: str | None = None, quantity: int = 1) -> bool:
        """Put ``quantity`` units back on the shelf.

        Returns False when the product or variant no longer exists; there is
        nothing to restock in that case.
        """
        _validate_quantity(quantity)

        if variant_id is not None:
            restocked = self.session.execute(
                update(ProductVariant)
                .where(ProductVariant.id == variant_id, ProductVariant.product_id == product_id)
                .values(stock=ProductVariant.stock + quantity)
                .execution_options(synchronize_session=False)
            )
            if restocked.rowcount != 1:
                logger.warning("Release skipped, variant missing", product_id=product_id, variant_id=variant_id)
                return False
            self._expire(ProductVariant, variant_id, "stock")

        sales_count = self.session.scalar(select(Product.sales_count).where(Product.id == product_id))
        if sales_count is None:
            logger.warning("Release skipped, product missing", product_id=product_id)
            return False
        if sales_count < quantity:
            logger.warning(
                "Sales count clamped at zero",
                product_id=product_id,
                sales_count=sales_count,
                released=quantity,
            )

        self.session.execute(
            update(Product)
            .where(Product.id == product_id)
            .values(
                stock=Product.stock + quantity,
                sales_count=case((Product.sales_count >= quantity, Product.sales_count - quantity), else_=0),
            )
            .execution_options(synchronize_session=False)
        )

        self._expire(Product, product_id, "stock", "sales_count")
        logger.info("Stock released", product_id=product_id, variant_id=variant_id, quantity=quantity)
        return True

    def reserve_lines(self, lines: list[StockLine]) -> None:
        """Reserve every line or none of them.

        If a line fails, the lines already taken are released before the error
        propagates.
        """
        reserved: list[StockLine] = []
        try:
            for line in lines:
                self.reserve(line.product_id, line.variant_id, line.quantity)
                reserved.append(line)
        except Exception:
            for line in reversed(reserved):
                self.release(line.product_id, line.variant_id, line.quantity)
            if reserved:
                logger.info("Compensated partial reservation", released_lines=len(reserved))
            raise

    def _raise_unavailable(self, product_id: str, variant_id: str | None, quantity: int):
        row = self.session.execute(
            select(Product.title, Product.stock, Product.has_variants).where(Product.id == product_id)
        ).first()
        if row is None:
            raise _not_found(product_id, None)

        title, available, has_variants = row
        if variant_id is None and has_variants:
            # Variant stock is authoritative; the product counter only mirrors it
            raise ValidationError({"variant_id": [f"{title} can only be reserved through one of its variants"]})

        if variant_id is not None:
            variant_stock = self.session.scalar(
                select(ProductVariant.stock).where(
                    ProductVariant.id == variant_id,
                    ProductVariant.product_id == product_id,
                )
            )
            if variant_stock is None:
                raise _not_found(product_id, variant_id)
            available = variant_stock

        logger.info(
            "Insufficient stock",
            product_id=product_id,
            variant_id=variant_id,
            requested=quantity,
            available=available,
        )
        raise InsufficientStock(title, available, product_id=product_id, variant_id=variant_id)

    def _expire(self, model, ident: str, *attrs: str) -> None:
        """Make already-loaded records re-read the counters the UPDATE just moved."""
        instance = self.session.identity_map.get(self.session.identity_key(model, ident))
        if instance is not None:
            self.session.expire(instance, list(attrs))
