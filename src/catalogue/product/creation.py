"""Product and variant registration — commands and handler.

Used by the seed command and test fixtures to put products on the shelf. Once
a product exists its stock changes only through the stock ledger.
"""

import structlog
from pydantic import BaseModel, Field
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from catalogue.product.product import Product, ProductVariant
from shared.exceptions import ObjectNotFoundError, ValidationError

logger = structlog.get_logger(__name__)


class AddProduct(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    price: float = Field(gt=0)
    description: str | None = None
    brand: str | None = None
    category_id: str | None = None
    currency: str = Field(default="NGN", min_length=3, max_length=3)
    weight: float | None = Field(default=None, ge=0)
    stock: int = Field(default=0, ge=0)


class AddVariant(BaseModel):
    size: str | None = None
    color: str | None = None
    color_code: str | None = None
    price: float | None = Field(default=None, gt=0)
    stock: int = Field(default=0, ge=0)
    sku: str | None = Field(default=None, min_length=3, max_length=50, pattern=r"^[A-Za-z0-9]+(-[A-Za-z0-9]+)*$")


class ProductRegistrar:
    """Registers products and their variants within the caller's transaction."""

    def __init__(self, session: Session):
        self.session = session

    def add_product(self, command: AddProduct) -> Product:
        product = Product(
            title=command.title,
            price=command.price,
            description=command.description,
            brand=command.brand,
            category_id=command.category_id,
            currency=command.currency.upper(),
            weight=command.weight,
            stock=command.stock,
            has_variants=False,
            sales_count=0,
        )
        self.session.add(product)
        self.session.flush()

        logger.info("Product added", product_id=product.id, title=product.title, stock=product.stock)
        return product

    def add_variant(self, product_id: str, command: AddVariant) -> ProductVariant:
        if not command.size and not command.color:
            raise ValidationError({"variant": ["A variant needs a size or a color"]})

        product = self.session.get(Product, product_id)
        if product is None:
            raise ObjectNotFoundError({"product_id": ["Product not found"]}, code="ProductNotFound")

        if any(v.size == command.size and v.color == command.color for v in product.variants):
            raise ValidationError({"variant": [f"Variant {command.size}/{command.color} already exists"]})

        variant = ProductVariant(
            size=command.size,
            color=command.color,
            color_code=command.color_code,
            price=command.price,
            stock=command.stock,
            sku=command.sku,
        )
        product.variants.append(variant)
        self.session.flush()

        # The first variant replaces the product-level stock with the variant total
        product.has_variants = True
        product.stock = self.session.scalar(
            select(func.coalesce(func.sum(ProductVariant.stock), 0)).where(ProductVariant.product_id == product.id)
        )
        self.session.flush()

        logger.info(
            "Variant added",
            product_id=product.id,
            variant_id=variant.id,
            size=variant.size,
            color=variant.color,
            stock=variant.stock,
        )
        return variant
