"""Shopping cart — one mutable basket per customer, converted to an Order at checkout.

A (product, variant) pair appears at most once in a cart; adding it again
grows the existing line instead of creating a second row.
"""

from datetime import datetime

from protean.fields import Identifier
from sqlalchemy import CheckConstraint, Float, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from catalogue.product.product import Product, ProductVariant
from ordering.domain import ordering
from shared.db import Base, UTCDateTime, new_id, utcnow
from shared.exceptions import ObjectNotFoundError


class Cart(Base):
    __tablename__ = "carts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(36), unique=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, onupdate=utcnow)

    items: Mapped[list["CartItem"]] = relationship(
        back_populates="cart",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="CartItem.created_at",
    )

    # -------------------------------------------------------------------
    # Item management
    # -------------------------------------------------------------------
    def find_line(self, product_id: str, variant_id: str | None) -> "CartItem | None":
        return next(
            (i for i in self.items if i.product_id == product_id and i.variant_id == variant_id),
            None,
        )

    def get_item(self, item_id: str) -> "CartItem":
        item = next((i for i in self.items if i.id == item_id), None)
        if item is None:
            raise ObjectNotFoundError({"item_id": ["Cart item not found"]}, code="CartItemNotFound")
        return item

    def add_line(
        self,
        product: Product,
        variant: ProductVariant | None,
        quantity: int,
        price: float,
        size: str | None = None,
        color: str | None = None,
    ) -> tuple["CartItem", bool]:
        """Add ``quantity`` of a product/variant, merging into an existing line.

        Returns the line and whether it was newly created.
        """
        variant_id = variant.id if variant is not None else None
        existing = self.find_line(product.id, variant_id)
        now = utcnow()

        if existing is not None:
            existing.quantity += quantity
            existing.price = price
            existing.updated_at = now
            self.updated_at = now
            return existing, False

        item = CartItem(
            product_id=product.id,
            variant_id=variant_id,
            product=product,
            variant=variant,
            size=variant.size if variant is not None else size,
            color=variant.color if variant is not None else color,
            quantity=quantity,
            price=price,
        )
        self.items.append(item)
        self.updated_at = now
        return item, True

    def remove_line(self, item_id: str) -> None:
        self.items.remove(self.get_item(item_id))
        self.updated_at = utcnow()

    def clear(self) -> None:
        self.items.clear()
        self.updated_at = utcnow()

    @property
    def is_empty(self) -> bool:
        return not self.items


class CartItem(Base):
    __tablename__ = "cart_items"
    __table_args__ = (CheckConstraint("quantity >= 1", name="ck_cart_items_quantity_positive"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    cart_id: Mapped[str] = mapped_column(String(36), ForeignKey("carts.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id: Mapped[str] = mapped_column(String(36), ForeignKey("products.id", ondelete="CASCADE"), nullable=False)
    variant_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("product_variants.id", ondelete="CASCADE"), nullable=True
    )
    size: Mapped[str | None] = mapped_column(String(50), nullable=True)
    color: Mapped[str | None] = mapped_column(String(50), nullable=True)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    price: Mapped[float] = mapped_column(Float, nullable=False)  # unit price when added
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, onupdate=utcnow)

    cart: Mapped[Cart] = relationship(back_populates="items")
    product: Mapped[Product] = relationship(lazy="selectin")
    variant: Mapped[ProductVariant | None] = relationship(lazy="selectin")


@ordering.aggregate
class ShoppingCart:
    """Stream the cart commands are addressed to.

    The basket itself is stored in the ``carts`` and ``cart_items`` tables;
    commands only carry the shopper they act for.
    """

    user_id = Identifier(required=True)
