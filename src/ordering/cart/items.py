"""Cart item management — commands and handler.

Stock checks made here only give the shopper early feedback. The quantity a
customer can actually buy is decided at checkout by the stock ledger.
"""

import structlog
from protean import handle
from protean.fields import Identifier, Integer, String
from sqlalchemy.orm import Session

from catalogue.product.product import Product, ProductVariant
from inventory.stock.ledger import StockLedger
from ordering.cart.cart import CartItem, ShoppingCart
from ordering.cart.manager import load_cart, load_or_create_cart
from ordering.domain import ordering
from ordering.pricing.engine import resolve_unit_price
from shared.db import unit_of_work, utcnow
from shared.exceptions import InsufficientStock, ObjectNotFoundError, ValidationError

logger = structlog.get_logger(__name__)


@ordering.command(part_of="ShoppingCart")
class AddToCart:
    user_id = Identifier(required=True)
    product_id = Identifier(required=True)
    variant_id = Identifier()
    size = String(max_length=50)  # legacy lookup when no variant id is sent
    color = String(max_length=50)
    quantity = Integer(default=1, min_value=1)


@ordering.command(part_of="ShoppingCart")
class UpdateCartQuantity:
    user_id = Identifier(required=True)
    item_id = Identifier(required=True)
    quantity = Integer(required=True, min_value=1)


@ordering.command(part_of="ShoppingCart")
class RemoveFromCart:
    user_id = Identifier(required=True)
    item_id = Identifier(required=True)


@ordering.command(part_of="ShoppingCart")
class ClearCart:
    user_id = Identifier(required=True)


def _load_cart_or_raise(session: Session, user_id: str):
    cart = load_cart(session, user_id)
    if cart is None:
        raise ObjectNotFoundError({"cart": ["Cart not found"]}, code="CartNotFound")
    return cart


def _resolve_variant(product: Product, command: AddToCart) -> ProductVariant | None:
    """Pick the variant a cart line is for.

    A product that has variants is only sold through one of them; its
    product-level stock is a mirror of the variant total.
    """
    if command.variant_id:
        variant = product.find_variant(command.variant_id)
        if variant is None:
            raise ObjectNotFoundError(
                {"variant_id": ["Variant not found for this product"]},
                code="VariantNotFound",
            )
        return variant

    if command.size or command.color:
        variant = product.variant_for(command.size, command.color)
        if variant is None:
            raise ValidationError({"variant": ["No variant matches the selected size and color"]})
        return variant

    if product.has_variants:
        raise ValidationError({"variant_id": ["Select a size or color for this product"]})
    return None


def _check_stock(session: Session, product: Product, variant: ProductVariant | None, quantity: int) -> None:
    variant_id = variant.id if variant is not None else None
    available = StockLedger(session).available(product.id, variant_id)
    if quantity > available:
        raise InsufficientStock(product.title, available, product_id=product.id, variant_id=variant_id)


@ordering.command_handler(part_of=ShoppingCart)
class ManageCartItemsHandler:
    @handle(AddToCart)
    def add_to_cart(self, command: AddToCart) -> tuple[CartItem, bool]:
        """Add a product (or one of its variants) to the user's cart.

        Returns the cart line and ``True`` when it was newly created, ``False``
        when an existing line was merged into.
        """
        with unit_of_work() as session:
            product = session.get(Product, command.product_id)
            if product is None:
                raise ObjectNotFoundError({"product_id": ["Product not found"]}, code="ProductNotFound")

            variant = _resolve_variant(product, command)
            price = resolve_unit_price(product.price, variant.price if variant is not None else None)

            cart = load_or_create_cart(session, command.user_id)
            existing = cart.find_line(product.id, variant.id if variant is not None else None)
            wanted = command.quantity + (existing.quantity if existing is not None else 0)
            _check_stock(session, product, variant, wanted)

            item, created = cart.add_line(
                product,
                variant,
                command.quantity,
                price,
                size=command.size,
                color=command.color,
            )
            session.flush()

            logger.info(
                "Cart item added" if created else "Cart item merged",
                user_id=command.user_id,
                cart_id=cart.id,
                product_id=product.id,
                variant_id=item.variant_id,
                quantity=item.quantity,
            )
            return item, created

    @handle(UpdateCartQuantity)
    def update_cart_quantity(self, command: UpdateCartQuantity) -> CartItem:
        with unit_of_work() as session:
            item = _load_cart_or_raise(session, command.user_id).get_item(command.item_id)
            _check_stock(session, item.product, item.variant, command.quantity)

            item.quantity = command.quantity
            item.updated_at = utcnow()
            session.flush()

            logger.info(
                "Cart item updated",
                user_id=command.user_id,
                item_id=command.item_id,
                quantity=command.quantity,
            )
            return item

    @handle(RemoveFromCart)
    def remove_from_cart(self, command: RemoveFromCart) -> None:
        with unit_of_work() as session:
            _load_cart_or_raise(session, command.user_id).remove_line(command.item_id)
            logger.info("Cart item removed", user_id=command.user_id, item_id=command.item_id)

    @handle(ClearCart)
    def clear_cart(self, command: ClearCart) -> None:
        with unit_of_work() as session:
            cart = load_cart(session, command.user_id)
            if cart is not None:
                cart.clear()
                logger.info("Cart cleared", user_id=command.user_id, cart_id=cart.id)
