"""Ordering domain API package."""

from ordering.api.routes import cart_router, discount_router, dispute_router, order_router

__all__ = ["cart_router", "order_router", "dispute_router", "discount_router"]
