"""Exception taxonomy shared by every Shopfront context.

Domain errors carry a ``messages`` dict in the ``{"field": ["message", ...]}``
shape and a stable ``code`` that the HTTP layer returns to callers. Anything
that is not a ``DomainError`` is treated as an infrastructure failure.
"""

from typing import Any


class ShopfrontError(Exception):
    """Base exception for all Shopfront errors."""


class ConfigurationError(ShopfrontError):
    """Raised when the runtime configuration is invalid."""


class InternalError(ShopfrontError):
    """Raised when persistence or infrastructure fails unexpectedly."""


class DomainError(ShopfrontError):
    """An expected, caller-facing failure of a domain operation."""

    code = "DomainError"
    status_code = 400

    def __init__(self, messages: dict[str, list[str]] | str, code: str | None = None) -> None:
        if isinstance(messages, str):
            messages = {"_entity": [messages]}
        self.messages = messages
        if code is not None:
            self.code = code
        super().__init__(self.message)

    @property
    def message(self) -> str:
        return "; ".join(msg for msgs in self.messages.values() for msg in msgs)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": False,
            "error": self.code,
            "message": self.message,
            "errors": self.messages,
        }


class ValidationError(DomainError):
    code = "ValidationError"


class ObjectNotFoundError(DomainError):
    code = "NotFound"
    status_code = 404


class InsufficientStock(DomainError):
    code = "InsufficientStock"

    def __init__(self, product_title: str, available: int, product_id: str | None = None, variant_id: str | None = None):
        self.product_title = product_title
        self.available = available
        self.product_id = product_id
        self.variant_id = variant_id
        super().__init__({"quantity": [f"Insufficient stock for {product_title}. Only {available} available."]})


class EmptyCart(DomainError):
    code = "EmptyCart"

    def __init__(self) -> None:
        super().__init__({"cart": ["Cart is empty"]})


class InvalidTransition(DomainError):
    code = "InvalidTransition"


class ShippingUnavailable(DomainError):
    code = "ShippingUnavailable"


class WeightExceeded(DomainError):
    code = "WeightExceeded"


class DiscountError(DomainError):
    """Base class for discount-code rejections.

    During checkout these degrade to "no discount applied"; standalone
    validation surfaces them as 400s.
    """

    code = "DiscountError"


class CodeInvalid(DiscountError):
    code = "CodeInvalid"


class CodeExpired(DiscountError):
    code = "CodeExpired"


class UsageLimitReached(DiscountError):
    code = "UsageLimitReached"


class BelowMinimum(DiscountError):
    code = "BelowMinimum"


class NotApplicable(DiscountError):
    code = "NotApplicable"


class AuthenticationError(DomainError):
    code = "NotAuthenticated"
    status_code = 401


class PermissionDenied(DomainError):
    code = "Forbidden"
    status_code = 403
