"""Pydantic request/response schemas for the Ordering API.

These are external contracts (anti-corruption layer), separate from the
internal commands. Field names travel as camelCase on the wire.
"""

from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ordering.order.disputes import DisputeReason, DisputeStatus


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


# ---------------------------------------------------------------------------
# Cart Request Schemas
# ---------------------------------------------------------------------------
class AddToCartRequest(CamelModel):
    product_id: str = Field(min_length=1)
    variant_id: str | None = None
    size: str | None = None
    color: str | None = None
    quantity: int = Field(default=1, ge=1)

    model_config = ConfigDict(
        json_schema_extra={
            "examples": [
                {
                    "productId": "prod-001",
                    "variantId": "var-001",
                    "quantity": 2,
                }
            ]
        }
    )


class UpdateCartItemRequest(CamelModel):
    quantity: int = Field(ge=1)


# ---------------------------------------------------------------------------
# Order Request Schemas
# ---------------------------------------------------------------------------
class CreateOrderRequest(CamelModel):
    shipping_address_id: str = Field(min_length=1)
    shipping_method_id: str | None = None
    discount_code: str | None = Field(default=None, max_length=50)
    payment_method: str | None = Field(default=None, max_length=50)
    notes: str | None = Field(default=None, max_length=1000)

    model_config = ConfigDict(
        json_schema_extra={
            "examples": [
                {
                    "shippingAddressId": "addr-001",
                    "shippingMethodId": "ship-standard",
                    "discountCode": "WELCOME10",
                    "paymentMethod": "card",
                    "notes": "Leave at the front desk",
                }
            ]
        }
    )


class UpdateOrderStatusRequest(CamelModel):
    status: str | None = None
    payment_status: str | None = None
    payment_reference: str | None = None
    estimated_delivery: date | None = None


class OpenDisputeRequest(CamelModel):
    goods_unique_id: str = Field(min_length=1, max_length=100)
    reasons: list[DisputeReason] = Field(min_length=1)
    detailed_explanation: str = Field(min_length=1)
    order_id: str | None = None
    order_item_id: str | None = None


class ResolveDisputeRequest(CamelModel):
    status: DisputeStatus | None = None
    admin_response: str | None = None
    refund_amount: float | None = Field(default=None, ge=0)


class ValidateDiscountRequest(CamelModel):
    code: str = Field(min_length=1, max_length=50)
    order_value: float = Field(ge=0)
    product_ids: list[str] = Field(default_factory=list)
    category_ids: list[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------
class StatusResponse(CamelModel):
    success: bool = True
    message: str = "ok"


class CartItemSchema(CamelModel):
    id: str
    product_id: str
    variant_id: str | None = None
    size: str | None = None
    color: str | None = None
    quantity: int
    price: float


class CartLineSchema(CamelModel):
    item_id: str
    product_id: str
    variant_id: str | None = None
    title: str
    brand: str | None = None
    size: str | None = None
    color: str | None = None
    quantity: int
    unit_price: float
    line_total: float
    available_stock: int


class CartSchema(CamelModel):
    cart_id: str
    items: list[CartLineSchema]
    subtotal: float
    item_count: int
    total_items: int


class CartResponse(CamelModel):
    success: bool = True
    cart: CartSchema


class CartItemResponse(CamelModel):
    success: bool = True
    message: str
    item: CartItemSchema


class OrderItemSchema(CamelModel):
    id: str
    product_id: str
    variant_id: str | None = None
    product_title: str
    product_brand: str | None = None
    size: str | None = None
    color: str | None = None
    quantity: int
    price: float
    subtotal: float


class OrderSchema(CamelModel):
    id: str
    order_number: str
    user_id: str
    shipping_address_id: str
    contact_email: str
    contact_phone: str
    shipping_method_id: str | None = None
    shipping_method_name: str | None = None
    shipping_cost: float
    subtotal: float
    discount_code: str | None = None
    discount_amount: float
    tax: float
    total: float
    currency: str
    status: str
    display_status: str
    payment_status: str
    payment_method: str | None = None
    payment_reference: str | None = None
    notes: str | None = None
    estimated_delivery: date | None = None
    dispute_id: str | None = None
    cancelled_at: datetime | None = None
    created_at: datetime
    updated_at: datetime


class OrderResponse(CamelModel):
    success: bool = True
    message: str | None = None
    order: OrderSchema
    order_items: list[OrderItemSchema]


class OrderListResponse(CamelModel):
    success: bool = True
    orders: list[OrderSchema]
    total_pages: int
    current_page: int
    total: int


class TrackingStepSchema(CamelModel):
    key: str
    label: str
    completed: bool
    completed_at: datetime | None = None


class TrackingResponse(CamelModel):
    success: bool = True
    order: OrderSchema
    order_items: list[OrderItemSchema]
    tracking_steps: list[TrackingStepSchema]


class DisputeSchema(CamelModel):
    id: str
    order_id: str
    order_item_id: str | None = None
    user_id: str
    goods_unique_id: str
    reasons: list[str]
    detailed_explanation: str
    status: str
    admin_response: str | None = None
    refund_amount: float | None = None
    resolved_at: datetime | None = None
    resolved_by: str | None = None
    created_at: datetime


class DisputeResponse(CamelModel):
    success: bool = True
    message: str | None = None
    dispute: DisputeSchema
    order: OrderSchema


class DisputeListResponse(CamelModel):
    success: bool = True
    disputes: list[DisputeSchema]
    total_pages: int
    current_page: int
    total: int


class DiscountValidationResponse(CamelModel):
    success: bool = True
    valid: bool = True
    code: str
    discount_type: str
    discount_value: float
    discount_amount: float
    description: str | None = None
