"""FastAPI routes for the Ordering domain — cart, orders, disputes and discount checks."""

from fastapi import APIRouter, Depends, Query, Response
from protean.utils.globals import current_domain

from identity.auth import Principal, get_current_admin, get_current_user
from ordering.api.schemas import (
    AddToCartRequest,
    CartItemResponse,
    CartItemSchema,
    CartLineSchema,
    CartResponse,
    CartSchema,
    CreateOrderRequest,
    DiscountValidationResponse,
    DisputeListResponse,
    DisputeResponse,
    DisputeSchema,
    OpenDisputeRequest,
    OrderItemSchema,
    OrderListResponse,
    OrderResponse,
    OrderSchema,
    ResolveDisputeRequest,
    StatusResponse,
    TrackingResponse,
    TrackingStepSchema,
    UpdateCartItemRequest,
    UpdateOrderStatusRequest,
    ValidateDiscountRequest,
)
from ordering.cart.items import AddToCart, ClearCart, RemoveFromCart, UpdateCartQuantity
from ordering.cart.manager import CartManager
from ordering.order.creation import CreateOrder
from ordering.order.dispute_desk import OpenDispute, ResolveDispute
from ordering.order.disputes import Dispute
from ordering.order.lifecycle import AcceptOrder, CancelOrder, UpdateOrderStatus, tracking_checklist
from ordering.order.order import Order
from ordering.order.queries import DisputePage, DisputeQueries, OrderPage, OrderQueries
from ordering.pricing.discounts import validate_discount


def _order_response(order: Order, message: str | None = None) -> OrderResponse:
    return OrderResponse(
        message=message,
        order=OrderSchema.model_validate(order),
        order_items=[OrderItemSchema.model_validate(item) for item in order.items],
    )


def _order_list(page: OrderPage) -> OrderListResponse:
    return OrderListResponse(
        orders=[OrderSchema.model_validate(order) for order in page.orders],
        total_pages=page.total_pages,
        current_page=page.page,
        total=page.total,
    )


def _dispute_response(dispute: Dispute, message: str | None = None) -> DisputeResponse:
    return DisputeResponse(
        message=message,
        dispute=DisputeSchema.model_validate(dispute),
        order=OrderSchema.model_validate(dispute.order),
    )


def _dispute_list(page: DisputePage) -> DisputeListResponse:
    return DisputeListResponse(
        disputes=[DisputeSchema.model_validate(dispute) for dispute in page.disputes],
        total_pages=page.total_pages,
        current_page=page.page,
        total=page.total,
    )


# ---------------------------------------------------------------------------
# Cart Router
# ---------------------------------------------------------------------------
cart_router = APIRouter(prefix="/cart", tags=["cart"])


@cart_router.get("", response_model=CartResponse)
async def get_cart(user: Principal = Depends(get_current_user)) -> CartResponse:
    snapshot = CartManager().snapshot(user.user_id)
    cart = CartSchema(
        cart_id=snapshot.cart_id,
        items=[CartLineSchema.model_validate(line) for line in snapshot.lines],
        subtotal=snapshot.subtotal,
        item_count=snapshot.item_count,
        total_items=snapshot.total_units,
    )
    return CartResponse(cart=cart)


@cart_router.post("", status_code=201, response_model=CartItemResponse)
async def add_to_cart(
    body: AddToCartRequest,
    response: Response,
    user: Principal = Depends(get_current_user),
) -> CartItemResponse:
    command = AddToCart(
        user_id=user.user_id,
        product_id=body.product_id,
        variant_id=body.variant_id,
        size=body.size,
        color=body.color,
        quantity=body.quantity,
    )
    item, created = current_domain.process(command, asynchronous=False)
    if not created:
        response.status_code = 200
    return CartItemResponse(
        message="Item added to cart" if created else "Cart updated",
        item=CartItemSchema.model_validate(item),
    )


@cart_router.put("/{item_id}", response_model=CartItemResponse)
async def update_cart_item(
    item_id: str,
    body: UpdateCartItemRequest,
    user: Principal = Depends(get_current_user),
) -> CartItemResponse:
    command = UpdateCartQuantity(user_id=user.user_id, item_id=item_id, quantity=body.quantity)
    item = current_domain.process(command, asynchronous=False)
    return CartItemResponse(message="Cart item updated", item=CartItemSchema.model_validate(item))


@cart_router.delete("/{item_id}", response_model=StatusResponse)
async def remove_cart_item(item_id: str, user: Principal = Depends(get_current_user)) -> StatusResponse:
    current_domain.process(RemoveFromCart(user_id=user.user_id, item_id=item_id), asynchronous=False)
    return StatusResponse(message="Item removed from cart")


@cart_router.delete("", response_model=StatusResponse)
async def clear_cart(user: Principal = Depends(get_current_user)) -> StatusResponse:
    current_domain.process(ClearCart(user_id=user.user_id), asynchronous=False)
    return StatusResponse(message="Cart cleared")


# ---------------------------------------------------------------------------
# Order Router
# ---------------------------------------------------------------------------
order_router = APIRouter(prefix="/orders", tags=["orders"])


@order_router.post("", status_code=201, response_model=OrderResponse)
async def create_order(body: CreateOrderRequest, user: Principal = Depends(get_current_user)) -> OrderResponse:
    command = CreateOrder(
        user_id=user.user_id,
        shipping_address_id=body.shipping_address_id,
        shipping_method_id=body.shipping_method_id,
        discount_code=body.discount_code,
        payment_method=body.payment_method or "card",
        notes=body.notes,
    )
    order = current_domain.process(command, asynchronous=False)
    return _order_response(order, "Order created successfully")


@order_router.get("", response_model=OrderListResponse)
async def list_orders(
    status: str | None = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user: Principal = Depends(get_current_user),
) -> OrderListResponse:
    return _order_list(OrderQueries().list_user_orders(user.user_id, status=status, page=page, limit=limit))


@order_router.get("/admin/all", response_model=OrderListResponse)
async def list_all_orders(
    status: str | None = None,
    payment_status: str | None = Query(None, alias="paymentStatus"),
    search: str | None = None,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
    admin: Principal = Depends(get_current_admin),  # noqa: ARG001
) -> OrderListResponse:
    return _order_list(
        OrderQueries().list_all_orders(
            status=status,
            payment_status=payment_status,
            search=search,
            page=page,
            limit=limit,
        )
    )


@order_router.get("/admin/{order_id}", response_model=OrderResponse)
async def get_admin_order(order_id: str, admin: Principal = Depends(get_current_admin)) -> OrderResponse:  # noqa: ARG001
    return _order_response(OrderQueries().get_admin_order(order_id))


@order_router.get("/view/{view}", response_model=OrderListResponse)
async def list_orders_by_view(
    view: str,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user: Principal = Depends(get_current_user),
) -> OrderListResponse:
    return _order_list(OrderQueries().list_user_orders_by_view(user.user_id, view, page=page, limit=limit))


@order_router.get("/number/{order_number}", response_model=OrderResponse)
async def get_order_by_number(order_number: str, user: Principal = Depends(get_current_user)) -> OrderResponse:
    return _order_response(OrderQueries().get_order_by_number(user.user_id, order_number))


@order_router.get("/{order_id}", response_model=OrderResponse)
async def get_order(order_id: str, user: Principal = Depends(get_current_user)) -> OrderResponse:
    return _order_response(OrderQueries().get_order(user.user_id, order_id))


@order_router.put("/{order_id}/cancel", response_model=OrderResponse)
async def cancel_order(order_id: str, user: Principal = Depends(get_current_user)) -> OrderResponse:
    order = current_domain.process(CancelOrder(user_id=user.user_id, order_id=order_id), asynchronous=False)
    return _order_response(order, "Order cancelled")


@order_router.get("/{order_id}/track", response_model=TrackingResponse)
async def track_order(order_id: str, user: Principal = Depends(get_current_user)) -> TrackingResponse:
    order = OrderQueries().find_for_tracking(user.user_id, order_id)
    return TrackingResponse(
        order=OrderSchema.model_validate(order),
        order_items=[OrderItemSchema.model_validate(item) for item in order.items],
        tracking_steps=[TrackingStepSchema.model_validate(step) for step in tracking_checklist(order)],
    )


@order_router.put("/{order_id}/accept", response_model=OrderResponse)
async def accept_order(order_id: str, user: Principal = Depends(get_current_user)) -> OrderResponse:
    order = current_domain.process(AcceptOrder(user_id=user.user_id, order_id=order_id), asynchronous=False)
    return _order_response(order, "Order accepted successfully")


@order_router.put("/{order_id}/status", response_model=OrderResponse)
async def update_order_status(
    order_id: str,
    body: UpdateOrderStatusRequest,
    admin: Principal = Depends(get_current_admin),  # noqa: ARG001
) -> OrderResponse:
    command = UpdateOrderStatus(
        order_id=order_id,
        status=body.status,
        payment_status=body.payment_status,
        payment_reference=body.payment_reference,
        estimated_delivery=body.estimated_delivery,
    )
    order = current_domain.process(command, asynchronous=False)
    return _order_response(order, "Order status updated")


# ---------------------------------------------------------------------------
# Dispute Router
# ---------------------------------------------------------------------------
dispute_router = APIRouter(prefix="/disputes", tags=["disputes"])


@dispute_router.post("", status_code=201, response_model=DisputeResponse)
async def open_dispute(body: OpenDisputeRequest, user: Principal = Depends(get_current_user)) -> DisputeResponse:
    command = OpenDispute(
        user_id=user.user_id,
        goods_unique_id=body.goods_unique_id,
        reasons=[reason.value for reason in body.reasons],
        detailed_explanation=body.detailed_explanation,
        order_id=body.order_id,
        order_item_id=body.order_item_id,
    )
    dispute = current_domain.process(command, asynchronous=False)
    return _dispute_response(dispute, "Dispute created successfully")


@dispute_router.get("", response_model=DisputeListResponse)
async def list_disputes(
    status: str | None = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user: Principal = Depends(get_current_user),
) -> DisputeListResponse:
    return _dispute_list(DisputeQueries().list_user_disputes(user.user_id, status=status, page=page, limit=limit))


@dispute_router.get("/admin/all", response_model=DisputeListResponse)
async def list_all_disputes(
    status: str | None = None,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
    admin: Principal = Depends(get_current_admin),  # noqa: ARG001
) -> DisputeListResponse:
    return _dispute_list(DisputeQueries().list_all_disputes(status=status, page=page, limit=limit))


@dispute_router.get("/{dispute_id}", response_model=DisputeResponse)
async def get_dispute(dispute_id: str, user: Principal = Depends(get_current_user)) -> DisputeResponse:
    return _dispute_response(DisputeQueries().get_dispute(user.user_id, dispute_id))


@dispute_router.put("/{dispute_id}/status", response_model=DisputeResponse)
async def resolve_dispute(
    dispute_id: str,
    body: ResolveDisputeRequest,
    admin: Principal = Depends(get_current_admin),
) -> DisputeResponse:
    command = ResolveDispute(
        dispute_id=dispute_id,
        admin_id=admin.user_id,
        status=body.status.value if body.status is not None else None,
        admin_response=body.admin_response,
        refund_amount=body.refund_amount,
    )
    dispute = current_domain.process(command, asynchronous=False)
    return _dispute_response(dispute, "Dispute status updated")


# ---------------------------------------------------------------------------
# Discount Router
# ---------------------------------------------------------------------------
discount_router = APIRouter(prefix="/discounts", tags=["discounts"])


@discount_router.post("/validate", response_model=DiscountValidationResponse)
async def check_discount(
    body: ValidateDiscountRequest,
    user: Principal = Depends(get_current_user),
) -> DiscountValidationResponse:
    discount, quote = validate_discount(
        user.user_id,
        body.code,
        body.order_value,
        product_ids=body.product_ids,
        category_ids=body.category_ids,
    )
    return DiscountValidationResponse(
        code=quote.code,
        discount_type=discount.discount_type,
        discount_value=discount.discount_value,
        discount_amount=quote.amount,
        description=discount.description,
    )
