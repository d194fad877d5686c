"""
Orders API endpoints
"""

from fastapi import APIRouter, Depends, Response, status
from typing import List, Optional
import uuid

from posflow.core.dependencies import get_actor_id, get_orders, require_dine_in
from posflow.api.schemas import (
    OrderCreate,
    OrderHistoryRead,
    OrderRead,
    OrderStatusUpdate,
)
from posflow.models.order import OrderStatus
from posflow.services.orders import OrderDraft, OrderLifecycle

router = APIRouter()


@router.post("", response_model=OrderRead, status_code=status.HTTP_201_CREATED)
def create_order(
    request: OrderCreate,
    actor_id: Optional[uuid.UUID] = Depends(get_actor_id),
    orders: OrderLifecycle = Depends(get_orders),
):
    """Place an order

    Items are priced server-side; any client-side prices are ignored.
    """
    if request.table_session_id is not None:
        require_dine_in()

    draft = OrderDraft(
        items=[item.to_draft() for item in request.items],
        customer_name=request.customer_name,
        phone=request.phone,
        table_session_id=request.table_session_id,
        channel=request.channel,
        take_mode=request.take_mode,
        branch_id=request.branch_id,
        address=request.address,
        reference=request.reference,
        note=request.note,
        scheduled_at=request.scheduled_at,
        discount_cents=request.discount_cents,
        tip_cents=request.tip_cents,
        coupon_code=request.coupon_code,
        actor_id=actor_id,
    )
    return orders.create(draft)


@router.get("", response_model=List[OrderRead])
def list_orders(
    status: Optional[OrderStatus] = None,
    session_id: Optional[uuid.UUID] = None,
    orders: OrderLifecycle = Depends(get_orders),
):
    """List orders, newest first"""
    return orders.list(status=status, session_id=session_id)


@router.get("/{order_id}", response_model=OrderRead)
def get_order(order_id: uuid.UUID, orders: OrderLifecycle = Depends(get_orders)):
    return orders.get(order_id)


@router.put("/{order_id}/status", response_model=OrderRead)
def update_order_status(
    order_id: uuid.UUID,
    request: OrderStatusUpdate,
    actor_id: Optional[uuid.UUID] = Depends(get_actor_id),
    orders: OrderLifecycle = Depends(get_orders),
):
    """Move an order to its next status"""
    return orders.advance_status(order_id, request.status, actor_id=actor_id)


@router.post("/{order_id}/cancel", response_model=OrderRead)
def cancel_order(
    order_id: uuid.UUID,
    actor_id: Optional[uuid.UUID] = Depends(get_actor_id),
    orders: OrderLifecycle = Depends(get_orders),
):
    return orders.cancel(order_id, actor_id=actor_id)


@router.delete("/{order_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_order(order_id: uuid.UUID, orders: OrderLifecycle = Depends(get_orders)):
    """Hard-delete an order (administrative correction)"""
    orders.delete(order_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{order_id}/history", response_model=List[OrderHistoryRead])
def get_order_history(order_id: uuid.UUID, orders: OrderLifecycle = Depends(get_orders)):
    return orders.history(order_id)
