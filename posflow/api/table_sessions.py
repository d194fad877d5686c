"""
Table sessions API endpoints
"""

from fastapi import APIRouter, Depends
from typing import Optional
import uuid

from posflow.core.dependencies import get_actor_id, get_orders, get_table_sessions
from posflow.api.schemas import (
    CloseSessionRequest,
    OrderRead,
    SessionOrderCreate,
    TableSessionDetail,
    TableSessionRead,
)
from posflow.models.order import OrderChannel, TakeMode
from posflow.services.orders import OrderDraft, OrderLifecycle
from posflow.services.table_sessions import TableSessionManager

router = APIRouter()


@router.get("/{session_id}", response_model=TableSessionDetail)
def get_table_session(
    session_id: uuid.UUID,
    tables: TableSessionManager = Depends(get_table_sessions),
):
    """Session with all its orders"""
    return tables.get_session(session_id)


@router.post("/{session_id}/orders", response_model=OrderRead, status_code=201)
def add_session_order(
    session_id: uuid.UUID,
    request: SessionOrderCreate,
    actor_id: Optional[uuid.UUID] = Depends(get_actor_id),
    orders: OrderLifecycle = Depends(get_orders),
):
    """Place a dine-in order on an open session"""
    draft = OrderDraft(
        items=[item.to_draft() for item in request.items],
        customer_name=request.customer_name,
        table_session_id=session_id,
        channel=OrderChannel.DINE_IN,
        take_mode=TakeMode.DINE_IN,
        note=request.note,
        discount_cents=request.discount_cents,
        tip_cents=request.tip_cents,
        coupon_code=request.coupon_code,
        actor_id=actor_id,
    )
    return orders.create(draft)


@router.post("/{session_id}/close", response_model=TableSessionRead)
def close_table_session(
    session_id: uuid.UUID,
    request: CloseSessionRequest,
    actor_id: Optional[uuid.UUID] = Depends(get_actor_id),
    tables: TableSessionManager = Depends(get_table_sessions),
):
    """Record payment, finalize totals and free the table"""
    return tables.close_session(
        session_id,
        payment_method=request.payment_method,
        tip_cents=request.tip_cents,
        notes=request.notes,
        actor_id=actor_id,
    )
