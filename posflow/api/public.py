"""
Public API endpoints (no staff identity required)
"""

from fastapi import APIRouter, Depends

from posflow.core.dependencies import get_orders
from posflow.api.schemas import PublicOrderRead
from posflow.services.orders import OrderLifecycle

router = APIRouter()


@router.get("/orders/{public_code}", response_model=PublicOrderRead)
def track_order(public_code: str, orders: OrderLifecycle = Depends(get_orders)):
    """Order tracking by public code; contact details are never exposed"""
    return orders.get_by_public_code(public_code)
