"""
Kitchen tickets API endpoints for station displays
"""

from fastapi import APIRouter, Depends
from typing import List, Optional
import uuid

from posflow.core.dependencies import get_actor_id, get_kitchen
from posflow.api.schemas import KitchenTicketRead, TicketStatusUpdate
from posflow.models.kitchen_ticket import KitchenStation, KitchenTicketStatus
from posflow.services.kitchen import KitchenTicketRouter

router = APIRouter()


@router.get("", response_model=List[KitchenTicketRead])
def list_tickets(
    station: Optional[KitchenStation] = None,
    status: Optional[KitchenTicketStatus] = None,
    kitchen: KitchenTicketRouter = Depends(get_kitchen),
):
    """Station queue, oldest first

    Delivered and cancelled tickets are left out unless ``status`` asks for them.
    """
    return kitchen.list(station=station, status=status)


@router.get("/{ticket_id}", response_model=KitchenTicketRead)
def get_ticket(ticket_id: uuid.UUID, kitchen: KitchenTicketRouter = Depends(get_kitchen)):
    return kitchen.get(ticket_id)


@router.put("/{ticket_id}/status", response_model=KitchenTicketRead)
def update_ticket_status(
    ticket_id: uuid.UUID,
    request: TicketStatusUpdate,
    actor_id: Optional[uuid.UUID] = Depends(get_actor_id),
    kitchen: KitchenTicketRouter = Depends(get_kitchen),
):
    """Advance a ticket one step; the order status follows its tickets"""
    return kitchen.advance_ticket(ticket_id, request.status, actor_id=actor_id, notes=request.notes)
