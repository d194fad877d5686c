"""
Tables API endpoints for dine-in seating
"""

from fastapi import APIRouter, Depends
from typing import List, Optional
import uuid

from posflow.core.dependencies import get_actor_id, get_table_sessions
from posflow.api.schemas import (
    OpenSessionRequest,
    TableOverviewRead,
    TableRead,
    TableSessionRead,
)
from posflow.services.table_sessions import TableSessionManager

router = APIRouter()


@router.get("", response_model=List[TableOverviewRead])
def list_tables(
    branch_id: Optional[uuid.UUID] = None,
    tables: TableSessionManager = Depends(get_table_sessions),
):
    """List tables with the summary of their open session"""
    overviews = []
    for overview in tables.list_tables(branch_id):
        data = TableOverviewRead.model_validate(overview.table)
        if overview.open_session is not None:
            data.open_session_id = overview.open_session.id
            data.guest_count = overview.open_session.guest_count
            data.order_count = overview.order_count
            data.session_total_cents = overview.total_cents
        overviews.append(data)
    return overviews


@router.post("/{table_id}/open-session", response_model=TableSessionRead, status_code=201)
def open_session(
    table_id: uuid.UUID,
    request: OpenSessionRequest,
    actor_id: Optional[uuid.UUID] = Depends(get_actor_id),
    tables: TableSessionManager = Depends(get_table_sessions),
):
    """Seat guests at a table"""
    return tables.open_session(
        table_id,
        guest_count=request.guest_count,
        customer_name=request.customer_name,
        notes=request.notes,
        waiter_id=request.waiter_id,
        actor_id=actor_id,
    )


@router.post("/{table_id}/request-bill", response_model=TableRead)
def request_bill(
    table_id: uuid.UUID,
    actor_id: Optional[uuid.UUID] = Depends(get_actor_id),
    tables: TableSessionManager = Depends(get_table_sessions),
):
    return tables.request_bill(table_id, actor_id=actor_id)


@router.post("/{table_id}/reserve", response_model=TableRead)
def reserve_table(
    table_id: uuid.UUID,
    actor_id: Optional[uuid.UUID] = Depends(get_actor_id),
    tables: TableSessionManager = Depends(get_table_sessions),
):
    return tables.reserve(table_id, actor_id=actor_id)


@router.post("/{table_id}/release", response_model=TableRead)
def release_table(
    table_id: uuid.UUID,
    actor_id: Optional[uuid.UUID] = Depends(get_actor_id),
    tables: TableSessionManager = Depends(get_table_sessions),
):
    return tables.release(table_id, actor_id=actor_id)


@router.post("/{table_id}/out-of-service", response_model=TableRead)
def set_out_of_service(
    table_id: uuid.UUID,
    actor_id: Optional[uuid.UUID] = Depends(get_actor_id),
    tables: TableSessionManager = Depends(get_table_sessions),
):
    return tables.set_out_of_service(table_id, actor_id=actor_id)
