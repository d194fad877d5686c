"""
Request dependencies for FastAPI
"""

from fastapi import Depends, Header, HTTPException, status
from sqlmodel import Session
from typing import Optional
import uuid
import structlog

from posflow.core.config import get_settings
from posflow.core.database import get_session
from posflow.services.kitchen import KitchenTicketRouter
from posflow.services.orders import OrderLifecycle
from posflow.services.table_sessions import TableSessionManager

logger = structlog.get_logger(__name__)


def get_actor_id(x_user_id: Optional[str] = Header(default=None)) -> Optional[uuid.UUID]:
    """Acting staff member from the ``X-User-ID`` header

    Authentication happens upstream; the header is only recorded for audit.
    """
    if not x_user_id:
        return None
    try:
        return uuid.UUID(x_user_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-User-ID must be a UUID",
        )


def require_dine_in() -> None:
    """Hide the dine-in routes when the feature is switched off"""
    if not get_settings().ENABLE_DINE_IN:
        logger.debug("dine_in_disabled")
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not Found")


def get_table_sessions(session: Session = Depends(get_session)) -> TableSessionManager:
    return TableSessionManager(session)


def get_orders(session: Session = Depends(get_session)) -> OrderLifecycle:
    return OrderLifecycle(session)


def get_kitchen(session: Session = Depends(get_session)) -> KitchenTicketRouter:
    return KitchenTicketRouter(session)
