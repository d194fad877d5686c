"""
Order status history - append-only audit trail
"""

from sqlmodel import Field, SQLModel, Relationship
from datetime import datetime
from typing import Optional, TYPE_CHECKING
import uuid

from posflow.core.clock import utcnow
from posflow.models.order import OrderStatus

if TYPE_CHECKING:
    from posflow.models.order import Order


class OrderStatusHistory(SQLModel, table=True):
    """One row per status an order has entered"""

    __tablename__ = "order_status_history"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    order_id: uuid.UUID = Field(foreign_key="orders.id", index=True, ondelete="CASCADE")
    sequence: int = Field(default=0, description="Position in the order's history, starting at 1")
    status: OrderStatus
    changed_by_user_id: Optional[uuid.UUID] = Field(default=None)
    changed_at: datetime = Field(default_factory=utcnow)

    order: Optional["Order"] = Relationship(back_populates="history")
