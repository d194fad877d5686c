"""
Kitchen ticket model for station work slips
"""

from sqlmodel import Field, SQLModel, Relationship
from sqlalchemy import Column, JSON, UniqueConstraint
from datetime import date, datetime
from typing import Optional, TYPE_CHECKING, List, Tuple
from enum import Enum
import uuid

from posflow.core.clock import utcnow

if TYPE_CHECKING:
    from posflow.models.order import Order


class KitchenStation(str, Enum):
    """Production area a ticket is routed to"""
    KITCHEN = "KITCHEN"
    BAR = "BAR"
    GRILL = "GRILL"
    DESSERTS = "DESSERTS"

    @property
    def prefix(self) -> str:
        return STATION_PREFIXES[self]


STATION_PREFIXES = {
    KitchenStation.KITCHEN: "K",
    KitchenStation.BAR: "B",
    KitchenStation.GRILL: "G",
    KitchenStation.DESSERTS: "D",
}


class KitchenTicketStatus(str, Enum):
    """Status of a kitchen ticket"""
    PENDING = "PENDING"             # Waiting at the station
    IN_PROGRESS = "IN_PROGRESS"     # Station is working on it
    READY = "READY"                 # Waiting to be picked up
    DELIVERED = "DELIVERED"         # Handed over
    CANCELLED = "CANCELLED"         # Parent order was cancelled


TICKET_SEQUENCE: Tuple[KitchenTicketStatus, ...] = (
    KitchenTicketStatus.PENDING,
    KitchenTicketStatus.IN_PROGRESS,
    KitchenTicketStatus.READY,
    KitchenTicketStatus.DELIVERED,
)


def ticket_rank(status: KitchenTicketStatus) -> int:
    """Position on the linear workflow (CANCELLED has no position)"""
    return TICKET_SEQUENCE.index(status)


class KitchenTicket(SQLModel, table=True):
    """Per-station ticket derived from one order"""

    __tablename__ = "kitchen_tickets"
    __table_args__ = (
        UniqueConstraint("order_id", "station", name="uq_kitchen_tickets_order_station"),
        UniqueConstraint("service_date", "ticket_number", name="uq_kitchen_tickets_daily_number"),
    )

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    order_id: uuid.UUID = Field(
        foreign_key="orders.id",
        index=True,
        ondelete="CASCADE",
        description="Order this ticket was created from"
    )
    station: KitchenStation = Field(index=True)
    status: KitchenTicketStatus = Field(default=KitchenTicketStatus.PENDING, index=True)

    # Human-readable per-day number, e.g. K001
    ticket_number: str = Field(max_length=12)
    service_date: date = Field(index=True)

    items_snapshot: List[dict] = Field(
        default_factory=list,
        description="Items routed to this station (JSON)",
        sa_column=Column(JSON, nullable=False)
    )
    notes: Optional[str] = Field(default=None, max_length=500)
    assigned_to_user_id: Optional[uuid.UUID] = Field(default=None)

    # Timing, each stamped once
    created_at: datetime = Field(default_factory=utcnow, index=True)
    started_at: Optional[datetime] = Field(default=None)
    ready_at: Optional[datetime] = Field(default=None)
    delivered_at: Optional[datetime] = Field(default=None)
    cancelled_at: Optional[datetime] = Field(default=None)

    # Relationships
    order: Optional["Order"] = Relationship(back_populates="tickets")

    def is_open(self) -> bool:
        return self.status not in (KitchenTicketStatus.DELIVERED, KitchenTicketStatus.CANCELLED)


class TicketSequence(SQLModel, table=True):
    """Last ticket number issued per station and service day"""

    __tablename__ = "ticket_sequences"

    service_date: date = Field(primary_key=True)
    station: KitchenStation = Field(primary_key=True)
    last_value: int = Field(default=0)
