"""
Table session model for tracking dining sessions

At most one session per table may have ``closed_at`` unset. The partial
unique index below enforces that in storage, on SQLite and PostgreSQL alike.
"""

from sqlmodel import Field, SQLModel, Relationship
from sqlalchemy import Index, text
from datetime import datetime
from typing import Optional, List, TYPE_CHECKING
from enum import Enum
import uuid

from posflow.core.clock import utcnow

if TYPE_CHECKING:
    from posflow.models.table import Table
    from posflow.models.order import Order


class PaymentMethod(str, Enum):
    """How a session bill was settled"""
    CASH = "CASH"
    CARD = "CARD"
    TRANSFER = "TRANSFER"


OPEN_SESSION_INDEX = "uq_table_sessions_open_per_table"


class TableSession(SQLModel, table=True):
    """Table session for tracking guest dining experience"""

    __tablename__ = "table_sessions"
    __table_args__ = (
        Index(
            OPEN_SESSION_INDEX,
            "table_id",
            unique=True,
            sqlite_where=text("closed_at IS NULL"),
            postgresql_where=text("closed_at IS NULL"),
        ),
    )

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    table_id: uuid.UUID = Field(
        foreign_key="tables.id",
        index=True,
        description="Table being used for this session"
    )

    # Session details
    customer_name: Optional[str] = Field(default=None, max_length=120)
    guest_count: int = Field(default=1, description="Number of guests at table")
    notes: Optional[str] = Field(
        default=None,
        max_length=500,
        description="Special notes about the session (allergies, preferences, etc.)"
    )

    # Staff
    opened_by_user_id: Optional[uuid.UUID] = Field(default=None)
    closed_by_user_id: Optional[uuid.UUID] = Field(default=None)
    assigned_waiter_id: Optional[uuid.UUID] = Field(
        default=None,
        index=True,
        description="Primary server/waiter assigned to this table"
    )

    # Running totals, finalized on close
    subtotal_cents: int = Field(default=0)
    tip_cents: int = Field(default=0)
    total_cents: int = Field(default=0)

    # Payment (method and amount only, settlement happens elsewhere)
    payment_method: Optional[PaymentMethod] = Field(default=None)
    paid_at: Optional[datetime] = Field(default=None)

    # Timestamps
    opened_at: datetime = Field(default_factory=utcnow, description="Time when guests were seated")
    closed_at: Optional[datetime] = Field(default=None, index=True, description="Time when session was closed")

    # Relationships
    table: Optional["Table"] = Relationship(back_populates="sessions")
    orders: List["Order"] = Relationship(back_populates="table_session")

    @property
    def is_open(self) -> bool:
        return self.closed_at is None
