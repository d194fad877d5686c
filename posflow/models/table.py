"""
Table model for restaurant seating
"""

from sqlmodel import Field, SQLModel, Relationship
from datetime import datetime
from typing import Optional, List, TYPE_CHECKING
from enum import Enum
import uuid

from posflow.core.clock import utcnow

if TYPE_CHECKING:
    from posflow.models.table_session import TableSession


class TableStatus(str, Enum):
    """Status of a dining table"""
    AVAILABLE = "AVAILABLE"
    OCCUPIED = "OCCUPIED"                # An open session exists
    RESERVED = "RESERVED"
    OUT_OF_SERVICE = "OUT_OF_SERVICE"
    BILL_REQUESTED = "BILL_REQUESTED"    # Open session, guests asked for the check


# Statuses that imply an open session on the table
SEATED_STATUSES = (TableStatus.OCCUPIED, TableStatus.BILL_REQUESTED)


class Table(SQLModel, table=True):
    """Table model for restaurant seating"""

    __tablename__ = "tables"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    branch_id: Optional[uuid.UUID] = Field(default=None, index=True, description="Branch this table belongs to")

    # Table details
    name: str = Field(max_length=50, nullable=False, description="Table identifier (e.g., 'A1', 'B3')")
    capacity: int = Field(default=4, description="Maximum number of guests")
    sort_order: int = Field(default=0, description="Display order on the floor plan")

    # Status
    status: TableStatus = Field(default=TableStatus.AVAILABLE, index=True)
    is_active: bool = Field(default=True, index=True)

    # Timestamps
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    # Relationships
    sessions: List["TableSession"] = Relationship(back_populates="table")

    def accepts_new_session(self) -> bool:
        """Check if a session may be opened on this table"""
        return self.is_active and self.status in (TableStatus.AVAILABLE, TableStatus.RESERVED)
