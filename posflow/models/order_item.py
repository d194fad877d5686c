"""
Order item model
Individual lines of an order with price snapshots
"""

from sqlmodel import Field, SQLModel, Relationship
from sqlalchemy import Column, JSON
from typing import Optional, TYPE_CHECKING
import uuid

from posflow.models.selection import ItemSelection

if TYPE_CHECKING:
    from posflow.models.order import Order


class OrderItem(SQLModel, table=True):
    """Single line of an order, priced at creation time"""

    __tablename__ = "order_items"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    order_id: uuid.UUID = Field(
        foreign_key="orders.id",
        index=True,
        ondelete="CASCADE",
        description="Order this item belongs to"
    )

    # Exactly one of product_id / combo_id is set
    product_id: Optional[uuid.UUID] = Field(default=None, foreign_key="products.id", index=True)
    combo_id: Optional[uuid.UUID] = Field(default=None, foreign_key="combos.id")

    # Snapshot from the catalog at order time
    name_snapshot: str = Field(max_length=255)
    qty: int = Field(default=1)

    # Money (integer cents)
    unit_price_cents: int = Field(default=0, description="Per-unit price after modifiers and percent promotion")
    modifiers_total_cents: int = Field(default=0, description="Sum of modifier deltas across the line")
    line_total_cents: int = Field(default=0, description="What the customer pays for this line")

    modifiers_snapshot: dict = Field(
        default_factory=dict,
        description="Versioned ItemSelection record (JSON)",
        sa_column=Column(JSON, nullable=False)
    )

    # Relationships
    order: Optional["Order"] = Relationship(back_populates="items")

    @property
    def selection(self) -> ItemSelection:
        return ItemSelection.from_json(self.modifiers_snapshot)

    @property
    def is_combo(self) -> bool:
        return self.combo_id is not None
