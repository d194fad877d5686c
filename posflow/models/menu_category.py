"""
Menu category model for organizing products
"""

from sqlmodel import Field, SQLModel, Relationship
from datetime import datetime
from typing import Optional, TYPE_CHECKING, List
import uuid

from posflow.core.clock import utcnow
from posflow.models.kitchen_ticket import KitchenStation

if TYPE_CHECKING:
    from posflow.models.menu_item import Product


class Category(SQLModel, table=True):
    """Menu category; decides which station its products are prepared at"""

    __tablename__ = "categories"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    name: str = Field(max_length=255, nullable=False, description="Category name")
    sort_order: int = Field(default=0, description="Order to display categories in UI")
    default_station: Optional[KitchenStation] = Field(
        default=None,
        description="Station that prepares this category's products"
    )
    is_active: bool = Field(default=True, index=True)

    created_at: datetime = Field(default_factory=utcnow)

    # Relationships
    products: List["Product"] = Relationship(back_populates="category")
