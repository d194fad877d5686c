"""
Product model for sellable menu items
"""

from sqlmodel import Field, SQLModel, Relationship
from datetime import datetime
from typing import Optional, TYPE_CHECKING, List
import uuid

from posflow.core.clock import utcnow

if TYPE_CHECKING:
    from posflow.models.menu_category import Category
    from posflow.models.modifier import Modifier


class ProductModifier(SQLModel, table=True):
    """Link table: modifiers a product may be ordered with"""

    __tablename__ = "product_modifiers"

    product_id: uuid.UUID = Field(foreign_key="products.id", primary_key=True)
    modifier_id: uuid.UUID = Field(foreign_key="modifiers.id", primary_key=True)


class Product(SQLModel, table=True):
    """Menu product"""

    __tablename__ = "products"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    category_id: uuid.UUID = Field(
        foreign_key="categories.id",
        index=True,
        description="Category this product belongs to"
    )

    name: str = Field(max_length=255, nullable=False)
    description: Optional[str] = Field(default=None, max_length=1000)

    # Pricing (integer cents)
    base_price_cents: int = Field(description="Price of a single portion")
    double_price_cents: Optional[int] = Field(
        default=None,
        description="Price of a double portion, unset when not offered"
    )

    is_active: bool = Field(default=True, index=True)
    sort_order: int = Field(default=0)

    created_at: datetime = Field(default_factory=utcnow)

    # Relationships
    category: Optional["Category"] = Relationship(back_populates="products")
    modifiers: List["Modifier"] = Relationship(link_model=ProductModifier)

    @property
    def offers_double(self) -> bool:
        return self.double_price_cents is not None
