"""
Combo models: bundles sold at a listed price
"""

from sqlmodel import Field, SQLModel, Relationship
from typing import Optional, List
import uuid


class Combo(SQLModel, table=True):
    """Bundle of products sold together"""

    __tablename__ = "combos"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    name: str = Field(max_length=255)
    price_cents: int = Field(description="Listed price, never derived from components")
    is_active: bool = Field(default=True)

    items: List["ComboItem"] = Relationship(back_populates="combo")


class ComboItem(SQLModel, table=True):
    """Component of a combo"""

    __tablename__ = "combo_items"

    combo_id: uuid.UUID = Field(foreign_key="combos.id", primary_key=True)
    product_id: uuid.UUID = Field(foreign_key="products.id", primary_key=True)
    qty: int = Field(default=1)

    combo: Optional[Combo] = Relationship(back_populates="items")
