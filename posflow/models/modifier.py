"""
Modifier model for product add-ons
"""

from sqlmodel import Field, SQLModel
from typing import Optional
import uuid


class Modifier(SQLModel, table=True):
    """Add-on with a price delta (extra cheese, no onion, ...)"""

    __tablename__ = "modifiers"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    name: str = Field(max_length=120)
    price_delta_cents: int = Field(default=0)
    category: Optional[str] = Field(default=None, max_length=60, description="Grouping label for menus")
    is_active: bool = Field(default=True)
