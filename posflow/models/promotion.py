"""
Promotion model

Promotions are configuration: the pricing code receives them as values and
never reads this table itself.
"""

from sqlmodel import Field, SQLModel
from sqlalchemy import Column, JSON
from datetime import time
from typing import Optional, List
from enum import Enum
import uuid


class PromotionKind(str, Enum):
    PERCENT = "PERCENT"
    TWO_FOR_ONE = "TWO_FOR_ONE"


class Promotion(SQLModel, table=True):
    """Time-boxed price promotion"""

    __tablename__ = "promotions"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    name: str = Field(max_length=120)
    kind: PromotionKind
    percent: int = Field(default=0, description="Discount percent, PERCENT promotions only")

    # Targeting; empty lists mean "every day" / "every product"
    weekdays: List[int] = Field(
        default_factory=list,
        description="Days of week, Monday=0",
        sa_column=Column(JSON, nullable=False)
    )
    start_time: Optional[time] = Field(default=None)
    end_time: Optional[time] = Field(default=None)
    product_ids: List[str] = Field(
        default_factory=list,
        sa_column=Column(JSON, nullable=False)
    )

    is_active: bool = Field(default=True)
