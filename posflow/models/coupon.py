"""
Coupon models
"""

from sqlmodel import Field, SQLModel
from datetime import datetime
from typing import Optional
from enum import Enum
import uuid

from posflow.core.clock import utcnow


class CouponType(str, Enum):
    PERCENT = "PERCENT"
    AMOUNT = "AMOUNT"


class Coupon(SQLModel, table=True):
    """Discount code redeemable on orders"""

    __tablename__ = "coupons"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    code: str = Field(max_length=40, unique=True, index=True)
    type: CouponType = Field(default=CouponType.PERCENT)
    value: int = Field(description="Percent for PERCENT coupons, cents for AMOUNT coupons")
    min_total_cents: Optional[int] = Field(default=None)

    # Validity
    valid_from: datetime
    valid_to: datetime
    usage_limit: Optional[int] = Field(default=None, description="Maximum redemptions, unlimited when unset")
    is_active: bool = Field(default=True)

    created_at: datetime = Field(default_factory=utcnow)

    def is_valid_at(self, moment: datetime) -> bool:
        return self.is_active and self.valid_from <= moment <= self.valid_to


class CouponRedemption(SQLModel, table=True):
    """One row per order that used a coupon"""

    __tablename__ = "coupon_redemptions"

    coupon_id: uuid.UUID = Field(foreign_key="coupons.id", primary_key=True)
    order_id: uuid.UUID = Field(foreign_key="orders.id", primary_key=True, ondelete="CASCADE")
    redeemed_at: datetime = Field(default_factory=utcnow)
