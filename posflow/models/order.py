"""
Order model for placed orders

An order is created once from a client request and then only moves along
its status lifecycle. Money is stored as integer cents.
"""

from sqlmodel import Field, SQLModel, Relationship
from datetime import datetime
from typing import Optional, TYPE_CHECKING, List, Tuple
from enum import Enum
import uuid

from posflow.core.clock import utcnow
from posflow.core.exceptions import IllegalTransition

if TYPE_CHECKING:
    from posflow.models.table_session import TableSession
    from posflow.models.order_item import OrderItem
    from posflow.models.order_status_history import OrderStatusHistory
    from posflow.models.kitchen_ticket import KitchenTicket


class OrderStatus(str, Enum):
    """Status of an order"""
    CREATED = "CREATED"
    CONFIRMED = "CONFIRMED"
    IN_PREP = "IN_PREP"
    READY = "READY"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


class OrderChannel(str, Enum):
    """Where the order was placed"""
    WEB = "WEB"
    DINE_IN = "DINE_IN"
    PHONE = "PHONE"
    POS = "POS"


class TakeMode(str, Enum):
    """How the order reaches the customer"""
    DINE_IN = "DINE_IN"
    DELIVERY = "DELIVERY"
    TAKEAWAY = "TAKEAWAY"


# Canonical forward path; CANCELLED sits outside it
ORDER_SEQUENCE: Tuple[OrderStatus, ...] = (
    OrderStatus.CREATED,
    OrderStatus.CONFIRMED,
    OrderStatus.IN_PREP,
    OrderStatus.READY,
    OrderStatus.DELIVERED,
)

CANCELLABLE_STATUSES = (OrderStatus.CREATED, OrderStatus.CONFIRMED, OrderStatus.IN_PREP)

ORDER_TRANSITIONS = {
    OrderStatus.CREATED: (OrderStatus.CONFIRMED, OrderStatus.CANCELLED),
    OrderStatus.CONFIRMED: (OrderStatus.IN_PREP, OrderStatus.CANCELLED),
    OrderStatus.IN_PREP: (OrderStatus.READY, OrderStatus.CANCELLED),
    OrderStatus.READY: (OrderStatus.DELIVERED,),
    OrderStatus.DELIVERED: (),  # Final state, no transitions
    OrderStatus.CANCELLED: (),  # Final state, no transitions
}


class Order(SQLModel, table=True):
    """Placed order"""

    __tablename__ = "orders"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)

    # Dine-in orders belong to a session; off-premise orders carry a branch
    table_session_id: Optional[uuid.UUID] = Field(
        default=None,
        foreign_key="table_sessions.id",
        index=True,
        description="Table session this order belongs to (dine-in only)"
    )
    branch_id: Optional[uuid.UUID] = Field(default=None, index=True)
    channel: OrderChannel = Field(default=OrderChannel.WEB)
    take_mode: TakeMode = Field(default=TakeMode.TAKEAWAY, index=True)

    # Customer
    customer_name: str = Field(max_length=120)
    phone: str = Field(max_length=40)
    address: Optional[str] = Field(default=None, max_length=200)
    reference: Optional[str] = Field(default=None, max_length=200)
    scheduled_at: Optional[datetime] = Field(default=None, description="Requested time, descriptive only")
    note: Optional[str] = Field(default=None, max_length=500)

    # Tracking token for unauthenticated clients
    public_code: str = Field(max_length=12, unique=True, index=True)

    # Financial amounts (integer cents)
    subtotal_cents: int = Field(default=0)
    discount_cents: int = Field(default=0)
    tip_cents: int = Field(default=0)
    total_cents: int = Field(default=0)
    coupon_id: Optional[uuid.UUID] = Field(default=None, foreign_key="coupons.id")

    # Status
    status: OrderStatus = Field(default=OrderStatus.CREATED, index=True)
    created_by_user_id: Optional[uuid.UUID] = Field(default=None)

    # Timestamps
    created_at: datetime = Field(default_factory=utcnow, index=True)
    updated_at: datetime = Field(default_factory=utcnow)

    # Relationships
    table_session: Optional["TableSession"] = Relationship(back_populates="orders")
    items: List["OrderItem"] = Relationship(
        back_populates="order",
        sa_relationship_kwargs={"cascade": "all, delete-orphan"}
    )
    history: List["OrderStatusHistory"] = Relationship(
        back_populates="order",
        sa_relationship_kwargs={
            "cascade": "all, delete-orphan",
            "order_by": "OrderStatusHistory.sequence",
        }
    )
    tickets: List["KitchenTicket"] = Relationship(
        back_populates="order",
        sa_relationship_kwargs={"cascade": "all, delete-orphan"}
    )

    # State machine methods
    def can_transition_to(self, new_status: OrderStatus) -> Tuple[bool, str]:
        """Check if order can transition to new status"""
        if new_status in ORDER_TRANSITIONS.get(self.status, ()):
            return True, "Can transition"
        return False, f"Cannot transition from {self.status.value} to {new_status.value}"

    def transition_to(
        self,
        new_status: OrderStatus,
        actor_id: Optional[uuid.UUID] = None,
        at: Optional[datetime] = None
    ) -> "OrderStatusHistory":
        """Move to ``new_status`` and append the audit row for it"""
        allowed, reason = self.can_transition_to(new_status)
        if not allowed:
            raise IllegalTransition(
                reason,
                current=self.status.value,
                target=new_status.value,
                order_id=self.id,
            )
        self.status = new_status
        self.updated_at = at or utcnow()
        return self.record_status(actor_id, at=self.updated_at)

    def record_status(
        self,
        actor_id: Optional[uuid.UUID] = None,
        at: Optional[datetime] = None
    ) -> "OrderStatusHistory":
        """Append a history row for the current status"""
        from posflow.models.order_status_history import OrderStatusHistory

        entry = OrderStatusHistory(
            order_id=self.id,
            sequence=len(self.history) + 1,
            status=self.status,
            changed_by_user_id=actor_id,
            changed_at=at or utcnow(),
        )
        self.history.append(entry)
        return entry

    def is_cancellable(self) -> bool:
        """Check if order can be cancelled"""
        return self.status in CANCELLABLE_STATUSES

    def is_dine_in(self) -> bool:
        return self.table_session_id is not None

    def calculate_total(self) -> None:
        """Calculate total amount (subtotal - discount + tip)"""
        self.total_cents = self.subtotal_cents - self.discount_cents + self.tip_cents
