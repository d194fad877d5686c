"""
API schemas for tables, sessions, orders and kitchen tickets
"""

from sqlmodel import SQLModel
from datetime import date, datetime
from typing import Optional, List
import uuid

from posflow.models.kitchen_ticket import KitchenStation, KitchenTicketStatus
from posflow.models.order import OrderChannel, OrderStatus, TakeMode
from posflow.models.selection import Size
from posflow.models.table import TableStatus
from posflow.models.table_session import PaymentMethod
from posflow.services.orders import DraftItem
from posflow.services.pricing import UnitRequest


# ============================================================================
# Table Schemas
# ============================================================================

class TableRead(SQLModel):
    id: uuid.UUID
    branch_id: Optional[uuid.UUID] = None
    name: str
    capacity: int
    sort_order: int
    status: TableStatus
    is_active: bool

    class Config:
        from_attributes = True


class TableOverviewRead(TableRead):
    """Table with a summary of its open session"""
    open_session_id: Optional[uuid.UUID] = None
    guest_count: Optional[int] = None
    order_count: int = 0
    session_total_cents: int = 0


class OpenSessionRequest(SQLModel):
    guest_count: int
    customer_name: Optional[str] = None
    notes: Optional[str] = None
    waiter_id: Optional[uuid.UUID] = None


# ============================================================================
# Table Session Schemas
# ============================================================================

class TableSessionRead(SQLModel):
    id: uuid.UUID
    table_id: uuid.UUID
    customer_name: Optional[str] = None
    guest_count: int
    notes: Optional[str] = None
    assigned_waiter_id: Optional[uuid.UUID] = None
    opened_by_user_id: Optional[uuid.UUID] = None
    closed_by_user_id: Optional[uuid.UUID] = None
    subtotal_cents: int
    tip_cents: int
    total_cents: int
    payment_method: Optional[PaymentMethod] = None
    paid_at: Optional[datetime] = None
    opened_at: datetime
    closed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class CloseSessionRequest(SQLModel):
    payment_method: PaymentMethod
    tip_cents: int = 0
    notes: Optional[str] = None


# ============================================================================
# Order Schemas
# ============================================================================

class UnitSelectionIn(SQLModel):
    """Configuration of one unit when a line mixes configurations"""
    size: Size = Size.SINGLE
    modifier_ids: List[uuid.UUID] = []
    note: Optional[str] = None


class OrderItemIn(SQLModel):
    product_id: Optional[uuid.UUID] = None
    combo_id: Optional[uuid.UUID] = None
    qty: int = 1
    size: Size = Size.SINGLE
    modifier_ids: List[uuid.UUID] = []
    note: Optional[str] = None
    same_config: bool = True
    units: List[UnitSelectionIn] = []

    def to_draft(self) -> DraftItem:
        units = ()
        if not self.same_config and self.units:
            units = tuple(
                UnitRequest(size=u.size, modifier_ids=tuple(u.modifier_ids), note=u.note)
                for u in self.units
            )
        return DraftItem(
            product_id=self.product_id,
            combo_id=self.combo_id,
            qty=self.qty,
            size=self.size,
            modifier_ids=tuple(self.modifier_ids),
            note=self.note,
            units=units,
        )


class OrderCreate(SQLModel):
    """Off-premise (or explicit) order placed by a client"""
    items: List[OrderItemIn]
    customer_name: str = ""
    phone: str = ""
    channel: OrderChannel = OrderChannel.WEB
    take_mode: TakeMode = TakeMode.TAKEAWAY
    branch_id: Optional[uuid.UUID] = None
    table_session_id: Optional[uuid.UUID] = None
    address: Optional[str] = None
    reference: Optional[str] = None
    note: Optional[str] = None
    scheduled_at: Optional[datetime] = None
    discount_cents: int = 0
    tip_cents: int = 0
    coupon_code: Optional[str] = None


class SessionOrderCreate(SQLModel):
    """Order added to an open table session by staff"""
    items: List[OrderItemIn]
    customer_name: str = ""
    note: Optional[str] = None
    discount_cents: int = 0
    tip_cents: int = 0
    coupon_code: Optional[str] = None


class OrderStatusUpdate(SQLModel):
    status: OrderStatus


class OrderItemRead(SQLModel):
    id: uuid.UUID
    product_id: Optional[uuid.UUID] = None
    combo_id: Optional[uuid.UUID] = None
    name_snapshot: str
    qty: int
    unit_price_cents: int
    modifiers_total_cents: int
    line_total_cents: int
    modifiers_snapshot: dict

    class Config:
        from_attributes = True


class KitchenTicketRead(SQLModel):
    id: uuid.UUID
    order_id: uuid.UUID
    station: KitchenStation
    status: KitchenTicketStatus
    ticket_number: str
    service_date: date
    items_snapshot: List[dict]
    notes: Optional[str] = None
    assigned_to_user_id: Optional[uuid.UUID] = None
    created_at: datetime
    started_at: Optional[datetime] = None
    ready_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class OrderRead(SQLModel):
    id: uuid.UUID
    public_code: str
    table_session_id: Optional[uuid.UUID] = None
    branch_id: Optional[uuid.UUID] = None
    channel: OrderChannel
    take_mode: TakeMode
    customer_name: str
    phone: str
    address: Optional[str] = None
    reference: Optional[str] = None
    scheduled_at: Optional[datetime] = None
    note: Optional[str] = None
    subtotal_cents: int
    discount_cents: int
    tip_cents: int
    total_cents: int
    coupon_id: Optional[uuid.UUID] = None
    status: OrderStatus
    created_by_user_id: Optional[uuid.UUID] = None
    created_at: datetime
    updated_at: datetime
    items: List[OrderItemRead] = []
    tickets: List[KitchenTicketRead] = []

    class Config:
        from_attributes = True


class OrderHistoryRead(SQLModel):
    sequence: int
    status: OrderStatus
    changed_by_user_id: Optional[uuid.UUID] = None
    changed_at: datetime

    class Config:
        from_attributes = True


class TableSessionDetail(TableSessionRead):
    orders: List[OrderRead] = []


class PublicOrderItem(SQLModel):
    name_snapshot: str
    qty: int
    line_total_cents: int

    class Config:
        from_attributes = True


class PublicOrderRead(SQLModel):
    """What an unauthenticated client may see about an order"""
    public_code: str
    status: OrderStatus
    take_mode: TakeMode
    subtotal_cents: int
    discount_cents: int
    total_cents: int
    scheduled_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    items: List[PublicOrderItem] = []

    class Config:
        from_attributes = True


# ============================================================================
# Kitchen Ticket Schemas
# ============================================================================

class TicketStatusUpdate(SQLModel):
    status: KitchenTicketStatus
    notes: Optional[str] = None
