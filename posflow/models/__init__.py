from posflow.models.table import Table, TableStatus
from posflow.models.table_session import TableSession, PaymentMethod
from posflow.models.order import Order, OrderStatus, OrderChannel, TakeMode
from posflow.models.order_item import OrderItem
from posflow.models.order_status_history import OrderStatusHistory
from posflow.models.selection import ItemSelection, Size
from posflow.models.kitchen_ticket import (
    KitchenTicket,
    KitchenTicketStatus,
    KitchenStation,
    TicketSequence,
)
from posflow.models.coupon import Coupon, CouponRedemption, CouponType
from posflow.models.menu_category import Category
from posflow.models.menu_item import Product, ProductModifier
from posflow.models.modifier import Modifier
from posflow.models.combo import Combo, ComboItem
from posflow.models.promotion import Promotion, PromotionKind
