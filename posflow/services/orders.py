"""
Order lifecycle

Creates orders from client drafts and moves them through
CREATED -> CONFIRMED -> IN_PREP -> READY -> DELIVERED, with CANCELLED
reachable from CREATED, CONFIRMED and IN_PREP. Every status an order enters
is appended to its history.

Creation is one transaction: items are priced, the coupon is redeemed, the
order is attached to its table session (dine-in) and fanned out into kitchen
tickets, then everything commits and the events go out.
"""

from contextlib import ExitStack
from dataclasses import dataclass, field
from datetime import datetime, time
from typing import List, Optional, Tuple
import secrets
import uuid

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select
import structlog

from posflow.core.clock import to_business_time, to_naive_utc
from posflow.core.config import get_settings
from posflow.core.events import EventBus, OrderCreated, OrderStatusChanged
from posflow.core.exceptions import (
    ConcurrentUpdate,
    CouponExhausted,
    CouponInvalid,
    IllegalTransition,
    NotFound,
    PosflowError,
    ValidationError,
)
from posflow.core.locks import KeyedLocks
from posflow.models.coupon import Coupon, CouponRedemption
from posflow.models.order import Order, OrderChannel, OrderStatus, TakeMode
from posflow.models.order_item import OrderItem
from posflow.models.order_status_history import OrderStatusHistory
from posflow.models.selection import Size
from posflow.models.table_session import TableSession
from posflow.services.base import TransactionalService
from posflow.services.catalog import CatalogGateway, SqlCatalogGateway
from posflow.services.kitchen import KitchenTicketRouter, TICKET_SEQUENCE_LOCK, TicketLine
from posflow.services.pricing import (
    PromotionSet,
    SelectionRequest,
    UnitRequest,
    coupon_discount,
    price_combo,
    price_line,
)
from posflow.services.table_sessions import TableSessionManager

logger = structlog.get_logger(__name__)

# No 0/O or 1/I, codes are read out loud and typed from receipts
PUBLIC_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
PUBLIC_CODE_ATTEMPTS = 10
CREATE_ATTEMPTS = 3


@dataclass
class DraftItem:
    """One requested line: a product or a combo"""
    product_id: Optional[uuid.UUID] = None
    combo_id: Optional[uuid.UUID] = None
    qty: int = 1
    size: Size = Size.SINGLE
    modifier_ids: Tuple[uuid.UUID, ...] = ()
    note: Optional[str] = None
    units: Tuple[UnitRequest, ...] = ()

    def selection(self) -> SelectionRequest:
        return SelectionRequest(
            qty=self.qty,
            size=self.size,
            modifier_ids=tuple(self.modifier_ids),
            note=self.note,
            units=tuple(self.units),
        )


@dataclass
class OrderDraft:
    """Everything a client sends to place an order"""
    items: List[DraftItem] = field(default_factory=list)
    customer_name: str = ""
    phone: str = ""
    table_session_id: Optional[uuid.UUID] = None
    channel: OrderChannel = OrderChannel.WEB
    take_mode: TakeMode = TakeMode.TAKEAWAY
    branch_id: Optional[uuid.UUID] = None
    address: Optional[str] = None
    reference: Optional[str] = None
    note: Optional[str] = None
    scheduled_at: Optional[datetime] = None
    discount_cents: int = 0
    tip_cents: int = 0
    coupon_code: Optional[str] = None
    actor_id: Optional[uuid.UUID] = None


def _parse_hhmm(value: str) -> time:
    hours, minutes = value.split(":")
    return time(int(hours), int(minutes))


class OrderLifecycle(TransactionalService):
    """Creates orders and drives their status lifecycle"""

    def __init__(
        self,
        session: Session,
        catalog: Optional[CatalogGateway] = None,
        bus: Optional[EventBus] = None,
        locks: Optional[KeyedLocks] = None,
        clock=None,
    ):
        super().__init__(session, bus=bus, locks=locks, clock=clock)
        self.catalog = catalog or SqlCatalogGateway(session)
        self.tables = TableSessionManager(session, bus=self.bus, locks=self.locks, clock=self.clock)
        self.tickets = KitchenTicketRouter(session, bus=self.bus, locks=self.locks, clock=self.clock)
        self.settings = get_settings()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, order_id: uuid.UUID) -> Order:
        order = self.session.get(Order, order_id)
        if order is None:
            raise NotFound("Order not found", order_id=order_id)
        return order

    def get_by_public_code(self, public_code: str) -> Order:
        order = self.session.exec(
            select(Order).where(Order.public_code == public_code.strip().upper())
        ).first()
        if order is None:
            raise NotFound("Order not found", public_code=public_code)
        return order

    def list(
        self,
        status: Optional[OrderStatus] = None,
        session_id: Optional[uuid.UUID] = None,
    ) -> List[Order]:
        query = select(Order)
        if status is not None:
            query = query.where(Order.status == status)
        if session_id is not None:
            query = query.where(Order.table_session_id == session_id)
        return list(self.session.exec(query.order_by(Order.created_at.desc())).all())

    def history(self, order_id: uuid.UUID) -> List[OrderStatusHistory]:
        self.get(order_id)
        return list(self.session.exec(
            select(OrderStatusHistory)
            .where(OrderStatusHistory.order_id == order_id)
            .order_by(OrderStatusHistory.sequence)
        ).all())

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def _validate(self, draft: OrderDraft, now: datetime) -> None:
        if not draft.items:
            raise ValidationError("Order must contain at least one item")
        for item in draft.items:
            if item.qty < 1:
                raise ValidationError("Quantity must be at least 1", qty=item.qty)
            if (item.product_id is None) == (item.combo_id is None):
                raise ValidationError("Each item must reference exactly one product or combo")
        if draft.discount_cents < 0:
            raise ValidationError("Discount cannot be negative", discount_cents=draft.discount_cents)
        if draft.tip_cents < 0:
            raise ValidationError("Tip cannot be negative", tip_cents=draft.tip_cents)

        if draft.table_session_id is None:
            if draft.take_mode == TakeMode.DINE_IN:
                raise ValidationError("Dine-in orders must reference a table session")
            if not draft.customer_name.strip() or not draft.phone.strip():
                raise ValidationError("Customer name and phone are required")
        if draft.take_mode == TakeMode.DELIVERY and not (draft.address or "").strip():
            raise ValidationError("Delivery orders require an address")

        if draft.scheduled_at is not None:
            scheduled = to_naive_utc(draft.scheduled_at)
            if scheduled <= now:
                raise ValidationError("Scheduled time must be in the future")
            local = to_business_time(scheduled).time()
            start = _parse_hhmm(self.settings.DELIVERY_WINDOW_START)
            end = _parse_hhmm(self.settings.DELIVERY_WINDOW_END)
            if not start <= local < end:
                raise ValidationError(
                    f"Scheduled time must be at or after {self.settings.DELIVERY_WINDOW_START} "
                    f"and before {self.settings.DELIVERY_WINDOW_END}",
                )

    def _price_items(
        self,
        draft: OrderDraft,
        promotions: PromotionSet,
        now: datetime,
    ) -> Tuple[List[OrderItem], List[TicketLine]]:
        business_now = to_business_time(now)
        items: List[OrderItem] = []
        ticket_lines: List[TicketLine] = []

        for draft_item in draft.items:
            if draft_item.combo_id is not None:
                combo = self.catalog.resolve_combo(draft_item.combo_id)
                priced = price_combo(combo, draft_item.qty, note=draft_item.note)
                items.append(OrderItem(
                    combo_id=combo.id,
                    name_snapshot=combo.name,
                    qty=draft_item.qty,
                    unit_price_cents=priced.unit_price_cents,
                    modifiers_total_cents=0,
                    line_total_cents=priced.line_total_cents,
                    modifiers_snapshot=priced.selection.to_json(),
                ))
                for component in combo.components:
                    ticket_lines.append(TicketLine(
                        name=component.name,
                        qty=component.qty * draft_item.qty,
                        station=component.station,
                        product_id=component.product_id,
                        note=draft_item.note,
                        combo_name=combo.name,
                    ))
                continue

            product = self.catalog.resolve_product(draft_item.product_id)
            line = price_line(product, draft_item.selection(), promotions, business_now)
            items.append(OrderItem(
                product_id=product.id,
                name_snapshot=product.name,
                qty=draft_item.qty,
                unit_price_cents=line.unit_price_cents,
                modifiers_total_cents=line.modifiers_total_cents,
                line_total_cents=line.line_total_cents,
                modifiers_snapshot=line.selection.to_json(),
            ))
            if line.selection.units:
                for unit in line.selection.units:
                    ticket_lines.append(TicketLine(
                        name=product.name,
                        qty=1,
                        station=product.station,
                        product_id=product.id,
                        size=unit.size.value,
                        modifiers=tuple(m.name for m in unit.modifiers),
                        note=unit.note or draft_item.note,
                    ))
            else:
                ticket_lines.append(TicketLine(
                    name=product.name,
                    qty=draft_item.qty,
                    station=product.station,
                    product_id=product.id,
                    size=line.selection.size.value,
                    modifiers=tuple(line.selection.modifier_names()),
                    note=draft_item.note,
                ))

        return items, ticket_lines

    def _new_public_code(self) -> str:
        length = min(max(self.settings.PUBLIC_CODE_LENGTH, 4), 12)
        for _ in range(PUBLIC_CODE_ATTEMPTS):
            code = "".join(secrets.choice(PUBLIC_CODE_ALPHABET) for _ in range(length))
            taken = self.session.exec(select(Order.id).where(Order.public_code == code)).first()
            if taken is None:
                return code
        raise PosflowError("Could not allocate a public order code")

    def _claim_coupon(self, code: str, subtotal_cents: int, now: datetime, stack: ExitStack) -> Coupon:
        """Validate a coupon and check its usage limit under the coupon's lock

        The lock stays held (via ``stack``) until the order commits.
        """
        normalized = code.strip().upper()
        stack.enter_context(self.locks.hold("coupon", normalized))

        coupon = self.session.exec(
            select(Coupon)
            .where(func.upper(Coupon.code) == normalized)
            .with_for_update()
        ).first()
        if coupon is None or not coupon.is_valid_at(now):
            raise CouponInvalid("Coupon is not valid", code=normalized)
        if coupon.min_total_cents is not None and subtotal_cents < coupon.min_total_cents:
            raise CouponInvalid(
                "Order total is below the coupon minimum",
                code=normalized,
                min_total_cents=coupon.min_total_cents,
            )

        if coupon.usage_limit is not None:
            used = self.session.exec(
                select(func.count()).select_from(CouponRedemption)
                .where(CouponRedemption.coupon_id == coupon.id)
            ).one()
            if used >= coupon.usage_limit:
                raise CouponExhausted("Coupon usage limit reached", code=normalized)
        return coupon

    def create(self, draft: OrderDraft) -> Order:
        """Place an order

        A unique value (public code, first ticket sequence row of the day)
        taken by another process between check and insert makes the attempt
        fail at the storage constraint; the whole attempt is then repeated.

        Raises:
            ValidationError: malformed draft
            InvalidConfiguration: size or modifier the product does not offer
            CouponInvalid / CouponExhausted: coupon rejected
            SessionClosed: the referenced table session is closed
            ConcurrentUpdate: every attempt lost a storage-level race
        """
        now = self.clock()
        self._validate(draft, now)

        table_session = None
        if draft.table_session_id is not None:
            table_session = self.session.get(TableSession, draft.table_session_id)
            if table_session is None:
                raise NotFound("Table session not found", session_id=draft.table_session_id)

        promotions = self.catalog.current_promotions()

        for attempt in range(1, CREATE_ATTEMPTS + 1):
            try:
                order = self._create_once(draft, table_session, promotions, now)
                break
            except IntegrityError as exc:
                logger.warning("order_create_conflict", attempt=attempt, error=str(exc.orig))
        else:
            raise ConcurrentUpdate("Could not place the order, please retry")

        self._publish()

        logger.info(
            "order_created",
            order_id=str(order.id),
            public_code=order.public_code,
            take_mode=order.take_mode.value,
            total_cents=order.total_cents,
            item_count=len(order.items),
        )
        return order

    def _create_once(
        self,
        draft: OrderDraft,
        table_session: Optional[TableSession],
        promotions: PromotionSet,
        now: datetime,
    ) -> Order:
        items, ticket_lines = self._price_items(draft, promotions, now)
        subtotal = sum(item.line_total_cents for item in items)

        with ExitStack() as stack:
            # Lock order: table, ticket sequence, coupon
            if table_session is not None:
                stack.enter_context(self.locks.hold("table", table_session.table_id))
            stack.enter_context(self.locks.hold(*TICKET_SEQUENCE_LOCK))
            try:
                coupon = None
                coupon_cents = 0
                if draft.coupon_code:
                    coupon = self._claim_coupon(draft.coupon_code, subtotal, now, stack)
                    coupon_cents = coupon_discount(coupon, subtotal)

                order = Order(
                    branch_id=draft.branch_id,
                    channel=OrderChannel.DINE_IN if table_session else draft.channel,
                    take_mode=TakeMode.DINE_IN if table_session else draft.take_mode,
                    customer_name=draft.customer_name or (table_session.customer_name if table_session else "") or "",
                    phone=draft.phone,
                    address=draft.address,
                    reference=draft.reference,
                    scheduled_at=to_naive_utc(draft.scheduled_at) if draft.scheduled_at else None,
                    note=draft.note,
                    public_code=self._new_public_code(),
                    subtotal_cents=subtotal,
                    discount_cents=min(draft.discount_cents + coupon_cents, subtotal),
                    tip_cents=draft.tip_cents,
                    coupon_id=coupon.id if coupon else None,
                    status=OrderStatus.CREATED,
                    created_by_user_id=draft.actor_id,
                    created_at=now,
                    updated_at=now,
                )
                order.calculate_total()
                order.items = items
                order.record_status(draft.actor_id, at=now)
                self.session.add(order)
                self.session.flush()

                if coupon is not None:
                    self.session.add(CouponRedemption(coupon_id=coupon.id, order_id=order.id, redeemed_at=now))
                if table_session is not None:
                    self.tables.attach_order(table_session.id, order)

                self._emit(OrderCreated(
                    order_id=order.id,
                    public_code=order.public_code,
                    take_mode=order.take_mode.value,
                    total_cents=order.total_cents,
                    table_session_id=order.table_session_id,
                    actor_id=draft.actor_id,
                ))
                self.tickets.create_for_order(order, ticket_lines, actor_id=draft.actor_id)
                self._pending.extend(self.tables._take_events())
                self._pending.extend(self.tickets._take_events())
                self._commit()
            except Exception:
                self.tables._take_events()
                self.tickets._take_events()
                self._rollback()
                raise
        return order

    # ------------------------------------------------------------------
    # Status changes
    # ------------------------------------------------------------------

    def _lock_order(self, order_id: uuid.UUID) -> Order:
        order = self.session.exec(
            select(Order)
            .where(Order.id == order_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).first()
        if order is None:
            raise NotFound("Order not found", order_id=order_id)
        return order

    def _order_locks(self, order: Order, stack: ExitStack) -> None:
        stack.enter_context(self.locks.hold("order", order.id))
        if order.table_session_id is not None:
            table_session = self.session.get(TableSession, order.table_session_id)
            if table_session is not None:
                stack.enter_context(self.locks.hold("table", table_session.table_id))

    def advance_status(
        self,
        order_id: uuid.UUID,
        new_status: OrderStatus,
        actor_id: Optional[uuid.UUID] = None,
    ) -> Order:
        """Move an order to its next canonical status

        Raises:
            IllegalTransition: ``new_status`` is not the single successor
                (or CANCELLED from a cancellable status)
        """
        if new_status == OrderStatus.CANCELLED:
            return self.cancel(order_id, actor_id)

        with self.locks.hold("order", order_id):
            try:
                order = self._lock_order(order_id)
                old_status = order.status
                order.transition_to(new_status, actor_id, at=self.clock())
                self.session.add(order)
                self._emit(OrderStatusChanged(
                    order_id=order.id,
                    old_status=old_status.value,
                    new_status=new_status.value,
                    actor_id=actor_id,
                ))
                self._commit()
            except Exception:
                self._rollback()
                raise
        self._publish()

        logger.info(
            "order_status_changed",
            order_id=str(order_id),
            old_status=old_status.value,
            new_status=new_status.value,
        )
        return order

    def cancel(self, order_id: uuid.UUID, actor_id: Optional[uuid.UUID] = None) -> Order:
        """Cancel an order, its open tickets and its share of the session bill"""
        order = self.get(order_id)

        with ExitStack() as stack:
            self._order_locks(order, stack)
            try:
                order = self._lock_order(order_id)
                if not order.is_cancellable():
                    raise IllegalTransition(
                        f"Cannot cancel an order that is {order.status.value}",
                        current=order.status.value,
                        target=OrderStatus.CANCELLED.value,
                        order_id=order_id,
                    )
                old_status = order.status
                order.transition_to(OrderStatus.CANCELLED, actor_id, at=self.clock())
                self.session.add(order)
                self._emit(OrderStatusChanged(
                    order_id=order.id,
                    old_status=old_status.value,
                    new_status=OrderStatus.CANCELLED.value,
                    actor_id=actor_id,
                ))

                self.tickets.cancel_for_order(order, actor_id)
                self.tables.detach_cancelled_order(order)
                self._pending.extend(self.tickets._take_events())
                self._commit()
            except Exception:
                self.tickets._take_events()
                self._rollback()
                raise
        self._publish()

        logger.info("order_cancelled", order_id=str(order_id), old_status=old_status.value)
        return order

    def delete(self, order_id: uuid.UUID) -> None:
        """Hard-delete an order with its items, history, tickets and coupon use

        Administrative correction only; no events are published.
        """
        order = self.get(order_id)

        with ExitStack() as stack:
            self._order_locks(order, stack)
            try:
                order = self._lock_order(order_id)
                if order.status != OrderStatus.CANCELLED:
                    self.tables.detach_cancelled_order(order)

                redemptions = self.session.exec(
                    select(CouponRedemption).where(CouponRedemption.order_id == order_id)
                ).all()
                for redemption in redemptions:
                    self.session.delete(redemption)
                self.session.flush()
                self.session.delete(order)
                self._commit()
            except Exception:
                self._rollback()
                raise

        logger.warning("order_deleted", order_id=str(order_id))
