"""
Table session manager

Owns dine-in table state and the consolidated session bill.

Table states:
- AVAILABLE -> OCCUPIED (open session)
- OCCUPIED -> BILL_REQUESTED (request bill)
- OCCUPIED / BILL_REQUESTED -> AVAILABLE (close session)
- AVAILABLE <-> RESERVED, AVAILABLE <-> OUT_OF_SERVICE

Every mutation of a table or its session runs under the table's keyed lock
with the table row read FOR UPDATE. The partial unique index on
``table_sessions(table_id) WHERE closed_at IS NULL`` is the storage backstop
for the one-open-session rule.
"""

from dataclasses import dataclass
from typing import List, Optional
import uuid

from sqlalchemy.exc import IntegrityError
from sqlmodel import select
import structlog

from posflow.core.events import SessionClosed as SessionClosedEvent
from posflow.core.events import SessionOpened, TableStatusChanged
from posflow.core.exceptions import (
    IllegalTransition,
    NotFound,
    SessionAlreadyOpen,
    SessionClosed,
    TableNotAvailable,
    ValidationError,
)
from posflow.models.order import Order, OrderStatus
from posflow.models.table import Table, TableStatus
from posflow.models.table_session import PaymentMethod, TableSession
from posflow.services.base import TransactionalService

logger = structlog.get_logger(__name__)


@dataclass
class TableOverview:
    """A table with a summary of its open session, if any"""
    table: Table
    open_session: Optional[TableSession] = None
    order_count: int = 0
    total_cents: int = 0


class TableSessionManager(TransactionalService):
    """Opens, bills and closes dine-in table sessions"""

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_table(self, table_id: uuid.UUID) -> Table:
        table = self.session.get(Table, table_id)
        if table is None:
            raise NotFound("Table not found", table_id=table_id)
        return table

    def get_session(self, session_id: uuid.UUID) -> TableSession:
        table_session = self.session.get(TableSession, session_id)
        if table_session is None:
            raise NotFound("Table session not found", session_id=session_id)
        return table_session

    def get_open_session(self, table_id: uuid.UUID) -> Optional[TableSession]:
        return self.session.exec(
            select(TableSession)
            .where(TableSession.table_id == table_id)
            .where(TableSession.closed_at == None)  # noqa: E711
        ).first()

    def list_tables(self, branch_id: Optional[uuid.UUID] = None) -> List[TableOverview]:
        query = select(Table).where(Table.is_active == True)  # noqa: E712
        if branch_id is not None:
            query = query.where(Table.branch_id == branch_id)
        tables = self.session.exec(query.order_by(Table.sort_order, Table.name)).all()

        overviews = []
        for table in tables:
            overview = TableOverview(table=table)
            open_session = self.get_open_session(table.id)
            if open_session is not None:
                live_orders = [o for o in open_session.orders if o.status != OrderStatus.CANCELLED]
                overview.open_session = open_session
                overview.order_count = len(live_orders)
                overview.total_cents = open_session.total_cents
            overviews.append(overview)
        return overviews

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _lock_table(self, table_id: uuid.UUID) -> Table:
        table = self.session.exec(
            select(Table).where(Table.id == table_id).with_for_update()
            .execution_options(populate_existing=True)
        ).first()
        if table is None:
            raise NotFound("Table not found", table_id=table_id)
        return table

    def _set_table_status(
        self,
        table: Table,
        new_status: TableStatus,
        actor_id: Optional[uuid.UUID] = None
    ) -> None:
        old_status = table.status
        if old_status == new_status:
            return
        table.status = new_status
        table.updated_at = self.clock()
        self.session.add(table)
        self._emit(TableStatusChanged(
            table_id=table.id,
            old_status=old_status.value,
            new_status=new_status.value,
            actor_id=actor_id,
        ))

    def _run_locked(self, table_id: uuid.UUID, operation):
        """Run ``operation`` and commit under the table's lock, then publish"""
        with self.locks.hold("table", table_id):
            try:
                result = operation()
                self._commit()
            except Exception:
                self._rollback()
                raise
        self._publish()
        return result

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    def open_session(
        self,
        table_id: uuid.UUID,
        guest_count: int,
        customer_name: Optional[str] = None,
        notes: Optional[str] = None,
        waiter_id: Optional[uuid.UUID] = None,
        actor_id: Optional[uuid.UUID] = None,
    ) -> TableSession:
        """Seat guests at a table

        Raises:
            SessionAlreadyOpen: the table already has an open session
            TableNotAvailable: the table is inactive or not AVAILABLE/RESERVED
            ValidationError: guest_count outside 1..capacity
        """
        def operation() -> TableSession:
            table = self._lock_table(table_id)

            if self.get_open_session(table_id) is not None:
                raise SessionAlreadyOpen("Table already has an open session", table_id=table_id)
            if not table.accepts_new_session():
                raise TableNotAvailable(
                    f"Table {table.name} is {table.status.value}",
                    table_id=table_id,
                )
            if guest_count < 1 or guest_count > table.capacity:
                raise ValidationError(
                    f"Guest count must be between 1 and {table.capacity}",
                    guest_count=guest_count,
                )

            table_session = TableSession(
                table_id=table.id,
                guest_count=guest_count,
                customer_name=customer_name,
                notes=notes,
                assigned_waiter_id=waiter_id,
                opened_by_user_id=actor_id,
                opened_at=self.clock(),
            )
            self.session.add(table_session)
            self._set_table_status(table, TableStatus.OCCUPIED, actor_id)
            self.session.flush()

            self._emit(SessionOpened(
                session_id=table_session.id,
                table_id=table.id,
                guest_count=guest_count,
                actor_id=actor_id,
            ))
            return table_session

        try:
            table_session = self._run_locked(table_id, operation)
        except IntegrityError as exc:
            logger.warning("open_session_conflict", table_id=str(table_id))
            raise SessionAlreadyOpen("Table already has an open session", table_id=table_id) from exc

        logger.info(
            "table_session_opened",
            session_id=str(table_session.id),
            table_id=str(table_id),
            guest_count=guest_count,
        )
        return table_session

    def attach_order(self, session_id: uuid.UUID, order: Order) -> TableSession:
        """Add an order to an open session's running totals

        Runs inside the caller's transaction; the caller commits.
        """
        table_session = self.session.exec(
            select(TableSession).where(TableSession.id == session_id).with_for_update()
            .execution_options(populate_existing=True)
        ).first()
        if table_session is None:
            raise NotFound("Table session not found", session_id=session_id)
        if not table_session.is_open:
            raise SessionClosed("Table session is closed", session_id=session_id)

        order.table_session_id = table_session.id
        table_session.subtotal_cents += order.subtotal_cents
        table_session.total_cents += order.total_cents
        self.session.add(table_session)
        return table_session

    def detach_cancelled_order(self, order: Order) -> None:
        """Take a cancelled or deleted order's amounts off its open session

        Runs inside the caller's transaction; the caller commits.
        """
        if order.table_session_id is None:
            return
        table_session = self.session.get(TableSession, order.table_session_id)
        if table_session is None or not table_session.is_open:
            return
        table_session.subtotal_cents = max(0, table_session.subtotal_cents - order.subtotal_cents)
        table_session.total_cents = max(0, table_session.total_cents - order.total_cents)
        self.session.add(table_session)

    def request_bill(self, table_id: uuid.UUID, actor_id: Optional[uuid.UUID] = None) -> Table:
        """Flag an occupied table as waiting for the check (orders may still be added)"""
        def operation() -> Table:
            table = self._lock_table(table_id)
            if table.status != TableStatus.OCCUPIED:
                raise IllegalTransition(
                    f"Cannot request bill for a table that is {table.status.value}",
                    current=table.status.value,
                    target=TableStatus.BILL_REQUESTED.value,
                )
            self._set_table_status(table, TableStatus.BILL_REQUESTED, actor_id)
            return table

        return self._run_locked(table_id, operation)

    def close_session(
        self,
        session_id: uuid.UUID,
        payment_method: PaymentMethod,
        tip_cents: int = 0,
        notes: Optional[str] = None,
        actor_id: Optional[uuid.UUID] = None,
    ) -> TableSession:
        """Finalize the bill and free the table

        Totals are recomputed from the session's non-cancelled orders, so the
        running totals kept by attach/detach never leak into the final bill.
        """
        if tip_cents < 0:
            raise ValidationError("Tip cannot be negative", tip_cents=tip_cents)

        table_id = self.get_session(session_id).table_id

        def operation() -> TableSession:
            table = self._lock_table(table_id)
            table_session = self.session.exec(
                select(TableSession).where(TableSession.id == session_id).with_for_update()
                .execution_options(populate_existing=True)
            ).one()
            if not table_session.is_open:
                raise SessionClosed("Table session is already closed", session_id=session_id)

            orders = self.session.exec(
                select(Order)
                .where(Order.table_session_id == session_id)
                .where(Order.status != OrderStatus.CANCELLED)
            ).all()

            now = self.clock()
            table_session.subtotal_cents = sum(o.subtotal_cents for o in orders)
            table_session.tip_cents = tip_cents
            table_session.total_cents = sum(o.total_cents for o in orders) + tip_cents
            table_session.payment_method = payment_method
            table_session.paid_at = now
            table_session.closed_at = now
            table_session.closed_by_user_id = actor_id
            if notes:
                table_session.notes = notes
            self.session.add(table_session)

            self._set_table_status(table, TableStatus.AVAILABLE, actor_id)
            self._emit(SessionClosedEvent(
                session_id=table_session.id,
                table_id=table.id,
                total_cents=table_session.total_cents,
                tip_cents=tip_cents,
                payment_method=payment_method.value,
                actor_id=actor_id,
            ))
            return table_session

        table_session = self._run_locked(table_id, operation)
        logger.info(
            "table_session_closed",
            session_id=str(session_id),
            total_cents=table_session.total_cents,
            payment_method=payment_method.value,
        )
        return table_session

    # ------------------------------------------------------------------
    # Table availability
    # ------------------------------------------------------------------

    def reserve(self, table_id: uuid.UUID, actor_id: Optional[uuid.UUID] = None) -> Table:
        def operation() -> Table:
            table = self._lock_table(table_id)
            if table.status != TableStatus.AVAILABLE:
                raise TableNotAvailable(f"Table {table.name} is {table.status.value}", table_id=table_id)
            self._set_table_status(table, TableStatus.RESERVED, actor_id)
            return table

        return self._run_locked(table_id, operation)

    def set_out_of_service(self, table_id: uuid.UUID, actor_id: Optional[uuid.UUID] = None) -> Table:
        def operation() -> Table:
            table = self._lock_table(table_id)
            if table.status != TableStatus.AVAILABLE:
                raise TableNotAvailable(f"Table {table.name} is {table.status.value}", table_id=table_id)
            self._set_table_status(table, TableStatus.OUT_OF_SERVICE, actor_id)
            return table

        return self._run_locked(table_id, operation)

    def release(self, table_id: uuid.UUID, actor_id: Optional[uuid.UUID] = None) -> Table:
        """Return a reserved or out-of-service table to AVAILABLE"""
        def operation() -> Table:
            table = self._lock_table(table_id)
            if table.status not in (TableStatus.RESERVED, TableStatus.OUT_OF_SERVICE):
                raise IllegalTransition(
                    f"Cannot release a table that is {table.status.value}",
                    current=table.status.value,
                    target=TableStatus.AVAILABLE.value,
                )
            if self.get_open_session(table_id) is not None:
                raise IllegalTransition(
                    "Cannot release a table with an open session",
                    current=table.status.value,
                    target=TableStatus.AVAILABLE.value,
                )
            self._set_table_status(table, TableStatus.AVAILABLE, actor_id)
            return table

        return self._run_locked(table_id, operation)
