"""
Kitchen ticket router

Splits an order into one ticket per production station and moves tickets
along PENDING -> IN_PROGRESS -> READY -> DELIVERED. Ticket progress rolls up
into the parent order's status inside the same transaction.
"""

from dataclasses import dataclass
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional, Tuple
import uuid

from sqlmodel import select
import structlog

from posflow.core.clock import to_business_time
from posflow.core.config import get_settings
from posflow.core.events import OrderStatusChanged, TicketCreated, TicketStatusChanged
from posflow.core.exceptions import IllegalTransition, NotFound
from posflow.models.kitchen_ticket import (
    KitchenStation,
    KitchenTicket,
    KitchenTicketStatus,
    TicketSequence,
    ticket_rank,
)
from posflow.models.order import ORDER_SEQUENCE, Order, OrderStatus
from posflow.services.base import TransactionalService

logger = structlog.get_logger(__name__)

TICKET_SEQUENCE_LOCK = ("ticket_sequence",)


@dataclass(frozen=True)
class TicketLine:
    """One item as a station sees it"""
    name: str
    qty: int
    station: str
    product_id: Optional[uuid.UUID] = None
    size: Optional[str] = None
    modifiers: Tuple[str, ...] = ()
    note: Optional[str] = None
    combo_name: Optional[str] = None

    def to_snapshot(self) -> dict:
        data = {
            "product_id": str(self.product_id) if self.product_id else None,
            "name": self.name,
            "qty": self.qty,
            "size": self.size,
            "modifiers": list(self.modifiers),
            "note": self.note,
        }
        if self.combo_name:
            data["combo"] = self.combo_name
        return data


def resolve_station(station: Optional[str]) -> KitchenStation:
    """Map a configured station name to a station, falling back to the default"""
    for candidate in (station, get_settings().DEFAULT_STATION):
        try:
            return KitchenStation(candidate)
        except ValueError:
            continue
    return KitchenStation.KITCHEN


def derive_order_status(ticket_statuses: Iterable[KitchenTicketStatus]) -> Optional[OrderStatus]:
    """Order status implied by its tickets

    - All tickets DELIVERED -> DELIVERED
    - All tickets READY or beyond -> READY
    - Any ticket IN_PROGRESS or beyond -> IN_PREP
    - Otherwise None (tickets do not move the order)

    Cancelled tickets are ignored.
    """
    ranks = [ticket_rank(s) for s in ticket_statuses if s != KitchenTicketStatus.CANCELLED]
    if not ranks:
        return None
    if all(rank == ticket_rank(KitchenTicketStatus.DELIVERED) for rank in ranks):
        return OrderStatus.DELIVERED
    if all(rank >= ticket_rank(KitchenTicketStatus.READY) for rank in ranks):
        return OrderStatus.READY
    if any(rank >= ticket_rank(KitchenTicketStatus.IN_PROGRESS) for rank in ranks):
        return OrderStatus.IN_PREP
    return None


class KitchenTicketRouter(TransactionalService):
    """Creates and advances per-station kitchen tickets"""

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, ticket_id: uuid.UUID) -> KitchenTicket:
        ticket = self.session.get(KitchenTicket, ticket_id)
        if ticket is None:
            raise NotFound("Kitchen ticket not found", ticket_id=ticket_id)
        return ticket

    def list(
        self,
        station: Optional[KitchenStation] = None,
        status: Optional[KitchenTicketStatus] = None,
    ) -> List[KitchenTicket]:
        """Station queue, oldest first; finished tickets are hidden unless asked for"""
        query = select(KitchenTicket)
        if station is not None:
            query = query.where(KitchenTicket.station == station)
        if status is not None:
            query = query.where(KitchenTicket.status == status)
        else:
            query = query.where(KitchenTicket.status.notin_([
                KitchenTicketStatus.DELIVERED,
                KitchenTicketStatus.CANCELLED,
            ]))
        return list(self.session.exec(query.order_by(KitchenTicket.created_at)).all())

    def for_order(self, order_id: uuid.UUID) -> List[KitchenTicket]:
        return list(self.session.exec(
            select(KitchenTicket)
            .where(KitchenTicket.order_id == order_id)
            .order_by(KitchenTicket.ticket_number)
        ).all())

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def next_ticket_number(self, service_date: date, station: KitchenStation) -> str:
        """Draw the next daily number for a station, e.g. ``K001``

        The caller must hold the ticket sequence lock until it commits.
        """
        with self.locks.hold(*TICKET_SEQUENCE_LOCK):
            sequence = self.session.exec(
                select(TicketSequence)
                .where(TicketSequence.service_date == service_date)
                .where(TicketSequence.station == station)
                .with_for_update()
            ).first()
            if sequence is None:
                sequence = TicketSequence(service_date=service_date, station=station, last_value=0)
            sequence.last_value += 1
            self.session.add(sequence)
            self.session.flush()
            return f"{station.prefix}{sequence.last_value:03d}"

    def create_for_order(
        self,
        order: Order,
        lines: Iterable[TicketLine],
        actor_id: Optional[uuid.UUID] = None,
    ) -> List[KitchenTicket]:
        """Fan an order's lines out into one ticket per station

        Runs inside the caller's transaction; the caller commits and holds
        the ticket sequence lock.
        """
        by_station: Dict[KitchenStation, List[TicketLine]] = {}
        for line in lines:
            by_station.setdefault(resolve_station(line.station), []).append(line)

        now = self.clock()
        service_date = to_business_time(now).date()
        tickets = []
        for station in KitchenStation:
            station_lines = by_station.get(station)
            if not station_lines:
                continue
            ticket = KitchenTicket(
                order_id=order.id,
                station=station,
                status=KitchenTicketStatus.PENDING,
                ticket_number=self.next_ticket_number(service_date, station),
                service_date=service_date,
                items_snapshot=[line.to_snapshot() for line in station_lines],
                created_at=now,
            )
            order.tickets.append(ticket)
            tickets.append(ticket)
            self._emit(TicketCreated(
                ticket_id=ticket.id,
                order_id=order.id,
                station=station.value,
                ticket_number=ticket.ticket_number,
                item_count=sum(line.qty for line in station_lines),
                actor_id=actor_id,
            ))

        logger.info(
            "kitchen_tickets_created",
            order_id=str(order.id),
            stations=[t.station.value for t in tickets],
        )
        return tickets

    # ------------------------------------------------------------------
    # Progress
    # ------------------------------------------------------------------

    def _stamp(self, ticket: KitchenTicket, status: KitchenTicketStatus, now: datetime) -> None:
        if status == KitchenTicketStatus.IN_PROGRESS and ticket.started_at is None:
            ticket.started_at = now
        elif status == KitchenTicketStatus.READY and ticket.ready_at is None:
            ticket.ready_at = now
        elif status == KitchenTicketStatus.DELIVERED and ticket.delivered_at is None:
            ticket.delivered_at = now

    def advance_ticket(
        self,
        ticket_id: uuid.UUID,
        new_status: KitchenTicketStatus,
        actor_id: Optional[uuid.UUID] = None,
        notes: Optional[str] = None,
    ) -> KitchenTicket:
        """Move a ticket one step forward and roll the order status up

        Raises:
            IllegalTransition: same status, skipped step, regression, or
                a move into/out of CANCELLED
        """
        order_id = self.get(ticket_id).order_id

        with self.locks.hold("order", order_id):
            try:
                order = self.session.exec(
                    select(Order)
                    .where(Order.id == order_id)
                    .with_for_update()
                    .execution_options(populate_existing=True)
                ).one()
                ticket = self.session.exec(
                    select(KitchenTicket)
                    .where(KitchenTicket.id == ticket_id)
                    .with_for_update()
                    .execution_options(populate_existing=True)
                ).one()

                old_status = ticket.status
                self._check_transition(old_status, new_status, ticket_id)

                now = self.clock()
                ticket.status = new_status
                self._stamp(ticket, new_status, now)
                if notes:
                    ticket.notes = notes
                if actor_id is not None:
                    ticket.assigned_to_user_id = actor_id
                self.session.add(ticket)
                self._emit(TicketStatusChanged(
                    ticket_id=ticket.id,
                    order_id=order_id,
                    station=ticket.station.value,
                    old_status=old_status.value,
                    new_status=new_status.value,
                    actor_id=actor_id,
                ))

                self.session.flush()
                self.roll_up_order(order, actor_id)
                self._commit()
            except Exception:
                self._rollback()
                raise
        self._publish()

        logger.info(
            "kitchen_ticket_advanced",
            ticket_id=str(ticket_id),
            old_status=old_status.value,
            new_status=new_status.value,
        )
        return ticket

    def _check_transition(
        self,
        current: KitchenTicketStatus,
        target: KitchenTicketStatus,
        ticket_id: uuid.UUID,
    ) -> None:
        if KitchenTicketStatus.CANCELLED in (current, target):
            raise IllegalTransition(
                "Tickets are only cancelled through their order",
                current=current.value,
                target=target.value,
                ticket_id=ticket_id,
            )
        if ticket_rank(target) != ticket_rank(current) + 1:
            raise IllegalTransition(
                f"Cannot transition from {current.value} to {target.value}",
                current=current.value,
                target=target.value,
                ticket_id=ticket_id,
            )

    def roll_up_order(self, order: Order, actor_id: Optional[uuid.UUID] = None) -> None:
        """Advance the order to the status its tickets imply, one step at a time"""
        statuses = self.session.exec(
            select(KitchenTicket.status).where(KitchenTicket.order_id == order.id)
        ).all()
        target = derive_order_status(statuses)
        if target is None or order.status not in ORDER_SEQUENCE:
            return

        now = self.clock()
        while ORDER_SEQUENCE.index(order.status) < ORDER_SEQUENCE.index(target):
            old_status = order.status
            order.transition_to(ORDER_SEQUENCE[ORDER_SEQUENCE.index(old_status) + 1], actor_id, at=now)
            self._emit(OrderStatusChanged(
                order_id=order.id,
                old_status=old_status.value,
                new_status=order.status.value,
                actor_id=actor_id,
            ))
        self.session.add(order)

    def cancel_for_order(self, order: Order, actor_id: Optional[uuid.UUID] = None) -> List[KitchenTicket]:
        """Cancel every ticket of the order that has not been delivered

        Runs inside the caller's transaction; the caller commits.
        """
        now = self.clock()
        cancelled = []
        for ticket in self.for_order(order.id):
            if not ticket.is_open():
                continue
            old_status = ticket.status
            ticket.status = KitchenTicketStatus.CANCELLED
            ticket.cancelled_at = now
            self.session.add(ticket)
            cancelled.append(ticket)
            self._emit(TicketStatusChanged(
                ticket_id=ticket.id,
                order_id=order.id,
                station=ticket.station.value,
                old_status=old_status.value,
                new_status=KitchenTicketStatus.CANCELLED.value,
                actor_id=actor_id,
            ))
        return cancelled
