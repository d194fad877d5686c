"""
Domain events system

Domain events represent important business events that can be published
and subscribed to by multiple parts of the system. They are the only
channel through which notifications and live UI refreshes learn about
state changes, and they are published after the transaction commits.
"""

from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Set
import asyncio
import inspect
import threading
import uuid

import structlog

from posflow.core.clock import utcnow

logger = structlog.get_logger(__name__)


def _str(value: Optional[Any]) -> Optional[str]:
    return str(value) if value is not None else None


class DomainEvent:
    """Base class for domain events"""

    def __init__(self, actor_id: Optional[uuid.UUID] = None, event_id: uuid.UUID = None):
        self.event_id = event_id or uuid.uuid4()
        self.occurred_at: datetime = utcnow()
        self.actor_id = actor_id

    def to_dict(self) -> Dict[str, Any]:
        """Convert event to dictionary"""
        return {
            "event_id": str(self.event_id),
            "occurred_at": self.occurred_at.isoformat(),
            "event_type": self.__class__.__name__,
            "actor_id": _str(self.actor_id),
        }


class OrderCreated(DomainEvent):
    """Event fired when an order has been placed"""

    def __init__(
        self,
        order_id: uuid.UUID,
        public_code: str,
        take_mode: str,
        total_cents: int,
        table_session_id: Optional[uuid.UUID] = None,
        actor_id: Optional[uuid.UUID] = None,
        event_id: uuid.UUID = None
    ):
        super().__init__(actor_id, event_id)
        self.order_id = order_id
        self.public_code = public_code
        self.take_mode = take_mode
        self.total_cents = total_cents
        self.table_session_id = table_session_id

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({
            "order_id": str(self.order_id),
            "public_code": self.public_code,
            "take_mode": self.take_mode,
            "total_cents": self.total_cents,
            "table_session_id": _str(self.table_session_id),
        })
        return data


class OrderStatusChanged(DomainEvent):
    """Event fired on every order status transition"""

    def __init__(
        self,
        order_id: uuid.UUID,
        old_status: str,
        new_status: str,
        actor_id: Optional[uuid.UUID] = None,
        event_id: uuid.UUID = None
    ):
        super().__init__(actor_id, event_id)
        self.order_id = order_id
        self.old_status = old_status
        self.new_status = new_status

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({
            "order_id": str(self.order_id),
            "old_status": self.old_status,
            "new_status": self.new_status,
        })
        return data


class TicketCreated(DomainEvent):
    """Event fired when a kitchen ticket is routed to a station"""

    def __init__(
        self,
        ticket_id: uuid.UUID,
        order_id: uuid.UUID,
        station: str,
        ticket_number: str,
        item_count: int,
        actor_id: Optional[uuid.UUID] = None,
        event_id: uuid.UUID = None
    ):
        super().__init__(actor_id, event_id)
        self.ticket_id = ticket_id
        self.order_id = order_id
        self.station = station
        self.ticket_number = ticket_number
        self.item_count = item_count

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({
            "ticket_id": str(self.ticket_id),
            "order_id": str(self.order_id),
            "station": self.station,
            "ticket_number": self.ticket_number,
            "item_count": self.item_count,
        })
        return data


class TicketStatusChanged(DomainEvent):
    """Event fired when a ticket moves along its station workflow"""

    def __init__(
        self,
        ticket_id: uuid.UUID,
        order_id: uuid.UUID,
        station: str,
        old_status: str,
        new_status: str,
        actor_id: Optional[uuid.UUID] = None,
        event_id: uuid.UUID = None
    ):
        super().__init__(actor_id, event_id)
        self.ticket_id = ticket_id
        self.order_id = order_id
        self.station = station
        self.old_status = old_status
        self.new_status = new_status

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({
            "ticket_id": str(self.ticket_id),
            "order_id": str(self.order_id),
            "station": self.station,
            "old_status": self.old_status,
            "new_status": self.new_status,
        })
        return data


class SessionOpened(DomainEvent):
    """Event fired when a dine-in table session opens"""

    def __init__(
        self,
        session_id: uuid.UUID,
        table_id: uuid.UUID,
        guest_count: int,
        actor_id: Optional[uuid.UUID] = None,
        event_id: uuid.UUID = None
    ):
        super().__init__(actor_id, event_id)
        self.session_id = session_id
        self.table_id = table_id
        self.guest_count = guest_count

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({
            "session_id": str(self.session_id),
            "table_id": str(self.table_id),
            "guest_count": self.guest_count,
        })
        return data


class SessionClosed(DomainEvent):
    """Event fired when a session is paid and closed"""

    def __init__(
        self,
        session_id: uuid.UUID,
        table_id: uuid.UUID,
        total_cents: int,
        tip_cents: int,
        payment_method: str,
        actor_id: Optional[uuid.UUID] = None,
        event_id: uuid.UUID = None
    ):
        super().__init__(actor_id, event_id)
        self.session_id = session_id
        self.table_id = table_id
        self.total_cents = total_cents
        self.tip_cents = tip_cents
        self.payment_method = payment_method

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({
            "session_id": str(self.session_id),
            "table_id": str(self.table_id),
            "total_cents": self.total_cents,
            "tip_cents": self.tip_cents,
            "payment_method": self.payment_method,
        })
        return data


class TableStatusChanged(DomainEvent):
    """Event fired whenever a table's status changes"""

    def __init__(
        self,
        table_id: uuid.UUID,
        old_status: str,
        new_status: str,
        actor_id: Optional[uuid.UUID] = None,
        event_id: uuid.UUID = None
    ):
        super().__init__(actor_id, event_id)
        self.table_id = table_id
        self.old_status = old_status
        self.new_status = new_status

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({
            "table_id": str(self.table_id),
            "old_status": self.old_status,
            "new_status": self.new_status,
        })
        return data


class EventBus:
    """Simple in-memory event bus for publishing domain events

    Delivery is best-effort and at-most-once: a failing handler is logged
    and the remaining handlers still run. Handlers may be plain callables or
    coroutine functions. Coroutines are never awaited by the publisher: inside
    a running loop they become tasks, otherwise they go to the bus's own
    notifier loop on a background thread.
    """

    def __init__(self):
        self._subscribers: Dict[str, List[Callable]] = {}
        self._in_flight: Set[Any] = set()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._loop_guard = threading.Lock()

    def subscribe(self, event_type: str, handler: Callable):
        """Subscribe to a specific event type ("*" receives everything)"""
        if event_type not in self._subscribers:
            self._subscribers[event_type] = []
        self._subscribers[event_type].append(handler)
        logger.debug("event_handler_subscribed", event_type=event_type)

    def unsubscribe(self, event_type: str, handler: Callable):
        """Unsubscribe from an event type"""
        if event_type in self._subscribers:
            self._subscribers[event_type].remove(handler)
            logger.debug("event_handler_unsubscribed", event_type=event_type)

    def publish(self, event: DomainEvent):
        """Publish an event to all subscribers"""
        event_type = event.__class__.__name__
        handlers = self._subscribers.get(event_type, []) + self._subscribers.get("*", [])

        if not handlers:
            logger.debug("event_without_subscribers", event_type=event_type)
            return

        logger.info("event_published", event_type=event_type, event_id=str(event.event_id))

        for handler in handlers:
            try:
                result = handler(event)
                if inspect.isawaitable(result):
                    self._schedule(result)
            except Exception:
                logger.error("event_handler_failed", event_type=event_type, exc_info=True)

    def publish_all(self, events: Iterable[DomainEvent]):
        for event in events:
            self.publish(event)

    @property
    def in_flight(self) -> int:
        """Async handlers scheduled but not finished yet"""
        return len(self._in_flight)

    def _schedule(self, awaitable):
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            future = asyncio.run_coroutine_threadsafe(self._guard(awaitable), self._notifier_loop())
        else:
            future = loop.create_task(self._guard(awaitable))
        # The loop only keeps weak references to its tasks
        self._in_flight.add(future)
        future.add_done_callback(self._in_flight.discard)

    def _notifier_loop(self) -> asyncio.AbstractEventLoop:
        with self._loop_guard:
            if self._loop is None:
                loop = asyncio.new_event_loop()
                threading.Thread(
                    target=loop.run_forever,
                    name="event-bus-notifier",
                    daemon=True,
                ).start()
                self._loop = loop
                logger.debug("event_notifier_loop_started")
            return self._loop

    async def _guard(self, awaitable):
        try:
            await awaitable
        except Exception:
            logger.error("async_event_handler_failed", exc_info=True)

    def clear_subscribers(self):
        """Clear all subscribers (useful for testing)"""
        self._subscribers.clear()
        logger.debug("event_subscribers_cleared")


# Global event bus instance
event_bus = EventBus()
