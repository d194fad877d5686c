"""
Shared plumbing for the domain services

A service works on one SQLModel session. Public mutating operations commit
once and only then publish the events they collected, so subscribers never
see state that could still roll back. Publishing happens after the
operation has released its entity locks.
"""

from typing import Callable, List, Optional
from datetime import datetime

from sqlmodel import Session

from posflow.core.clock import utcnow
from posflow.core.events import DomainEvent, EventBus, event_bus
from posflow.core.locks import KeyedLocks, entity_locks


class TransactionalService:
    """Base class holding the session, event bus, lock registry and clock"""

    def __init__(
        self,
        session: Session,
        bus: Optional[EventBus] = None,
        locks: Optional[KeyedLocks] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.session = session
        self.bus = bus or event_bus
        self.locks = locks or entity_locks
        self.clock = clock or utcnow
        self._pending: List[DomainEvent] = []
        self._committed: List[DomainEvent] = []

    def _emit(self, event: DomainEvent) -> None:
        self._pending.append(event)

    def _commit(self) -> None:
        """Commit; the collected events wait for ``_publish``"""
        self.session.commit()
        self._committed.extend(self._pending)
        self._pending = []

    def _publish(self) -> None:
        """Hand committed events to the bus; call with no entity lock held"""
        events, self._committed = self._committed, []
        self.bus.publish_all(events)

    def _rollback(self) -> None:
        self._pending = []
        self.session.rollback()

    def _take_events(self) -> List[DomainEvent]:
        """Hand collected events to a service that owns the transaction"""
        events, self._pending = self._pending, []
        return events
