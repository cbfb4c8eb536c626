"""
Event System Module

Domain notifications emitted by the ledger, delivered through a
publish/subscribe dispatcher. Events are append-only notifications; they are
never read back as ledger state.
"""

from enum import Enum
from typing import Callable, Dict, List, Any, Optional
from dataclasses import dataclass, field
from datetime import datetime, timezone
import uuid
import logging
from threading import RLock


class DomainEvent(Enum):
    """Domain events that can occur on the ledger"""

    # Base ledger notifications
    TRANSFER = "Transfer"
    APPROVAL = "Approval"

    # Admin surface
    FEE_RECIPIENT_CHANGED = "FeeRecipientChanged"
    CONTROLLER_ADDED = "ControllerAdded"
    CONTROLLER_REMOVED = "ControllerRemoved"
    OWNERSHIP_TRANSFERRED = "OwnershipTransferred"


@dataclass
class EventPayload:
    """Payload for domain events"""
    event_type: DomainEvent
    data: Dict[str, Any]
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))

    @property
    def name(self) -> str:
        return self.event_type.value

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization"""
        return {
            'event_type': self.event_type.value,
            'data': self.data,
            'timestamp': self.timestamp.isoformat(),
            'event_id': self.event_id
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'EventPayload':
        """Create from dictionary"""
        return cls(
            event_type=DomainEvent(data['event_type']),
            data=data['data'],
            timestamp=datetime.fromisoformat(data['timestamp']) if isinstance(data['timestamp'], str) else data['timestamp'],
            event_id=data['event_id']
        )


def transfer_event(sender: str, recipient: str, value: int) -> EventPayload:
    return EventPayload(DomainEvent.TRANSFER, {"from": sender, "to": recipient, "value": value})


def approval_event(owner: str, spender: str, value: int) -> EventPayload:
    return EventPayload(DomainEvent.APPROVAL, {"owner": owner, "spender": spender, "value": value})


def fee_recipient_changed_event(old: str, new: str) -> EventPayload:
    return EventPayload(DomainEvent.FEE_RECIPIENT_CHANGED, {"old": old, "new": new})


def controller_added_event(controller: str) -> EventPayload:
    return EventPayload(DomainEvent.CONTROLLER_ADDED, {"controller": controller})


def controller_removed_event(controller: str) -> EventPayload:
    return EventPayload(DomainEvent.CONTROLLER_REMOVED, {"controller": controller})


def ownership_transferred_event(previous_owner: str, new_owner: str) -> EventPayload:
    return EventPayload(
        DomainEvent.OWNERSHIP_TRANSFERRED,
        {"previous_owner": previous_owner, "new_owner": new_owner}
    )


class EventDispatcher:
    """Central event dispatcher, publish/subscribe pattern"""

    def __init__(self):
        self._handlers: Dict[DomainEvent, List[Callable]] = {}
        self._global_handlers: List[Callable] = []  # catch-all handlers
        self._lock = RLock()
        self.logger = logging.getLogger("token_ledger.events")

    def subscribe(self, event_type: DomainEvent, handler: Callable) -> None:
        """Subscribe to a specific event type"""
        with self._lock:
            self._handlers.setdefault(event_type, []).append(handler)
            self.logger.debug(f"Subscribed handler {getattr(handler, '__name__', repr(handler))} to {event_type.value}")

    def subscribe_all(self, handler: Callable) -> None:
        """Subscribe to ALL events"""
        with self._lock:
            self._global_handlers.append(handler)
            self.logger.debug(f"Subscribed global handler {getattr(handler, '__name__', repr(handler))}")

    def unsubscribe(self, event_type: DomainEvent, handler: Callable) -> None:
        """Unsubscribe from a specific event type"""
        with self._lock:
            if event_type in self._handlers:
                try:
                    self._handlers[event_type].remove(handler)
                except ValueError:
                    self.logger.warning(f"Handler {getattr(handler, '__name__', repr(handler))} was not subscribed to {event_type.value}")

    def unsubscribe_all(self, handler: Callable) -> None:
        """Unsubscribe a catch-all handler"""
        with self._lock:
            try:
                self._global_handlers.remove(handler)
            except ValueError:
                self.logger.warning(f"Global handler {getattr(handler, '__name__', repr(handler))} was not subscribed")

    def publish(self, event: EventPayload) -> None:
        """Publish event to all subscribers"""
        with self._lock:
            self.logger.debug(f"Publishing event {event.event_type.value}: {event.data}")

            for handler in self._handlers.get(event.event_type, []):
                try:
                    handler(event)
                except Exception as e:
                    # The ledger state is already committed; a broken listener must not mask that
                    self.logger.error(f"Error in event handler {getattr(handler, '__name__', repr(handler))} for {event.event_type.value}: {e}")

            for handler in self._global_handlers:
                try:
                    handler(event)
                except Exception as e:
                    self.logger.error(f"Error in global event handler {getattr(handler, '__name__', repr(handler))} for {event.event_type.value}: {e}")

    def clear(self) -> None:
        """Clear all handlers"""
        with self._lock:
            self._handlers.clear()
            self._global_handlers.clear()

    def get_handler_count(self, event_type: Optional[DomainEvent] = None) -> int:
        """Get count of handlers for a specific event type or all"""
        with self._lock:
            if event_type:
                return len(self._handlers.get(event_type, []))
            total = sum(len(handlers) for handlers in self._handlers.values())
            return total + len(self._global_handlers)


class EventLog:
    """Append-only record of published events, in publish order"""

    def __init__(self):
        self._events: List[EventPayload] = []
        self._lock = RLock()

    def __call__(self, event: EventPayload) -> None:
        with self._lock:
            self._events.append(event)

    def __len__(self) -> int:
        return len(self._events)

    @property
    def events(self) -> List[EventPayload]:
        with self._lock:
            return list(self._events)

    def of_type(self, event_type: DomainEvent) -> List[EventPayload]:
        with self._lock:
            return [e for e in self._events if e.event_type == event_type]

    def names(self) -> List[str]:
        with self._lock:
            return [e.name for e in self._events]
