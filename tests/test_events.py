"""
Tests for the Event System (Observer Pattern)
"""

from datetime import datetime
from unittest.mock import Mock

from token_ledger.events import (
    DomainEvent, EventDispatcher, EventLog, EventPayload,
    controller_added_event, fee_recipient_changed_event, transfer_event
)

from conftest import ALICE, BOB


class TestEventPayload:

    def test_factory_payloads(self):
        event = fee_recipient_changed_event(ALICE, BOB)

        assert event.event_type == DomainEvent.FEE_RECIPIENT_CHANGED
        assert event.name == "FeeRecipientChanged"
        assert event.data == {"old": ALICE, "new": BOB}
        assert isinstance(event.timestamp, datetime)
        assert len(event.event_id) > 0

    def test_serialization(self):
        original = transfer_event(ALICE, BOB, 10 ** 20)
        restored = EventPayload.from_dict(original.to_dict())

        assert restored.event_type == original.event_type
        assert restored.data == original.data
        assert restored.event_id == original.event_id
        assert restored.timestamp == original.timestamp


class TestEventDispatcher:

    def test_subscribe_and_publish(self):
        dispatcher = EventDispatcher()
        handler = Mock()
        dispatcher.subscribe(DomainEvent.CONTROLLER_ADDED, handler)

        event = controller_added_event(ALICE)
        dispatcher.publish(event)
        dispatcher.publish(transfer_event(ALICE, BOB, 1))

        handler.assert_called_once_with(event)

    def test_global_handler_receives_everything(self):
        dispatcher = EventDispatcher()
        handler = Mock()
        dispatcher.subscribe_all(handler)

        dispatcher.publish(controller_added_event(ALICE))
        dispatcher.publish(transfer_event(ALICE, BOB, 1))

        assert handler.call_count == 2

    def test_failing_handler_does_not_block_others(self):
        dispatcher = EventDispatcher()
        bad = Mock(side_effect=Exception("boom"))
        bad.__name__ = "bad"
        good = Mock()
        dispatcher.subscribe(DomainEvent.TRANSFER, bad)
        dispatcher.subscribe(DomainEvent.TRANSFER, good)

        dispatcher.publish(transfer_event(ALICE, BOB, 1))

        good.assert_called_once()

    def test_unsubscribe(self):
        dispatcher = EventDispatcher()
        handler = Mock()
        dispatcher.subscribe(DomainEvent.TRANSFER, handler)
        dispatcher.subscribe_all(handler)
        assert dispatcher.get_handler_count() == 2

        dispatcher.unsubscribe(DomainEvent.TRANSFER, handler)
        dispatcher.unsubscribe_all(handler)
        dispatcher.publish(transfer_event(ALICE, BOB, 1))

        handler.assert_not_called()
        assert dispatcher.get_handler_count(DomainEvent.TRANSFER) == 0

    def test_clear(self):
        dispatcher = EventDispatcher()
        dispatcher.subscribe(DomainEvent.TRANSFER, Mock())
        dispatcher.clear()
        assert dispatcher.get_handler_count() == 0


class TestEventLog:

    def test_records_in_publish_order(self):
        dispatcher = EventDispatcher()
        log = EventLog()
        dispatcher.subscribe_all(log)

        dispatcher.publish(controller_added_event(ALICE))
        dispatcher.publish(transfer_event(ALICE, BOB, 5))

        assert log.names() == ["ControllerAdded", "Transfer"]
        assert len(log) == 2
        assert len(log.of_type(DomainEvent.TRANSFER)) == 1

    def test_events_returns_a_copy(self):
        log = EventLog()
        log(controller_added_event(ALICE))
        log.events.clear()
        assert len(log) == 1
