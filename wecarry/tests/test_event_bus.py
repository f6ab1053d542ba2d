import logging

import pytest

from wecarry.core.events.event_bus import EventBus
from wecarry.core.events.event_models import RequestCreated, ThreadMessageAdded, UserCreated

pytestmark = pytest.mark.unit


class TestEventBus:
    """Synchronous in-process publish/subscribe."""

    def test_handlers_run_in_registration_order(self):
        bus = EventBus()
        calls = []
        bus.subscribe(UserCreated.kind, lambda e: calls.append(("first", e.user_id)))
        bus.subscribe(UserCreated.kind, lambda e: calls.append(("second", e.user_id)))

        bus.publish(UserCreated(user_id=7))

        assert calls == [("first", 7), ("second", 7)]

    def test_only_matching_kind_is_delivered(self):
        bus = EventBus()
        calls = []
        bus.subscribe(RequestCreated.kind, calls.append)

        bus.publish(UserCreated(user_id=1))

        assert calls == []

    def test_failing_handler_is_logged_and_later_handlers_still_run(self, caplog):
        bus = EventBus()
        calls = []

        def broken(event):
            raise RuntimeError("boom")

        bus.subscribe(UserCreated.kind, broken)
        bus.subscribe(UserCreated.kind, calls.append)

        with caplog.at_level(logging.ERROR, logger="wecarry.core.events.event_bus"):
            bus.publish(UserCreated(user_id=3))

        assert len(calls) == 1
        assert "failed for api:user:created" in caplog.text
        assert "RuntimeError: boom" in caplog.text

    def test_register_listener_object(self):
        class Listener:
            event_kinds = (UserCreated.kind, ThreadMessageAdded.kind)

            def __init__(self):
                self.seen = []

            def handle(self, event):
                self.seen.append(event.kind)

        bus = EventBus()
        listener = Listener()
        bus.register(listener)

        bus.publish_all(
            [
                UserCreated(user_id=1),
                RequestCreated(request_id=1, creator_id=1),
                ThreadMessageAdded(thread_id=1, message_id=2, sender_id=1, request_id=1),
            ]
        )

        assert listener.seen == ["api:user:created", "thread:message-added"]

    def test_events_carry_distinct_transaction_ids(self):
        first = UserCreated(user_id=1)
        second = UserCreated(user_id=1)

        assert first.transaction_id != second.transaction_id
        assert UserCreated(user_id=1, transaction_id="tx").transaction_id == "tx"
