"""
Tests for the notification broker.
"""
import pytest

from scotopia.core.notifications import (
    ATTESTATION_MINTED,
    DEPOSIT_RECEIVED,
    Notification,
    NotificationBroker,
)


class TestNotificationBroker:
    """Test publish/subscribe delivery."""

    def test_topic_subscription(self):
        broker = NotificationBroker()
        received = []
        broker.subscribe(received.append, DEPOSIT_RECEIVED)

        broker.publish(DEPOSIT_RECEIVED, {"id": "a"})
        broker.publish(ATTESTATION_MINTED, {"depositId": "a"})

        assert received == [Notification(DEPOSIT_RECEIVED, {"id": "a"})]

    def test_wildcard_subscription(self):
        broker = NotificationBroker()
        received = []
        broker.subscribe(received.append)

        broker.publish(DEPOSIT_RECEIVED, {})
        broker.publish(ATTESTATION_MINTED, {})

        assert [n.topic for n in received] == [DEPOSIT_RECEIVED, ATTESTATION_MINTED]

    def test_unsubscribe(self):
        broker = NotificationBroker()
        received = []
        unsubscribe = broker.subscribe(received.append)
        unsubscribe()

        broker.publish(DEPOSIT_RECEIVED, {})
        assert received == []

    def test_failing_subscriber_is_isolated(self):
        broker = NotificationBroker()
        received = []

        def broken(notification):
            raise RuntimeError("socket closed")

        broker.subscribe(broken)
        broker.subscribe(received.append)

        broker.publish(DEPOSIT_RECEIVED, {"id": "a"})
        assert len(received) == 1

    def test_bounded_queue_drops_when_full(self):
        broker = NotificationBroker()
        inbox = broker.subscribe_queue(maxsize=1)

        broker.publish(DEPOSIT_RECEIVED, {"n": 1})
        broker.publish(DEPOSIT_RECEIVED, {"n": 2})

        assert inbox.get_nowait().payload == {"n": 1}
        assert inbox.empty()

    def test_unknown_topic(self):
        broker = NotificationBroker()
        with pytest.raises(ValueError, match="Unknown topic"):
            broker.publish("deposit:deleted", {})
        with pytest.raises(ValueError, match="Unknown topic"):
            broker.subscribe(print, "deposit:deleted")
