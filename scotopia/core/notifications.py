"""
Notification fan-out.

Publishes pipeline status events to subscribers without tying the core
to any transport. Transports (websocket bridges, loggers, test probes)
subscribe with a callback or pull from a bounded queue.
"""

import logging
import queue
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

DEPOSIT_RECEIVED = "deposit:new"
VERIFICATION_RESULT = "deposit:verified"
ATTESTATION_MINTED = "attestation:minted"

TOPICS = (DEPOSIT_RECEIVED, VERIFICATION_RESULT, ATTESTATION_MINTED)


@dataclass(frozen=True)
class Notification:
    """A published event."""
    topic: str
    payload: Dict[str, Any]


Subscriber = Callable[[Notification], None]


class NotificationBroker:
    """In-process publish/subscribe broker.

    A subscriber with topic None receives every notification. A failing
    subscriber is logged and skipped; it never affects the publisher or
    the remaining subscribers.
    """

    def __init__(self):
        self._subscribers: List[tuple] = []
        self._lock = threading.Lock()

    def subscribe(self, callback: Subscriber, topic: Optional[str] = None) -> Callable[[], None]:
        """Register callback and return a function that unregisters it."""
        if topic is not None and topic not in TOPICS:
            raise ValueError(f"Unknown topic: {topic}")

        entry = (topic, callback)
        with self._lock:
            self._subscribers.append(entry)

        def unsubscribe() -> None:
            with self._lock:
                if entry in self._subscribers:
                    self._subscribers.remove(entry)

        return unsubscribe

    def subscribe_queue(self, maxsize: int = 1000, topic: Optional[str] = None) -> "queue.Queue[Notification]":
        """Deliver notifications into a bounded queue.

        When the queue is full the notification is dropped for that
        subscriber and a warning is logged.
        """
        inbox: "queue.Queue[Notification]" = queue.Queue(maxsize=maxsize)

        def enqueue(notification: Notification) -> None:
            try:
                inbox.put_nowait(notification)
            except queue.Full:
                logger.warning("Notification queue full, dropping %s", notification.topic)

        self.subscribe(enqueue, topic)
        return inbox

    def publish(self, topic: str, payload: Dict[str, Any]) -> None:
        if topic not in TOPICS:
            raise ValueError(f"Unknown topic: {topic}")

        notification = Notification(topic=topic, payload=payload)
        with self._lock:
            targets = [cb for t, cb in self._subscribers if t is None or t == topic]

        for callback in targets:
            try:
                callback(notification)
            except Exception:
                logger.exception("Subscriber failed while handling %s", topic)
