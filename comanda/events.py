# comanda/events.py
"""
In-process event feed.

Push notifications only shorten polling latency; no engine operation depends
on an event being delivered. Subscriber failures are logged and isolated.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from threading import Lock
from typing import Callable, Optional

log = logging.getLogger("comanda.events")

ORDER_CREATED = "comanda.order.created"
LINE_CHANGED = "comanda.line.changed"
ORDER_PAID = "comanda.order.paid"
TABLE_RELEASED = "comanda.table.released"

EVENT_TYPES = (
    ORDER_CREATED,
    LINE_CHANGED,
    ORDER_PAID,
    TABLE_RELEASED,
)


@dataclass(frozen=True)
class Event:
    event_type: str
    record_id: int


Handler = Callable[[Event], None]


class EventFeed:
    def __init__(self) -> None:
        self._subscribers: dict[str, list[Handler]] = {}
        self._lock = Lock()

    def subscribe(self, event_type: str, handler: Handler) -> Callable[[], None]:
        if event_type not in EVENT_TYPES:
            raise ValueError(f"unknown event type: {event_type}")
        with self._lock:
            self._subscribers.setdefault(event_type, []).append(handler)

        def unsubscribe() -> None:
            with self._lock:
                handlers = self._subscribers.get(event_type, [])
                if handler in handlers:
                    handlers.remove(handler)

        return unsubscribe

    def publish(self, event_type: str, record_id: int) -> int:
        """Returns how many handlers accepted the event."""
        with self._lock:
            handlers = list(self._subscribers.get(event_type, ()))
        event = Event(event_type=event_type, record_id=int(record_id))
        delivered = 0
        for handler in handlers:
            try:
                handler(event)
                delivered += 1
            except Exception:
                log.warning("subscriber %r failed on %s #%s", handler, event_type, record_id, exc_info=True)
        return delivered


def publish(feed: Optional[EventFeed], event_type: str, record_id: int) -> None:
    if feed is not None:
        feed.publish(event_type, record_id)


# shared by the HTTP app
feed = EventFeed()
