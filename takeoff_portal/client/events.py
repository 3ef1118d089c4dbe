from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CompanySwitched:
    previous_company_id: int | None
    company_id: int


@dataclass(frozen=True)
class TakeoffStatusChanged:
    takeoff_id: int
    previous_status: int
    status: int


class EventChannel:
    """Synchronous publish/subscribe for client side events.

    Subscribers run in subscription order. A subscriber that raises is logged
    and the remaining subscribers still receive the event.
    """

    def __init__(self):
        self._subscribers: list[tuple[type | None, Callable]] = []

    def subscribe(self, callback: Callable, event_type: type | None = None) -> Callable[[], None]:
        entry = (event_type, callback)
        self._subscribers.append(entry)

        def unsubscribe() -> None:
            if entry in self._subscribers:
                self._subscribers.remove(entry)

        return unsubscribe

    def publish(self, event: object) -> None:
        for event_type, callback in list(self._subscribers):
            if event_type is not None and not isinstance(event, event_type):
                continue
            try:
                callback(event)
            except Exception:
                logger.exception('Subscriber %r failed handling %s', callback, type(event).__name__)
