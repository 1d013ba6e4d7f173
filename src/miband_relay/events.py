"""Event surface exposed to callers: connected, authenticated, heartrate, alert."""

import logging
from collections import defaultdict
from enum import Enum
from typing import Any, Callable

logger = logging.getLogger(__name__)

Listener = Callable[..., None]


class Event(str, Enum):
    CONNECTED = "connected"
    AUTHENTICATED = "authenticated"
    HEARTRATE = "heartrate"
    ALERT = "alert"


class EventEmitter:
    """
    Fire-and-forget event dispatch.

    Listeners are called synchronously in registration order. A listener
    that raises is logged and does not stop the others.
    """

    def __init__(self) -> None:
        self._listeners: dict[Event, list[Listener]] = defaultdict(list)

    def on(self, event: Event, listener: Listener) -> None:
        self._listeners[Event(event)].append(listener)

    def off(self, event: Event, listener: Listener) -> None:
        listeners = self._listeners.get(Event(event), [])
        if listener in listeners:
            listeners.remove(listener)

    def emit(self, event: Event, **payload: Any) -> None:
        event = Event(event)
        logger.debug(f"Event {event.value}: {payload}")
        for listener in list(self._listeners.get(event, [])):
            try:
                listener(**payload)
            except Exception as e:
                logger.error(f"Listener for {event.value} failed: {e}")
