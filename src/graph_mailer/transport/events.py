import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Type

logger = logging.getLogger(__name__)


@dataclass
class MessageEvent:
    """Dispatched before sending. Listeners may replace the envelope."""

    message: object
    envelope: object
    transport: str


@dataclass
class SentMessageEvent:
    sent_message: object


@dataclass
class FailedMessageEvent:
    message: object
    error: Exception


class EventDispatcher:
    """Calls registered listeners for each event type, in registration order."""

    def __init__(self):
        self._listeners: Dict[Type, List[Callable]] = defaultdict(list)

    def add_listener(self, event_type: Type, listener: Callable) -> None:
        self._listeners[event_type].append(listener)

    def remove_listener(self, event_type: Type, listener: Callable) -> None:
        if listener in self._listeners.get(event_type, []):
            self._listeners[event_type].remove(listener)

    def dispatch(self, event: object) -> object:
        for listener in list(self._listeners.get(type(event), [])):
            listener(event)
        return event


def dispatch(dispatcher: Optional[EventDispatcher], event: object) -> object:
    if dispatcher is None:
        return event
    logger.debug(f"Dispatching {type(event).__name__}")
    return dispatcher.dispatch(event)
