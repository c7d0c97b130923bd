"""Change events published by the upload controller and a simple in-process bus."""

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Protocol

from photo_upload_queue.models import PhotoUpload

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SelectionAdded:
    """Photos were added to the selection."""

    items: tuple[PhotoUpload, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class SelectionRemoved:
    """Photos left the selection (deselected, cleared or promoted to uploads)."""

    items: tuple[PhotoUpload, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class UploadsModified:
    """The upload queue changed: membership or the state of a queued upload."""


Event = SelectionAdded | SelectionRemoved | UploadsModified
Handler = Callable[[Any], None]


class NotificationBus(Protocol):
    """Anything the controller can publish change events to."""

    def publish(self, event: Event) -> None: ...


class EventBus:
    """Synchronous publish/subscribe bus.

    Handlers run on the publishing thread, in subscription order. A handler
    subscribed to ``object`` receives every event. Handler exceptions are
    logged and never reach the publisher.
    """

    def __init__(self) -> None:
        self._subscribers: list[tuple[type, Handler]] = []
        self._lock = threading.Lock()

    def subscribe(self, event_type: type, handler: Handler) -> None:
        """Subscribe to events of ``event_type``.

        Args:
            event_type: Event class to listen for (``object`` for all events)
            handler: Callable invoked with each matching event
        """
        with self._lock:
            self._subscribers.append((event_type, handler))

    def unsubscribe(self, event_type: type, handler: Handler) -> None:
        with self._lock:
            if (event_type, handler) in self._subscribers:
                self._subscribers.remove((event_type, handler))

    def publish(self, event: Event) -> None:
        with self._lock:
            subscribers = list(self._subscribers)

        for event_type, handler in subscribers:
            if not isinstance(event, event_type):
                continue
            try:
                handler(event)
            except Exception as e:
                logger.error(
                    f"Subscriber error while handling {type(event).__name__}: {e}"
                )
