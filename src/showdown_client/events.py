"""Typed event bus.

Each event kind is its own payload model; subscribers register for one
event class and receive instances of exactly that class. The bus holds no
state besides its subscriber lists.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from enum import Enum
from typing import Any, ClassVar, TypeVar

from pydantic import BaseModel, ConfigDict

from showdown_client.models import Message, RoomType

logger = logging.getLogger(__name__)


class EventKind(Enum):
    """Signals consumed by the UI layer."""

    ROOM_ADDED = "room-added"
    ROOM_REMOVED = "room-removed"
    MESSAGE_APPENDED = "message-appended"
    USERS_CHANGED = "users-changed"
    LOGIN_SUCCEEDED = "login-succeeded"
    ERROR = "error"
    NOTIFICATION = "notification-worthy"
    ROOM_AUTOSELECT = "room-autoselect-requested"
    THEME_CHANGED = "theme-changed"
    CONNECTION_CLOSED = "connection-closed"


class Event(BaseModel):
    """Base class for bus payloads."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    kind: ClassVar[EventKind]


class RoomAdded(Event):
    kind: ClassVar[EventKind] = EventKind.ROOM_ADDED

    room_id: str
    room_type: RoomType
    open: bool = True


class RoomRemoved(Event):
    kind: ClassVar[EventKind] = EventKind.ROOM_REMOVED

    room_id: str


class MessageAppended(Event):
    """A message was appended to a room log, or updated in place.

    `updated` is True for in-place updates of named blocks.
    """

    kind: ClassVar[EventKind] = EventKind.MESSAGE_APPENDED

    room_id: str
    message: Message
    updated: bool = False


class UsersChanged(Event):
    kind: ClassVar[EventKind] = EventKind.USERS_CHANGED

    room_id: str
    user_ids: list[str]


class LoginSucceeded(Event):
    kind: ClassVar[EventKind] = EventKind.LOGIN_SUCCEEDED

    username: str


class ErrorEvent(Event):
    """User-facing error text, displayed verbatim."""

    kind: ClassVar[EventKind] = EventKind.ERROR

    message: str
    room_id: str | None = None


class Notification(Event):
    kind: ClassVar[EventKind] = EventKind.NOTIFICATION

    author: str
    text: str
    room_id: str
    room_type: RoomType


class RoomAutoselect(Event):
    kind: ClassVar[EventKind] = EventKind.ROOM_AUTOSELECT

    room_id: str


class ThemeChanged(Event):
    kind: ClassVar[EventKind] = EventKind.THEME_CHANGED

    theme: str


class ConnectionClosed(Event):
    """The connection ended; `failed` is set when a transport error ended it."""

    kind: ClassVar[EventKind] = EventKind.CONNECTION_CLOSED

    reason: str = ""
    failed: bool = False


EventT = TypeVar("EventT", bound=Event)


class EventBus:
    """Publish/subscribe hub with one channel per event class."""

    def __init__(self) -> None:
        self._subscribers: dict[type[Event], list[Callable[[Any], None]]] = {}

    def subscribe(
        self, event_type: type[EventT], callback: Callable[[EventT], None]
    ) -> Callable[[], None]:
        """Register a callback for one event class.

        Args:
            event_type: The event class to listen for
            callback: Called with each published event of that class

        Returns:
            A function that removes the subscription
        """
        callbacks = self._subscribers.setdefault(event_type, [])
        callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in callbacks:
                callbacks.remove(callback)

        return unsubscribe

    def publish(self, event: Event) -> None:
        """Deliver an event to the subscribers of its class.

        A failing subscriber is logged and does not stop delivery to the others.
        """
        for callback in list(self._subscribers.get(type(event), ())):
            try:
                callback(event)
            except Exception as e:
                callback_name = getattr(callback, "__name__", repr(callback))
                logger.error(
                    "Error in %s subscriber '%s': %s",
                    event.kind.value,
                    callback_name,
                    e,
                    exc_info=True,
                )

    def subscriber_count(self, event_type: type[Event]) -> int:
        return len(self._subscribers.get(event_type, ()))
