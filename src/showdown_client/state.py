"""Room and user state.

Provides:
- RoomStore: owns every Room (and through them their messages and users),
  keeps a caller-visible room order and publishes an event for each mutation
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from showdown_client.events import (
    EventBus,
    MessageAppended,
    RoomAdded,
    RoomRemoved,
    UsersChanged,
)
from showdown_client.models import Message, Room, User

logger = logging.getLogger(__name__)


class RoomStore:
    """Owns the set of rooms.

    Room listing follows `order`, a list of room ids that may also name rooms
    not present yet (e.g. restored from settings); rooms unknown to the order
    are appended when created. Ids stay in the order after a room is removed
    so a rejoined room gets its old position back.

    Every method taking a room id is tolerant of unknown rooms: it logs a
    warning and reports failure through its return value.
    """

    def __init__(self, bus: EventBus, order: Iterable[str] = ()) -> None:
        """Initialize the store.

        Args:
            bus: Event bus receiving one event per mutation
            order: Preferred room order
        """
        self._bus = bus
        self._rooms: dict[str, Room] = {}
        self._order: list[str] = []
        self.set_order(order)

    def __contains__(self, room_id: object) -> bool:
        return room_id in self._rooms

    def __len__(self) -> int:
        return len(self._rooms)

    # Rooms

    def get(self, room_id: str) -> Room | None:
        return self._rooms.get(room_id)

    def rooms(self) -> list[Room]:
        """All rooms in caller-visible order."""
        return [self._rooms[room_id] for room_id in self._order if room_id in self._rooms]

    def open_rooms(self) -> list[Room]:
        return [room for room in self.rooms() if room.open]

    @property
    def order(self) -> list[str]:
        return list(self._order)

    def set_order(self, room_ids: Iterable[str]) -> None:
        """Adopt an externally supplied order.

        Ids not mentioned keep their relative order after the supplied ones.
        """
        new_order: list[str] = []
        for room_id in room_ids:
            if room_id not in new_order:
                new_order.append(room_id)
        new_order.extend(room_id for room_id in self._order if room_id not in new_order)
        self._order = new_order

    def add_room(self, room: Room) -> Room:
        """Add a room, replacing any room with the same id in place."""
        if room.id in self._rooms:
            logger.debug("Replacing existing room %s", room.id)
        self._rooms[room.id] = room
        if room.id not in self._order:
            self._order.append(room.id)
        self._bus.publish(RoomAdded(room_id=room.id, room_type=room.type, open=room.open))
        return room

    def set_open(self, room_id: str, open: bool = True) -> bool:
        """Show or hide a room locally without touching its server membership."""
        room = self._rooms.get(room_id)
        if room is None:
            logger.warning("set_open: room (%s) is unknown", room_id)
            return False
        room.open = open
        self._bus.publish(RoomAdded(room_id=room.id, room_type=room.type, open=open))
        return True

    def remove_room(self, room_id: str) -> Room | None:
        room = self._rooms.pop(room_id, None)
        if room is None:
            logger.warning("remove_room: room (%s) is unknown", room_id)
            return None
        self._bus.publish(RoomRemoved(room_id=room_id))
        return room

    # Messages

    def append_message(
        self,
        room_id: str,
        message: Message,
        selected: bool = False,
        self_sent: bool = False,
    ) -> bool | None:
        """Append a message to a room log.

        Named blocks (message.name set) replace an existing block of the same
        name instead of being appended.

        Returns:
            Whether the message is worth a notification, or None if the room
            is unknown
        """
        room = self._rooms.get(room_id)
        if room is None:
            return None
        if message.name:
            existing = room.find_uhtml(message.name)
            should_notify = room.add_uhtml(message, selected=selected, self_sent=self_sent)
            self._bus.publish(
                MessageAppended(
                    room_id=room_id,
                    message=existing if existing is not None else message,
                    updated=existing is not None,
                )
            )
            return should_notify
        should_notify = room.add_message(message, selected=selected, self_sent=self_sent)
        self._bus.publish(MessageAppended(room_id=room_id, message=message))
        return should_notify

    def update_uhtml(self, room_id: str, name: str, content: str) -> bool:
        """Replace the content of a named block, keeping its log position."""
        room = self._rooms.get(room_id)
        if room is None:
            logger.warning("update_uhtml: room (%s) is unknown", room_id)
            return False
        if not room.change_uhtml(name, content):
            logger.debug("update_uhtml: no block named %s in %s", name, room_id)
            return False
        block = room.find_uhtml(name)
        if block is not None:
            self._bus.publish(MessageAppended(room_id=room_id, message=block, updated=True))
        return True

    # Users

    def add_users(self, room_id: str, users: list[User]) -> bool:
        room = self._rooms.get(room_id)
        if room is None:
            logger.warning("add_users: room (%s) is unknown. Users: %s", room_id, [u.name for u in users])
            return False
        room.add_users(users)
        self._bus.publish(UsersChanged(room_id=room_id, user_ids=[u.id for u in users]))
        return True

    def remove_user(self, room_id: str, name: str) -> bool:
        room = self._rooms.get(room_id)
        if room is None:
            logger.warning("remove_user: room (%s) is unknown", room_id)
            return False
        if not room.remove_user(name):
            logger.debug("remove_user: %s not in roster of %s", name, room_id)
        self._bus.publish(UsersChanged(room_id=room_id, user_ids=[User.from_name(name).id]))
        return True

    def rename_user(
        self, room_id: str, new_name: str, old_id: str, status: str | None = None
    ) -> bool:
        room = self._rooms.get(room_id)
        if room is None:
            logger.warning("rename_user: room (%s) is unknown", room_id)
            return False
        room.rename_user(new_name, old_id, status)
        self._bus.publish(UsersChanged(room_id=room_id, user_ids=[User.from_name(new_name).id]))
        return True
