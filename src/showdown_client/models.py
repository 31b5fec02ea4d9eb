"""Chat data models.

Pydantic models for rooms, messages, users and the persisted settings
projection.
"""

from __future__ import annotations

import re
import time
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


_NON_ID_CHARS = re.compile(r"[^a-z0-9]")


def to_id(text: object) -> str:
    """Canonical id of a name: lowercase ASCII letters and digits only.

    Non-string input yields an empty id.
    """
    if not isinstance(text, str):
        return ""
    return _NON_ID_CHARS.sub("", text.lower())


def now_seconds() -> int:
    """Current time in whole seconds since the epoch."""
    return int(time.time())


class BaseChatModel(BaseModel):
    """Base model for all chat entities.

    Extra fields in persisted or server-supplied data are ignored so that
    newer payloads never fail validation.
    """

    model_config = ConfigDict(extra="ignore")


class RoomType(Enum):
    """Kinds of rooms."""

    PERMANENT = "permanent"
    CHAT = "chat"
    PM = "pm"
    BATTLE = "battle"


class MessageType(Enum):
    """Kinds of messages stored in a room log.

    UHTML_UPDATE never reaches a room log; it only marks a content payload
    that replaces an existing block in place.
    """

    CHAT = "chat"
    SIMPLE = "simple"
    ERROR = "error"
    CHALLENGE = "challenge"
    LOG = "log"
    ROLEPLAY = "roleplay"
    ANNOUNCE = "announce"
    RAW = "raw"
    BOXED_HTML = "boxedHTML"
    RAW_HTML = "rawHTML"
    UHTML_UPDATE = "uhtmlchange"


class User(BaseChatModel):
    """A user in a room roster.

    `name` keeps the one-character rank prefix sent by the server,
    `id` is derived from the name without it.
    """

    name: str
    id: str
    status: str | None = None

    @classmethod
    def from_name(cls, name: str, status: str | None = None) -> User:
        return cls(name=name, id=to_id(name), status=status or None)

    @property
    def rank(self) -> str:
        if self.name and not self.name[0].isalnum():
            return self.name[0]
        return ""


class Message(BaseChatModel):
    """A single entry of a room log.

    The highlight flag is memoized together with the epoch of the highlight
    engine that computed it; a flag from an older epoch counts as unknown.
    """

    timestamp: int = Field(default_factory=now_seconds)
    user: str = ""
    content: str = ""
    type: MessageType = MessageType.CHAT
    name: str | None = None
    highlighted: bool | None = None
    highlight_epoch: int = -1

    @property
    def author_id(self) -> str:
        return to_id(self.user)

    def cached_highlight(self, epoch: int) -> bool | None:
        """Return the memoized highlight flag if it belongs to `epoch`."""
        if self.highlighted is None or self.highlight_epoch != epoch:
            return None
        return self.highlighted

    def set_highlight(self, value: bool, epoch: int) -> None:
        self.highlighted = value
        self.highlight_epoch = epoch


class Room(BaseChatModel):
    """A named conversation scope with its own log and roster.

    `connected` tracks whether the server announced the room, `open`
    whether it is shown locally; the two are independent.
    """

    id: str
    name: str = ""
    type: RoomType = RoomType.CHAT
    connected: bool = False
    open: bool = True
    messages: list[Message] = Field(default_factory=list)
    users: list[User] = Field(default_factory=list)
    unread: int = 0
    mentions: int = 0
    last_selected: float | None = None

    # Roster

    def get_user(self, user_id: str) -> User | None:
        for user in self.users:
            if user.id == user_id:
                return user
        return None

    def add_users(self, users: list[User]) -> None:
        """Add users to the roster, updating in place those already present."""
        for user in users:
            for index, existing in enumerate(self.users):
                if existing.id == user.id:
                    self.users[index] = user
                    break
            else:
                self.users.append(user)

    def remove_user(self, name: str) -> bool:
        user_id = to_id(name)
        for index, existing in enumerate(self.users):
            if existing.id == user_id:
                del self.users[index]
                return True
        return False

    def rename_user(self, new_name: str, old_id: str, status: str | None = None) -> bool:
        """Rename a roster entry keeping its position.

        The previous status is kept unless a new one is given. Unknown users
        are appended under the new name.
        """
        old_id = to_id(old_id)
        for index, existing in enumerate(self.users):
            if existing.id == old_id:
                self.users[index] = User.from_name(new_name, status or existing.status)
                return True
        self.users.append(User.from_name(new_name, status))
        return False

    # Log

    def add_message(
        self,
        message: Message,
        selected: bool = False,
        self_sent: bool = False,
    ) -> bool:
        """Append a message and update counters.

        Returns:
            True if the message is worth a notification
        """
        self.messages.append(message)
        if selected or self_sent:
            return False
        self.unread += 1
        if message.highlighted:
            self.mentions += 1
            return True
        return self.type is RoomType.PM

    def find_uhtml(self, name: str) -> Message | None:
        for message in self.messages:
            if message.name == name:
                return message
        return None

    def add_uhtml(
        self,
        message: Message,
        selected: bool = False,
        self_sent: bool = False,
    ) -> bool:
        """Add a named block, replacing the content of an existing one."""
        existing = self.find_uhtml(message.name) if message.name else None
        if existing is not None:
            existing.content = message.content
            return False
        return self.add_message(message, selected=selected, self_sent=self_sent)

    def change_uhtml(self, name: str, content: str) -> bool:
        """Replace the content of the named block in place.

        Returns:
            False if no block with that name exists
        """
        existing = self.find_uhtml(name)
        if existing is None:
            return False
        existing.content = content
        return True

    def select(self) -> None:
        self.unread = 0
        self.mentions = 0
        self.last_selected = time.time()


class SerializedRoom(BaseChatModel):
    """Persisted projection of a room."""

    id: str
    open: bool = True
    last_read_time: float | None = None


class UserDefinedSettings(BaseChatModel):
    """Preferences edited by the user."""

    highlight_words: dict[str, list[str]] = Field(default_factory=dict)
    theme: Literal["light", "dark"] = "dark"
    chat_style: Literal["compact", "normal"] = "normal"
    avatar: str = ""


class SavedSettings(BaseChatModel):
    """Everything written to the blob store under the settings key."""

    rooms: list[SerializedRoom] = Field(default_factory=list)
    username: str = ""
    status: str = ""
    user_defined_settings: UserDefinedSettings = Field(
        default_factory=UserDefinedSettings
    )
