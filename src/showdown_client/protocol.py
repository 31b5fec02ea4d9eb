"""Wire codec for the pipe-delimited chat protocol.

Handles:
- Frame framing (challenge frames, room-scoped batches of lines)
- Line classification into a closed set of commands
- Init-block markers and roster parsing
- Content sub-classification of chat payloads
- Outbound line formatting
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum

from showdown_client.models import MessageType, RoomType, User, now_seconds, to_id

logger = logging.getLogger(__name__)

# =============================================================================
# Protocol Constants
# =============================================================================

CHALLENGE_PREFIX: str = "|challstr|"
ROOM_SCOPE_MARKER: str = ">"
DEFAULT_ROOM_ID: str = "lobby"

INIT_PREFIX: str = "|init|"
TITLE_PREFIX: str = "|title|"
USERS_PREFIX: str = "|users|"
MESSAGE_START_PREFIXES: tuple[str, ...] = ("|:|", "|t:|")

PM_ROOM_PREFIX: str = "pm-"
GUEST_PREFIX: str = "guest"

_INLINE_SCOPE = re.compile(r"^([a-z0-9][a-z0-9-]*)(\|.*)$", re.DOTALL)


class Command(Enum):
    """Every kind of line the decoder distinguishes."""

    CHAT = "c"
    CHAT_TIMESTAMPED = "c:"
    PM = "pm"
    JOIN = "J"
    LEAVE = "L"
    RENAME = "N"
    QUERY_RESPONSE = "queryresponse"
    NO_INIT = "noinit"
    UPDATE_USER = "updateuser"
    DEINIT = "deinit"
    RAW = "raw"
    HTML = "html"
    UHTML = "uhtml"
    UHTML_CHANGE = "uhtmlchange"
    ERROR = "error"
    NOTICE = ""
    UNKNOWN = "?"


# Wire tokens, including the aliases the server uses for the same command
COMMAND_TOKENS: dict[str, Command] = {
    "c": Command.CHAT,
    "chat": Command.CHAT,
    "c:": Command.CHAT_TIMESTAMPED,
    "pm": Command.PM,
    "J": Command.JOIN,
    "j": Command.JOIN,
    "join": Command.JOIN,
    "L": Command.LEAVE,
    "l": Command.LEAVE,
    "leave": Command.LEAVE,
    "N": Command.RENAME,
    "n": Command.RENAME,
    "name": Command.RENAME,
    "queryresponse": Command.QUERY_RESPONSE,
    "noinit": Command.NO_INIT,
    "updateuser": Command.UPDATE_USER,
    "deinit": Command.DEINIT,
    "raw": Command.RAW,
    "html": Command.HTML,
    "uhtml": Command.UHTML,
    "uhtmlchange": Command.UHTML_CHANGE,
    "error": Command.ERROR,
}


# =============================================================================
# Frames and lines
# =============================================================================


@dataclass(frozen=True)
class ServerLine:
    """One classified protocol line.

    Attributes:
        command: The classified command
        token: The command token as sent (empty for notices)
        args: Pipe-separated fields after the token
        raw: The line as received
    """

    command: Command
    token: str
    args: list[str] = field(default_factory=list)
    raw: str = ""

    def arg(self, index: int, default: str = "") -> str:
        return self.args[index] if index < len(self.args) else default

    def rest(self, start: int) -> str:
        """Re-join the fields from `start` on, for payloads that contain pipes."""
        return "|".join(self.args[start:])


def parse_challenge(frame: str) -> str | None:
    """Extract the challenge token from a challenge frame.

    Returns:
        The token (every field after the command, pipes kept), or None if the
        frame is not a challenge frame
    """
    if not frame.startswith(CHALLENGE_PREFIX):
        return None
    return frame[len(CHALLENGE_PREFIX):]


def split_frame(frame: str) -> tuple[str, list[str]]:
    """Split a frame into its target room and its lines.

    A first line ``>roomid`` scopes the batch to that room. A first line in
    the compact ``roomid|<command>|...`` form scopes that line the same way.
    Anything else targets the lobby.

    Returns:
        (room id, lines to decode)
    """
    lines = frame.split("\n")
    first = lines[0]
    if first.startswith(ROOM_SCOPE_MARKER):
        room_id = first[len(ROOM_SCOPE_MARKER):].strip()
        return room_id or DEFAULT_ROOM_ID, lines[1:]
    match = _INLINE_SCOPE.match(first)
    if match and parse_line(match.group(2)).command is not Command.UNKNOWN:
        return match.group(1), [match.group(2), *lines[1:]]
    return DEFAULT_ROOM_ID, lines


def parse_line(line: str) -> ServerLine:
    """Classify one line by its leading command token."""
    if not line.startswith("|"):
        return ServerLine(Command.NOTICE, "", [line], line)
    _, token, *args = line.split("|")
    command = COMMAND_TOKENS.get(token, Command.UNKNOWN)
    return ServerLine(command, token, args, line)


# =============================================================================
# Init blocks
# =============================================================================


def is_init_line(line: str) -> bool:
    return line.startswith(INIT_PREFIX)


def is_message_start(line: str) -> bool:
    return line.startswith(MESSAGE_START_PREFIXES)


def parse_room_type(line: str) -> RoomType:
    """Room type carried by an init line; unknown types fall back to chat."""
    tag = line[len(INIT_PREFIX):].split("|", 1)[0].strip()
    try:
        return RoomType(tag)
    except ValueError:
        logger.error("Unknown room type %r, treating it as chat", tag)
        return RoomType.CHAT


def parse_title(line: str) -> str:
    return line[len(TITLE_PREFIX):]


def parse_user_token(token: str) -> User | None:
    """Parse one roster token: optional rank character, name, optional @status.

    The first character is a rank only when it is not a letter or digit.
    """
    if not token:
        return None
    if token[0].isalnum():
        rank, rest = "", token
    else:
        rank, rest = token[0], token[1:]
    name, _, status = rest.partition("@")
    if not to_id(name):
        return None
    return User(name=rank + name, id=to_id(name), status=status or None)


def parse_users(line: str) -> list[User]:
    """Parse a users line.

    The first comma-separated token is the user count sent by the server and
    is always dropped, as are tokens without a usable name.
    """
    payload = line[len(USERS_PREFIX):].split("|", 1)[0]
    users: list[User] = []
    for token in payload.split(",")[1:]:
        user = parse_user_token(token)
        if user is None:
            if token:
                logger.warning("Skipping malformed roster token %r", token)
            continue
        users.append(user)
    return users


# =============================================================================
# Chat content
# =============================================================================


@dataclass(frozen=True)
class ChatContent:
    """A chat payload after sub-classification."""

    type: MessageType
    content: str
    block_name: str | None = None

    @property
    def is_update(self) -> bool:
        return self.type is MessageType.UHTML_UPDATE


# Checked in order; /uhtmlchange must come before /uhtml
CONTENT_MARKERS: tuple[tuple[str, MessageType], ...] = (
    ("/raw", MessageType.RAW),
    ("/uhtmlchange", MessageType.UHTML_UPDATE),
    ("/uhtml", MessageType.RAW),
    ("/error", MessageType.ERROR),
    ("/text", MessageType.LOG),
    ("/log", MessageType.LOG),
    ("/me", MessageType.ROLEPLAY),
    ("/announce", MessageType.ANNOUNCE),
    ("/html", MessageType.BOXED_HTML),
    ("/challenge", MessageType.CHALLENGE),
)

_BLOCK_MARKERS = ("/uhtml", "/uhtmlchange")


def _strip_marker(content: str, marker: str) -> str | None:
    """Content after `marker`, or None if content does not start with it as a word."""
    if not content.startswith(marker):
        return None
    rest = content[len(marker):]
    if rest and not rest[0].isspace():
        return None
    return rest[1:] if rest else rest


def classify_content(content: str) -> ChatContent:
    """Sub-classify a chat payload by its leading slash-command."""
    for marker, message_type in CONTENT_MARKERS:
        rest = _strip_marker(content, marker)
        if rest is None:
            continue
        if marker in _BLOCK_MARKERS:
            name, _, html = rest.partition(",")
            return ChatContent(message_type, html, name.strip() or None)
        return ChatContent(message_type, rest)
    return ChatContent(MessageType.CHAT, content)


def parse_timestamp(value: str) -> int:
    """Server timestamp in seconds; arrival time if it does not parse."""
    try:
        return int(value)
    except (TypeError, ValueError):
        logger.debug("Unparsable timestamp %r, using arrival time", value)
        return now_seconds()


# =============================================================================
# Outbound lines
# =============================================================================


def pm_room_id(user: str) -> str:
    return PM_ROOM_PREFIX + to_id(user)


def is_guest_name(name: str) -> bool:
    return name.strip().lower().startswith(GUEST_PREFIX)


def strip_rank(name: str) -> str:
    """Drop a leading rank character from a display name."""
    name = name.strip()
    if name and not name[0].isalnum():
        return name[1:].strip()
    return name


def format_outgoing(
    text: str,
    room_id: str | None = None,
    room_type: RoomType | None = None,
    room_name: str = "",
) -> str:
    """Build the wire line for a message.

    - global: ``|<text>``
    - PM rooms: ``|/pm <name>, <text>``
    - other rooms: ``<roomid>|<text>``
    """
    if not room_id:
        return f"|{text}"
    if room_type is RoomType.PM:
        return f"|/pm {room_name}, {text}"
    return f"{room_id}|{text}"
