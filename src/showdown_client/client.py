"""Protocol engine.

ShowdownClient owns the transport, the room store, the settings, the
highlight engine and the login state machine. It decodes every frame the
transport delivers, applies the resulting mutations and publishes typed
events on its bus. Nothing in here is a process-wide singleton: consumers
receive the client they should talk to.
"""

from __future__ import annotations

import asyncio
import json
import logging
import webbrowser
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from typing import Any

from showdown_client.auth import LoginRedirect, LoginServerClient, LoginStateMachine
from showdown_client.config import ClientConfig
from showdown_client.events import (
    ConnectionClosed,
    ErrorEvent,
    EventBus,
    LoginSucceeded,
    Notification,
    RoomAutoselect,
)
from showdown_client.highlight import GLOBAL_SCOPE, HighlightEngine
from showdown_client.models import (
    Message,
    MessageType,
    Room,
    RoomType,
    SerializedRoom,
    now_seconds,
    to_id,
)
from showdown_client.protocol import (
    TITLE_PREFIX,
    USERS_PREFIX,
    Command,
    ServerLine,
    classify_content,
    format_outgoing,
    is_guest_name,
    is_init_line,
    is_message_start,
    parse_challenge,
    parse_line,
    parse_room_type,
    parse_timestamp,
    parse_title,
    parse_user_token,
    parse_users,
    pm_room_id,
    split_frame,
    strip_rank,
)
from showdown_client.settings import BlobStore, MemoryBlobStore, SettingsStore
from showdown_client.state import RoomStore
from showdown_client.transport import Transport, WebSocketTransport

logger = logging.getLogger(__name__)

QueryCallback = Callable[[Any], None]

# Message types checked against the highlight words
HIGHLIGHTED_TYPES = (MessageType.CHAT, MessageType.ROLEPLAY)

# Joined when autojoin is asked to fall back on defaults
DEFAULT_ROOMS: tuple[str, ...] = ("lobby",)


@dataclass(frozen=True)
class PermanentRoom:
    """A client-only room that exists for the whole session."""

    id: str
    name: str
    default_open: bool


PERMANENT_ROOMS: tuple[PermanentRoom, ...] = (
    PermanentRoom("home", "Home", True),
    PermanentRoom("settings", "Settings", False),
)
PERMANENT_ROOM_IDS = frozenset(room.id for room in PERMANENT_ROOMS)


class ShowdownClient:
    """A single chat server session.

    Incoming frames are processed strictly in arrival order through
    `handle_frame`; outgoing lines go through the transport, which queues
    them until the connection is open.

    Attributes:
        config: Session configuration
        bus: Event bus every observer subscribes to
        settings: Persisted settings
        rooms: Live rooms
        highlighter: Highlight engine fed by the settings word lists
        login_server: Credential server client
        auth: Login state machine for the current connection
        challenge: Challenge sent by the server ("" until received)
        selected_room: Room currently shown to the user, if any
        logged_in: Whether the server confirmed a registered identity
    """

    def __init__(
        self,
        config: ClientConfig,
        blob_store: BlobStore | None = None,
        transport: Transport | None = None,
        login_server: LoginServerClient | None = None,
        bus: EventBus | None = None,
    ) -> None:
        """Wire the engine together.

        Args:
            config: Session configuration
            blob_store: Where settings are persisted (in memory if omitted)
            transport: Duplex channel to the server (WebSocket if omitted)
            login_server: Credential server client (built from config if omitted)
            bus: Event bus to publish on (a new one if omitted)
        """
        self.config = config
        self.bus = bus if bus is not None else EventBus()
        self.settings = SettingsStore(
            blob_store if blob_store is not None else MemoryBlobStore(), self.bus
        )
        self.highlighter = HighlightEngine(
            self.settings.get_highlight_words, self.settings.username
        )
        self.settings.on_highlight_words_changed(self.highlighter.invalidate)

        saved_rooms = self.settings.saved_rooms()
        self._pending_restore: dict[str, SerializedRoom] = {
            room.id: room for room in saved_rooms
        }
        self.rooms = RoomStore(self.bus, order=[room.id for room in saved_rooms])

        self.transport: Transport = (
            transport if transport is not None else WebSocketTransport(config.server_url)
        )
        self.transport.set_handlers(
            self._on_open, self._on_message, self._on_error, self._on_close
        )
        self.login_server = (
            login_server
            if login_server is not None
            else LoginServerClient(config.loginserver_url, config.client_id)
        )
        self.auth = LoginStateMachine(
            get_challenge=lambda: self.challenge,
            send=self._send,
            settings=self.settings,
            login_server=self.login_server,
            poll_interval=config.challenge_poll_interval,
            challenge_timeout=config.challenge_timeout,
            assertion=config.assertion,
            token=config.token,
        )

        self.challenge = ""
        self.selected_room: str | None = None
        self.logged_in = False
        self._autoselect_room: str | None = None
        self._join_after_login: list[str] = []
        self._user_query_callback: QueryCallback | None = None
        self._rooms_query_callback: QueryCallback | None = None
        self._rooms_cache: Any = None
        self._login_task: asyncio.Task[bool] | None = None
        self._transport_failed = False

        self._handlers: dict[Command, Callable[[ServerLine, str], None]] = {
            Command.CHAT: self._handle_chat,
            Command.CHAT_TIMESTAMPED: self._handle_chat,
            Command.PM: self._handle_pm,
            Command.JOIN: self._handle_join,
            Command.LEAVE: self._handle_leave,
            Command.RENAME: self._handle_rename,
            Command.QUERY_RESPONSE: self._handle_query_response,
            Command.NO_INIT: self._handle_no_init,
            Command.UPDATE_USER: self._handle_update_user,
            Command.DEINIT: self._handle_deinit,
            Command.RAW: self._handle_raw,
            Command.HTML: self._handle_html,
            Command.UHTML: self._handle_uhtml,
            Command.UHTML_CHANGE: self._handle_uhtml_change,
            Command.ERROR: self._handle_error,
            Command.NOTICE: self._handle_notice,
            Command.UNKNOWN: self._handle_unknown,
        }

        self._create_permanent_rooms()

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self) -> None:
        """Open the connection."""
        await self.transport.start()

    async def stop(self) -> None:
        """Close the connection and release the credential server session."""
        if self._login_task is not None and not self._login_task.done():
            self._login_task.cancel()
            try:
                await self._login_task
            except asyncio.CancelledError:
                pass
        self._login_task = None
        await self.transport.stop()
        await self.login_server.close()

    def _on_open(self) -> None:
        logger.info("Connection open")
        self.challenge = ""
        self.auth.reset()
        restored = [
            room_id
            for room_id in self.rooms.order
            if room_id in self._pending_restore and self._pending_restore[room_id].open
        ]
        to_join: list[str] = []
        for room_id in [*self.config.autojoin, *restored]:
            if room_id not in to_join:
                to_join.append(room_id)
        self.autojoin(to_join)
        if self.config.auto_login:
            self._login_task = asyncio.create_task(self.auth.try_login())

    def _on_message(self, frame: str) -> None:
        self.handle_frame(frame)

    def _on_error(self, error: Exception) -> None:
        logger.error(f"Transport error: {error}")
        self._transport_failed = True

    def _on_close(self, reason: str) -> None:
        failed, self._transport_failed = self._transport_failed, False
        if failed:
            logger.error(f"Connection failed: {reason}")
        else:
            logger.info(f"Connection closed: {reason}")
        self.bus.publish(ConnectionClosed(reason=reason, failed=failed))

    # =========================================================================
    # Decoding
    # =========================================================================

    def handle_frame(self, frame: str) -> None:
        """Decode one frame and apply it.

        Never raises: a line that fails is logged and the next one is decoded.
        """
        logger.debug(f"<< {frame}")
        challenge = parse_challenge(frame)
        if challenge is not None:
            self.challenge = challenge
            return

        room_id, lines = split_frame(frame)
        if lines and is_init_line(lines[0]):
            self._decode_init_block(room_id, lines)
            return
        for line in lines:
            self._dispatch_line(line, room_id)

    def _decode_init_block(self, room_id: str, lines: list[str]) -> None:
        room_type = parse_room_type(lines[0])
        title = ""
        users = []
        materialized = False
        for line in lines[1:]:
            if not line:
                continue
            if materialized:
                self._dispatch_line(line, room_id)
            elif line.startswith(TITLE_PREFIX):
                title = parse_title(line)
            elif line.startswith(USERS_PREFIX):
                users = parse_users(line)
            elif is_message_start(line):
                self._materialize_room(room_id, title, room_type, users)
                materialized = True
            else:
                self._dispatch_line(line, room_id)
        if not materialized:
            logger.warning(f"Init block for {room_id} has no message marker, creating the room anyway")
            self._materialize_room(room_id, title, room_type, users)

    def _materialize_room(self, room_id: str, title: str, room_type: RoomType, users: list) -> None:
        self._pending_restore.pop(room_id, None)
        self.rooms.add_room(
            Room(
                id=room_id,
                name=title or room_id,
                type=room_type,
                connected=True,
                open=True,
            )
        )
        self.rooms.add_users(room_id, users)
        self._persist_rooms()
        if self._autoselect_room and to_id(self._autoselect_room) == room_id:
            self._autoselect_room = None
            self.bus.publish(RoomAutoselect(room_id=room_id))

    def _dispatch_line(self, line: str, room_id: str) -> None:
        if not line:
            return
        parsed = parse_line(line)
        handler = self._handlers[parsed.command]
        try:
            handler(parsed, room_id)
        except Exception as e:
            logger.error(f"Error handling line {line[:100]!r} in {room_id}: {e}", exc_info=True)

    # -- chat -----------------------------------------------------------------

    def _handle_chat(self, line: ServerLine, room_id: str) -> None:
        if room_id not in self.rooms:
            logger.warning(f"Trying to add message to non-existent room ({room_id}): {line.raw[:100]}")
            return
        if line.command is Command.CHAT_TIMESTAMPED:
            timestamp = parse_timestamp(line.arg(0))
            user, text = line.arg(1), line.rest(2)
        else:
            timestamp = now_seconds()
            user, text = line.arg(0), line.rest(1)

        content = classify_content(text)
        if content.is_update:
            self._change_uhtml(room_id, content.block_name, content.content)
            return
        self._add_message_to_room(
            room_id,
            Message(
                timestamp=timestamp,
                user=user,
                content=content.content,
                type=content.type,
                name=content.block_name,
            ),
        )

    def _handle_pm(self, line: ServerLine, room_id: str) -> None:
        sender, receiver = line.arg(0), line.arg(1)
        own_id = to_id(self.settings.username)
        outgoing = bool(own_id) and to_id(sender) == own_id
        partner = strip_rank(receiver if outgoing else sender)

        content = classify_content(line.rest(2))
        if content.is_update:
            self._change_uhtml(pm_room_id(partner), content.block_name, content.content)
            return
        pm_room = self._create_pm_room(partner)
        self._add_message_to_room(
            pm_room,
            Message(
                user=sender,
                content=content.content,
                type=content.type,
                name=content.block_name,
            ),
        )

    # -- roster ---------------------------------------------------------------

    def _handle_join(self, line: ServerLine, room_id: str) -> None:
        user = parse_user_token(line.arg(0))
        if user is None:
            logger.warning(f"Malformed join line in {room_id}: {line.raw[:100]}")
            return
        self.rooms.add_users(room_id, [user])

    def _handle_leave(self, line: ServerLine, room_id: str) -> None:
        self.rooms.remove_user(room_id, line.arg(0))

    def _handle_rename(self, line: ServerLine, room_id: str) -> None:
        user = parse_user_token(line.arg(0))
        if user is None:
            logger.warning(f"Malformed rename line in {room_id}: {line.raw[:100]}")
            return
        self.rooms.rename_user(room_id, user.name, line.arg(1), user.status)

    # -- queries and session --------------------------------------------------

    def _handle_query_response(self, line: ServerLine, room_id: str) -> None:
        kind, payload = line.arg(0), line.rest(1)
        if kind not in ("userdetails", "rooms"):
            logger.error(f"Unknown queryresponse {kind}: {payload[:100]}")
            return
        try:
            data = json.loads(payload)
        except json.JSONDecodeError as e:
            logger.error(f"Error parsing {kind} queryresponse: {e}. Payload: {payload[:100]}")
            return

        if kind == "userdetails":
            if (
                isinstance(data, dict)
                and data.get("userid") == to_id(self.settings.username)
                and data.get("status")
            ):
                self.settings.set_status(str(data["status"]))
            callback, self._user_query_callback = self._user_query_callback, None
            if callback is None:
                if self.logged_in:
                    logger.warning("Received userdetails but nobody asked for it")
                return
        else:
            self._rooms_cache = data
            callback, self._rooms_query_callback = self._rooms_query_callback, None
            if callback is None:
                return
        self._deliver(callback, data, kind)

    def _deliver(self, callback: QueryCallback, data: Any, kind: str) -> None:
        try:
            callback(data)
        except Exception as e:
            callback_name = getattr(callback, "__name__", repr(callback))
            logger.error(
                "Error in %s query callback '%s': %s",
                kind,
                callback_name,
                e,
                exc_info=True,
            )

    def _handle_no_init(self, line: ServerLine, room_id: str) -> None:
        reason = line.arg(0)
        if reason == "namerequired":
            if room_id not in self._join_after_login:
                self._join_after_login.append(room_id)
        elif reason in ("nonexistent", "joinfailed"):
            self.bus.publish(ErrorEvent(message=line.rest(1), room_id=room_id))
        else:
            logger.error(f"Unknown noinit {reason}: {line.raw[:100]}")

    def _handle_update_user(self, line: ServerLine, room_id: str) -> None:
        name = strip_rank(line.arg(0)).partition("@")[0]
        if not name or is_guest_name(name):
            logger.debug(f"Still a guest: {line.arg(0)}")
            return
        pending, self._join_after_login = self._join_after_login, []
        self.autojoin(pending)
        self.settings.update_identity(name, line.arg(2))
        self._set_username(name)
        self.query_user(name, self._on_login_confirmed)

    def _on_login_confirmed(self, details: Any) -> None:
        self.logged_in = True
        self.auth.mark_authenticated()
        logger.info(f"Logged in as {self.settings.username}")
        self.bus.publish(LoginSucceeded(username=self.settings.username))

    def _handle_deinit(self, line: ServerLine, room_id: str) -> None:
        if self.rooms.remove_room(room_id) is None:
            return
        if self.selected_room == room_id:
            self.selected_room = None
        self._persist_rooms()

    # -- raw content ----------------------------------------------------------

    def _handle_raw(self, line: ServerLine, room_id: str) -> None:
        self._add_message_to_room(room_id, Message(type=MessageType.RAW, content=line.rest(0)))

    def _handle_html(self, line: ServerLine, room_id: str) -> None:
        self._add_message_to_room(room_id, Message(type=MessageType.RAW, content=line.rest(0)))

    def _handle_uhtml(self, line: ServerLine, room_id: str) -> None:
        self._add_message_to_room(
            room_id,
            Message(type=MessageType.RAW, name=line.arg(0) or None, content=line.rest(1)),
        )

    def _handle_uhtml_change(self, line: ServerLine, room_id: str) -> None:
        self._change_uhtml(room_id, line.arg(0) or None, line.rest(1))

    def _handle_error(self, line: ServerLine, room_id: str) -> None:
        self._add_message_to_room(room_id, Message(type=MessageType.ERROR, content=line.rest(0)))

    def _handle_notice(self, line: ServerLine, room_id: str) -> None:
        self._add_message_to_room(
            room_id,
            Message(timestamp=now_seconds(), type=MessageType.SIMPLE, content=line.arg(0)),
        )

    def _handle_unknown(self, line: ServerLine, room_id: str) -> None:
        logger.warning(f"Unknown cmd: {line.token} {line.raw[:100]}")

    # -- delivery -------------------------------------------------------------

    def _compute_highlight(self, room_id: str, message: Message, force: bool = False) -> bool:
        if message.type not in HIGHLIGHTED_TYPES:
            message.set_highlight(False, self.highlighter.epoch)
            return False
        return self.highlighter.highlight(room_id, message, force=force)

    def _add_message_to_room(self, room_id: str, message: Message, retry: bool = True) -> None:
        room = self.rooms.get(room_id)
        if room is None:
            if retry:
                self._retry_delivery(room_id, message)
            else:
                logger.warning(f"addMessageToRoom: room ({room_id}) is unknown, dropping message")
            return

        self._compute_highlight(room_id, message)
        should_notify = self.rooms.append_message(
            room_id,
            message,
            selected=self.selected_room == room_id,
            self_sent=self.highlighter.is_self(message.user),
        )
        if should_notify:
            self.bus.publish(
                Notification(
                    author=message.user,
                    text=message.content,
                    room_id=room_id,
                    room_type=room.type,
                )
            )

    def _retry_delivery(self, room_id: str, message: Message) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning(f"addMessageToRoom: room ({room_id}) is unknown, dropping message")
            return
        delay = self.config.message_retry_delay
        logger.warning(f"addMessageToRoom: room ({room_id}) is unknown, retrying in {delay}s")
        loop.call_later(delay, self._add_message_to_room, room_id, message, False)

    def _change_uhtml(self, room_id: str, name: str | None, content: str) -> None:
        if not name:
            logger.warning(f"uhtmlchange without a block name in {room_id}")
            return
        self.rooms.update_uhtml(room_id, name, content)

    def _set_username(self, username: str) -> None:
        """Adopt a new identity and recompute every highlight flag."""
        self.highlighter.set_username(username)
        for room in self.rooms.rooms():
            for message in room.messages:
                self._compute_highlight(room.id, message, force=True)

    # =========================================================================
    # Sending
    # =========================================================================

    def send(self, text: str, room_id: str | None = None) -> None:
        """Send text typed by the user, globally or to a room.

        Local commands (/highlight) are handled here and never sent.

        Raises:
            ValueError: If room_id is given but empty
        """
        if room_id is not None and not room_id:
            raise ValueError("room_id must not be empty")
        if self._handle_local_command(text):
            return
        self._send(text, room_id)

    def _send(self, text: str, room_id: str | None = None) -> None:
        room = self.rooms.get(room_id) if room_id else None
        if room_id and room is None:
            logger.warning(f"Sending message to non-existent room {room_id}")
        line = format_outgoing(
            text,
            room_id,
            room.type if room is not None else None,
            room.name if room is not None else "",
        )
        self.transport.send(line)

    def _handle_local_command(self, text: str) -> bool:
        """Run a client-side command.

        Returns:
            True if the text was consumed and must not be sent
        """
        if not text.startswith("/"):
            return False
        command, _, rest = text[1:].partition(" ")
        args = rest.split()
        if command in ("highlight", "hl"):
            self._highlight_command(args)
            return True
        if command in ("j", "join"):
            target = to_id("".join(args))
            if target:
                self._autoselect_room = target
        return False

    def _highlight_command(self, args: list[str]) -> None:
        subcommand, words = (args[0], args[1:]) if args else ("", [])
        if subcommand.startswith("room"):
            if self.selected_room is None:
                logger.warning(f"/highlight {subcommand} needs a selected room")
                return
            scope = self.selected_room
        else:
            scope = GLOBAL_SCOPE

        if subcommand in ("add", "roomadd"):
            for word in words:
                self.settings.add_highlight_word(scope, word)
            self._local_reply(f'Added "{" ".join(words)}" to highlight list')
        elif subcommand in ("delete", "roomdelete"):
            for word in words:
                self.settings.remove_highlight_word(scope, word)
            self._local_reply(f'Deleted "{" ".join(words)}" from highlight list')
        elif subcommand in ("list", "roomlist"):
            current = self.settings.get_highlight_words(scope)
            if current:
                self._local_reply(f"Current highlight list: {', '.join(current)}")
            else:
                self._local_reply("Your highlight list is empty")
        elif subcommand in ("clear", "roomclear"):
            self.settings.clear_highlight_words(scope)
            self._local_reply("Cleared highlight list")
        else:
            logger.warning(f"Unknown subcommand for /highlight: {subcommand}")

    def _local_reply(self, text: str) -> None:
        if self.selected_room is None:
            logger.info(text)
            return
        self._add_message_to_room(self.selected_room, Message(type=MessageType.LOG, content=text))

    # =========================================================================
    # Queries
    # =========================================================================

    def query_user(self, user: str, callback: QueryCallback) -> None:
        """Ask for a user's details.

        Only the most recent callback is kept; it receives the next
        userdetails response.
        """
        self._user_query_callback = callback
        self._send(f"/cmd userdetails {user}")

    def query_rooms(self, callback: QueryCallback) -> None:
        """Ask for the public room list; served from cache once known."""
        if self._rooms_cache is not None:
            self._deliver(callback, self._rooms_cache, "rooms")
            return
        self._rooms_query_callback = callback
        self._send("/cmd rooms")

    # =========================================================================
    # Rooms
    # =========================================================================

    def _create_permanent_rooms(self) -> None:
        for permanent in PERMANENT_ROOMS:
            saved = self._pending_restore.pop(permanent.id, None)
            self.rooms.add_room(
                Room(
                    id=permanent.id,
                    name=permanent.name,
                    type=RoomType.PERMANENT,
                    connected=False,
                    open=saved.open if saved is not None else permanent.default_open,
                )
            )

    def _create_pm_room(self, user: str) -> str:
        room_id = pm_room_id(user)
        if room_id not in self.rooms:
            self.rooms.add_room(
                Room(id=room_id, name=user, type=RoomType.PM, connected=False, open=True)
            )
        return room_id

    def _persist_rooms(self) -> None:
        entries: list[Room | SerializedRoom] = []
        for room_id in self.rooms.order:
            room = self.rooms.get(room_id)
            if room is not None:
                entries.append(room)
            elif room_id in self._pending_restore:
                entries.append(self._pending_restore[room_id])
        self.settings.save_rooms(entries)

    def room(self, room_id: str) -> Room | None:
        return self.rooms.get(room_id)

    def get_rooms(self) -> list[Room]:
        """Open rooms in display order."""
        return self.rooms.open_rooms()

    def join(self, room: str) -> None:
        """Join a room and select it once the server initializes it.

        Raises:
            ValueError: If the room name is empty
        """
        room_id = to_id(room)
        if not room_id:
            raise ValueError("Trying to join an empty room name")
        self._send(f"/join {room}")
        self._autoselect_room = room_id

    def leave_room(self, room_id: str) -> None:
        """Leave a room server-side, or drop it if it only exists locally."""
        room = self.rooms.get(room_id)
        if room is None:
            logger.warning(f"Trying to leave non-existent room {room_id}")
            self.bus.publish(ErrorEvent(message=f"Trying to leave non-existent room {room_id}"))
            return
        if room.connected:
            self._send(f"/leave {room_id}")
            return
        self.rooms.remove_room(room_id)
        if self.selected_room == room_id:
            self.selected_room = None
        self._persist_rooms()

    def close_room(self, room_id: str) -> None:
        """Hide a room locally; server membership is unchanged."""
        if self.rooms.set_open(room_id, False):
            self._persist_rooms()

    def open_room(self, room_id: str) -> None:
        if self.rooms.set_open(room_id, True):
            self._persist_rooms()

    def open_settings(self) -> None:
        self.open_room("settings")

    def autojoin(self, rooms: Iterable[str], use_default_rooms: bool = False) -> None:
        """Join several rooms with one command, skipping client-only rooms."""
        filtered = [room for room in rooms if room and room not in PERMANENT_ROOM_IDS]
        if use_default_rooms and not filtered:
            for room in DEFAULT_ROOMS:
                self._send(f"/join {room}")
            return
        if not filtered:
            return
        self._send(f"/autojoin {','.join(filtered)}")

    def create_pm(self, user: str) -> str:
        """Open a PM room with `user` and ask the UI to select it.

        Raises:
            ValueError: If the name has no usable characters
        """
        if not to_id(user):
            raise ValueError("Trying to open a PM with an empty name")
        room_id = self._create_pm_room(strip_rank(user))
        self._autoselect_room = None
        self.bus.publish(RoomAutoselect(room_id=room_id))
        return room_id

    def select_room(self, room_id: str) -> None:
        """Mark a room as the one shown to the user, clearing its counters."""
        room = self.rooms.get(room_id)
        if room is None:
            logger.warning(f"select_room: room ({room_id}) is unknown")
            return
        self.selected_room = room_id
        room.select()
        self._persist_rooms()

    def reorder_rooms(self, room_ids: Iterable[str]) -> None:
        """Adopt a display order chosen by the user."""
        self.rooms.set_order(room_ids)
        self._persist_rooms()

    def get_notifications(self) -> list[dict[str, Any]]:
        return [
            {"room": room.id, "unread": room.unread, "mentions": room.mentions}
            for room in self.rooms.rooms()
        ]

    # =========================================================================
    # Login
    # =========================================================================

    async def login(
        self,
        poll_redirect: Callable[[], Awaitable[LoginRedirect | None]],
        redirect_uri: str,
        open_url: Callable[[str], object] = webbrowser.open,
    ) -> bool:
        """Run the interactive login flow.

        Args:
            poll_redirect: Returns the assertion/token pair once the
                authorization page redirected, None until then
            redirect_uri: Where the authorization page redirects to
            open_url: Opens the authorization page

        Returns:
            True if an assertion was sent
        """
        return await self.auth.interactive_login(
            poll_redirect,
            redirect_uri,
            open_url=open_url,
            poll_interval=self.config.login_poll_interval,
            timeout=self.config.login_timeout,
        )
