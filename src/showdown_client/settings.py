"""Persistent settings.

Provides:
- BlobStore: the key/value string interface the settings are written to
- MemoryBlobStore / JsonFileBlobStore: in-process and file-backed stores
- SettingsStore: synchronous get/set surface over the persisted settings
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import Protocol

from pydantic import ValidationError

from showdown_client.events import EventBus, ThemeChanged
from showdown_client.models import (
    Room,
    RoomType,
    SavedSettings,
    SerializedRoom,
)

logger = logging.getLogger(__name__)

SETTINGS_KEY = "settings"
TOKEN_KEY = "token"

# Room types that are written to the persisted room list
PERSISTED_ROOM_TYPES = (RoomType.PERMANENT, RoomType.CHAT)


class BlobStore(Protocol):
    """Synchronous key/value store of strings."""

    def get(self, key: str) -> str | None:
        """Return the stored value, or None if absent."""
        ...

    def set(self, key: str, value: str) -> None:
        """Store a value."""
        ...


class MemoryBlobStore:
    """Blob store kept in a dict, for tests and ephemeral sessions."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self.data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        self.data[key] = value


class JsonFileBlobStore:
    """Blob store persisted as one JSON object in a file.

    An unreadable or corrupted file is logged and treated as empty; the next
    write replaces it.
    """

    def __init__(self, path: Path | str) -> None:
        self._path = Path(path).expanduser()
        self._data: dict[str, str] | None = None

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> dict[str, str]:
        if self._data is not None:
            return self._data
        self._data = {}
        if not self._path.exists():
            return self._data
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.error(f"Could not read settings file {self._path}: {e}")
            return self._data
        if isinstance(raw, dict):
            self._data = {str(k): v for k, v in raw.items() if isinstance(v, str)}
        else:
            logger.error(f"Settings file {self._path} does not hold an object, ignoring it")
        return self._data

    def get(self, key: str) -> str | None:
        return self._load().get(key)

    def set(self, key: str, value: str) -> None:
        data = self._load()
        data[key] = value
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_name(self._path.name + ".tmp")
        tmp_path.write_text(json.dumps(data, indent=2), encoding="utf-8")
        os.replace(tmp_path, self._path)


def usable_credential(value: str | None) -> str | None:
    """A stored credential, or None when it is empty or the "undefined" placeholder."""
    if not value or value == "undefined":
        return None
    return value


class SettingsStore:
    """Settings persisted in a blob store.

    Only the serializable projection of the session lives here: username,
    status, preferences, highlight word lists and the ordered room list.
    Every mutation is written through immediately.
    """

    def __init__(self, blob_store: BlobStore, bus: EventBus | None = None) -> None:
        """Load the settings from the blob store.

        Args:
            blob_store: Where settings are read from and written to
            bus: Event bus used for theme-changed notifications
        """
        self._blob_store = blob_store
        self._bus = bus
        self._highlight_callbacks: list[Callable[[str], None]] = []
        self._settings = self._load()

    def _load(self) -> SavedSettings:
        raw = self._blob_store.get(SETTINGS_KEY)
        if not raw:
            return SavedSettings()
        try:
            return SavedSettings.model_validate_json(raw)
        except ValidationError as e:
            truncated = raw[:200] + "..." if len(raw) > 200 else raw
            logger.error(f"Corrupted settings, resetting to defaults: {e}. Stored value: {truncated}")
            settings = SavedSettings()
            self._blob_store.set(SETTINGS_KEY, settings.model_dump_json())
            return settings

    def save(self) -> None:
        self._blob_store.set(SETTINGS_KEY, self._settings.model_dump_json())

    def snapshot(self) -> SavedSettings:
        """Return a copy of the current settings."""
        return self._settings.model_copy(deep=True)

    # Identity

    @property
    def username(self) -> str:
        return self._settings.username

    def set_username(self, username: str) -> None:
        self._settings.username = username
        self.save()

    def update_identity(self, username: str, avatar: str) -> None:
        """Persist the name and avatar reported by the server."""
        self._settings.username = username
        self._settings.user_defined_settings.avatar = avatar
        self.save()

    @property
    def avatar(self) -> str:
        return self._settings.user_defined_settings.avatar

    @property
    def status(self) -> str:
        return self._settings.status

    def set_status(self, status: str) -> None:
        self._settings.status = status
        self.save()

    # Preferences

    @property
    def theme(self) -> str:
        return self._settings.user_defined_settings.theme

    def set_theme(self, theme: str) -> None:
        """Change the theme and publish theme-changed.

        Raises:
            ValueError: If the theme is not one of "light" or "dark"
        """
        if theme not in ("light", "dark"):
            raise ValueError(f"Unknown theme: {theme!r}")
        if theme == self.theme:
            return
        self._settings.user_defined_settings.theme = theme  # type: ignore[assignment]
        self.save()
        if self._bus is not None:
            self._bus.publish(ThemeChanged(theme=theme))

    @property
    def chat_style(self) -> str:
        return self._settings.user_defined_settings.chat_style

    def set_chat_style(self, chat_style: str) -> None:
        if chat_style not in ("compact", "normal"):
            raise ValueError(f"Unknown chat style: {chat_style!r}")
        self._settings.user_defined_settings.chat_style = chat_style  # type: ignore[assignment]
        self.save()

    # Highlight words

    def on_highlight_words_changed(self, callback: Callable[[str], None]) -> None:
        """Register a callback receiving the scope whose word list changed."""
        self._highlight_callbacks.append(callback)

    def _highlight_words_changed(self, scope: str) -> None:
        self.save()
        for callback in self._highlight_callbacks:
            try:
                callback(scope)
            except Exception as e:
                callback_name = getattr(callback, "__name__", repr(callback))
                logger.error(
                    "Error in highlight callback '%s': %s",
                    callback_name,
                    e,
                    exc_info=True,
                )

    def get_highlight_words(self, scope: str) -> list[str]:
        return list(self._settings.user_defined_settings.highlight_words.get(scope, []))

    def highlight_scopes(self) -> list[str]:
        return list(self._settings.user_defined_settings.highlight_words)

    def set_highlight_words(self, scope: str, words: Iterable[str]) -> None:
        """Replace the word list of a scope, dropping duplicates and blanks."""
        unique: list[str] = []
        for word in words:
            word = word.strip()
            if word and word not in unique:
                unique.append(word)
        self._settings.user_defined_settings.highlight_words[scope] = unique
        self._highlight_words_changed(scope)

    def add_highlight_word(self, scope: str, word: str) -> None:
        self.set_highlight_words(scope, [*self.get_highlight_words(scope), word])

    def remove_highlight_word(self, scope: str, word: str) -> bool:
        """Remove a word (case-insensitive) from a scope.

        Returns:
            False if the scope or the word is unknown
        """
        words = self._settings.user_defined_settings.highlight_words.get(scope)
        if words is None:
            logger.warning("remove_highlight_word: scope %s has no highlight list", scope)
            return False
        remaining = [w for w in words if w.lower() != word.strip().lower()]
        if len(remaining) == len(words):
            logger.warning("remove_highlight_word: %r not in highlight list of %s", word, scope)
            return False
        self.set_highlight_words(scope, remaining)
        return True

    def clear_highlight_words(self, scope: str) -> None:
        if scope not in self._settings.user_defined_settings.highlight_words:
            logger.warning("clear_highlight_words: scope %s has no highlight list", scope)
            return
        self.set_highlight_words(scope, [])

    # Rooms

    def saved_rooms(self) -> list[SerializedRoom]:
        return [room.model_copy() for room in self._settings.rooms]

    def save_rooms(self, rooms: Iterable[Room | SerializedRoom]) -> None:
        """Rewrite the persisted room list, keeping the given order.

        Live rooms of a non-persisted type are skipped; already serialized
        entries (rooms restored but not joined yet) are kept as they are.
        """
        serialized: list[SerializedRoom] = []
        for room in rooms:
            if isinstance(room, SerializedRoom):
                serialized.append(room.model_copy())
            elif room.type in PERSISTED_ROOM_TYPES:
                serialized.append(
                    SerializedRoom(id=room.id, open=room.open, last_read_time=room.last_selected)
                )
        self._settings.rooms = serialized
        self.save()

    # Credentials

    def get_token(self) -> str | None:
        return usable_credential(self._blob_store.get(TOKEN_KEY))

    def set_token(self, token: str) -> None:
        self._blob_store.set(TOKEN_KEY, token)

    def clear_token(self) -> None:
        self._blob_store.set(TOKEN_KEY, "")
