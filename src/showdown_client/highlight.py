"""Highlight engine.

Compiles per-room and global watch-word lists into one case-insensitive
alternation pattern per scope and tests message text against them.

Word shapes:
- a bare word matches on word boundaries (``\\bword\\b``)
- an entry containing regex metacharacters is used verbatim; if it does not
  compile it falls back to a literal match
- the current username is always part of every scope
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterable

from showdown_client.models import Message, to_id

logger = logging.getLogger(__name__)

GLOBAL_SCOPE = "global"

_REGEX_METACHARS = frozenset("\\^$.|?*+()[]{}")
_NON_ASCII = re.compile(r"[\u0080-\uffff]")


def clean_username(username: str) -> str:
    """Strip decorative non-ASCII characters from a display name."""
    return _NON_ASCII.sub("", username).strip()


def is_regex_shaped(word: str) -> bool:
    return any(ch in _REGEX_METACHARS for ch in word)


def word_to_pattern(word: str) -> str | None:
    """Translate one watch-word into a regex fragment.

    Returns:
        The pattern fragment, or None for blank entries
    """
    word = word.strip()
    if not word:
        return None
    if is_regex_shaped(word):
        try:
            re.compile(word, re.IGNORECASE)
            return word
        except re.error as e:
            logger.warning("Highlight word %r is not a valid pattern (%s), matching literally", word, e)
            return re.escape(word)
    return rf"\b{re.escape(word)}\b"


def compile_words(words: Iterable[str]) -> re.Pattern[str] | None:
    """Compile a word list into one alternation pattern.

    Returns:
        The compiled matcher, or None when the list has no usable entry
    """
    fragments: list[str] = []
    for word in words:
        fragment = word_to_pattern(word)
        if fragment is not None and fragment not in fragments:
            fragments.append(fragment)
    if not fragments:
        return None
    return re.compile("|".join(f"(?:{fragment})" for fragment in fragments), re.IGNORECASE)


class HighlightEngine:
    """Per-scope matchers built lazily from word lists plus the username.

    The engine reads word lists through `words_for(scope)` so it never owns
    them; `invalidate(scope)` must be called when a list changes.
    `epoch` increases on every identity change and is used by messages to
    tell whether their memoized highlight flag is still valid.
    """

    def __init__(self, words_for: Callable[[str], list[str]], username: str = "") -> None:
        self._words_for = words_for
        self._username = username
        self._matchers: dict[str, re.Pattern[str] | None] = {}
        self._epoch = 0

    @property
    def epoch(self) -> int:
        return self._epoch

    @property
    def username(self) -> str:
        return self._username

    def set_username(self, username: str) -> None:
        """Change the local identity, dropping every compiled matcher."""
        self._username = username
        self._matchers.clear()
        self._epoch += 1

    def invalidate(self, scope: str | None = None) -> None:
        """Drop the compiled matcher of one scope, or of all scopes."""
        if scope is None:
            self._matchers.clear()
        else:
            self._matchers.pop(scope, None)

    def matcher(self, scope: str) -> re.Pattern[str] | None:
        if scope not in self._matchers:
            words = list(self._words_for(scope))
            name = clean_username(self._username)
            if name:
                words.append(re.escape(name) if is_regex_shaped(name) else name)
            self._matchers[scope] = compile_words(words)
        return self._matchers[scope]

    def matches(self, room_id: str, text: str) -> bool:
        """Test text against the room scope, then the global scope."""
        room_matcher = self.matcher(room_id)
        if room_matcher is not None and room_matcher.search(text):
            return True
        global_matcher = self.matcher(GLOBAL_SCOPE)
        return bool(global_matcher is not None and global_matcher.search(text))

    def is_self(self, author: str) -> bool:
        own_id = to_id(self._username)
        return bool(own_id) and to_id(author) == own_id

    def highlight(self, room_id: str, message: Message, force: bool = False) -> bool:
        """Compute (or reuse) the highlight flag of a message.

        Self-authored messages are never highlighted.
        """
        if not force:
            cached = message.cached_highlight(self._epoch)
            if cached is not None:
                return cached
        value = not self.is_self(message.user) and self.matches(room_id, message.content)
        message.set_highlight(value, self._epoch)
        return value
