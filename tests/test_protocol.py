"""Tests for the wire codec.

Tests:
- Challenge frames and room-scoped framing
- Command classification, aliases and unknown commands
- Init-block helpers and roster parsing
- Content sub-classification of chat payloads
- Outbound line formatting
"""

from __future__ import annotations

import pytest

from showdown_client.models import MessageType, RoomType
from showdown_client.protocol import (
    Command,
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


# ==============================================================================
# Framing
# ==============================================================================


class TestChallenge:
    def test_challenge_keeps_every_field(self) -> None:
        assert parse_challenge("|challstr|4|abcdef") == "4|abcdef"

    def test_other_frames_are_not_challenges(self) -> None:
        assert parse_challenge("|c|Bob|hi") is None
        assert parse_challenge(">lobby\n|challstr|4|x") is None


class TestSplitFrame:
    def test_room_scoped_batch(self) -> None:
        room_id, lines = split_frame(">techcode\n|J|+Bob\n|L|Alice")
        assert room_id == "techcode"
        assert lines == ["|J|+Bob", "|L|Alice"]

    def test_unscoped_batch_targets_lobby(self) -> None:
        room_id, lines = split_frame("|c|Bob|hi\n|c|Alice|hey")
        assert room_id == "lobby"
        assert lines == ["|c|Bob|hi", "|c|Alice|hey"]

    def test_inline_room_prefix(self) -> None:
        room_id, lines = split_frame("lobby|c:|1690000001|Bob|hello world")
        assert room_id == "lobby"
        assert lines == ["|c:|1690000001|Bob|hello world"]

    def test_notice_with_pipe_is_not_scoped(self) -> None:
        room_id, lines = split_frame("rules|are|here")
        assert room_id == "lobby"
        assert lines == ["rules|are|here"]

    def test_empty_room_marker_falls_back_to_lobby(self) -> None:
        room_id, lines = split_frame(">\n|raw|x")
        assert room_id == "lobby"
        assert lines == ["|raw|x"]


# ==============================================================================
# Lines
# ==============================================================================


class TestParseLine:
    @pytest.mark.parametrize(
        ("token", "command"),
        [
            ("c", Command.CHAT),
            ("chat", Command.CHAT),
            ("c:", Command.CHAT_TIMESTAMPED),
            ("pm", Command.PM),
            ("J", Command.JOIN),
            ("j", Command.JOIN),
            ("join", Command.JOIN),
            ("L", Command.LEAVE),
            ("leave", Command.LEAVE),
            ("N", Command.RENAME),
            ("name", Command.RENAME),
            ("queryresponse", Command.QUERY_RESPONSE),
            ("noinit", Command.NO_INIT),
            ("updateuser", Command.UPDATE_USER),
            ("deinit", Command.DEINIT),
            ("raw", Command.RAW),
            ("html", Command.HTML),
            ("uhtml", Command.UHTML),
            ("uhtmlchange", Command.UHTML_CHANGE),
            ("error", Command.ERROR),
        ],
    )
    def test_known_tokens(self, token: str, command: Command) -> None:
        assert parse_line(f"|{token}|x").command is command

    def test_unknown_token(self) -> None:
        line = parse_line("|formats|,1|gen9")
        assert line.command is Command.UNKNOWN
        assert line.token == "formats"

    def test_bare_line_is_notice(self) -> None:
        line = parse_line("Welcome to the server!")
        assert line.command is Command.NOTICE
        assert line.args == ["Welcome to the server!"]

    def test_rest_rejoins_pipes(self) -> None:
        line = parse_line("|c|Bob|a|b|c")
        assert line.arg(0) == "Bob"
        assert line.rest(1) == "a|b|c"

    def test_missing_arg_defaults(self) -> None:
        line = parse_line("|deinit")
        assert line.arg(0) == ""
        assert line.arg(3, "none") == "none"


# ==============================================================================
# Init blocks
# ==============================================================================


class TestInitBlock:
    def test_markers(self) -> None:
        assert is_init_line("|init|chat")
        assert not is_init_line("|title|Lobby")
        assert is_message_start("|:|1690000000")
        assert is_message_start("|t:|1690000000")
        assert not is_message_start("|c:|1|Bob|hi")

    def test_room_type(self) -> None:
        assert parse_room_type("|init|chat") is RoomType.CHAT
        assert parse_room_type("|init|battle") is RoomType.BATTLE

    def test_unknown_room_type_falls_back_to_chat(self) -> None:
        assert parse_room_type("|init|tournament") is RoomType.CHAT

    def test_title(self) -> None:
        assert parse_title("|title|Tech & Code") == "Tech & Code"

    def test_users_drop_leading_count(self) -> None:
        users = parse_users("|users|,+Bob,@Alice")
        assert [(u.name, u.id) for u in users] == [("+Bob", "bob"), ("@Alice", "alice")]
        assert [u.rank for u in users] == ["+", "@"]

    def test_users_with_count_and_status(self) -> None:
        users = parse_users("|users|2, Bob@!away,#Zarel")
        assert users[0].id == "bob"
        assert users[0].status == "!away"
        assert users[1].name == "#Zarel"

    def test_malformed_tokens_are_skipped(self) -> None:
        users = parse_users("|users|3,+Bob,@,  ")
        assert [u.id for u in users] == ["bob"]

    def test_unranked_token_keeps_first_letter(self) -> None:
        user = parse_user_token("Carol")
        assert user is not None
        assert (user.name, user.id, user.rank) == ("Carol", "carol", "")

    def test_user_token(self) -> None:
        user = parse_user_token("%Mod Person@busy")
        assert user is not None
        assert user.name == "%Mod Person"
        assert user.id == "modperson"
        assert user.status == "busy"
        assert parse_user_token("+") is None


# ==============================================================================
# Content classification
# ==============================================================================


class TestClassifyContent:
    @pytest.mark.parametrize(
        ("content", "message_type", "text"),
        [
            ("hello", MessageType.CHAT, "hello"),
            ("/raw <b>hi</b>", MessageType.RAW, "<b>hi</b>"),
            ("/error Nope", MessageType.ERROR, "Nope"),
            ("/text plain", MessageType.LOG, "plain"),
            ("/log something happened", MessageType.LOG, "something happened"),
            ("/me waves", MessageType.ROLEPLAY, "waves"),
            ("/announce Read the rules", MessageType.ANNOUNCE, "Read the rules"),
            ("/html <div>x</div>", MessageType.BOXED_HTML, "<div>x</div>"),
            ("/challenge gen9ou", MessageType.CHALLENGE, "gen9ou"),
        ],
    )
    def test_markers(self, content: str, message_type: MessageType, text: str) -> None:
        result = classify_content(content)
        assert result.type is message_type
        assert result.content == text
        assert result.block_name is None

    def test_uhtml_captures_name(self) -> None:
        result = classify_content("/uhtml poll,<p>a, b</p>")
        assert result.type is MessageType.RAW
        assert result.block_name == "poll"
        assert result.content == "<p>a, b</p>"
        assert not result.is_update

    def test_uhtmlchange_is_an_update(self) -> None:
        result = classify_content("/uhtmlchange poll,<p>closed</p>")
        assert result.is_update
        assert result.block_name == "poll"
        assert result.content == "<p>closed</p>"

    def test_marker_must_be_a_whole_word(self) -> None:
        result = classify_content("/meow")
        assert result.type is MessageType.CHAT
        assert result.content == "/meow"

    def test_marker_without_payload(self) -> None:
        result = classify_content("/me")
        assert result.type is MessageType.ROLEPLAY
        assert result.content == ""


class TestTimestamp:
    def test_server_timestamp(self) -> None:
        assert parse_timestamp("1690000001") == 1690000001

    def test_bad_timestamp_uses_arrival_time(self) -> None:
        assert parse_timestamp("soon") > 1690000000


# ==============================================================================
# Outbound
# ==============================================================================


class TestOutbound:
    def test_global(self) -> None:
        assert format_outgoing("/cmd rooms") == "|/cmd rooms"

    def test_room(self) -> None:
        assert format_outgoing("hi all", "lobby", RoomType.CHAT, "Lobby") == "lobby|hi all"

    def test_pm(self) -> None:
        assert format_outgoing("hey", "pm-bob", RoomType.PM, "Bob") == "|/pm Bob, hey"

    def test_helpers(self) -> None:
        assert pm_room_id("Big Bob") == "pm-bigbob"
        assert is_guest_name(" Guest 1234")
        assert not is_guest_name("Bob")
        assert strip_rank("+Bob") == "Bob"
        assert strip_rank(" Bob") == "Bob"
        assert strip_rank("Bob") == "Bob"
