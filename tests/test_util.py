import re

import pytest

from relayd import messages
from relayd.codec import encode_line
from relayd.util import fmt_addr, normalize_name, timestamp


@pytest.mark.parametrize("raw,expected", [("alice", "alice"), ("  bob\t", "bob"), ("Émile", "Émile")])
def test_normalize_name_accepts(raw, expected) -> None:
    assert normalize_name(raw) == expected


@pytest.mark.parametrize("raw", ["", "   ", "two words", "tab\tinside", "bell\x07", None, 42])
def test_normalize_name_rejects(raw) -> None:
    assert normalize_name(raw) is None


def test_normalize_name_length_limit() -> None:
    assert normalize_name("x" * 32) == "x" * 32
    assert normalize_name("x" * 33) is None
    assert normalize_name("x" * 33, max_chars=0) == "x" * 33


def test_timestamp_format() -> None:
    assert re.fullmatch(r"\d\d:\d\d:\d\d", timestamp())


def test_fmt_addr() -> None:
    assert fmt_addr(("127.0.0.1", 5000)) == "127.0.0.1:5000"
    assert fmt_addr(None) == "-"


def test_message_shapes() -> None:
    assert messages.chat_line("alice", "hi", ts="12:00:00") == "[12:00:00] alice: hi"
    assert messages.broadcast_line("bob", "bye", ts="12:00:01") == "[12:00:01] bob (broadcast): bye"
    assert messages.private_line("alice", "psst", ts="12:00:02") == "[12:00:02] alice (private): psst"
    assert messages.online_users(["alice", "carol"]) == "Online users (2): alice, carol"
    assert messages.online_users([]) == "Online users (0): "
    assert messages.welcome_lines("dee")[0] == "Welcome dee! You are now connected to the chat server."


def test_welcome_block_encodes_as_one_item_of_several_lines() -> None:
    block = messages.welcome_block("dee")
    assert block.split("\n") == messages.welcome_lines("dee")
    assert encode_line(block).count(b"\n") == len(messages.welcome_lines("dee"))
