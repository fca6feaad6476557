import re

import pytest
from conftest import drain

TS = r"\[\d\d:\d\d:\d\d\]"


@pytest.fixture
def chat(member):
    alice, bob, carol = member("alice"), member("bob"), member("carol")
    for s in (alice, bob, carol):
        drain(s)
    return alice, bob, carol


def test_empty_line_is_ignored(router, chat) -> None:
    alice, bob, _ = chat
    assert router.route_line(alice, "   ")
    assert drain(alice) == []
    assert drain(bob) == []


def test_plain_text_goes_to_everyone_but_sender(router, chat) -> None:
    alice, bob, carol = chat
    assert router.route_line(alice, "  hi  ")
    assert drain(alice) == []
    for sess in (bob, carol):
        (line,) = drain(sess)
        assert re.fullmatch(rf"{TS} alice: hi", line)


def test_quit_says_goodbye_and_stops(router, chat) -> None:
    alice, bob, _ = chat
    assert router.route_line(alice, "/quit") is False
    assert drain(alice) == ["Goodbye!"]
    assert drain(bob) == []


def test_commands_are_case_insensitive(router, chat) -> None:
    alice, _, _ = chat
    assert router.route_line(alice, "/QUIT now") is False
    assert router.route_line(alice, "/List")
    assert drain(alice) == ["Goodbye!", "Online users (3): alice, bob, carol"]


def test_list_replies_to_issuer_only(router, chat) -> None:
    alice, bob, _ = chat
    assert router.route_line(bob, "/list")
    assert drain(bob) == ["Online users (3): alice, bob, carol"]
    assert drain(alice) == []


def test_msg_delivers_privately_with_spaces_in_body(router, chat) -> None:
    alice, bob, carol = chat
    assert router.route_line(alice, "/msg bob hello   there friend")
    (line,) = drain(bob)
    assert re.fullmatch(rf"{TS} alice \(private\): hello   there friend", line)
    assert drain(alice) == ["Private message sent to bob"]
    assert drain(carol) == []


def test_msg_to_unknown_user(router, chat) -> None:
    alice, bob, carol = chat
    assert router.route_line(alice, "/msg ghost hi")
    assert drain(alice) == ["User ghost not found or offline"]
    assert drain(bob) == []
    assert drain(carol) == []


@pytest.mark.parametrize("line", ["/msg", "/msg bob", "/msg   bob   "])
def test_msg_usage_error(router, chat, stats, line) -> None:
    alice, bob, _ = chat
    assert router.route_line(alice, line)
    assert drain(alice) == ["Usage: /msg <username> <message>"]
    assert drain(bob) == []
    assert stats.get("protocol_errors") == 1


def test_broadcast_command(router, chat) -> None:
    alice, bob, carol = chat
    assert router.route_line(bob, "/broadcast bye all")
    assert drain(bob) == ["Message broadcasted to all users."]
    for sess in (alice, carol):
        (line,) = drain(sess)
        assert re.fullmatch(rf"{TS} bob \(broadcast\): bye all", line)


@pytest.mark.parametrize("line", ["/broadcast", "/broadcast    "])
def test_broadcast_usage_error(router, chat, line) -> None:
    alice, bob, _ = chat
    assert router.route_line(bob, line)
    assert drain(bob) == ["Usage: /broadcast <message>"]
    assert drain(alice) == []


@pytest.mark.parametrize("line", ["/help", "/", "/msgx bob hi", "/quitnow"])
def test_unknown_command(router, chat, line) -> None:
    alice, bob, _ = chat
    assert router.route_line(alice, line)
    assert drain(alice) == [
        "Invalid command. Available commands: /list, /msg, /broadcast, /quit"
    ]
    assert drain(bob) == []


def test_router_counts_lines(router, chat, stats) -> None:
    alice, _, _ = chat
    router.route_line(alice, "hello")
    router.route_line(alice, "")
    router.route_line(alice, "/list")
    assert stats.get("lines_in") == 2
    assert stats.get("msgs_broadcast") == 1
