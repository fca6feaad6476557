"""Server-to-client text rendering."""

from __future__ import annotations

from typing import Iterable

from .constants import (
    FMT_BROADCAST,
    FMT_CHAT,
    FMT_PRIVATE,
    NOTICE_JOINED,
    NOTICE_LEFT,
    REPLY_NOT_FOUND,
    REPLY_ONLINE_USERS,
    REPLY_PRIVATE_SENT,
    WELCOME_LINES,
)
from .util import timestamp


def joined(name: str) -> str:
    return NOTICE_JOINED.format(name=name)


def left(name: str) -> str:
    return NOTICE_LEFT.format(name=name)


def chat_line(name: str, text: str, *, ts: str | None = None) -> str:
    return FMT_CHAT.format(ts=ts or timestamp(), name=name, text=text)


def broadcast_line(name: str, text: str, *, ts: str | None = None) -> str:
    return FMT_BROADCAST.format(ts=ts or timestamp(), name=name, text=text)


def private_line(name: str, text: str, *, ts: str | None = None) -> str:
    return FMT_PRIVATE.format(ts=ts or timestamp(), name=name, text=text)


def private_sent(to_name: str) -> str:
    return REPLY_PRIVATE_SENT.format(name=to_name)


def not_found(name: str) -> str:
    return REPLY_NOT_FOUND.format(name=name)


def online_users(names: Iterable[str]) -> str:
    names = list(names)
    return REPLY_ONLINE_USERS.format(count=len(names), names=", ".join(names))


def welcome_lines(name: str) -> list[str]:
    return [line.format(name=name) for line in WELCOME_LINES]


def welcome_block(name: str) -> str:
    """The whole welcome text as one outbound item, so it is queued or dropped as a unit."""
    return "\n".join(welcome_lines(name))
