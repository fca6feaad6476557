"""Slash-command handling for relay clients."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from . import messages
from .constants import (
    CMD_BROADCAST,
    CMD_LIST,
    CMD_MSG,
    CMD_QUIT,
    REPLY_BROADCAST_SENT,
    REPLY_GOODBYE,
    REPLY_INVALID_COMMAND,
    REPLY_USAGE_BROADCAST,
    REPLY_USAGE_MSG,
)
from .registry import SendResult

if TYPE_CHECKING:
    from .registry import Registry
    from .session import Session
    from .stats import StatsManager


class CommandHandler:
    """Handles /quit, /list, /msg and /broadcast for registered sessions."""

    def __init__(self, registry: Registry, *, stats: StatsManager | None = None) -> None:
        self.registry = registry
        self.stats = stats
        self.log = logging.getLogger("relayd.router")

    def _inc(self, key: str, delta: int = 1) -> None:
        if self.stats is not None:
            self.stats.inc(key, delta)

    def _usage(self, session: Session, text: str) -> None:
        self._inc("protocol_errors")
        session.send(text)

    def handle_command(self, session: Session, cmdline: str) -> bool:
        """Handle one command line from ``session``.

        Returns False when the session asked to quit, True otherwise. Every
        reply to a malformed or unknown command goes to the issuer only.
        """
        name = session.name or ""
        parts = cmdline.split(None, 2)
        cmd = parts[0].lower()

        if cmd == CMD_QUIT:
            session.send(REPLY_GOODBYE)
            return False

        if cmd == CMD_LIST:
            session.send(messages.online_users(self.registry.list_names()))
            return True

        if cmd == CMD_MSG:
            if len(parts) < 3:
                self._usage(session, REPLY_USAGE_MSG)
                return True
            target, body = parts[1], parts[2]
            result = self.registry.send_private(name, target, body)
            if result is SendResult.RECIPIENT_NOT_FOUND:
                session.send(messages.not_found(target))
            return True

        if cmd == CMD_BROADCAST:
            body = cmdline[len(parts[0]):].strip()
            if not body:
                self._usage(session, REPLY_USAGE_BROADCAST)
                return True
            self.registry.broadcast(messages.broadcast_line(name, body), exclude=name)
            self._inc("msgs_broadcast")
            session.send(REPLY_BROADCAST_SENT)
            return True

        self.log.debug("Unknown command name=%r cmd=%r", name, cmd)
        self._usage(session, REPLY_INVALID_COMMAND)
        return True
