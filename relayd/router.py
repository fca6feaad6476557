from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from . import messages
from .commands import CommandHandler

if TYPE_CHECKING:
    from .registry import Registry
    from .session import Session
    from .stats import StatsManager


class MessageRouter:
    """
    Turns inbound lines from registered sessions into registry operations.

    - Empty lines are ignored
    - Lines starting with "/" go to the CommandHandler
    - Anything else is chat, broadcast to everyone but the sender
    """

    def __init__(self, registry: Registry, *, stats: StatsManager | None = None) -> None:
        self.registry = registry
        self.stats = stats
        self.commands = CommandHandler(registry, stats=stats)
        self.log = logging.getLogger("relayd.router")

    def route_line(self, session: Session, line: str) -> bool:
        """Route one line from ``session``. Returns False when it should quit."""
        text = line.strip()
        if not text:
            return True

        if self.stats is not None:
            self.stats.inc("lines_in")
            self.stats.inc("bytes_in", len(text.encode("utf-8")))

        if self.log.isEnabledFor(logging.DEBUG):
            self.log.debug("RX name=%r chars=%s", session.name, len(text))

        if text.startswith("/"):
            return self.commands.handle_command(session, text)

        name = session.name or ""
        self.registry.broadcast(messages.chat_line(name, text), exclude=name)
        if self.stats is not None:
            self.stats.inc("msgs_broadcast")
        return True
