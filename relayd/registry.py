"""Name registry for the relay.

The registry is the single source of truth for who is online:
- Name uniqueness (case-sensitive)
- Join and leave announcements
- Broadcast fan-out and private delivery
- Member listing
- Forced teardown of every member at shutdown

All membership reads and writes happen under one lock. Sends made while the
lock is held only enqueue onto each session's bounded outbound queue.
"""

from __future__ import annotations

import enum
import logging
import threading
from typing import TYPE_CHECKING

from . import messages

if TYPE_CHECKING:
    from .session import Session
    from .stats import StatsManager


class SendResult(enum.Enum):
    DELIVERED = "delivered"
    RECIPIENT_NOT_FOUND = "recipient_not_found"


class Registry:
    """Maps registered names to their sessions."""

    def __init__(self, *, stats: StatsManager | None = None) -> None:
        self.stats = stats
        self.log = logging.getLogger("relayd.registry")
        self._lock = threading.RLock()
        self._members: dict[str, Session] = {}
        self._closed = False

    def __len__(self) -> int:
        with self._lock:
            return len(self._members)

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._members

    @property
    def closed(self) -> bool:
        return self._closed

    def _inc(self, key: str, delta: int = 1) -> None:
        if self.stats is not None:
            self.stats.inc(key, delta)

    def get(self, name: str) -> Session | None:
        with self._lock:
            return self._members.get(name)

    def try_register(self, name: str, session: Session) -> bool:
        """Claim ``name`` for ``session``.

        Returns False when the name is taken (the caller re-prompts) or the
        registry has been shut down.
        """
        with self._lock:
            if self._closed:
                return False
            if name in self._members:
                self._inc("name_collisions")
                return False
            if not session.activate(name):
                return False

            self._members[name] = session
            self._inc("registrations")

            notice = messages.joined(name)
            for other_name, other in self._members.items():
                if other_name != name:
                    other.send(notice)

            count = len(self._members)

        self.log.info("User registered name=%r members=%s", name, count)
        return True

    def unregister(self, name: str | None, session: Session | None = None) -> bool:
        """Remove ``name`` and announce the departure.

        When ``session`` is given, only that session's entry is removed, so a
        late teardown can never evict a newer holder of the same name. Returns
        False (and announces nothing) when there was nothing to remove.
        """
        if not name:
            return False

        with self._lock:
            current = self._members.get(name)
            if current is None:
                return False
            if session is not None and current is not session:
                return False

            del self._members[name]

            notice = messages.left(name)
            for other in self._members.values():
                other.send(notice)

            count = len(self._members)

        self.log.info("User left name=%r members=%s", name, count)
        return True

    def broadcast(self, text: str, exclude: str | None = None) -> int:
        """Queue ``text`` for every member except ``exclude``.

        Delivery is best-effort: a member whose outbound queue is full loses
        this line. Returns the number of members it was queued for.
        """
        delivered = 0
        with self._lock:
            for member_name, member in self._members.items():
                if member_name == exclude:
                    continue
                if member.send(text):
                    delivered += 1
        return delivered

    def send_private(self, from_name: str, to_name: str, text: str) -> SendResult:
        with self._lock:
            target = self._members.get(to_name)
            if target is None:
                self._inc("private_not_found")
                return SendResult.RECIPIENT_NOT_FOUND

            target.send(messages.private_line(from_name, text))

            sender = self._members.get(from_name)
            if sender is not None:
                sender.send(messages.private_sent(to_name))

        self._inc("msgs_private")
        self.log.debug("Private message from=%r to=%r", from_name, to_name)
        return SendResult.DELIVERED

    def list_names(self) -> list[str]:
        with self._lock:
            return sorted(self._members)

    def shutdown(self, *, notice: str | None = None, flush_timeout: float = 0.0) -> int:
        """Remove and close every member. Idempotent.

        Returns the number of sessions closed by this call.
        """
        with self._lock:
            self._closed = True
            sessions = list(self._members.values())
            self._members.clear()
            if notice:
                for sess in sessions:
                    sess.send(notice)

        for sess in sessions:
            sess.close(flush_timeout=flush_timeout)

        if sessions:
            self.log.info("Registry shut down; closed %s session(s)", len(sessions))
        return len(sessions)
