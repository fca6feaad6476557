from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Callable

from . import messages
from .codec import LineReader, LineTooLongError
from .constants import (
    PROMPT_USERNAME,
    REPLY_INVALID_USERNAME,
    REPLY_LINE_TOO_LONG,
    REPLY_USERNAME_TAKEN,
)
from .util import fmt_addr, normalize_name

if TYPE_CHECKING:
    from .config import RelayRuntimeConfig
    from .registry import Registry
    from .router import MessageRouter
    from .session import Session
    from .stats import StatsManager


class ConnectionWorker:
    """
    Drives one session through Registering -> Active -> Closing -> Terminated.

    Any transport failure is handled like /quit: the session is unregistered
    (at most once), its transport closed, and ``on_exit`` called so the
    listener can free the connection slot.
    """

    def __init__(
        self,
        session: Session,
        registry: Registry,
        router: MessageRouter,
        config: RelayRuntimeConfig,
        *,
        stats: StatsManager | None = None,
        on_exit: Callable[[Session], None] | None = None,
    ) -> None:
        self.session = session
        self.registry = registry
        self.router = router
        self.config = config
        self.stats = stats
        self.on_exit = on_exit
        self.log = logging.getLogger("relayd.worker")

    def run(self) -> None:
        sess = self.session
        stream = None
        try:
            if self.config.idle_timeout_s and self.config.idle_timeout_s > 0:
                # Shared with the writer thread: a client that stops reading is
                # cut off once a single sendall blocks this long.
                sess.conn.settimeout(float(self.config.idle_timeout_s))
            sess.start_writer()

            stream = sess.conn.makefile("rb")
            reader = LineReader(stream, max_line_bytes=self.config.max_line_bytes)

            if self._register(reader):
                self._serve(reader)
        except (OSError, ValueError) as e:
            # ValueError: reading from a file object closed under us at shutdown.
            self.log.debug("Transport error addr=%s name=%r err=%s", fmt_addr(sess.addr), sess.name, e)
        except Exception:
            self.log.exception("Worker failed addr=%s name=%r", fmt_addr(sess.addr), sess.name)
        finally:
            self._teardown(stream)

    def _read(self, reader: LineReader) -> str | None:
        while True:
            try:
                return reader.read_line()
            except LineTooLongError as e:
                if self.stats is not None:
                    self.stats.inc("protocol_errors")
                self.session.send(REPLY_LINE_TOO_LONG.format(limit=e.limit))

    def _register(self, reader: LineReader) -> bool:
        sess = self.session
        while not sess.closing:
            sess.send(PROMPT_USERNAME)
            line = self._read(reader)
            if line is None:
                return False

            name = normalize_name(line, max_chars=int(self.config.name_max_chars))
            if name is None:
                sess.send(REPLY_INVALID_USERNAME)
                continue

            if self.registry.try_register(name, sess):
                sess.send(messages.welcome_block(name))
                self.log.info("Session active name=%r addr=%s", name, fmt_addr(sess.addr))
                return True

            if self.registry.closed or sess.closing:
                return False

            self.log.debug("Name collision name=%r addr=%s", name, fmt_addr(sess.addr))
            sess.send(REPLY_USERNAME_TAKEN)
        return False

    def _serve(self, reader: LineReader) -> None:
        sess = self.session
        while not sess.closing:
            line = self._read(reader)
            if line is None:
                return
            if not line.strip():
                continue
            if not self.router.route_line(sess, line):
                return

    def _teardown(self, stream) -> None:
        sess = self.session
        try:
            self.registry.unregister(sess.name, sess)
            sess.close(flush_timeout=float(self.config.flush_timeout_s))
            if stream is not None:
                try:
                    stream.close()
                except OSError:
                    pass
            sess.mark_terminated()
            self.log.info(
                "Connection closed addr=%s name=%r dropped=%s",
                fmt_addr(sess.addr),
                sess.name,
                sess.dropped,
            )
        finally:
            if self.on_exit is not None:
                self.on_exit(sess)
