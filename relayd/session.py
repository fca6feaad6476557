from __future__ import annotations

import enum
import logging
import queue
import socket
import threading
from typing import TYPE_CHECKING, Any

from .codec import encode_line
from .util import fmt_addr

if TYPE_CHECKING:
    from .stats import StatsManager


class SessionPhase(enum.Enum):
    REGISTERING = "registering"
    ACTIVE = "active"
    CLOSING = "closing"
    TERMINATED = "terminated"


# Queued after the last line to stop the writer thread.
_CLOSE = object()


class Session:
    """
    Server-side state for one client connection.

    The connection's worker owns the transport. Everything else (the registry,
    other workers broadcasting) only calls ``send``, which enqueues onto a
    bounded outbound queue and never blocks. A dedicated writer thread drains
    the queue onto the socket, so lines to one client keep their order and a
    slow client only ever loses its own lines (drop-on-full).
    """

    def __init__(
        self,
        conn: socket.socket,
        addr: Any = None,
        *,
        queue_size: int = 256,
        stats: StatsManager | None = None,
    ) -> None:
        self.conn = conn
        self.addr = addr
        self.stats = stats
        self.log = logging.getLogger("relayd.session")

        self.outbound: queue.Queue[Any] = queue.Queue(maxsize=max(1, int(queue_size)))
        self.dropped = 0

        self._lock = threading.Lock()
        self._name: str | None = None
        self._phase = SessionPhase.REGISTERING
        self._writer: threading.Thread | None = None

    def __repr__(self) -> str:
        return f"<Session name={self._name!r} addr={fmt_addr(self.addr)} phase={self._phase.value}>"

    @property
    def name(self) -> str | None:
        return self._name

    @property
    def phase(self) -> SessionPhase:
        return self._phase

    @property
    def closing(self) -> bool:
        return self._phase in (SessionPhase.CLOSING, SessionPhase.TERMINATED)

    def activate(self, name: str) -> bool:
        """Assign the registered name and move to ACTIVE.

        Returns False if the session is no longer registering (for example it
        was force-closed while the name claim was in flight).
        """
        with self._lock:
            if self._phase is not SessionPhase.REGISTERING:
                return False
            self._name = name
            self._phase = SessionPhase.ACTIVE
            return True

    def send(self, text: str) -> bool:
        with self._lock:
            if self._phase in (SessionPhase.CLOSING, SessionPhase.TERMINATED):
                return False
            try:
                self.outbound.put_nowait(text)
            except queue.Full:
                self.dropped += 1
                if self.stats is not None:
                    self.stats.inc("msgs_dropped")
                self.log.debug(
                    "Outbound queue full; dropped line name=%r addr=%s dropped=%s",
                    self._name,
                    fmt_addr(self.addr),
                    self.dropped,
                )
                return False
        return True

    def start_writer(self) -> None:
        if self._writer is not None:
            return
        self._writer = threading.Thread(
            target=self._writer_loop,
            name=f"relayd-writer-{fmt_addr(self.addr)}",
            daemon=True,
        )
        self._writer.start()

    def _writer_loop(self) -> None:
        while True:
            item = self.outbound.get()
            if item is _CLOSE:
                break

            data = encode_line(item)
            try:
                self.conn.sendall(data)
            except OSError as e:
                self.log.debug(
                    "Send failed name=%r addr=%s bytes=%s err=%s",
                    self._name,
                    fmt_addr(self.addr),
                    len(data),
                    e,
                )
                # Let the reader side see end-of-stream and tear down.
                self._shutdown_transport()
                break

            if self.stats is not None:
                self.stats.inc("bytes_out", len(data))

    def _shutdown_transport(self) -> None:
        try:
            self.conn.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass

    def close(self, *, flush_timeout: float = 0.0) -> None:
        """Move to CLOSING and release the transport. Idempotent.

        With ``flush_timeout > 0`` already-queued lines get up to that long to
        reach the client before the socket is shut down.
        """
        with self._lock:
            if self._phase in (SessionPhase.CLOSING, SessionPhase.TERMINATED):
                return
            self._phase = SessionPhase.CLOSING

        writer = self._writer
        if writer is not None and writer.is_alive() and flush_timeout > 0:
            try:
                self.outbound.put(_CLOSE, timeout=flush_timeout)
            except queue.Full:
                pass
            writer.join(flush_timeout)

        self._shutdown_transport()
        try:
            self.conn.close()
        except OSError:
            pass

        if writer is not None and writer.is_alive():
            try:
                self.outbound.put_nowait(_CLOSE)
            except queue.Full:
                # The writer is busy draining; its next send fails on the closed socket.
                pass

    def mark_terminated(self) -> None:
        with self._lock:
            self._phase = SessionPhase.TERMINATED
