from __future__ import annotations

import logging
import signal
import socket
import threading
import time

from .codec import encode_line
from .config import RelayRuntimeConfig
from .constants import NOTICE_SERVER_FULL, NOTICE_SHUTDOWN
from .registry import Registry
from .router import MessageRouter
from .session import Session
from .stats import StatsManager
from .util import fmt_addr
from .worker import ConnectionWorker


class RelayService:
    def __init__(self, config: RelayRuntimeConfig) -> None:
        self.config = config
        self.log = logging.getLogger("relayd.service")

        self.stats_manager = StatsManager()

        # The registry is owned here and handed to the router and every worker.
        self.registry = Registry(stats=self.stats_manager)
        self.router = MessageRouter(self.registry, stats=self.stats_manager)

        # One slot per live connection, taken at accept time without waiting.
        self._slots = threading.BoundedSemaphore(int(config.max_connections))

        # Guards _workers and the shutdown transition.
        self._state_lock = threading.Lock()
        self._workers: dict[Session, threading.Thread] = {}

        self._shutdown = threading.Event()
        self._stop_requested = threading.Event()

        self._sock: socket.socket | None = None
        self._accept_thread: threading.Thread | None = None

    @property
    def address(self) -> tuple[str, int]:
        if self._sock is None:
            raise RuntimeError("relay is not started")
        host, port = self._sock.getsockname()[:2]
        return host, port

    @property
    def active_connections(self) -> int:
        with self._state_lock:
            return len(self._workers)

    def start(self) -> None:
        if self._sock is not None:
            return

        self.stats_manager.set_start_time()

        sock = socket.create_server(
            (self.config.host, int(self.config.port)),
            backlog=int(self.config.backlog),
        )
        # Periodic wakeups so the accept loop notices shutdown.
        sock.settimeout(0.5)
        self._sock = sock

        self._accept_thread = threading.Thread(
            target=self._accept_loop,
            name="relayd-accept",
            daemon=True,
        )
        self._accept_thread.start()

        host, port = self.address
        self.log.info("Relay listening host=%s port=%s", host, port)
        self.log.info(
            "Policy max_connections=%s name_max_chars=%s outbound_queue_size=%s max_line_bytes=%s idle_timeout_s=%s",
            self.config.max_connections,
            self.config.name_max_chars,
            self.config.outbound_queue_size,
            self.config.max_line_bytes,
            self.config.idle_timeout_s,
        )

    def _accept_loop(self) -> None:
        sock = self._sock
        if sock is None:
            return

        while not self._shutdown.is_set():
            try:
                conn, addr = sock.accept()
            except socket.timeout:
                continue
            except OSError:
                if self._shutdown.is_set():
                    break
                self.log.exception("Accept failed")
                time.sleep(0.1)
                continue

            try:
                self._on_accept(conn, addr)
            except Exception:
                self.log.exception("Failed to start connection addr=%s", fmt_addr(addr))
                try:
                    conn.close()
                except OSError:
                    pass

    def _reject(self, conn: socket.socket, addr) -> None:
        self.stats_manager.inc("connections_rejected")
        self.log.warning(
            "Rejecting connection addr=%s: max_connections=%s reached",
            fmt_addr(addr),
            self.config.max_connections,
        )
        try:
            conn.settimeout(1.0)
            conn.sendall(encode_line(NOTICE_SERVER_FULL))
        except OSError:
            pass
        finally:
            conn.close()

    def _on_accept(self, conn: socket.socket, addr) -> None:
        if self._shutdown.is_set():
            conn.close()
            return

        if not self._slots.acquire(blocking=False):
            self._reject(conn, addr)
            return

        conn.settimeout(None)
        session = Session(
            conn,
            addr,
            queue_size=int(self.config.outbound_queue_size),
            stats=self.stats_manager,
        )
        worker = ConnectionWorker(
            session,
            self.registry,
            self.router,
            self.config,
            stats=self.stats_manager,
            on_exit=self._on_worker_exit,
        )
        thread = threading.Thread(
            target=worker.run,
            name=f"relayd-conn-{fmt_addr(addr)}",
            daemon=True,
        )

        with self._state_lock:
            self._workers[session] = thread

        try:
            thread.start()
        except RuntimeError:
            with self._state_lock:
                self._workers.pop(session, None)
            self._slots.release()
            raise

        self.stats_manager.inc("connections_accepted")
        self.log.info("Connection accepted addr=%s active=%s", fmt_addr(addr), self.active_connections)

    def _on_worker_exit(self, session: Session) -> None:
        with self._state_lock:
            thread = self._workers.pop(session, None)
        if thread is not None:
            self._slots.release()

    def request_stop(self) -> None:
        self._stop_requested.set()

    def run_forever(self) -> None:
        if self._sock is None:
            self.start()

        signal.signal(signal.SIGINT, lambda *_: self.request_stop())
        signal.signal(signal.SIGTERM, lambda *_: self.request_stop())

        while not self._stop_requested.is_set() and not self._shutdown.is_set():
            self._stop_requested.wait(0.25)

        self.stop()

    def stop(self) -> None:
        with self._state_lock:
            if self._shutdown.is_set():
                return
            self._shutdown.set()

        self.log.info("Stopping relay")

        if self._sock is not None:
            try:
                self._sock.close()
            except OSError:
                pass
        if self._accept_thread is not None:
            self._accept_thread.join(2.0)

        self.registry.shutdown(
            notice=NOTICE_SHUTDOWN,
            flush_timeout=float(self.config.flush_timeout_s),
        )

        deadline = time.monotonic() + float(self.config.shutdown_grace_s)
        while True:
            with self._state_lock:
                pending = list(self._workers.values())
            remaining = deadline - time.monotonic()
            if not pending or remaining <= 0:
                break
            pending[0].join(min(remaining, 0.25))

        with self._state_lock:
            leftovers = list(self._workers.items())
        if leftovers:
            self.log.warning("Forcing %s connection(s) closed after grace period", len(leftovers))
            for sess, _ in leftovers:
                sess.close()
            for _, thread in leftovers:
                thread.join(1.0)

        self.log.info("%s", self.stats_manager.format_stats(members=len(self.registry)))
        self.log.info("Relay stopped")
