from __future__ import annotations

import queue
import threading

import pytest

from relayd.registry import Registry
from relayd.router import MessageRouter
from relayd.session import Session
from relayd.stats import StatsManager


class FakeConn:
    """Stands in for a socket in tests that never start the writer thread."""

    def __init__(self) -> None:
        self.sent: list[bytes] = []
        self.closed = False
        self.shut = False
        self._lock = threading.Lock()

    def sendall(self, data: bytes) -> None:
        with self._lock:
            if self.closed:
                raise OSError("closed")
            self.sent.append(data)

    def shutdown(self, how) -> None:
        self.shut = True

    def close(self) -> None:
        self.closed = True


def drain(session: Session) -> list[str]:
    out: list[str] = []
    while True:
        try:
            item = session.outbound.get_nowait()
        except queue.Empty:
            return out
        if isinstance(item, str):
            out.append(item)


@pytest.fixture
def stats() -> StatsManager:
    return StatsManager()


@pytest.fixture
def registry(stats: StatsManager) -> Registry:
    return Registry(stats=stats)


@pytest.fixture
def router(registry: Registry, stats: StatsManager) -> MessageRouter:
    return MessageRouter(registry, stats=stats)


@pytest.fixture
def make_session():
    def _make(*, queue_size: int = 256) -> Session:
        return Session(FakeConn(), ("127.0.0.1", 40000), queue_size=queue_size)

    return _make


@pytest.fixture
def member(registry: Registry, make_session):
    """Register a fresh session under ``name``."""

    def _member(name: str) -> Session:
        sess = make_session()
        assert registry.try_register(name, sess)
        return sess

    return _member
