import socket
import threading

import pytest

from relayd.config import RelayRuntimeConfig
from relayd.session import Session, SessionPhase
from relayd.worker import ConnectionWorker


class Peer:
    """Client end of a socketpair, read one line at a time."""

    def __init__(self, sock: socket.socket) -> None:
        sock.settimeout(5.0)
        self.sock = sock
        self.stream = sock.makefile("rb")

    def send(self, text: str) -> None:
        self.sock.sendall(text.encode("utf-8") + b"\n")

    def line(self) -> str | None:
        raw = self.stream.readline()
        if not raw:
            return None
        return raw.decode("utf-8").rstrip("\n")

    def expect(self, prefix: str) -> list[str]:
        seen = []
        while True:
            line = self.line()
            assert line is not None, f"EOF while waiting for {prefix!r}; saw {seen!r}"
            seen.append(line)
            if line.startswith(prefix):
                return seen

    def close(self) -> None:
        self.stream.close()
        self.sock.close()


@pytest.fixture
def spawn(registry, router):
    started = []

    def _spawn(**overrides):
        cfg = RelayRuntimeConfig(flush_timeout_s=1.0, **overrides)
        server_end, client_end = socket.socketpair()
        sess = Session(server_end, ("pair", len(started)), queue_size=cfg.outbound_queue_size)
        exited = threading.Event()
        worker = ConnectionWorker(
            sess, registry, router, cfg, on_exit=lambda s: exited.set()
        )
        thread = threading.Thread(target=worker.run, daemon=True)
        thread.start()
        peer = Peer(client_end)
        started.append((peer, thread))
        return peer, sess, exited

    yield _spawn

    for peer, thread in started:
        try:
            peer.close()
        except OSError:
            pass
        thread.join(5.0)


def _register(peer: Peer, name: str) -> None:
    assert peer.line() == "Enter username: "
    peer.send(name)
    peer.expect("You can also just type a message")


def test_registration_welcome_block(spawn, registry) -> None:
    peer, sess, _ = spawn()
    assert peer.line() == "Enter username: "
    peer.send("  alice  ")
    lines = peer.expect("You can also just type a message")
    assert lines[0] == "Welcome alice! You are now connected to the chat server."
    assert "  /msg <username> <message> - Send private message" in lines
    assert sess.phase is SessionPhase.ACTIVE
    assert registry.list_names() == ["alice"]


def test_welcome_block_survives_a_tiny_outbound_queue(spawn) -> None:
    peer, sess, _ = spawn(outbound_queue_size=1)
    assert peer.line() == "Enter username: "
    peer.send("alice")
    lines = peer.expect("You can also just type a message")
    assert lines[0].startswith("Welcome alice!")
    assert len(lines) == 7
    assert sess.dropped == 0


def test_blank_and_invalid_names_reprompt(spawn, registry) -> None:
    peer, _, _ = spawn(name_max_chars=8)
    assert peer.line() == "Enter username: "
    for bad in ("", "   ", "two words", "much-too-long-name"):
        peer.send(bad)
        assert peer.line() == "Invalid username. Please try again."
        assert peer.line() == "Enter username: "
    assert len(registry) == 0
    peer.send("ok")
    peer.expect("Welcome ok!")


def test_taken_name_reprompts(spawn, registry) -> None:
    first, _, _ = spawn()
    _register(first, "alice")

    second, sess, _ = spawn()
    assert second.line() == "Enter username: "
    second.send("alice")
    assert second.line() == "Username already taken. Please try again."
    assert second.line() == "Enter username: "
    assert sess.phase is SessionPhase.REGISTERING
    second.send("bob")
    second.expect("Welcome bob!")
    first.expect("bob joined the chat!")


def test_quit_unregisters_and_closes(spawn, registry) -> None:
    alice, _, _ = spawn()
    _register(alice, "alice")
    bob, bob_sess, bob_exited = spawn()
    _register(bob, "bob")
    alice.expect("bob joined the chat!")

    bob.send("/quit")
    assert bob.line() == "Goodbye!"
    assert bob.line() is None
    assert bob_exited.wait(5.0)
    assert bob_sess.phase is SessionPhase.TERMINATED

    alice.expect("bob left the chat!")
    assert registry.list_names() == ["alice"]


def test_abrupt_disconnect_is_a_quit(spawn, registry) -> None:
    alice, _, _ = spawn()
    _register(alice, "alice")
    bob, _, bob_exited = spawn()
    _register(bob, "bob")

    bob.close()
    assert bob_exited.wait(5.0)
    alice.expect("bob left the chat!")
    alice.send("/list")
    assert alice.expect("Online users")[-1] == "Online users (1): alice"


def test_disconnect_before_registering(spawn, registry) -> None:
    peer, sess, exited = spawn()
    assert peer.line() == "Enter username: "
    peer.close()
    assert exited.wait(5.0)
    assert sess.name is None
    assert len(registry) == 0


def test_over_long_line_keeps_connection(spawn) -> None:
    peer, _, _ = spawn(max_line_bytes=16)
    _register(peer, "alice")
    peer.send("z" * 100)
    assert peer.line() == "Line too long (max 16 bytes)."
    peer.send("/list")
    assert peer.line() == "Online users (1): alice"


def test_registry_shutdown_ends_worker(spawn, registry) -> None:
    peer, sess, exited = spawn()
    _register(peer, "alice")
    registry.shutdown(notice="Server is shutting down.", flush_timeout=1.0)
    assert peer.expect("Server is shutting down.")
    assert exited.wait(5.0)
    assert sess.phase is SessionPhase.TERMINATED


def test_idle_client_is_disconnected(spawn, registry) -> None:
    alice, _, _ = spawn()
    _register(alice, "alice")
    bob, bob_sess, bob_exited = spawn(idle_timeout_s=0.3)
    _register(bob, "bob")
    alice.expect("bob joined the chat!")

    assert bob_exited.wait(5.0)
    assert bob_sess.phase is SessionPhase.TERMINATED
    assert bob.line() is None
    alice.expect("bob left the chat!")
    assert registry.list_names() == ["alice"]
