"""Interactive terminal client for relayd."""

from __future__ import annotations

import argparse
import logging
import socket
import sys
import threading
from typing import TextIO

from .codec import LineReader, encode_line
from .constants import CMD_QUIT, DEFAULT_PORT, PROMPT_USERNAME

WELCOME_PREFIX = "Welcome "
WELCOME_MARKER = "! You are now connected"


class RelayClient:
    """Prints every server line and forwards terminal input, one line at a time."""

    def __init__(
        self,
        host: str,
        port: int,
        *,
        stdin: TextIO | None = None,
        stdout: TextIO | None = None,
    ) -> None:
        self.host = host
        self.port = int(port)
        self.stdin = stdin or sys.stdin
        self.stdout = stdout or sys.stdout
        self.log = logging.getLogger("relayd.client")

        self.sock: socket.socket | None = None
        self.username: str | None = None
        self._connected = threading.Event()
        self._out_lock = threading.Lock()
        self._receiver: threading.Thread | None = None

    @property
    def connected(self) -> bool:
        return self._connected.is_set()

    def connect(self) -> None:
        self.sock = socket.create_connection((self.host, self.port))
        self._connected.set()
        self._print(f"Connected to chat server at {self.host}:{self.port}")

        self._receiver = threading.Thread(
            target=self._receive_loop,
            name="relayd-client-recv",
            daemon=True,
        )
        self._receiver.start()

    def _print(self, text: str) -> None:
        with self._out_lock:
            self.stdout.write(text + "\n")
            self.stdout.flush()

    def _receive_loop(self) -> None:
        sock = self.sock
        if sock is None:
            return
        stream = sock.makefile("rb")
        reader = LineReader(stream, max_line_bytes=0)
        try:
            while True:
                line = reader.read_line()
                if line is None:
                    break
                if line.startswith(PROMPT_USERNAME.strip()):
                    # Whatever was sent before this prompt was not accepted.
                    self.username = None
                elif line.startswith(WELCOME_PREFIX) and WELCOME_MARKER in line:
                    self.username = line[len(WELCOME_PREFIX) : line.index(WELCOME_MARKER)]
                self._print(line)
        except OSError as e:
            if self.connected:
                self.log.debug("Receive failed: %s", e)
        finally:
            if self.connected:
                self._print("Connection closed by server")
            self._connected.clear()
            try:
                stream.close()
            except OSError:
                pass

    def send(self, text: str) -> bool:
        if self.sock is None or not self.connected:
            return False
        try:
            self.sock.sendall(encode_line(text))
        except OSError as e:
            self.log.debug("Send failed: %s", e)
            self._connected.clear()
            return False
        return True

    def run(self) -> int:
        """Forward input lines until /quit, end of input, or disconnect."""
        if self.sock is None:
            self.connect()

        for raw in self.stdin:
            if not self.connected:
                break
            text = raw.rstrip("\r\n")
            if not self.send(text):
                break
            if text.strip().lower().split(None, 1)[:1] == [CMD_QUIT]:
                break
        else:
            if self.connected:
                self.send(CMD_QUIT)

        self.close()
        return 0

    def close(self) -> None:
        sock = self.sock
        if sock is None:
            return
        self._connected.clear()
        try:
            sock.shutdown(socket.SHUT_WR)
        except OSError:
            pass
        if self._receiver is not None:
            # Let the server's last lines (e.g. "Goodbye!") print.
            self._receiver.join(2.0)
        try:
            sock.close()
        except OSError:
            pass
        self.sock = None


def _build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="relayd-client", description="Connect to a relayd chat server")
    p.add_argument("host", nargs="?", default="localhost", help="Server host (default: localhost)")
    p.add_argument(
        "port",
        nargs="?",
        type=int,
        default=DEFAULT_PORT,
        help=f"Server port (default: {DEFAULT_PORT})",
    )
    return p


def main(argv: list[str] | None = None) -> None:
    args = _build_arg_parser().parse_args(sys.argv[1:] if argv is None else argv)

    client = RelayClient(args.host, args.port)
    try:
        client.connect()
    except OSError as e:
        raise SystemExit(f"Failed to connect to server: {e}") from e

    try:
        code = client.run()
    except KeyboardInterrupt:
        client.send(CMD_QUIT)
        client.close()
        code = 0
    raise SystemExit(code)


if __name__ == "__main__":
    main()
