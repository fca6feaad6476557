from __future__ import annotations

from typing import BinaryIO

from .constants import LINE_ENCODING, MAX_LINE_BYTES


class LineTooLongError(ValueError):
    """Raised when a client sends a line longer than the configured limit."""

    def __init__(self, limit: int) -> None:
        super().__init__(f"line exceeds {limit} bytes")
        self.limit = limit


def encode_line(text: str) -> bytes:
    # One logical message per line; embedded newlines become separate lines.
    return (text.rstrip("\r\n") + "\n").encode(LINE_ENCODING)


def decode_line(raw: bytes) -> str:
    return raw.rstrip(b"\r\n").decode(LINE_ENCODING, errors="replace")


class LineReader:
    """Reads newline-delimited UTF-8 lines from a binary stream."""

    def __init__(self, stream: BinaryIO, *, max_line_bytes: int = MAX_LINE_BYTES) -> None:
        self.stream = stream
        self.max_line_bytes = int(max_line_bytes)

    def read_line(self) -> str | None:
        """Return the next line without its terminator, or None at end of stream.

        A line longer than ``max_line_bytes`` is consumed up to its newline and
        reported with LineTooLongError so the caller can keep the connection.
        """
        limit = self.max_line_bytes
        raw = self.stream.readline(limit + 1) if limit > 0 else self.stream.readline()
        if not raw:
            return None

        if limit > 0 and len(raw) > limit and not raw.endswith(b"\n"):
            while True:
                rest = self.stream.readline(limit + 1)
                if not rest or rest.endswith(b"\n"):
                    break
            raise LineTooLongError(limit)

        return decode_line(raw)
