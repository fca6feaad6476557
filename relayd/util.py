from __future__ import annotations

import time

from .constants import TIMESTAMP_FORMAT


def timestamp(now: float | None = None) -> str:
    return time.strftime(TIMESTAMP_FORMAT, time.localtime(now))


def normalize_name(value, *, max_chars: int = 32) -> str | None:
    if not isinstance(value, str):
        return None

    s = value.strip()
    if not s:
        return None

    if max_chars > 0 and len(s) > int(max_chars):
        return None

    # Names are addressed as a single /msg token, so no whitespace inside.
    if any(ch.isspace() for ch in s):
        return None

    if any(not ch.isprintable() for ch in s):
        return None

    return s


def fmt_addr(addr) -> str:
    if isinstance(addr, tuple) and len(addr) >= 2:
        return f"{addr[0]}:{addr[1]}"
    return "-" if addr is None else str(addr)
