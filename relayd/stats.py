"""Statistics tracking and reporting for the relay server."""

from __future__ import annotations

import threading
import time


class StatsManager:
    """
    Thread-safe lifetime counters for the relay.

    Tracks:
    - Connections accepted and rejected at the capacity limit
    - Registrations and name collisions
    - Lines and bytes in/out
    - Broadcast and private deliveries
    - Protocol errors and outbound lines dropped on full queues
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()

        self.started_wall_time: float | None = None
        self.started_monotonic: float | None = None

        self._counters: dict[str, int] = {
            "connections_accepted": 0,
            "connections_rejected": 0,
            "registrations": 0,
            "name_collisions": 0,
            "lines_in": 0,
            "bytes_in": 0,
            "bytes_out": 0,
            "msgs_broadcast": 0,
            "msgs_private": 0,
            "private_not_found": 0,
            "protocol_errors": 0,
            "msgs_dropped": 0,
        }

    def set_start_time(self) -> None:
        """Set the start time for uptime calculations."""
        self.started_wall_time = time.time()
        self.started_monotonic = time.monotonic()

    def inc(self, key: str, delta: int = 1) -> None:
        """Increment a counter by the given delta."""
        with self._lock:
            self._counters[key] = int(self._counters.get(key, 0)) + int(delta)

    def get(self, key: str) -> int:
        with self._lock:
            return int(self._counters.get(key, 0))

    def snapshot(self) -> dict[str, int]:
        with self._lock:
            return dict(self._counters)

    def format_stats(self, *, members: int | None = None) -> str:
        """Format current statistics as a human-readable string."""
        from . import __version__

        started_mono = self.started_monotonic
        uptime_s = (time.monotonic() - started_mono) if started_mono is not None else 0.0
        c = self.snapshot()

        lines: list[str] = []
        lines.append(f"relayd {__version__} stats")
        lines.append(f"uptime_s={uptime_s:.1f}")
        if members is not None:
            lines.append(f"members={members}")
        lines.append(
            "connections: accepted={} rejected={} registrations={} name_collisions={}".format(
                c.get("connections_accepted", 0),
                c.get("connections_rejected", 0),
                c.get("registrations", 0),
                c.get("name_collisions", 0),
            )
        )
        lines.append(
            "io: lines_in={} bytes_in={} bytes_out={} dropped={}".format(
                c.get("lines_in", 0),
                c.get("bytes_in", 0),
                c.get("bytes_out", 0),
                c.get("msgs_dropped", 0),
            )
        )
        lines.append(
            "events: broadcast={} private={} private_not_found={} protocol_errors={}".format(
                c.get("msgs_broadcast", 0),
                c.get("msgs_private", 0),
                c.get("private_not_found", 0),
                c.get("protocol_errors", 0),
            )
        )

        return "\n".join(lines)
