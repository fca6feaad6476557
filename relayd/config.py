from __future__ import annotations

import os
from dataclasses import asdict, dataclass, replace
from pathlib import Path

import tomlkit

from .constants import (
    DEFAULT_HOST,
    DEFAULT_MAX_CONNECTIONS,
    DEFAULT_PORT,
    LOG_FORMAT,
    MAX_LINE_BYTES,
)
from .paths import ensure_private_dir


@dataclass(frozen=True)
class RelayRuntimeConfig:
    config_path: str | None = None
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    backlog: int = 64
    max_connections: int = DEFAULT_MAX_CONNECTIONS
    name_max_chars: int = 32
    max_line_bytes: int = MAX_LINE_BYTES
    outbound_queue_size: int = 256
    flush_timeout_s: float = 1.0
    shutdown_grace_s: float = 5.0
    idle_timeout_s: float = 0.0
    log_level: str = "INFO"
    log_console: bool = True
    log_file: str | None = None
    log_format: str = LOG_FORMAT
    log_datefmt: str | None = None
    # (logger name, level) pairs from [logging.levels].
    log_levels: tuple[tuple[str, str], ...] = ()


_LOGGING_KEYS = {
    "level": "log_level",
    "console": "log_console",
    "file": "log_file",
    "format": "log_format",
    "datefmt": "log_datefmt",
    "levels": "log_levels",
}

_INT_KEYS = (
    "port",
    "backlog",
    "max_connections",
    "name_max_chars",
    "max_line_bytes",
    "outbound_queue_size",
)
_FLOAT_KEYS = ("flush_timeout_s", "shutdown_grace_s", "idle_timeout_s")


def load_toml(path: str) -> dict:
    import tomllib

    with open(path, "rb") as f:
        data = tomllib.load(f)
    return data if isinstance(data, dict) else {}


def apply_config_data(base: RelayRuntimeConfig, data: dict) -> RelayRuntimeConfig:
    """Overlay values from a parsed TOML document onto ``base``.

    Keys may appear at the top level or under ``[server]``; logging keys live
    under ``[logging]``. Unknown keys are ignored.
    """
    server = data.get("server") if isinstance(data, dict) else None
    if isinstance(server, dict):
        data = {**data, **server}

    log_table = data.get("logging") if isinstance(data, dict) else None
    if isinstance(log_table, dict):
        mapped = {dst: log_table[src] for src, dst in _LOGGING_KEYS.items() if src in log_table}
        data = {**data, **mapped}

    allowed = set(asdict(base).keys())
    # This identifies where the file came from; do not let the file override it.
    allowed.discard("config_path")

    updates = {k: v for k, v in data.items() if k in allowed}

    for key in _INT_KEYS:
        if key in updates:
            updates[key] = int(updates[key])
    for key in _FLOAT_KEYS:
        if key in updates:
            updates[key] = float(updates[key])
    if "log_console" in updates:
        updates["log_console"] = bool(updates["log_console"])
    if "log_levels" in updates:
        levels = updates["log_levels"]
        if not isinstance(levels, dict):
            raise ValueError("[logging.levels] must be a table of logger = level")
        updates["log_levels"] = tuple(sorted((str(k), str(v)) for k, v in levels.items()))

    if "log_file" in updates and updates["log_file"] == "":
        updates["log_file"] = None
    if "log_datefmt" in updates and updates["log_datefmt"] == "":
        updates["log_datefmt"] = None

    cfg = replace(base, **updates) if updates else base
    validate_config(cfg)
    return cfg


def validate_config(cfg: RelayRuntimeConfig) -> None:
    if not 0 <= int(cfg.port) <= 65535:
        raise ValueError(f"port out of range: {cfg.port}")
    if int(cfg.max_connections) < 1:
        raise ValueError("max_connections must be at least 1")
    if int(cfg.outbound_queue_size) < 1:
        raise ValueError("outbound_queue_size must be at least 1")
    if int(cfg.max_line_bytes) < 0:
        raise ValueError("max_line_bytes must not be negative")
    if float(cfg.shutdown_grace_s) < 0:
        raise ValueError("shutdown_grace_s must not be negative")
    if float(cfg.idle_timeout_s) < 0:
        raise ValueError("idle_timeout_s must not be negative")


def render_default_config(cfg: RelayRuntimeConfig | None = None) -> str:
    cfg = cfg or RelayRuntimeConfig()

    doc = tomlkit.document()
    doc.add(tomlkit.comment("relayd configuration (TOML)"))
    doc.add(tomlkit.comment("This file was created on first run. Command-line flags override it."))
    doc.add(tomlkit.nl())

    server = tomlkit.table()
    server.add(tomlkit.comment("Listening address and port."))
    server.add("host", cfg.host)
    server.add("port", cfg.port)
    server.add("backlog", cfg.backlog)
    server.add(tomlkit.nl())
    server.add(tomlkit.comment("Connections beyond this limit are refused at accept time."))
    server.add("max_connections", cfg.max_connections)
    server.add(tomlkit.nl())
    server.add(tomlkit.comment("Maximum username length (0 disables the limit)."))
    server.add("name_max_chars", cfg.name_max_chars)
    server.add(tomlkit.comment("Longer inbound lines are discarded (0 disables the limit)."))
    server.add("max_line_bytes", cfg.max_line_bytes)
    server.add(tomlkit.nl())
    server.add(tomlkit.comment("Per-client outbound buffer, in lines. When it is full, further"))
    server.add(tomlkit.comment("lines for that client are dropped, so a slow reader never stalls"))
    server.add(tomlkit.comment("delivery to everyone else."))
    server.add("outbound_queue_size", cfg.outbound_queue_size)
    server.add("flush_timeout_s", cfg.flush_timeout_s)
    server.add(tomlkit.nl())
    server.add(tomlkit.comment("Seconds to wait for connections to finish on shutdown."))
    server.add("shutdown_grace_s", cfg.shutdown_grace_s)
    server.add(tomlkit.comment("Disconnect clients idle for this many seconds (0 disables)."))
    server.add(tomlkit.comment("The same limit applies to a write a client has stopped reading."))
    server.add("idle_timeout_s", cfg.idle_timeout_s)
    doc.add("server", server)

    logging_tbl = tomlkit.table()
    logging_tbl.add("level", cfg.log_level)
    logging_tbl.add(tomlkit.comment("Log to stderr (systemd/journald friendly)."))
    logging_tbl.add("console", cfg.log_console)
    logging_tbl.add(tomlkit.comment("Optional file path for logs (leave empty to disable)."))
    logging_tbl.add("file", cfg.log_file or "")
    logging_tbl.add("format", cfg.log_format)
    logging_tbl.add("datefmt", cfg.log_datefmt or "")
    logging_tbl.add(tomlkit.comment('Per-logger levels, e.g. levels = { "relayd.session" = "DEBUG" }.'))
    levels = tomlkit.inline_table()
    for name, value in cfg.log_levels:
        levels[name] = value
    logging_tbl.add("levels", levels)
    doc.add("logging", logging_tbl)

    return tomlkit.dumps(doc)


def write_default_config(config_path: str) -> None:
    cfg_dir = os.path.dirname(config_path)
    if cfg_dir:
        ensure_private_dir(Path(cfg_dir))

    with open(config_path, "w", encoding="utf-8") as f:
        f.write(render_default_config())
    try:
        os.chmod(config_path, 0o600)
    except Exception:
        pass
