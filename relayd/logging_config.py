"""Logging setup for the relay process.

Every thread relayd starts is named after its job (``relayd-accept``,
``relayd-conn-<addr>``, ``relayd-writer-<addr>``), so the default format
carries ``%(threadName)s`` and a log line can be traced to its connection.
Noisy parts can be turned up on their own through ``[logging.levels]``::

    [logging.levels]
    "relayd.session" = "DEBUG"
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Iterable

from .config import RelayRuntimeConfig
from .constants import LOG_FORMAT

# Set on handlers installed here, so a second call replaces only those.
_OWNED_ATTR = "_relayd_handler"


def parse_level(value: Any, default: int) -> int:
    """Accept a level name (any case, ``WARN`` included) or a number."""
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value

    text = str(value).strip()
    if not text:
        return default
    if text.lstrip("-").isdigit():
        return int(text)

    name = text.upper()
    if name == "WARN":
        name = "WARNING"
    level = logging.getLevelNamesMapping().get(name)
    return default if level is None else level


def _log_file_path(cfg: RelayRuntimeConfig, override_file: str | None) -> Path | None:
    # An explicit empty override disables file logging even if the config sets one.
    raw = cfg.log_file if override_file is None else override_file
    if raw is None or not str(raw).strip():
        return None
    return Path(os.path.expanduser(str(raw)))


def _private_file_handler(path: Path) -> logging.FileHandler:
    path.parent.mkdir(parents=True, exist_ok=True)
    # Logs carry usernames and peer addresses.
    path.touch(mode=0o600, exist_ok=True)
    os.chmod(path, 0o600)
    return logging.FileHandler(path, encoding="utf-8")


def _apply_logger_levels(levels: Iterable[tuple[str, Any]], default: int) -> None:
    for name, value in levels:
        logging.getLogger(str(name)).setLevel(parse_level(value, default))


def configure_logging(
    cfg: RelayRuntimeConfig,
    *,
    override_level: str | None = None,
    override_file: str | None = None,
) -> list[logging.Handler]:
    """Install relayd's handlers on the root logger and return them.

    Handlers added by an earlier call are closed and replaced. Handlers that
    somebody else attached to the root logger are left alone.
    """
    level = parse_level(override_level or cfg.log_level, logging.INFO)

    handlers: list[logging.Handler] = []
    if cfg.log_console:
        handlers.append(logging.StreamHandler())
    log_path = _log_file_path(cfg, override_file)
    if log_path is not None:
        handlers.append(_private_file_handler(log_path))

    formatter = logging.Formatter(
        fmt=(cfg.log_format or "").strip() or LOG_FORMAT,
        datefmt=cfg.log_datefmt or None,
    )

    root = logging.getLogger()
    for old in [h for h in root.handlers if getattr(h, _OWNED_ATTR, False)]:
        root.removeHandler(old)
        old.close()

    for h in handlers:
        h.setFormatter(formatter)
        setattr(h, _OWNED_ATTR, True)
        root.addHandler(h)
    root.setLevel(level)

    _apply_logger_levels(cfg.log_levels, level)
    logging.captureWarnings(True)
    return handlers
