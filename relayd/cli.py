from __future__ import annotations

import argparse
import os
import sys
from dataclasses import replace

from .config import (
    RelayRuntimeConfig,
    apply_config_data,
    load_toml,
    validate_config,
    write_default_config,
)
from .logging_config import configure_logging
from .paths import default_config_path
from .service import RelayService


def _build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="relayd", description="Run a text chat relay server")

    p.add_argument(
        "--config",
        default=None,
        help=f"Path to a TOML config file (default: {default_config_path()}, created on first run)",
    )
    p.add_argument("--host", default=None, help="Address to listen on (default: 0.0.0.0)")
    p.add_argument("--port", type=int, default=None, help="TCP port to listen on (default: 8888)")

    p.add_argument(
        "--max-connections",
        type=int,
        default=None,
        help="Maximum concurrent client connections; extra connections are refused",
    )
    p.add_argument(
        "--name-max-chars",
        type=int,
        default=None,
        help="Maximum username length (0 disables the limit)",
    )
    p.add_argument(
        "--outbound-queue-size",
        type=int,
        default=None,
        help="Per-client outbound buffer in lines; lines are dropped when it is full",
    )
    p.add_argument(
        "--max-line-bytes",
        type=int,
        default=None,
        help="Maximum inbound line length in bytes (0 disables the limit)",
    )
    p.add_argument(
        "--shutdown-grace",
        type=float,
        default=None,
        help="Seconds to wait for connections to finish on shutdown",
    )
    p.add_argument(
        "--idle-timeout",
        type=float,
        default=None,
        help="Disconnect clients idle for this many seconds (0 disables)",
    )

    p.add_argument(
        "--log-level",
        default=None,
        help="Logging level override (DEBUG, INFO, WARNING, ERROR). Default comes from config.",
    )
    p.add_argument(
        "--log-file",
        default=None,
        help="Log file path override (empty disables file logging). Default comes from config.",
    )

    return p


def resolve_config(args: argparse.Namespace) -> RelayRuntimeConfig:
    """Build the runtime config from defaults, the config file, then flags."""
    cfg = RelayRuntimeConfig()

    if args.config is not None:
        config_path = str(args.config)
        if not os.path.exists(config_path):
            raise SystemExit(f"relayd: config file not found: {config_path}")
    else:
        config_path = str(default_config_path())
        if not os.path.exists(config_path):
            write_default_config(config_path)
            print(f"Created default relayd config: {config_path}", file=sys.stderr)

    cfg = replace(cfg, config_path=config_path)
    cfg = apply_config_data(cfg, load_toml(config_path))

    if args.host is not None:
        cfg = replace(cfg, host=str(args.host))
    if args.port is not None:
        cfg = replace(cfg, port=int(args.port))
    if args.max_connections is not None:
        cfg = replace(cfg, max_connections=int(args.max_connections))
    if args.name_max_chars is not None:
        cfg = replace(cfg, name_max_chars=int(args.name_max_chars))
    if args.outbound_queue_size is not None:
        cfg = replace(cfg, outbound_queue_size=int(args.outbound_queue_size))
    if args.max_line_bytes is not None:
        cfg = replace(cfg, max_line_bytes=int(args.max_line_bytes))
    if args.shutdown_grace is not None:
        cfg = replace(cfg, shutdown_grace_s=float(args.shutdown_grace))
    if args.idle_timeout is not None:
        cfg = replace(cfg, idle_timeout_s=float(args.idle_timeout))

    if args.log_level is not None:
        cfg = replace(cfg, log_level=str(args.log_level))
    if args.log_file is not None:
        cfg = replace(cfg, log_file=str(args.log_file) if str(args.log_file) else None)

    validate_config(cfg)
    return cfg


def main(argv: list[str] | None = None) -> None:
    args = _build_arg_parser().parse_args(sys.argv[1:] if argv is None else argv)

    try:
        cfg = resolve_config(args)
    except ValueError as e:
        raise SystemExit(f"relayd: invalid configuration: {e}") from e

    configure_logging(cfg, override_level=args.log_level, override_file=args.log_file)

    svc = RelayService(cfg)
    try:
        svc.start()
    except OSError as e:
        raise SystemExit(f"relayd: cannot listen on {cfg.host}:{cfg.port}: {e}") from e
    svc.run_forever()


if __name__ == "__main__":
    main()
