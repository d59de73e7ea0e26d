"""perch — main application entry point."""

from __future__ import annotations

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

from perch.engine.config import ControlConfig
from perch.engine.yaml_config import PerchConfig, load_yaml_config

logger = logging.getLogger(__name__)


def _configure_logging(level_name: str) -> Path:
    """Send logs to a rotating file; the terminal belongs to the TUI."""
    log_dir = Path.home() / ".perch" / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "perch.log"

    root = logging.getLogger()
    root.setLevel(getattr(logging, level_name.upper(), logging.INFO))
    root.handlers.clear()
    formatter = logging.Formatter(
        "%(asctime)s %(levelname)s %(name)s [pid=%(process)d] %(message)s"
    )
    file_handler = RotatingFileHandler(
        log_file, maxBytes=2_000_000, backupCount=5, encoding="utf-8"
    )
    file_handler.setFormatter(formatter)
    root.addHandler(file_handler)
    return log_file


def _discover_config(explicit: str | None) -> str | None:
    if explicit:
        return explicit
    candidate = Path.home() / ".perch" / "perch.yaml"
    if candidate.exists():
        logger.info("Auto-discovered config: %s", candidate)
        return str(candidate)
    return None


def build_config(args) -> PerchConfig:
    """Env vars, then YAML, then command-line flags, later ones winning."""
    config = load_yaml_config(_discover_config(args.config), base=ControlConfig.from_env())
    control = config.control
    if args.town:
        control.town_root = os.path.expanduser(args.town)
    if args.refresh_interval is not None:
        control.refresh_interval_seconds = args.refresh_interval
    if args.log_level:
        control.log_level = args.log_level
    return config


def main(argv: list[str] | None = None) -> None:
    import argparse

    parser = argparse.ArgumentParser(
        prog="perch",
        description="perch — terminal control plane for a Gas Town",
    )
    parser.add_argument(
        "--town", metavar="PATH",
        help="Town root to attach to (default: $PERCH_TOWN_ROOT or ~/gt)",
    )
    parser.add_argument(
        "--config", metavar="FILE",
        help="YAML config file (default: ~/.perch/perch.yaml when present)",
    )
    parser.add_argument(
        "--refresh-interval", type=float, metavar="SECONDS",
        help="Snapshot polling interval; 0 disables polling",
    )
    parser.add_argument(
        "--log-level", choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log verbosity for ~/.perch/logs/perch.log",
    )
    args = parser.parse_args(argv)

    try:
        config = build_config(args)
    except (OSError, ValueError) as exc:
        print(f"Error: invalid configuration: {exc}", file=sys.stderr)
        sys.exit(2)

    log_file = _configure_logging(config.control.log_level)
    logger.info(
        "Starting perch town_root=%s refresh=%ss log=%s",
        config.control.town_root,
        config.control.refresh_interval_seconds,
        log_file,
    )

    from perch.engine.controller import Controller
    from perch.tui.app import PerchApp

    controller = Controller(config.control, config.nudges)
    app = PerchApp(controller)
    app.run()


if __name__ == "__main__":
    main()
