"""Configuration loaded from environment variables.

All settings have sensible defaults. Override via PERCH_* env vars,
a YAML file (see yaml_config.py), or command-line flags.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)


def _default_town_root() -> str:
    return str(Path.home() / "gt")


def _default_export_dir() -> str:
    return str(Path.home() / ".perch")


@dataclass
class ControlConfig:
    """Control loop configuration."""

    # Gas Town workspace the gt/bd commands run in.
    town_root: str = field(default_factory=_default_town_root)

    # Periodic snapshot polling. Set to 0 to disable the tick loop.
    refresh_interval_seconds: float = 10.0

    # Hard deadlines for asynchronous work. The caller stops waiting
    # when they expire; the external command may keep running.
    action_timeout_seconds: float = 30.0
    long_action_timeout_seconds: float = 120.0
    load_timeout_seconds: float = 30.0
    detail_timeout_seconds: float = 10.0

    # Audit entries fetched for the agent drill-down.
    audit_limit: int = 20

    # Where the debug snapshot export is written.
    export_dir: str = field(default_factory=_default_export_dir)

    # Logging
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> ControlConfig:
        """Load configuration from PERCH_* environment variables."""
        perch_vars = {
            k: v for k, v in os.environ.items() if k.startswith("PERCH_")
        }
        if perch_vars:
            logger.info(
                "ControlConfig.from_env: PERCH_* env overrides: %s",
                ", ".join(f"{k}={v}" for k, v in sorted(perch_vars.items())),
            )
        else:
            logger.debug("ControlConfig.from_env: no PERCH_* env vars set, using defaults")

        config = cls(
            town_root=os.path.expanduser(
                os.getenv("PERCH_TOWN_ROOT", _default_town_root())
            ),
            refresh_interval_seconds=float(os.getenv(
                "PERCH_REFRESH_INTERVAL", str(cls.refresh_interval_seconds)
            )),
            action_timeout_seconds=float(os.getenv(
                "PERCH_ACTION_TIMEOUT", str(cls.action_timeout_seconds)
            )),
            long_action_timeout_seconds=float(os.getenv(
                "PERCH_LONG_ACTION_TIMEOUT",
                str(cls.long_action_timeout_seconds),
            )),
            load_timeout_seconds=float(os.getenv(
                "PERCH_LOAD_TIMEOUT", str(cls.load_timeout_seconds)
            )),
            detail_timeout_seconds=float(os.getenv(
                "PERCH_DETAIL_TIMEOUT", str(cls.detail_timeout_seconds)
            )),
            audit_limit=int(os.getenv(
                "PERCH_AUDIT_LIMIT", str(cls.audit_limit)
            )),
            export_dir=os.path.expanduser(
                os.getenv("PERCH_EXPORT_DIR", _default_export_dir())
            ),
            log_level=os.getenv("PERCH_LOG_LEVEL", cls.log_level),
        )
        logger.info(
            "ControlConfig.from_env: town_root=%s refresh=%ss log_level=%s",
            config.town_root, config.refresh_interval_seconds,
            config.log_level,
        )
        return config
