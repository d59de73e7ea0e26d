"""YAML configuration loader.

Loads an optional YAML file layered on top of PERCH_* env vars.
When no YAML is provided, env vars work exactly as before.

Example YAML:
    control:
      town_root: ~/gt
      refresh_interval_seconds: 5
      action_timeout_seconds: 45

    nudges:
      - label: Check mail
        message: Check your mail and respond to any pending items.
      - label: Ship it
        message: Finish the current task and open a merge request.
      - label: Custom...
        message: ""
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path

import yaml

from .actions import DEFAULT_PRESET_NUDGES, PresetNudge
from .config import ControlConfig

logger = logging.getLogger(__name__)


@dataclass
class PerchConfig:
    """Complete parsed configuration."""
    control: ControlConfig
    nudges: tuple[PresetNudge, ...] = field(
        default_factory=lambda: DEFAULT_PRESET_NUDGES
    )


_FLOAT_FIELDS = {
    "refresh_interval_seconds",
    "action_timeout_seconds",
    "long_action_timeout_seconds",
    "load_timeout_seconds",
    "detail_timeout_seconds",
}
_PATH_FIELDS = {"town_root", "export_dir"}


def _apply_control_section(config: ControlConfig, raw: dict) -> None:
    known = {f.name for f in fields(ControlConfig)}
    for key, value in raw.items():
        if key not in known:
            logger.warning("Ignoring unknown control setting: %s", key)
            continue
        if key in _FLOAT_FIELDS:
            value = float(value)
        elif key == "audit_limit":
            value = int(value)
        elif key in _PATH_FIELDS:
            value = os.path.expanduser(str(value))
        setattr(config, key, value)


def _parse_nudges(raw: list) -> tuple[PresetNudge, ...]:
    nudges: list[PresetNudge] = []
    for entry in raw:
        if not isinstance(entry, dict) or "label" not in entry:
            logger.warning("Skipping malformed nudge entry: %r", entry)
            continue
        nudges.append(PresetNudge(
            label=str(entry["label"]),
            message=str(entry.get("message") or ""),
        ))
    if not any(n.is_custom for n in nudges):
        nudges.append(PresetNudge("Custom...", ""))
    return tuple(nudges)


def load_yaml_config(
    path: str | Path | None,
    base: ControlConfig | None = None,
) -> PerchConfig:
    """Load YAML config on top of *base* (defaults to env config).

    A missing path yields the base configuration unchanged.
    """
    control = base if base is not None else ControlConfig.from_env()
    if path is None:
        return PerchConfig(control=control)

    config_path = Path(path).expanduser()
    if not config_path.exists():
        logger.warning("Config file not found: %s (using defaults)", config_path)
        return PerchConfig(control=control)

    with open(config_path, encoding="utf-8") as fh:
        try:
            raw = yaml.safe_load(fh) or {}
        except yaml.YAMLError as exc:
            raise ValueError(f"{config_path}: {exc}") from exc
    if not isinstance(raw, dict):
        raise ValueError(f"{config_path}: top level must be a mapping")

    control_raw = raw.get("control") or {}
    if control_raw:
        _apply_control_section(control, control_raw)

    nudges = DEFAULT_PRESET_NUDGES
    if raw.get("nudges"):
        nudges = _parse_nudges(raw["nudges"])

    logger.info(
        "Loaded YAML config %s (control overrides=%d, nudges=%d)",
        config_path, len(control_raw), len(nudges),
    )
    return PerchConfig(control=control, nudges=nudges)
