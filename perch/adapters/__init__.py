"""Adapters package - Bridge between the control engine and the outside.

This package contains the event bus, the gt/bd command executor, the
snapshot loader, and the effect runner that connects them to the TUI.
"""
from __future__ import annotations

__all__ = [
    "EventBus",
    "EffectRunner",
    "GasTownExecutor",
    "SnapshotLoader",
    "SubprocessRunner",
]

from perch.adapters.event_bus import EventBus
from perch.adapters.executor import GasTownExecutor, SubprocessRunner
from perch.adapters.loader import SnapshotLoader
from perch.adapters.runtime import EffectRunner
