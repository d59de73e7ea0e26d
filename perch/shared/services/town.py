"""Town root inspection — is this directory a Gas Town?

Used by the first-run check and the attach dialog. A town root holds
``mayor/town.json`` with ``"type": "town"``.
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path


@dataclass(frozen=True)
class TownCheck:
    """Result of inspecting a candidate town path."""
    path: str
    valid: bool = False
    error: str = ""
    name: str = ""
    rig_count: int = 0
    suggestions: tuple[str, ...] = field(default_factory=tuple)


def expand_path(path: str) -> str:
    """Expand ``~`` and normalise. Empty input stays empty."""
    path = path.strip()
    if not path:
        return ""
    return str(Path(path).expanduser())


def town_exists(path: str) -> bool:
    """Cheap existence check: a .gt directory or a mayor directory."""
    root = Path(expand_path(path) or ".")
    return (root / ".gt").exists() or (root / "mayor").exists()


def count_rigs(root: Path) -> int:
    count = 0
    try:
        entries = list(root.iterdir())
    except OSError:
        return 0
    for entry in entries:
        if not entry.is_dir() or entry.name == "mayor" or entry.name.startswith("."):
            continue
        if (entry / "polecats").exists() or (entry / "rig.json").exists():
            count += 1
    return count


def find_suggestions(path: str, limit: int = 3) -> tuple[str, ...]:
    """Sibling directories whose names start with the last path component."""
    candidate = Path(path)
    parent, prefix = candidate.parent, candidate.name.lower()
    try:
        entries = sorted(parent.iterdir())
    except OSError:
        return ()
    matches = []
    for entry in entries:
        if entry.is_dir() and entry.name.lower().startswith(prefix):
            matches.append(str(entry))
            if len(matches) >= limit:
                break
    return tuple(matches)


def inspect_town(raw_path: str) -> TownCheck:
    """Validate *raw_path* as a town root."""
    path = expand_path(raw_path)
    if not path:
        return TownCheck(path="", error="Enter a path")
    root = Path(path)
    if not root.exists():
        return TownCheck(
            path=path,
            error="Directory does not exist",
            suggestions=find_suggestions(path),
        )
    if not root.is_dir():
        return TownCheck(path=path, error="Path is not a directory")

    town_json = root / "mayor" / "town.json"
    if not town_json.exists():
        return TownCheck(path=path, error="Not a Gas Town: mayor/town.json not found")
    try:
        data = json.loads(town_json.read_text(encoding="utf-8"))
    except OSError as exc:
        return TownCheck(path=path, error=f"Error reading town.json: {exc}")
    except json.JSONDecodeError as exc:
        return TownCheck(path=path, error=f"Invalid town.json: {exc}")
    if not isinstance(data, dict) or data.get("type") != "town":
        return TownCheck(path=path, error="Invalid town.json: type is not 'town'")

    return TownCheck(
        path=path,
        valid=True,
        name=str(data.get("name") or root.name),
        rig_count=count_rigs(root),
    )
