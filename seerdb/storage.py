"""Data directory helpers shared by the key store and the persistence stores."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any


class PersistenceError(OSError):
    """The data directory or one of its files is unusable."""


def ensure_directory(path: Path) -> None:
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise PersistenceError(f"Failed to ensure data directory: {exc}") from exc


def read_json(path: Path) -> Any:
    """Return parsed JSON, or ``None`` when the file is missing or blank."""

    try:
        content = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
    except (OSError, UnicodeDecodeError) as exc:
        raise PersistenceError(f"Failed to read {path}: {exc}") from exc
    if not content.strip():
        return None
    try:
        return json.loads(content)
    except json.JSONDecodeError as exc:
        raise PersistenceError(f"Failed to parse {path}: {exc}") from exc


def write_json(path: Path, payload: Any) -> None:
    ensure_directory(path.parent)
    try:
        path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
    except OSError as exc:
        raise PersistenceError(f"Failed to write {path}: {exc}") from exc


__all__ = ["PersistenceError", "ensure_directory", "read_json", "write_json"]
