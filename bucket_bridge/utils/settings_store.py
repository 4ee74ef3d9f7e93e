"""
JSON settings document.

A small key/value store persisted as one JSON file. Keys are dotted paths
into nested objects (``"ui.theme"``). Every mutation is written to disk
immediately.
"""

import copy
import json
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Dict, Optional

import structlog

logger = structlog.get_logger(__name__)

_MISSING = object()


class SettingsStore:
    """Persisted JSON document with dotted-path access."""

    def __init__(self, file_path: Path | str, defaults: Optional[Dict[str, Any]] = None):
        self.file_path = Path(file_path).expanduser()
        self.defaults = dict(defaults or {})
        self.data: Dict[str, Any] = self._load()

    def _load(self) -> Dict[str, Any]:
        """Load the document, falling back to defaults if it is missing or unreadable."""
        data = copy.deepcopy(self.defaults)
        if not self.file_path.exists():
            return data
        try:
            with open(self.file_path, "r", encoding="utf-8") as f:
                stored = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Failed to load settings document", path=str(self.file_path), error=str(e))
            return data

        if isinstance(stored, dict):
            data.update(stored)
        else:
            logger.warning("Settings document is not a JSON object, ignoring it", path=str(self.file_path))
        return data

    def _save(self) -> None:
        self.file_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.file_path, "w", encoding="utf-8") as f:
            json.dump(self.data, f, indent=2, default=str)

    def get(self, key: Optional[str] = None, default: Any = None) -> Any:
        """Value at a dotted path; the whole document when ``key`` is None."""
        if key is None:
            return self.data
        value: Any = self.data
        for part in key.split("."):
            if isinstance(value, dict) and part in value:
                value = value[part]
            else:
                return default
        return value

    def set(self, key: str | Mapping[str, Any], value: Any = None) -> None:
        """
        Set a value at a dotted path, creating intermediate objects.

        Passing a mapping instead of a key merges it into the top level.
        """
        if isinstance(key, Mapping):
            self.data.update(key)
        else:
            parts = key.split(".")
            current = self.data
            for part in parts[:-1]:
                if not isinstance(current.get(part), dict):
                    current[part] = {}
                current = current[part]
            current[parts[-1]] = value
        self._save()

    def delete(self, key: str) -> None:
        """Remove a dotted path; missing paths are ignored."""
        parts = key.split(".")
        current = self.data
        for part in parts[:-1]:
            current = current.get(part)
            if not isinstance(current, dict):
                return
        if parts[-1] in current:
            del current[parts[-1]]
            self._save()

    def has(self, key: str) -> bool:
        return self.get(key, _MISSING) is not _MISSING

    def clear(self) -> None:
        """Reset the document to its defaults."""
        self.data = copy.deepcopy(self.defaults)
        self._save()


__all__ = ["SettingsStore"]
