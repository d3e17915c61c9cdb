"""Key-value persistence collaborators for the progress store.

The store only needs ``get(key)`` and ``set(key, value)`` over strings. Two
backends are provided: an in-memory map for tests and throwaway sessions,
and a directory of JSON files under the project's storage dir.
"""

from __future__ import annotations

import json
import logging
import os
import re
from pathlib import Path
from typing import Dict, Optional, Protocol

logger = logging.getLogger("siteprogress.persistence")

STORAGE_DIR_ENV = "SITEPROGRESS_STORAGE_DIR"
DEFAULT_STORAGE_DIR = ".site-progress"

_SAFE_KEY = re.compile(r"^[A-Za-z0-9._-]+$")


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str) -> None:
        ...


class InMemoryKeyValueStore:
    """Dictionary-backed store; contents vanish with the process."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._values: Dict[str, str] = dict(initial or {})
        self.write_count = 0

    def get(self, key: str) -> Optional[str]:
        return self._values.get(key)

    def set(self, key: str, value: str) -> None:
        self._values[key] = value
        self.write_count += 1

    def keys(self):
        return list(self._values)


class JsonFileKeyValueStore:
    """Store each key as ``<key>.json`` inside a state directory."""

    def __init__(self, directory: Path | str):
        self.directory = Path(directory)
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error(f"Failed to create state directory {self.directory}: {e}")
            raise RuntimeError(f"Could not initialize storage at {self.directory}: {e}")

    @classmethod
    def for_root(cls, root: Path | str) -> "JsonFileKeyValueStore":
        """Open the state directory that belongs to a project root."""
        return cls(storage_dir(root) / "state")

    def path_for(self, key: str) -> Path:
        if not _SAFE_KEY.match(key):
            raise ValueError(f"Invalid storage key '{key}'")
        return self.directory / f"{key}.json"

    def get(self, key: str) -> Optional[str]:
        path = self.path_for(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def set(self, key: str, value: str) -> None:
        path = self.path_for(key)
        # Write beside the target and swap so a crash never leaves half a snapshot
        tmp_path = path.with_suffix(".json.tmp")
        tmp_path.write_text(value, encoding="utf-8")
        os.replace(tmp_path, path)
        logger.debug(f"Persisted {len(value)} bytes to {path}")


def storage_dir(root: Path | str) -> Path:
    """Resolve the storage directory for a project root."""
    name = os.getenv(STORAGE_DIR_ENV) or DEFAULT_STORAGE_DIR
    return Path(root).expanduser().resolve() / name


def dumps_snapshot(snapshot: Dict) -> str:
    return json.dumps(snapshot, ensure_ascii=False)
