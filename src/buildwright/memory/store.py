"""Key/value persistence for everything learned across builds.

Timers and pattern facts only ever talk to a ``HistoryStore``; which one
backs them is decided by whoever builds the orchestrator.
"""

from __future__ import annotations

import copy
import json
import logging
import re
from pathlib import Path
from typing import Any, Protocol

from buildwright.utils import atomic_write_text

log = logging.getLogger(__name__)


class HistoryStore(Protocol):
    def get(self, key: str, default: Any = None) -> Any: ...

    def put(self, key: str, value: Any) -> None: ...


class InMemoryHistoryStore:
    """Dict-backed store for tests and dry runs."""

    def __init__(self) -> None:
        self._data: dict[str, Any] = {}

    def get(self, key: str, default: Any = None) -> Any:
        if key not in self._data:
            return default
        return copy.deepcopy(self._data[key])

    def put(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value)

    def keys(self) -> list[str]:
        return sorted(self._data)


class JsonHistoryStore:
    """One JSON document per key under a directory.

    ``patterns/abc123`` lands in ``<root>/patterns/abc123.json``. A file
    that can't be read comes back as *default* rather than an error.
    """

    def __init__(self, root: Path) -> None:
        self.root = root.expanduser()
        self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        parts = [re.sub(r"[^A-Za-z0-9_.-]", "_", p) for p in key.split("/") if p]
        if not parts or any(p in (".", "..") for p in parts):
            raise ValueError(f"Bad history key: {key!r}")
        return self.root.joinpath(*parts).with_suffix(".json")

    def get(self, key: str, default: Any = None) -> Any:
        path = self._path(key)
        if not path.exists():
            return default
        try:
            return json.loads(path.read_text())
        except (json.JSONDecodeError, OSError) as e:
            log.warning("Ignoring unreadable history %s: %s", path, e)
            return default

    def put(self, key: str, value: Any) -> None:
        atomic_write_text(self._path(key), json.dumps(value, indent=2))

    def keys(self) -> list[str]:
        return sorted(
            p.relative_to(self.root).with_suffix("").as_posix()
            for p in self.root.rglob("*.json")
        )
