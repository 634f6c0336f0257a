"""Workspace file I/O — generated files land here."""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass, field
from pathlib import Path

from buildwright.exceptions import ResourceError
from buildwright.utils import GeneratedFile, atomic_write_text, normalize_path

log = logging.getLogger(__name__)

IGNORED_DIRS = frozenset({"node_modules", ".git", "dist", ".buildwright"})


def _md5(text: str) -> str:
    return hashlib.md5(text.encode()).hexdigest()


@dataclass
class WriteReport:
    written: list[str] = field(default_factory=list)
    unchanged: list[str] = field(default_factory=list)

    @property
    def touched(self) -> list[str]:
        return self.written + self.unchanged


class FileMaterializer:
    """Writes generated files into the project tree, one file at a time.

    Each write goes through a temp file and a rename, so a failed write
    leaves the previous content in place.
    """

    def __init__(self, root: Path) -> None:
        self.root = root
        self.root.mkdir(parents=True, exist_ok=True)

    def _resolve(self, path: str) -> Path:
        clean = normalize_path(path)
        if clean is None:
            raise ResourceError(path, "path escapes the project root")
        return self.root / clean

    def write(self, path: str, content: str) -> Path:
        target = self._resolve(path)
        try:
            atomic_write_text(target, content)
        except OSError as e:
            raise ResourceError(path, e.strerror or str(e)) from e
        return target

    def apply(self, files: list[GeneratedFile]) -> WriteReport:
        """Write every file whose content differs from what's on disk."""
        report = WriteReport()
        for f in files:
            current = self.read(f.path)
            if current is not None and _md5(current) == _md5(f.content):
                report.unchanged.append(f.path)
                continue
            self.write(f.path, f.content)
            report.written.append(f.path)
        if report.unchanged:
            log.debug("Skipped %d unchanged file(s)", len(report.unchanged))
        return report

    def read(self, path: str) -> str | None:
        """Current content of *path*, or None when it doesn't exist."""
        target = self._resolve(path)
        if not target.is_file():
            return None
        return target.read_text(encoding="utf-8", errors="replace")

    def list_files(self) -> list[str]:
        """All project files (relative paths), skipping build/vendor dirs."""
        return sorted(
            p.relative_to(self.root).as_posix()
            for p in self.root.rglob("*")
            if p.is_file()
            and not IGNORED_DIRS.intersection(p.relative_to(self.root).parts)
        )

    def select_context(
        self, paths: list[str], max_files: int, max_chars: int,
    ) -> dict[str, str]:
        """Pick existing files for a generation prompt, bounded in size.

        Only *paths* are considered. The most recently touched ones (end of
        the list) win; a file that would blow the char budget is skipped.
        """
        selected: dict[str, str] = {}
        used = 0
        for path in reversed(paths):
            if len(selected) >= max_files:
                break
            content = self.read(path)
            if content is None:
                continue
            if used + len(content) > max_chars:
                log.debug("Context budget full, skipping %s", path)
                continue
            selected[path] = content
            used += len(content)
        # Back to declaration order for a stable prompt
        return {p: selected[p] for p in paths if p in selected}
