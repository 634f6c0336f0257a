"""Shared utilities — mostly dealing with generation output being sloppy."""

from __future__ import annotations

import json
import logging
import os
import re
import tempfile
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path, PurePosixPath

log = logging.getLogger(__name__)

FILE_BLOCK_RE = re.compile(
    r'---FILE-START\s*path="([^"]+)"\s*---\n?(.*?)---FILE-END---', re.DOTALL,
)
COMPLETE_MARKER = "---TASK-COMPLETE---"
FAILED_MARKER_RE = re.compile(r'---TASK-FAILED(?:\s+reason="([^"]*)")?\s*---')


class Marker(str, Enum):
    COMPLETE = "complete"
    FAILED = "failed"


@dataclass(frozen=True)
class GeneratedFile:
    path: str
    content: str


@dataclass
class Generation:
    """Parsed reply from the generation service."""

    files: list[GeneratedFile] = field(default_factory=list)
    marker: Marker | None = None
    reason: str = ""
    raw: str = ""

    @property
    def protocol_violation(self) -> bool:
        return self.marker is None


def parse_json_response(text: str) -> dict | None:
    """Extract JSON from an LLM response, handling the usual nonsense.

    Models love wrapping JSON in markdown fences, adding commentary
    before/after the JSON, or just generally being weird about it.
    """
    text = text.strip()
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass

    json_match = re.search(r"```(?:json)?\s*\n?(.*?)\n?\s*```", text, re.DOTALL)
    if json_match:
        try:
            return json.loads(json_match.group(1).strip())
        except json.JSONDecodeError:
            pass

    # Brute-force: find the outermost { ... }
    brace_start = text.find("{")
    if brace_start != -1:
        depth = 0
        for i in range(brace_start, len(text)):
            if text[i] == "{":
                depth += 1
            elif text[i] == "}":
                depth -= 1
                if depth == 0:
                    try:
                        return json.loads(text[brace_start : i + 1])
                    except json.JSONDecodeError:
                        break

    return None


def strip_markdown_fences(text: str) -> str:
    """Remove markdown code fences wrapped around file content.

    Handles ```tsx, ```json, plain ```, etc.
    """
    text = text.strip()
    text = re.sub(r"^```[a-zA-Z]*\s*\n?", "", text)
    text = re.sub(r"\n?```\s*$", "", text)
    return text.strip()


def normalize_path(path: str) -> str | None:
    """Clean a generated file path. Returns None for anything unsafe.

    Absolute paths and parent traversal would let a reply write outside
    the project tree.
    """
    path = path.strip().replace("\\", "/")
    if not path or path.startswith("/") or re.match(r"^[A-Za-z]:", path):
        return None
    parts = [p for p in PurePosixPath(path).parts if p not in ("", ".")]
    if not parts or ".." in parts:
        return None
    return "/".join(parts)


def parse_generation(text: str) -> Generation:
    """Parse file blocks and the completion marker from a generation reply.

    Expected format:
        ---FILE-START path="src/App.tsx"---
        <code>
        ---FILE-END---
        ---TASK-COMPLETE---      (or ---TASK-FAILED reason="..."---)

    Later blocks for the same path win. A reply without a marker comes back
    with ``marker=None``; callers treat that as a protocol violation.
    """
    by_path: dict[str, GeneratedFile] = {}
    for match in FILE_BLOCK_RE.finditer(text):
        path = normalize_path(match.group(1))
        if path is None:
            log.warning("Dropping generated file with unsafe path: %r", match.group(1))
            continue
        content = strip_markdown_fences(match.group(2))
        if content:
            by_path[path] = GeneratedFile(path=path, content=content + "\n")

    # Markers inside file bodies don't count, so look only outside blocks
    outside = FILE_BLOCK_RE.sub("", text)
    marker: Marker | None = None
    reason = ""
    failed = FAILED_MARKER_RE.search(outside)
    if failed:
        marker = Marker.FAILED
        reason = failed.group(1) or "Unknown error"
    elif COMPLETE_MARKER in outside:
        marker = Marker.COMPLETE

    return Generation(files=list(by_path.values()), marker=marker, reason=reason, raw=text)


def slugify(text: str) -> str:
    """Lowercase kebab-case slug."""
    slug = re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")
    return slug or "item"


def truncate(text: str, max_length: int = 500) -> str:
    """Truncate text for display, preserving meaning."""
    if len(text) <= max_length:
        return text
    return text[: max_length - 3] + "..."


def estimate_tokens(text: str) -> int:
    """Rough token estimate — content-aware.

    Code has more tokens per character than prose (~3 chars/token vs ~4).
    Detects code-heavy content by checking for common indicators.
    """
    code_indicators = ("function ", "const ", "import ", "return ", "  ", "{", "}", "=>")
    code_ratio = sum(1 for ind in code_indicators if ind in text) / len(code_indicators)
    chars_per_token = 3 if code_ratio > 0.3 else 4
    return len(text) // chars_per_token + 1


def atomic_write_text(path: Path, text: str) -> None:
    """Write *text* to *path* so readers see either the old or the new file.

    Writes a sibling temp file and renames it over the target. Raises
    ``OSError`` untouched; the temp file is cleaned up on failure.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
        os.replace(tmp, path)
    except BaseException:
        try:
            os.unlink(tmp)
        except OSError:
            pass
        raise
