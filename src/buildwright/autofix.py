"""Corrective context for the next attempt after a BROKEN verdict.

Stateless: the attempt budget lives on the Task, this only builds text.
"""

from __future__ import annotations

import difflib
from dataclasses import dataclass, field

from buildwright.project import Task
from buildwright.tools.classifier import ErrorRecord, fix_prompt
from buildwright.utils import GeneratedFile

MAX_DIFF_CHARS = 6000


@dataclass
class AttemptRecord:
    """What an attempt generated and what those paths held before it."""

    number: int
    files: list[GeneratedFile] = field(default_factory=list)
    before: dict[str, str | None] = field(default_factory=dict)
    written: bool = False


def attempt_diff(previous: AttemptRecord, limit: int = MAX_DIFF_CHARS) -> str:
    """Unified diff of the attempt's files against the tree before it."""
    chunks: list[str] = []
    for f in previous.files:
        old = previous.before.get(f.path)
        diff = difflib.unified_diff(
            (old or "").splitlines(keepends=True),
            f.content.splitlines(keepends=True),
            fromfile=f"a/{f.path}" if old is not None else "/dev/null",
            tofile=f"b/{f.path}",
        )
        chunks.append("".join(diff))
    text = "".join(c if c.endswith("\n") else c + "\n" for c in chunks if c)
    if len(text) > limit:
        text = text[:limit] + "\n... (diff truncated)\n"
    return text


def build_corrective_context(
    task: Task,
    records: list[ErrorRecord],
    previous: AttemptRecord | None = None,
) -> str:
    """Prompt block telling the generator what broke and what it tried.

    Called once the next attempt has started, so ``task.attempts`` already
    counts it; the broken one is *previous*.
    """
    broken = previous.number if previous is not None else task.attempts - 1
    parts = [
        f"⚠️ **ATTEMPT {broken} WAS BROKEN — fix it (do NOT repeat the same mistake).**",
        f"\n**Original task:** {task.description}",
    ]

    if records:
        parts.append(f"\n**Errors found:**\n{fix_prompt(records)}")

    if previous is not None and previous.files:
        diff = attempt_diff(previous)
        label = "What your previous attempt changed"
        if not previous.written:
            label += " (it was NOT applied; the files on disk are unchanged)"
        if diff.strip():
            parts.append(f"\n**{label}:**\n```diff\n{diff}```")

    parts.append(
        "\nOutput the corrected files in full and end with the completion signal."
    )
    return "\n".join(parts)
