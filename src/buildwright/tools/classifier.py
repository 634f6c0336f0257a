"""Error classifier — turns raw build/console output into typed records.

Deterministic and rule-based. Each rule knows the shape of one tool's
output (npm, tsc, vite, the browser runtime) and how to pull the useful
bits out of it. Anything with error keywords that no rule recognises
becomes a single ``unknown`` record so the fix loop still has something
to work with.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import asdict, dataclass
from enum import Enum

ANSI_RE = re.compile(r"\x1B\[[0-9;]*[a-zA-Z]")
_RAW_LIMIT = 500


class ErrorCategory(str, Enum):
    DEPENDENCY = "dependency"
    TYPE_CHECK = "type-check"
    BUNDLER = "bundler"
    RUNTIME = "runtime"
    UNKNOWN = "unknown"

    @property
    def auto_fixable(self) -> bool:
        """Static default; specific runtime rules override it."""
        return self in (ErrorCategory.DEPENDENCY, ErrorCategory.TYPE_CHECK, ErrorCategory.BUNDLER)


@dataclass(frozen=True)
class ErrorRecord:
    category: ErrorCategory
    kind: str
    message: str
    file: str | None = None
    line: int | None = None
    column: int | None = None
    suggestion: str | None = None
    auto_fixable: bool = False
    raw: str = ""

    @property
    def location(self) -> str:
        if not self.file:
            return ""
        if self.line is None:
            return self.file
        if self.column is None:
            return f"{self.file}:{self.line}"
        return f"{self.file}:{self.line}:{self.column}"

    def to_dict(self) -> dict:
        d = asdict(self)
        d["category"] = self.category.value
        return d

    @classmethod
    def from_dict(cls, data: dict) -> ErrorRecord:
        data = data.copy()
        data["category"] = ErrorCategory(data["category"])
        return cls(**data)


@dataclass(frozen=True)
class _Rule:
    category: ErrorCategory
    kind: str
    pattern: re.Pattern
    extract: Callable[[re.Match, str], dict]
    auto_fixable: bool


def _ts_type_error(m: re.Match, raw: str) -> dict:
    loc = re.search(r"([^\s(]+\.tsx?)\((\d+),(\d+)\)", raw) or re.search(
        r"([^\s:]+\.tsx?):(\d+):(\d+)", raw,
    )
    return {
        "message": f"TS{m.group(1)}: {m.group(2).strip()}",
        "file": loc.group(1) if loc else None,
        "line": int(loc.group(2)) if loc else None,
        "column": int(loc.group(3)) if loc else None,
    }


_RULES: list[_Rule] = [
    # ── dependency (npm) ──
    _Rule(
        ErrorCategory.DEPENDENCY, "module_not_found",
        re.compile(r"npm ERR! 404 Not Found.*?'([^']+)'", re.I | re.S),
        lambda m, _: {
            "message": f"Package '{m.group(1)}' not found",
            "suggestion": "Check package name spelling or try a different version",
        },
        True,
    ),
    _Rule(
        ErrorCategory.DEPENDENCY, "peer_dependency",
        re.compile(r"npm WARN peer dep missing: ([^,\n]+)", re.I),
        lambda m, _: {
            "message": f"Missing peer dependency: {m.group(1).strip()}",
            "suggestion": "Install the missing peer dependency",
        },
        True,
    ),
    _Rule(
        ErrorCategory.DEPENDENCY, "version_conflict",
        re.compile(r"npm ERR! ERESOLVE.*?Could not resolve dependency", re.I | re.S),
        lambda m, _: {
            "message": "Dependency version conflict",
            "suggestion": "Align package versions or install with --legacy-peer-deps",
        },
        True,
    ),
    _Rule(
        ErrorCategory.DEPENDENCY, "enoent",
        re.compile(r"npm ERR! enoent ENOENT.*?'([^']+)'", re.I | re.S),
        lambda m, _: {
            "message": f"File not found: {m.group(1)}",
            "suggestion": "Check file paths and ensure package.json exists",
        },
        False,
    ),
    _Rule(
        ErrorCategory.DEPENDENCY, "command_not_found",
        re.compile(r"\b(?:sh|bash|zsh)(?:: line \d+)?(?:: \d+)?: ([\w./@-]+): (?:command )?not found"),
        lambda m, _: {
            "message": f"Command '{m.group(1)}' not found",
            "suggestion": (
                f"Make sure package.json lists the package that provides '{m.group(1)}' "
                "and that dependencies are installed"
            ),
        },
        True,
    ),
    # ── type-check (tsc) ──
    _Rule(
        ErrorCategory.TYPE_CHECK, "type_error",
        re.compile(r"error TS(\d+): ([^\n]+)"),
        _ts_type_error,
        True,
    ),
    _Rule(
        ErrorCategory.TYPE_CHECK, "cannot_find_module",
        re.compile(r"Cannot find module '([^']+)'"),
        lambda m, _: {
            "message": f"Cannot find module '{m.group(1)}'",
            "suggestion": f"Install the module or fix the import path for '{m.group(1)}'",
        },
        True,
    ),
    _Rule(
        ErrorCategory.TYPE_CHECK, "cannot_find_name",
        re.compile(r"Cannot find name '([^']+)'"),
        lambda m, _: {
            "message": f"Cannot find name '{m.group(1)}'",
            "suggestion": f"Import or define '{m.group(1)}'",
        },
        True,
    ),
    _Rule(
        ErrorCategory.TYPE_CHECK, "property_not_exist",
        re.compile(r"Property '([^']+)' does not exist on type '([^']+)'"),
        lambda m, _: {
            "message": f"Property '{m.group(1)}' does not exist on type '{m.group(2)}'",
            "suggestion": "Add the property to the type or use the correct property name",
        },
        True,
    ),
    _Rule(
        ErrorCategory.TYPE_CHECK, "missing_return",
        re.compile(r"A function whose declared type is neither '(?:void|undefined)' nor 'any' must return a value"),
        lambda m, _: {
            "message": "Function missing return statement",
            "suggestion": "Add a return statement or change the return type to void",
        },
        True,
    ),
    # ── bundler (vite) ──
    _Rule(
        ErrorCategory.BUNDLER, "syntax_error",
        re.compile(r"SyntaxError: ([^\n]+)\n\s*at ([^\s]+?):(\d+):(\d+)"),
        lambda m, _: {
            "message": f"Syntax error: {m.group(1).strip()}",
            "file": m.group(2),
            "line": int(m.group(3)),
            "column": int(m.group(4)),
        },
        True,
    ),
    _Rule(
        ErrorCategory.BUNDLER, "failed_resolve",
        re.compile(r'Failed to resolve import "([^"]+)" from "([^"]+)"'),
        lambda m, _: {
            "message": f"Failed to resolve import '{m.group(1)}'",
            "file": m.group(2),
            "suggestion": "Check the import path or add the missing package",
        },
        True,
    ),
    _Rule(
        ErrorCategory.BUNDLER, "build_failed",
        re.compile(r"error during build:\n([^\n]+)"),
        lambda m, _: {"message": f"Build failed: {m.group(1).strip()}"},
        True,
    ),
    _Rule(
        ErrorCategory.BUNDLER, "transform_failed",
        re.compile(r"\[plugin:([\w:-]+)\] ([^\n]+?)(?:\n\s*|\s+)([^\s]+\.[jt]sx?):(\d+):(\d+)"),
        lambda m, _: {
            "message": f"{m.group(1)}: {m.group(2).strip()}",
            "file": m.group(3),
            "line": int(m.group(4)),
            "column": int(m.group(5)),
        },
        True,
    ),
    # ── runtime (browser) ──
    _Rule(
        ErrorCategory.RUNTIME, "undefined_variable",
        re.compile(r"ReferenceError: ([^\s]+) is not defined"),
        lambda m, _: {
            "message": f"'{m.group(1)}' is not defined",
            "suggestion": f"Import or define '{m.group(1)}'",
        },
        True,
    ),
    _Rule(
        ErrorCategory.RUNTIME, "cannot_read_property",
        re.compile(r"TypeError: Cannot read propert(?:y|ies) of (\w+)(?: \(reading '([^']+)'\))?"),
        lambda m, _: {
            "message": (
                f"Cannot read property '{m.group(2)}' of {m.group(1)}" if m.group(2)
                else f"Cannot read property of {m.group(1)}"
            ),
            "suggestion": "Add a null/undefined check before accessing the property",
        },
        True,
    ),
    _Rule(
        ErrorCategory.RUNTIME, "is_not_a_function",
        re.compile(r"TypeError: ([^\s]+) is not a function"),
        lambda m, _: {
            "message": f"'{m.group(1)}' is not a function",
            "suggestion": "Check the value is a function (and imported correctly) before calling it",
        },
        True,
    ),
    _Rule(
        ErrorCategory.RUNTIME, "react_hooks_error",
        re.compile(r"Invalid hook call|Hooks can only be called inside of the body of a function component"),
        lambda m, _: {
            "message": "Invalid React hook call",
            "suggestion": "Call hooks at the top level of a function component",
        },
        True,
    ),
    _Rule(
        ErrorCategory.RUNTIME, "react_key_error",
        re.compile(r'Each child in a list should have a unique "key" prop'),
        lambda m, _: {
            "message": "Missing key prop in list",
            "suggestion": "Add a unique key prop to each item in the list",
        },
        True,
    ),
    _Rule(
        ErrorCategory.RUNTIME, "uncaught_exception",
        re.compile(r"Uncaught (?:\(in promise\) )?(\w*Error): ([^\n]+)"),
        lambda m, _: {"message": f"{m.group(1)}: {m.group(2).strip()}"},
        ErrorCategory.RUNTIME.auto_fixable,
    ),
]

_ERROR_WORDS = re.compile(r"error|failed|exception", re.I)


def strip_ansi(text: str) -> str:
    return ANSI_RE.sub("", text)


def classify(output: str) -> list[ErrorRecord]:
    """Map raw diagnostic text to a list of typed error records.

    Every rule gets one shot at the whole text; a rule that matches yields
    exactly one record. Returns ``[]`` for clean output.
    """
    if not output or not output.strip():
        return []

    clean = strip_ansi(output)
    raw = clean[:_RAW_LIMIT]
    records: list[ErrorRecord] = []

    for rule in _RULES:
        m = rule.pattern.search(clean)
        if not m:
            continue
        fields = rule.extract(m, clean)
        records.append(ErrorRecord(
            category=rule.category,
            kind=rule.kind,
            message=fields.get("message") or "Unknown error",
            file=fields.get("file"),
            line=fields.get("line"),
            column=fields.get("column"),
            suggestion=fields.get("suggestion"),
            auto_fixable=rule.auto_fixable,
            raw=raw,
        ))

    if not records and _ERROR_WORDS.search(clean):
        records.append(ErrorRecord(
            category=ErrorCategory.UNKNOWN,
            kind="unrecognized",
            message=_extract_error_message(clean),
            auto_fixable=ErrorCategory.UNKNOWN.auto_fixable,
            raw=raw,
        ))

    return records


def _extract_error_message(output: str) -> str:
    """Find the most relevant error line in unrecognised output."""
    lines = output.split("\n")
    for line in lines:
        lower = line.lower()
        if "error" in lower and "0 errors" not in lower:
            return line.strip()[:200]
    for line in lines:
        if len(line.strip()) > 10:
            return line.strip()[:200]
    return "Unknown error"


def summarize(records: list[ErrorRecord]) -> str:
    """Human-readable one-liner for the error summary."""
    if not records:
        return "No errors detected"
    if len(records) == 1:
        return records[0].message

    counts: dict[str, int] = {}
    for r in records:
        counts[r.category.value] = counts.get(r.category.value, 0) + 1
    return ", ".join(
        f"{n} {cat} error{'s' if n > 1 else ''}" for cat, n in counts.items()
    )


def quick_fix(record: ErrorRecord) -> str | None:
    """Shell command that fixes the error outright, when there is one."""
    if record.kind in ("module_not_found", "cannot_find_module"):
        m = re.search(r"'([^']+)'", record.message)
        if m and not m.group(1).startswith((".", "/", "@/")):
            return f"npm install {m.group(1)}"
        return None
    if record.kind == "peer_dependency":
        m = re.search(r": (.+)$", record.message)
        return f"npm install {m.group(1)}" if m else None
    if record.kind == "version_conflict":
        return "npm install --legacy-peer-deps"
    if record.kind == "command_not_found":
        return "npm install"
    return None


def fix_prompt(records: list[ErrorRecord]) -> str:
    """Format records as the error list of a corrective prompt."""
    lines: list[str] = []
    for r in records:
        desc = f"- {r.category.value.upper()} [{r.kind}]: {r.message}"
        if r.location:
            desc += f" (in {r.location})"
        if r.suggestion:
            desc += f"\n  Suggestion: {r.suggestion}"
        fix = quick_fix(r)
        if fix:
            desc += f"\n  Quick fix: {fix}"
        lines.append(desc)
    return "\n".join(lines)


# ── Records that don't come from tool output ──────────────────────── #

def protocol_violation(raw: str) -> ErrorRecord:
    return ErrorRecord(
        category=ErrorCategory.UNKNOWN,
        kind="protocol_violation",
        message="Generation reply had no completion marker",
        suggestion="End the reply with ---TASK-COMPLETE--- or ---TASK-FAILED reason=\"...\"---",
        auto_fixable=True,
        raw=raw[-_RAW_LIMIT:],
    )


def no_files(raw: str) -> ErrorRecord:
    return ErrorRecord(
        category=ErrorCategory.UNKNOWN,
        kind="no_files",
        message="Generation reply contained no file blocks",
        suggestion='Wrap every file in ---FILE-START path="..."--- / ---FILE-END---',
        auto_fixable=True,
        raw=raw[-_RAW_LIMIT:],
    )


def generation_failed(reason: str, raw: str) -> list[ErrorRecord]:
    """Records for an explicit ---TASK-FAILED--- reply."""
    records = classify(reason)
    if records:
        return records
    return [ErrorRecord(
        category=ErrorCategory.UNKNOWN,
        kind="generation_failed",
        message=f"Generator gave up: {reason}",
        auto_fixable=ErrorCategory.UNKNOWN.auto_fixable,
        raw=raw[-_RAW_LIMIT:],
    )]


def preview_unreachable(output: str) -> list[ErrorRecord]:
    """Records for a preview that never opened its port.

    Classified from the server's own output when it says anything useful
    (a missing tool, a bundler or runtime crash); otherwise a plain
    bundler record.
    """
    records = [
        r for r in classify(output)
        if r.category in (ErrorCategory.DEPENDENCY, ErrorCategory.BUNDLER, ErrorCategory.RUNTIME)
    ]
    if records:
        return records
    return [ErrorRecord(
        category=ErrorCategory.BUNDLER,
        kind="preview_unreachable",
        message="Preview server did not open its port in time",
        suggestion="Check the dev server output for a crash at startup",
        auto_fixable=ErrorCategory.BUNDLER.auto_fixable,
        raw=strip_ansi(output)[-_RAW_LIMIT:],
    )]


def install_failure(output: str) -> list[ErrorRecord]:
    """Records for a failed dependency install. Always ``dependency``."""
    records = [r for r in classify(output) if r.category is ErrorCategory.DEPENDENCY]
    if records:
        return records
    return [ErrorRecord(
        category=ErrorCategory.DEPENDENCY,
        kind="install_failed",
        message=f"Dependency install failed: {_extract_error_message(strip_ansi(output))}",
        suggestion="Check package.json for misspelled packages or versions that don't exist",
        auto_fixable=ErrorCategory.DEPENDENCY.auto_fixable,
        raw=strip_ansi(output)[-_RAW_LIMIT:],
    )]


def transport_failure(exc: BaseException) -> ErrorRecord:
    return ErrorRecord(
        category=ErrorCategory.UNKNOWN,
        kind="transport_error",
        message=f"Generation service call failed: {exc}",
        auto_fixable=ErrorCategory.UNKNOWN.auto_fixable,
        raw=str(exc)[:_RAW_LIMIT],
    )


def aborted() -> ErrorRecord:
    return ErrorRecord(
        category=ErrorCategory.UNKNOWN,
        kind="aborted",
        message="Build aborted by user",
        suggestion="Retry the task to resume the module",
        auto_fixable=False,
    )


def resource_failure(path: str, reason: str) -> ErrorRecord:
    return ErrorRecord(
        category=ErrorCategory.UNKNOWN,
        kind="resource_error",
        message=f"Could not write {path}: {reason}",
        file=path,
        auto_fixable=False,
    )
