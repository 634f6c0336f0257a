"""Pattern learner — remembers the look and structure of a project as it grows.

After each task that works, the generated files are mined for Tailwind
classes, component names, import sources and conventions. The strongest
facts are fed back into the next generation prompt so later modules stay
consistent with earlier ones.
"""

from __future__ import annotations

import logging
import re
import time
from dataclasses import asdict, dataclass, field

from buildwright.memory.store import HistoryStore
from buildwright.utils import GeneratedFile

log = logging.getLogger(__name__)

FIRST_TASK_HINT = "This is the first task - establish patterns for the project."

_CLASS_RE = re.compile(r"""class(?:Name)?=["'`{]+([^"'`}]+)["'`}]""")
_FUNC_COMPONENT_RE = re.compile(r"(?:export\s+)?(?:default\s+)?function\s+([A-Z][A-Za-z0-9]*)")
_CONST_COMPONENT_RE = re.compile(r"(?:export\s+)?const\s+([A-Z][A-Za-z0-9]*)\s*=\s*(?:\([^)]*\)|[\w]+)\s*=>")
_IMPORT_RE = re.compile(r"""import\s+(?:{[^}]+}|\*\s+as\s+\w+|\w+(?:\s*,\s*{[^}]+})?)\s+from\s+['"]([^'"]+)['"]""")

_COLOR_HINTS = ("bg-", "text-", "border-", "ring-", "from-", "to-", "via-")
_STYLE_HINTS = ("rounded", "shadow", "border", "ring", "outline", "transition", "animate", "hover:", "focus:")
_LAYOUT_HINTS = ("flex", "grid", "gap-", "space-", "p-", "px-", "py-", "m-", "mx-", "my-", "w-", "h-", "min-", "max-")

# Per kind, per learn() call; one big file shouldn't flush everything else
_PER_KIND = 10

_PROMPT_LABELS = {
    "color": "Color scheme",
    "style": "Component styles",
    "layout": "Layout patterns",
    "component": "Existing components",
    "import": "Imports in use",
    "convention": "Conventions",
}


@dataclass
class PatternFact:
    kind: str  # color, style, layout, component, import, convention
    value: str
    hits: int = 1
    last_seen: float = field(default_factory=time.time)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> PatternFact:
        return cls(**data)


def _dedupe(items) -> list[str]:
    return list(dict.fromkeys(items))


def extract_tailwind(code: str) -> dict[str, list[str]]:
    classes: list[str] = []
    for m in _CLASS_RE.finditer(code):
        classes.extend(c for c in m.group(1).split() if c)
    classes = _dedupe(classes)
    return {
        "color": [c for c in classes if any(h in c for h in _COLOR_HINTS)],
        "style": [c for c in classes if any(h in c for h in _STYLE_HINTS)],
        "layout": [c for c in classes if any(h in c for h in _LAYOUT_HINTS)],
    }


def extract_components(code: str) -> list[str]:
    names = [m.group(1) for m in _FUNC_COMPONENT_RE.finditer(code)]
    names += [m.group(1) for m in _CONST_COMPONENT_RE.finditer(code)]
    return _dedupe(names)


def extract_imports(code: str) -> list[str]:
    return _dedupe(m.group(1) for m in _IMPORT_RE.finditer(code))


def infer_conventions(code: str) -> list[str]:
    found: list[str] = []

    if "useReducer" in code:
        found.append("state: useReducer hooks")
    elif "useState" in code:
        found.append("state: useState hooks")
    elif "zustand" in code:
        found.append("state: Zustand")
    elif "redux" in code or "useDispatch" in code:
        found.append("state: Redux")

    if "className=" in code:
        if re.search(r"""class(?:Name)?=["'][^"']*(?:flex|grid|bg-|text-|p-|m-)""", code):
            found.append("styling: Tailwind CSS")
        else:
            found.append("styling: CSS classes")
    elif "styled." in code or "styled(" in code:
        found.append("styling: Styled Components")

    if "lucide-react" in code:
        found.append("icons: Lucide React")
    elif "react-icons" in code:
        found.append("icons: React Icons")
    elif "@heroicons" in code:
        found.append("icons: Heroicons")

    return found


def extract_facts(files: list[GeneratedFile]) -> list[tuple[str, str]]:
    """(kind, value) pairs found in a batch of generated files."""
    code = "\n".join(f.content for f in files)
    pairs: list[tuple[str, str]] = []
    for kind, values in extract_tailwind(code).items():
        pairs.extend((kind, v) for v in values[:_PER_KIND])
    pairs.extend(("component", v) for v in extract_components(code)[:_PER_KIND])
    pairs.extend(
        ("import", v) for v in extract_imports(code)
        if not v.startswith(".")
    )
    pairs.extend(("convention", v) for v in infer_conventions(code))
    return pairs


class PatternLearner:
    """Bounded per-project fact memory, persisted through a HistoryStore."""

    def __init__(self, store: HistoryStore, max_facts: int = 40) -> None:
        self.store = store
        self.max_facts = max_facts

    @staticmethod
    def _key(project_id: str) -> str:
        return f"patterns/{project_id}"

    def facts(self, project_id: str) -> list[PatternFact]:
        raw = self.store.get(self._key(project_id), []) or []
        facts: list[PatternFact] = []
        for d in raw:
            try:
                facts.append(PatternFact.from_dict(d))
            except TypeError:
                log.warning("Dropping malformed pattern fact: %r", d)
        return facts

    def learn(self, project_id: str, files: list[GeneratedFile]) -> list[PatternFact]:
        """Reinforce or add facts found in *files*. Returns the facts touched."""
        facts = self.facts(project_id)
        index = {(f.kind, f.value): f for f in facts}
        now = time.time()
        touched: list[PatternFact] = []

        for kind, value in extract_facts(files):
            fact = index.get((kind, value))
            if fact is None:
                fact = PatternFact(kind=kind, value=value, hits=1, last_seen=now)
                facts.append(fact)
                index[(kind, value)] = fact
            elif fact not in touched:
                fact.hits += 1
                fact.last_seen = now
            if fact not in touched:
                touched.append(fact)

        if len(facts) > self.max_facts:
            # Weakest first: fewest hits, then least recently seen
            ranked = sorted(facts, key=lambda f: (f.hits, f.last_seen))
            evicted = ranked[: len(facts) - self.max_facts]
            facts = [f for f in facts if f not in evicted]
            log.debug("Evicted %d pattern fact(s) for %s", len(evicted), project_id)

        try:
            self.store.put(self._key(project_id), [f.to_dict() for f in facts])
        except OSError as e:
            log.warning("Could not save pattern facts: %s", e)
        return [f for f in touched if f in facts]

    def format_for_prompt(self, project_id: str) -> str:
        facts = self.facts(project_id)
        if not facts:
            return FIRST_TASK_HINT

        lines: list[str] = []
        for kind, label in _PROMPT_LABELS.items():
            of_kind = sorted(
                (f for f in facts if f.kind == kind),
                key=lambda f: (-f.hits, -f.last_seen),
            )
            if of_kind:
                lines.append(f"**{label}:** {', '.join(f.value for f in of_kind[:10])}")
        return "## Project Patterns (maintain consistency)\n\n" + "\n".join(lines)
