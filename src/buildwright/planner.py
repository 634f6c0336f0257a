"""Module planner — splits a product spec into ordered modules and tasks.

Fully deterministic: the same spec always gives the same plan, and no
model is involved. Anything inconsistent in the spec is a PlanningError.
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from buildwright.config import OrchestrationConfig
from buildwright.exceptions import PlanningError
from buildwright.project import Module, StepType, Task
from buildwright.utils import slugify

log = logging.getLogger(__name__)

FOUNDATION = ("contracts", "shell", "shared")

_STOP_WORDS = frozenset("""
    a an the and or but in on at to for of with by from as into through during
    before after above below between under again further then once here there
    when where why how all each few more most other some such only own same
    than too very just about using showing based that this these those which
    what who whom interactive feature functionality system tool tools
""".split())

# UI nouns that usually mean "one more component to build"
UI_NOUNS = (
    "form", "list", "table", "card", "modal", "dialog", "chart", "graph",
    "map", "calendar", "dashboard", "sidebar", "menu", "tab", "wizard",
    "gallery", "editor", "timeline", "feed", "search", "filter", "carousel",
)
_NOUN_RE = re.compile(r"\b(" + "|".join(UI_NOUNS) + r")s?\b", re.I)


@dataclass
class Feature:
    id: str
    title: str
    description: str = ""
    screens: list[str] = field(default_factory=list)
    components: list[str] = field(default_factory=list)


@dataclass
class Screen:
    name: str
    description: str = ""
    features: list[str] = field(default_factory=list)


@dataclass
class ProductSpec:
    name: str
    description: str = ""
    platform: str = "web"
    features: list[Feature] = field(default_factory=list)
    screens: list[Screen] = field(default_factory=list)
    data_model: dict[str, dict] = field(default_factory=dict)
    design: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> ProductSpec:
        if not isinstance(data, dict):
            raise PlanningError("Product spec must be a mapping")
        name = str(data.get("name") or "").strip()
        if not name:
            raise PlanningError("Product spec has no name")

        features: list[Feature] = []
        for i, raw in enumerate(data.get("features") or []):
            if isinstance(raw, str):
                raw = {"title": raw}
            title = str(raw.get("title") or "").strip()
            if not title:
                raise PlanningError(f"Feature #{i + 1} has no title")
            features.append(Feature(
                id=str(raw.get("id") or slugify(title)),
                title=title,
                description=str(raw.get("description") or ""),
                screens=list(raw.get("screens") or []),
                components=list(raw.get("components") or []),
            ))
        if not features:
            raise PlanningError(f"Product spec {name!r} has no features")

        screens = [
            Screen(
                name=str(s["name"]) if isinstance(s, dict) else str(s),
                description=str(s.get("description") or "") if isinstance(s, dict) else "",
                features=list(s.get("features") or []) if isinstance(s, dict) else [],
            )
            for s in data.get("screens") or []
        ]

        platform = str(data.get("platform") or "web")
        if platform not in ("web", "mobile", "both"):
            raise PlanningError(f"Unknown platform {platform!r}")

        return cls(
            name=name,
            description=str(data.get("description") or ""),
            platform=platform,
            features=features,
            screens=screens,
            data_model=dict(data.get("data_model") or {}),
            design=str(data.get("design") or ""),
        )

    def reference(self) -> str:
        """Short product summary handed to every generation prompt."""
        lines = [f"# {self.name} ({self.platform})"]
        if self.description:
            lines.append(self.description)
        if self.design:
            lines.append(f"Design intent: {self.design}")
        if self.screens:
            lines.append("Screens: " + ", ".join(s.name for s in self.screens))
        return "\n".join(lines)


def load_product_spec(path: Path) -> ProductSpec:
    """Load a product spec from YAML or JSON (JSON is valid YAML)."""
    try:
        data = yaml.safe_load(path.read_text())
    except OSError as e:
        raise PlanningError(f"Cannot read product spec {path}: {e}") from e
    except yaml.YAMLError as e:
        raise PlanningError(f"Product spec {path} is not valid YAML/JSON: {e}") from e
    return ProductSpec.from_dict(data)


def clean_module_name(title: str) -> str:
    """Short PascalCase name from a feature title.

    "Save hunting spots on interactive maps" → "SaveHuntingSpots"
    """
    words = [
        w for w in re.sub(r"[^a-z0-9\s]", "", title.lower()).split()
        if w not in _STOP_WORDS
    ]
    return "".join(w.capitalize() for w in words[:3]) or "Feature"


def _kebab(pascal: str) -> str:
    return slugify(re.sub(r"(?<=[a-z0-9])([A-Z])", r"-\1", pascal))


class ModulePlanner:
    """Turns a ProductSpec into the ordered module list of a project."""

    def __init__(self, config: OrchestrationConfig | None = None) -> None:
        self.config = config or OrchestrationConfig()

    def plan(self, spec: ProductSpec) -> list[Module]:
        self._check_links(spec)
        taken: set[str] = set(FOUNDATION) | {"integration", "simplify"}

        modules = [
            self._contracts(spec),
            self._shell(spec),
            self._shared(spec),
        ]
        feature_modules = []
        for feature in spec.features:
            module = self._feature(spec, feature, taken)
            feature_modules.append(module)
            modules.append(module)

        modules.append(self._integration(feature_modules))
        if self.config.simplify_pass:
            modules.append(self._simplify(modules))

        log.info(
            "Planned %d module(s), %d task(s) for %s",
            len(modules), sum(len(m.tasks) for m in modules), spec.name,
        )
        return modules

    # ── validation ──

    @staticmethod
    def _check_links(spec: ProductSpec) -> None:
        feature_ids = [f.id for f in spec.features]
        dupes = {i for i in feature_ids if feature_ids.count(i) > 1}
        if dupes:
            raise PlanningError(f"Duplicate feature id(s): {', '.join(sorted(dupes))}")
        screen_names = {s.name for s in spec.screens}
        for f in spec.features:
            for s in f.screens:
                if s not in screen_names:
                    raise PlanningError(f"Feature {f.id!r} references unknown screen {s!r}")
        for s in spec.screens:
            for fid in s.features:
                if fid not in feature_ids:
                    raise PlanningError(f"Screen {s.name!r} references unknown feature {fid!r}")

    # ── foundation modules ──

    @staticmethod
    def _single(
        module_id: str, name: str, step: StepType, description: str,
        acceptance: str, depends_on: list[str],
    ) -> Module:
        return Module(
            id=module_id,
            name=name,
            description=description,
            step_type=step,
            tasks=[Task(
                id=f"{module_id}-1",
                description=description,
                step_type=step,
                depends_on=list(depends_on),
                acceptance=acceptance,
            )],
        )

    def _contracts(self, spec: ProductSpec) -> Module:
        entities = []
        for entity, fields in spec.data_model.items():
            if isinstance(fields, dict) and fields:
                body = ", ".join(f"{k}: {v}" for k, v in fields.items())
                entities.append(f"{entity} {{{body}}}")
            else:
                entities.append(str(entity))
        desc = "Set up the React + Vite project scaffold and define the shared TypeScript types"
        desc += f" for: {'; '.join(entities)}" if entities else " the features will need"
        return self._single(
            "contracts", "Contracts", StepType.CONTRACTS, desc,
            "The dev server starts and the app renders with the new types in place.", [],
        )

    def _shell(self, spec: ProductSpec) -> Module:
        screens = [s.name for s in spec.screens] or [f.title for f in spec.features]
        desc = f"Build the {spec.name} app shell with layout and navigation between: {', '.join(screens)}"
        return self._single(
            "shell", "Shell", StepType.SHELL, desc,
            "The shell renders with a navigation entry for every screen.", ["contracts"],
        )

    def _shared(self, spec: ProductSpec) -> Module:
        desc = "Build the shared UI primitives (buttons, inputs, cards, layout helpers)"
        if spec.design:
            desc += f" following this design intent: {spec.design}"
        return self._single(
            "shared", "Shared UI", StepType.SHARED, desc,
            "The shared primitives compile and the app still renders.", ["contracts"],
        )

    # ── feature modules ──

    def _linked_screens(self, spec: ProductSpec, feature: Feature) -> list[str]:
        linked = [s.name for s in spec.screens if s.name in feature.screens or feature.id in s.features]
        return list(dict.fromkeys(linked))

    def _parts(self, spec: ProductSpec, feature: Feature) -> list[str]:
        """Everything that counts toward the component estimate, as names."""
        parts = list(dict.fromkeys(feature.components))
        parts += [f"{s} screen" for s in self._linked_screens(spec, feature)]
        nouns = dict.fromkeys(m.group(1).lower() for m in _NOUN_RE.finditer(feature.description))
        parts += [n for n in nouns]
        return parts

    def estimate_components(self, spec: ProductSpec, feature: Feature) -> int:
        return len(self._parts(spec, feature))

    def _feature(self, spec: ProductSpec, feature: Feature, taken: set[str]) -> Module:
        name = clean_module_name(feature.title)
        module_id = base = _kebab(name)
        n = 2
        while module_id in taken:
            module_id = f"{base}-{n}"
            n += 1
        taken.add(module_id)

        module = Module(
            id=module_id,
            name=name,
            description=feature.description or feature.title,
            step_type=StepType.MODULE,
        )
        parts = self._parts(spec, feature)
        deps = list(FOUNDATION)
        summary = f"{feature.title}: {feature.description}".rstrip(": .")

        if len(parts) < self.config.decompose_threshold:
            module.tasks.append(Task(
                id=f"{module_id}-1",
                description=f"Build the {name} feature. {summary}",
                step_type=StepType.MODULE,
                depends_on=deps,
                acceptance=f"The {name} page renders and does what it says: {summary}",
            ))
            return module

        count = min(max(math.ceil(len(parts) / 2), 2), self.config.max_subtasks)
        for i in range(count):
            mine = parts[i::count]
            last = i == count - 1
            pieces = ", ".join(mine) if mine else "any remaining pieces"
            desc = f"{summary}. Build: {pieces}."
            if last:
                desc += f" Then assemble the {name} page from all the parts built so far."
            module.tasks.append(Task(
                id=f"{module_id}-{i + 1}",
                description=desc,
                step_type=StepType.MODULE,
                subtask_index=i,
                depends_on=deps + [module_id],
                acceptance=(
                    f"The {name} page renders with every part working: {summary}" if last
                    else f"The new parts ({pieces}) compile and render without errors."
                ),
            ))
        log.debug("%s split into %d sub-tasks (estimate %d)", module_id, count, len(parts))
        return module

    # ── closing modules ──

    def _integration(self, features: list[Module]) -> Module:
        names = ", ".join(m.name for m in features)
        return self._single(
            "integration", "Integration", StepType.INTEGRATION,
            f"Wire the feature modules into the shell navigation and routes: {names}",
            "Every feature is reachable from the navigation and renders.",
            list(FOUNDATION) + [m.id for m in features],
        )

    def _simplify(self, modules: list[Module]) -> Module:
        return self._single(
            "simplify", "Simplify", StepType.SIMPLIFY,
            "Simplify the generated code without changing behaviour.",
            "The app behaves exactly as before.",
            [m.id for m in modules],
        )
