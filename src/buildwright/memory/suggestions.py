"""Advisory suggestions attached to a module after it's been built."""

from __future__ import annotations

from buildwright.memory.patterns import PatternFact
from buildwright.project import Module, ModuleStatus, Suggestion, TaskStatus

# (title, description); used when nothing better is known about the app
DEFAULT_CATALOGUE: list[tuple[str, str]] = [
    ("Add focus states to buttons", "Buttons lack visible focus indicators for keyboard navigation"),
    ("Add loading indicators", "No feedback when actions are processing"),
    ("Add smooth transitions", "Animations between states improve perceived quality"),
    ("Add empty states", "Lists and tables show nothing useful when there is no data yet"),
    ("Check colour contrast", "Low-contrast text is hard to read for many users"),
    ("Add keyboard shortcuts", "Frequent actions are faster with a shortcut"),
    ("Lazy-load images", "Off-screen images slow down the first render"),
]

MAX_IMPROVEMENTS = 3


class SuggestionEngine:
    """Turns a module run's outcome into suggestions. Never blocks a build."""

    def __init__(self, catalogue: list[tuple[str, str]] | None = None) -> None:
        self.catalogue = catalogue or DEFAULT_CATALOGUE

    def for_module(self, module: Module, learned: list[PatternFact] | None = None) -> list[Suggestion]:
        have = {s.description for s in module.suggestions}
        out: list[Suggestion] = []

        def add(kind: str, description: str, source: str) -> None:
            if description not in have:
                have.add(description)
                out.append(Suggestion(kind=kind, description=description, source=source))

        for task in module.tasks:
            err = task.last_error
            if task.status is TaskStatus.FAILED and err is not None and not err.auto_fixable:
                add("warning", f"{task.id}: {err.message} needs a manual look", task.id)

        for fact in learned or []:
            if fact.kind == "convention":
                add("pattern", f"Keep using {fact.value} in later modules", module.name)

        if module.status is ModuleStatus.COMPLETE:
            improvements = 0
            for title, detail in self.catalogue:
                if improvements >= MAX_IMPROVEMENTS:
                    break
                if f"{title}: {detail}" in have:
                    continue
                add("improvement", f"{title}: {detail}", module.name)
                improvements += 1

        return out
