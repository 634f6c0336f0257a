"""Memory system — what buildwright learns from one build to the next.

MemoryStore is the single entry point that wraps:
- TimerEstimator: per-step duration estimates, shared across projects
- PatternLearner: per-project style/structure facts for the prompt
- SuggestionEngine: advisory suggestions after a module run

Usage:
    memory = MemoryStore(config.memory)
    # ... a task reaches working ...
    facts = memory.learn_from_task(project.id, task.step_type, seconds, files)
"""

from __future__ import annotations

import logging
from pathlib import Path

from buildwright.config import MemoryConfig
from buildwright.memory.patterns import PatternFact, PatternLearner
from buildwright.memory.store import HistoryStore, InMemoryHistoryStore, JsonHistoryStore
from buildwright.memory.suggestions import SuggestionEngine
from buildwright.memory.timers import TimerEstimator
from buildwright.project import StepType
from buildwright.utils import GeneratedFile

log = logging.getLogger(__name__)

__all__ = [
    "HistoryStore",
    "InMemoryHistoryStore",
    "JsonHistoryStore",
    "MemoryStore",
    "PatternFact",
    "PatternLearner",
    "SuggestionEngine",
    "TimerEstimator",
]


class MemoryStore:
    """Unified facade over all memory layers."""

    def __init__(self, config: MemoryConfig, store: HistoryStore | None = None) -> None:
        self.config = config
        self.store = store if store is not None else JsonHistoryStore(Path(config.path))
        self.timers = TimerEstimator(self.store, window=config.timer_window)
        self.patterns = PatternLearner(self.store, max_facts=config.max_pattern_facts)
        self.suggestions = SuggestionEngine()

    def learn_from_task(
        self,
        project_id: str,
        step_type: StepType,
        seconds: float,
        files: list[GeneratedFile],
    ) -> list[PatternFact]:
        """Post-task learning: fold in the duration and mine the files.

        Returns the pattern facts seen in *files*.
        """
        self.timers.record(step_type, seconds)
        return self.patterns.learn(project_id, files)
