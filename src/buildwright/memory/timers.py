"""Per-step duration estimates that adapt to how long builds really take."""

from __future__ import annotations

import logging
import math

from buildwright.memory.store import HistoryStore
from buildwright.project import StepType, Task

log = logging.getLogger(__name__)

STORE_KEY = "timers"

# Seconds; each seed counts as one sample
DEFAULT_SECONDS: dict[StepType, float] = {
    StepType.CONTRACTS: 15.0,
    StepType.SHELL: 20.0,
    StepType.SHARED: 25.0,
    StepType.MODULE: 30.0,
    StepType.INTEGRATION: 10.0,
    StepType.SIMPLIFY: 20.0,
}


class TimerEstimator:
    """Running mean per step type, turning into an exponential average
    once *window* samples have been seen.

    Purely advisory: nothing in the build waits on an estimate.
    """

    def __init__(self, store: HistoryStore, window: int = 20) -> None:
        self.store = store
        self.window = max(window, 1)
        self._stats: dict[str, dict] = {
            step.value: {"avg": secs, "samples": 1}
            for step, secs in DEFAULT_SECONDS.items()
        }
        saved = store.get(STORE_KEY, {}) or {}
        for step, stat in saved.items():
            try:
                avg = float(stat["avg"])
                samples = int(stat["samples"])
            except (KeyError, TypeError, ValueError):
                log.warning("Ignoring malformed timer entry for %r", step)
                continue
            if math.isfinite(avg) and avg >= 0 and samples >= 1:
                self._stats[step] = {"avg": avg, "samples": samples}

    def record(self, step_type: StepType | str, seconds: float) -> float:
        """Fold one observed duration into the estimate. Returns the new estimate."""
        step = StepType(step_type).value
        stat = self._stats[step]
        if not math.isfinite(seconds) or seconds < 0:
            log.debug("Ignoring bogus duration %r for %s", seconds, step)
            return stat["avg"]

        n = stat["samples"]
        stat["avg"] += (seconds - stat["avg"]) / min(n + 1, self.window)
        stat["samples"] = n + 1
        self._persist()
        return stat["avg"]

    def estimate(self, step_type: StepType | str) -> float:
        return self._stats[StepType(step_type).value]["avg"]

    def estimate_remaining(self, tasks: list[Task]) -> float:
        """Seconds left for the tasks that haven't finished yet."""
        return sum(self.estimate(t.step_type) for t in tasks if not t.status.terminal)

    def snapshot(self) -> dict[str, dict]:
        return {step: dict(stat) for step, stat in self._stats.items()}

    def _persist(self) -> None:
        try:
            self.store.put(STORE_KEY, self.snapshot())
        except OSError as e:
            # Learning should never break a build
            log.warning("Could not save timer estimates: %s", e)
