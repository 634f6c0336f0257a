import math

import pytest

from buildwright.config import MemoryConfig
from buildwright.memory import (
    InMemoryHistoryStore,
    JsonHistoryStore,
    MemoryStore,
    PatternLearner,
    SuggestionEngine,
    TimerEstimator,
)
from buildwright.memory.ledger import EventKind, Ledger
from buildwright.memory.patterns import FIRST_TASK_HINT, PatternFact, extract_facts
from buildwright.memory.suggestions import MAX_IMPROVEMENTS
from buildwright.project import Module, ModuleStatus, StepType, Task, TaskStatus
from buildwright.tools import classifier
from buildwright.utils import GeneratedFile

COMPONENT = GeneratedFile("src/features/Trails/TrailCard.tsx", """\
import { useState } from 'react';
import { MapPin } from 'lucide-react';
import { Card } from '../../components/ui';

export function TrailCard({ name }: { name: string }) {
  const [open, setOpen] = useState(false);
  return (
    <div className="flex gap-4 p-4 bg-white rounded-lg shadow-sm">
      <MapPin className="text-emerald-600" /> {name}
    </div>
  );
}
""")


# ── timers ──

def test_timer_starts_from_seed_and_moves_toward_observations():
    store = InMemoryHistoryStore()
    timers = TimerEstimator(store)
    assert timers.estimate(StepType.MODULE) == 30.0

    assert timers.record(StepType.MODULE, 60.0) == 45.0
    assert timers.snapshot()["module"]["samples"] == 2
    assert store.get("timers")["module"]["avg"] == 45.0

    reloaded = TimerEstimator(store)
    assert reloaded.estimate("module") == 45.0


def test_timer_window_turns_mean_into_exponential_average():
    timers = TimerEstimator(InMemoryHistoryStore(), window=2)
    for _ in range(10):
        timers.record(StepType.SHELL, 100.0)
    # alpha = 1/2 once the window is full, so it converges but never overshoots
    assert 99.0 < timers.estimate(StepType.SHELL) < 100.0


def test_timer_ignores_bogus_durations_and_bad_saved_entries():
    store = InMemoryHistoryStore()
    store.put("timers", {"module": {"avg": "soon"}, "shell": {"avg": -1, "samples": 3}})
    timers = TimerEstimator(store)
    assert timers.estimate(StepType.MODULE) == 30.0
    assert timers.estimate(StepType.SHELL) == 20.0

    timers.record(StepType.MODULE, -5)
    timers.record(StepType.MODULE, math.nan)
    assert timers.snapshot()["module"] == {"avg": 30.0, "samples": 1}


def test_estimate_remaining_counts_unfinished_tasks():
    timers = TimerEstimator(InMemoryHistoryStore())
    tasks = [
        Task(id="a", description="", step_type=StepType.MODULE, status=TaskStatus.WORKING),
        Task(id="b", description="", step_type=StepType.MODULE, status=TaskStatus.FIXING),
        Task(id="c", description="", step_type=StepType.INTEGRATION),
    ]
    assert timers.estimate_remaining(tasks) == 40.0


# ── patterns ──

def test_extract_facts_from_component():
    facts = set(extract_facts([COMPONENT]))
    assert ("component", "TrailCard") in facts
    assert ("import", "lucide-react") in facts
    assert ("import", "../../components/ui") not in facts
    assert ("layout", "flex") in facts
    assert ("color", "bg-white") in facts
    assert ("convention", "icons: Lucide React") in facts
    assert ("convention", "state: useState hooks") in facts
    assert ("convention", "styling: Tailwind CSS") in facts


def test_learning_reinforces_and_prompt_lists_strongest_facts():
    learner = PatternLearner(InMemoryHistoryStore())
    assert learner.format_for_prompt("p1") == FIRST_TASK_HINT

    learner.learn("p1", [COMPONENT])
    learner.learn("p1", [COMPONENT])
    card = next(f for f in learner.facts("p1") if f.value == "TrailCard")
    assert card.hits == 2

    prompt = learner.format_for_prompt("p1")
    assert prompt.startswith("## Project Patterns (maintain consistency)")
    assert "**Existing components:** TrailCard" in prompt
    # Projects don't share facts
    assert learner.format_for_prompt("p2") == FIRST_TASK_HINT


def test_learning_evicts_weakest_facts():
    store = InMemoryHistoryStore()
    learner = PatternLearner(store, max_facts=3)
    store.put("patterns/p1", [
        PatternFact("component", "Keeper", hits=50, last_seen=1.0).to_dict(),
    ])
    learner.learn("p1", [COMPONENT])
    facts = learner.facts("p1")
    assert len(facts) == 3
    assert "Keeper" in [f.value for f in facts]


# ── suggestions ──

def test_suggestions_for_complete_module_and_no_duplicates():
    module = Module(id="m", name="Trails", status=ModuleStatus.COMPLETE)
    engine = SuggestionEngine()
    first = engine.for_module(module)
    assert [s.kind for s in first] == ["improvement"] * MAX_IMPROVEMENTS
    module.suggestions.extend(first)

    second = engine.for_module(module)
    assert not {s.description for s in first} & {s.description for s in second}


def test_suggestions_warn_about_manual_failures_and_echo_conventions():
    task = Task(id="m-1", description="", status=TaskStatus.FAILED, last_error=classifier.aborted())
    module = Module(id="m", name="Trails", status=ModuleStatus.NEEDS_WORK, tasks=[task])
    learned = [PatternFact("convention", "styling: Tailwind CSS"), PatternFact("layout", "flex")]

    out = SuggestionEngine().for_module(module, learned)
    assert [s.kind for s in out] == ["warning", "pattern"]
    assert out[0].source == "m-1"
    assert "Tailwind" in out[1].description


# ── stores ──

def test_json_history_store(tmp_path):
    store = JsonHistoryStore(tmp_path / "mem")
    assert store.get("patterns/abc", []) == []
    store.put("patterns/abc", [{"kind": "import", "value": "react"}])
    store.put("timers", {"module": {"avg": 1.0, "samples": 2}})

    assert (tmp_path / "mem" / "patterns" / "abc.json").exists()
    assert store.get("patterns/abc") == [{"kind": "import", "value": "react"}]
    assert store.keys() == ["patterns/abc", "timers"]

    (tmp_path / "mem" / "timers.json").write_text("{not json")
    assert store.get("timers", "fallback") == "fallback"

    with pytest.raises(ValueError):
        store.put("../escape", 1)


def test_in_memory_store_copies_values():
    store = InMemoryHistoryStore()
    value = {"a": [1]}
    store.put("k", value)
    value["a"].append(2)
    assert store.get("k") == {"a": [1]}


def test_memory_store_learns_from_task(tmp_path):
    memory = MemoryStore(MemoryConfig(path=str(tmp_path / "mem")))
    facts = memory.learn_from_task("p1", StepType.SHELL, 40.0, [COMPONENT])
    assert any(f.value == "TrailCard" for f in facts)
    assert memory.timers.estimate(StepType.SHELL) == 30.0
    # Persisted through the default JSON store
    assert MemoryStore(MemoryConfig(path=str(tmp_path / "mem"))).timers.estimate("shell") == 30.0


# ── ledger ──

def test_ledger_filters_and_round_trips(tmp_path):
    ledger = Ledger()
    ledger.record(EventKind.TRANSITION, "a-1: queued → generating", module_id="a", task_id="a-1", to="generating")
    ledger.record(EventKind.ERROR, "boom", module_id="a", task_id="a-1")
    ledger.record(EventKind.TRANSITION, "a-1: generating → writing", module_id="a", task_id="a-1", to="writing")
    ledger.record(EventKind.SYSTEM, "other", module_id="b")

    assert ledger.transitions("a-1") == ["generating", "writing"]
    assert len(ledger.filter(module_id="a")) == 3
    assert len(ledger.filter(kind=EventKind.ERROR)) == 1

    path = tmp_path / "ledger.json"
    ledger.save(path)
    again = Ledger()
    again.load(path)
    assert again.count == 4
    first = again.filter(kind=EventKind.TRANSITION)[0]
    assert first.metadata == {"to": "generating"}
    assert again.transitions("a-1") == ["generating", "writing"]


def test_ledger_keeps_only_the_newest_events(tmp_path):
    ledger = Ledger(limit=3)
    for i in range(5):
        ledger.record(EventKind.SYSTEM, f"event {i}")
    assert ledger.count == 3
    assert [e.content for e in ledger.filter()] == ["event 2", "event 3", "event 4"]

    # An older, longer ledger file is cut down on load
    path = tmp_path / "ledger.json"
    unbounded = Ledger()
    for i in range(10):
        unbounded.record(EventKind.SYSTEM, f"old {i}")
    unbounded.save(path)

    resumed = Ledger(limit=4)
    resumed.load(path)
    resumed.record(EventKind.SYSTEM, "new")
    resumed.save(path)

    again = Ledger()
    again.load(path)
    assert [e.content for e in again.filter()] == ["old 7", "old 8", "old 9", "new"]
