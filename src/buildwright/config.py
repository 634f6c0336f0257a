"""Configuration loading and validation."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import yaml


@dataclass
class AgentConfig:
    model: str
    temperature: float = 0.3
    num_ctx: int | None = None
    num_predict: int | None = None
    timeout: int | None = None  # Per-agent override (seconds)


@dataclass
class OrchestrationConfig:
    max_attempts: int = 3
    decompose_threshold: int = 4
    max_subtasks: int = 4
    use_cheaper_models: bool = True
    simplify_pass: bool = False
    context_max_files: int = 12
    context_max_chars: int = 24000
    ledger_max_events: int = 5000


@dataclass
class OllamaConfig:
    base_url: str = "http://localhost:11434"
    timeout: int = 300
    keep_alive: str = "15m"


@dataclass
class PreviewConfig:
    command: str = "npm run dev -- --port {port} --strictPort"
    host: str = "127.0.0.1"
    port: int = 5173
    startup_timeout: float = 30.0
    stop_timeout: float = 5.0
    settle_delay: float = 1.0
    console_lines: int = 400


@dataclass
class InstallConfig:
    enabled: bool = True
    command: str = "npm install"
    timeout: float = 300.0


@dataclass
class ScreenshotConfig:
    enabled: bool = True
    width: int = 1280
    height: int = 800
    timeout: float = 20.0


@dataclass
class MemoryConfig:
    path: str = "~/.buildwright"
    max_pattern_facts: int = 40
    timer_window: int = 20


DEFAULTS: dict[str, AgentConfig] = {
    "generator": AgentConfig(model="qwen2.5-coder:14b", temperature=0.2, num_ctx=16384),
    "generator_fast": AgentConfig(model="qwen2.5-coder:7b", temperature=0.2, num_ctx=16384),
    "judge": AgentConfig(model="llava:13b", temperature=0.1),
}

# Templated steps that are cheap enough for the fast model
FAST_STEPS = frozenset({"contracts", "shell", "shared", "integration"})


@dataclass
class Config:
    agents: dict[str, AgentConfig] = field(default_factory=lambda: dict(DEFAULTS))
    orchestration: OrchestrationConfig = field(default_factory=OrchestrationConfig)
    ollama: OllamaConfig = field(default_factory=OllamaConfig)
    preview: PreviewConfig = field(default_factory=PreviewConfig)
    install: InstallConfig = field(default_factory=InstallConfig)
    screenshots: ScreenshotConfig = field(default_factory=ScreenshotConfig)
    memory: MemoryConfig = field(default_factory=MemoryConfig)

    def agent_for_step(self, step_type: str) -> AgentConfig:
        """Pick the generator config for a build step (model routing)."""
        if self.orchestration.use_cheaper_models and step_type in FAST_STEPS:
            fast = self.agents.get("generator_fast")
            if fast is not None:
                return fast
        return self.agents["generator"]


def load_config(path: Path | None = None) -> Config:
    """Load config from YAML, falling back to defaults for missing values."""
    if path is None:
        path = Path("buildwright.yaml")

    if not path.exists():
        return Config()

    with open(path) as f:
        raw = yaml.safe_load(f)

    if raw is None:
        return Config()

    # Named agents override defaults one by one
    agents: dict[str, AgentConfig] = dict(DEFAULTS)
    for name, agent_data in raw.get("agents", {}).items():
        agents[name] = AgentConfig(**agent_data)

    return Config(
        agents=agents,
        orchestration=OrchestrationConfig(**raw.get("orchestration", {})),
        ollama=OllamaConfig(**raw.get("ollama", {})),
        preview=PreviewConfig(**raw.get("preview", {})),
        install=InstallConfig(**raw.get("install", {})),
        screenshots=ScreenshotConfig(**raw.get("screenshots", {})),
        memory=MemoryConfig(**raw.get("memory", {})),
    )
