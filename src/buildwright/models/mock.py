"""Mock Ollama client for dry runs and tests.

Returns deterministic canned responses so the whole build loop can be
exercised in seconds without touching a real model. Detects which agent
is calling by sniffing the system prompt and returns the matching
fixture, or the next scripted reply for that role when a script is given.
"""

from __future__ import annotations

import json
import logging
from collections import deque
from collections.abc import AsyncIterator

from buildwright.models.ollama import OllamaResponse

log = logging.getLogger(__name__)

# ── Canned response fixtures ──────────────────────────────────────── #

_GENERATOR_OUTPUT = """\
Implemented the requested piece.

---FILE-START path="src/components/Placeholder.tsx"---
export function Placeholder({ title }: { title: string }) {
  return (
    <div className="flex flex-col gap-4 p-6 rounded-lg bg-white shadow-sm">
      <h2 className="text-lg font-semibold text-slate-900">{title}</h2>
      <p className="text-sm text-slate-500">Coming soon.</p>
    </div>
  );
}
---FILE-END---

---TASK-COMPLETE---"""

_JUDGE_WORKING = json.dumps({
    "verdict": "WORKING",
    "diagnosis": "The page renders the expected content with no visible errors.",
})


# ── Agent detection ───────────────────────────────────────────────── #

def _detect_agent(messages: list[dict]) -> str:
    """Detect which agent is calling based on system prompt content."""
    system = ""
    for msg in messages:
        if msg.get("role") == "system":
            system = msg.get("content", "")
            break

    sys_lower = system.lower()
    if "you are the code generator" in sys_lower:
        return "generator"
    if "you are the verification judge" in sys_lower:
        return "judge"
    return "unknown"


_RESPONSES: dict[str, str] = {
    "generator": _GENERATOR_OUTPUT,
    "judge": _JUDGE_WORKING,
    "unknown": '{"status": "ok"}',
}


class MockOllamaClient:
    """Drop-in replacement for OllamaClient that returns canned responses.

    *script* maps a role ("generator", "judge") to replies handed out in
    order; an ``Exception`` instance in the queue is raised instead. Once a
    role's queue runs dry the canned fixture is used.
    """

    def __init__(self, script: dict[str, list] | None = None, **kwargs) -> None:
        self._script = {role: deque(replies) for role, replies in (script or {}).items()}
        self.calls: list[tuple[str, str]] = []  # (role, model)
        self.images_seen = 0

    def _next(self, role: str) -> str:
        queue = self._script.get(role)
        if queue:
            reply = queue.popleft()
            if isinstance(reply, BaseException):
                raise reply
            return reply
        return _RESPONSES.get(role, _RESPONSES["unknown"])

    async def chat(
        self,
        model: str,
        messages: list[dict],
        images: list[bytes] | None = None,
        format: str | dict | None = None,
        temperature: float | None = None,
        num_ctx: int | None = None,
        num_predict: int | None = None,
        timeout: int | None = None,
        retries: int = 2,
    ) -> OllamaResponse:
        """Return a canned response based on the detected agent."""
        agent = _detect_agent(messages)
        self.calls.append((agent, model))
        self.images_seen += len(images or [])
        content = self._next(agent)
        log.debug("MockOllama [%s] → %s (%d chars)", agent, model, len(content))
        return OllamaResponse(
            content=content,
            model=f"mock-{model}",
            total_duration=100_000,
            prompt_eval_count=10,
            eval_count=len(content) // 4,
        )

    async def chat_stream(
        self,
        model: str,
        messages: list[dict],
        images: list[bytes] | None = None,
        format: str | dict | None = None,
        temperature: float | None = None,
        num_ctx: int | None = None,
        num_predict: int | None = None,
        timeout: int | None = None,
    ) -> AsyncIterator[str]:
        """Yield the canned response as a stream of tokens."""
        response = await self.chat(model, messages, images=images)
        chunk_size = 20
        for i in range(0, len(response.content), chunk_size):
            yield response.content[i : i + chunk_size]

    def count(self, role: str) -> int:
        return sum(1 for r, _ in self.calls if r == role)

    async def health_check(self) -> bool:
        return True

    async def list_models(self) -> list[str]:
        return ["mock-model:latest"]

    async def close(self) -> None:
        log.debug("MockOllama closed after %d calls", len(self.calls))
