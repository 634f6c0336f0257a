"""Code generator — turns one task into a set of files for the app."""

from __future__ import annotations

import logging

from buildwright.agents.base import BaseAgent
from buildwright.project import Module, StepType, Task
from buildwright.utils import Generation, parse_generation

log = logging.getLogger(__name__)

SYSTEM_PROMPT = """\
You are the Code Generator for a React 18 + TypeScript + Vite + Tailwind CSS app.

RULE 1 — OUTPUT FORMAT (exactly this, no markdown fences around blocks):

---FILE-START path="src/components/ComponentName.tsx"---
<complete file content>
---FILE-END---

Repeat the block for every file you create or change.

RULE 2 — COMPLETION SIGNAL:
After all files, end your reply with ONE of:
---TASK-COMPLETE---
---TASK-FAILED reason="brief explanation"---
A reply without a completion signal is discarded.

RULE 3 — COMPLETE FILES ONLY:
- Every file must be complete and runnable. No placeholders, no TODOs.
- Output the FULL final version of each file you modify, never a diff.
- Only output files you are creating or changing.

RULE 4 — PROJECT CONVENTIONS:
- Import shared types from '@/types'
- Import shared UI from '@/components/ui'
- Any npm package you import must be listed in package.json
- Keep to the patterns already established in the project.\
"""

# What each build step is expected to produce
STEP_GUIDANCE: dict[StepType, str] = {
    StepType.CONTRACTS: (
        "This is the first step, so the app must be runnable afterwards. "
        "Create the Vite scaffold: package.json (react, react-dom, vite, "
        "@vitejs/plugin-react, typescript, tailwindcss, postcss, autoprefixer, "
        'with a "dev": "vite" script), index.html, vite.config.ts (React plugin, '
        "'@' alias for src), tsconfig.json, tailwind.config.js, postcss.config.js, "
        "src/index.css with the Tailwind directives, src/main.tsx and a minimal "
        "src/App.tsx. Then write the shared TypeScript types in "
        "src/types/index.ts from the data model."
    ),
    StepType.SHELL: (
        "Write the app shell: src/App.tsx with layout, navigation and routing "
        "between the screens. Keep the existing scaffold; if you import a new "
        "package, add it to package.json."
    ),
    StepType.SHARED: (
        "Write the shared UI primitives under src/components/ui/ (Button, Card, "
        "Input, ...) with an index.ts barrel."
    ),
    StepType.MODULE: (
        "Build this feature under src/features/<Module>/. Reuse shared types "
        "and UI primitives instead of redefining them."
    ),
    StepType.INTEGRATION: (
        "Wire the finished feature modules into the app shell navigation and "
        "routes. Do not rewrite the features themselves."
    ),
    StepType.SIMPLIFY: (
        "Simplify the existing code without changing behaviour: remove "
        "duplication, dead code and needless nesting."
    ),
}


class CodeGenerator(BaseAgent):
    """Prompts the generation service for one task and parses the reply."""

    def __init__(self, *args, stream: bool = False, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.stream = stream

    @property
    def system_prompt(self) -> str:
        return SYSTEM_PROMPT

    def build_prompt(
        self,
        module: Module,
        task: Task,
        files: dict[str, str] | None = None,
        patterns: str = "",
        corrective: str = "",
        reference: str = "",
    ) -> str:
        # ── Prompt ordering: least → most important (recency bias) ──
        # Order: reference → existing files → patterns → corrective → TASK
        prompt = ""

        if reference:
            prompt += f"\n**Product reference:**\n{reference}\n\n---\n\n"

        if files:
            existing = "".join(
                f'\n---FILE-START path="{path}"---\n{content.rstrip()}\n---FILE-END---\n'
                for path, content in files.items()
            )
            prompt += (
                "\n**Current project files (keep everything that already "
                "works; output a file only if you change it):**\n"
                f"{existing}\n"
            )

        if patterns:
            prompt += f"\n**Established project patterns:**\n{patterns}\n\n"

        if corrective:
            prompt += f"\n{corrective}\n\n"

        part = ""
        if task.subtask_index is not None:
            total = sum(1 for t in module.tasks if t.subtask_index is not None)
            part = f" (part {task.subtask_index + 1} of {total})"

        prompt += (
            f"\nImplement this task{part}:\n\n"
            f"**Module:** {module.name}\n"
            f"**Step:** {task.step_type.value} — {STEP_GUIDANCE[task.step_type]}\n"
            f"**Task:** {task.description}\n"
        )
        if task.acceptance:
            prompt += f"**Done when:** {task.acceptance}\n"
        return prompt

    async def generate(
        self,
        module: Module,
        task: Task,
        files: dict[str, str] | None = None,
        patterns: str = "",
        corrective: str = "",
        reference: str = "",
    ) -> Generation:
        prompt = self.build_prompt(module, task, files, patterns, corrective, reference)
        if self.stream:
            raw = await self.think_stream(prompt)
        else:
            raw = await self.think(prompt)

        generation = parse_generation(raw)
        log.debug(
            "%s: %d file(s), marker=%s",
            task.id, len(generation.files),
            generation.marker.value if generation.marker else None,
        )
        return generation
