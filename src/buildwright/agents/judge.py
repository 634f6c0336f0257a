"""Verdict judge — looks at the preview and says WORKING or BROKEN."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from buildwright.agents.base import BaseAgent
from buildwright.project import Task
from buildwright.utils import parse_json_response, truncate

log = logging.getLogger(__name__)

SYSTEM_PROMPT = """\
You are the Verification Judge. You decide whether a freshly built piece of a
web app actually works, from a screenshot of the running preview and the
browser/dev-server console output.

Answer BROKEN if ANY of these is true:
  ☐ The screenshot shows an error overlay, a blank page, or a crash screen
  ☐ The console shows an uncaught error, failed import, or compile error
  ☐ The expected content for the task is not visible

Otherwise answer WORKING. Do not judge styling taste.

Respond with JSON only:
{"verdict": "WORKING" | "BROKEN", "diagnosis": "one or two sentences"}\
"""

_VERDICT_SCHEMA = {
    "type": "object",
    "properties": {
        "verdict": {"type": "string", "enum": ["WORKING", "BROKEN"]},
        "diagnosis": {"type": "string"},
    },
    "required": ["verdict", "diagnosis"],
}


@dataclass
class Judgement:
    working: bool
    diagnosis: str


def parse_verdict(raw: str) -> Judgement:
    """Read a judge reply. JSON first, then bare keywords.

    BROKEN wins over WORKING when both words show up; a reply with
    neither is treated as BROKEN.
    """
    parsed = parse_json_response(raw)
    if parsed and isinstance(parsed.get("verdict"), str):
        verdict = parsed["verdict"].strip().upper()
        diagnosis = str(parsed.get("diagnosis", "")).strip()
        if verdict in ("WORKING", "BROKEN"):
            return Judgement(working=verdict == "WORKING", diagnosis=diagnosis)

    upper = raw.upper()
    if re.search(r"\bBROKEN\b", upper):
        return Judgement(working=False, diagnosis=truncate(raw.strip(), 400))
    if re.search(r"\bWORKING\b", upper):
        return Judgement(working=True, diagnosis=truncate(raw.strip(), 400))
    return Judgement(
        working=False,
        diagnosis=f"Judge reply had no verdict: {truncate(raw.strip(), 300)}",
    )


class VerdictJudge(BaseAgent):
    """Vision model call deciding whether a task's result works."""

    @property
    def system_prompt(self) -> str:
        return SYSTEM_PROMPT

    async def judge(self, task: Task, screenshot: bytes | None, console: str) -> Judgement:
        prompt = f"**Task that was just built:** {task.description}\n"
        if task.acceptance:
            prompt += f"**It is done when:** {task.acceptance}\n"
        prompt += (
            "\n**Console output (most recent last):**\n"
            f"{console.strip()[-4000:] or '(empty)'}\n"
        )
        if screenshot is None:
            prompt += "\nNo screenshot is available yet; judge from the console output.\n"
        prompt += "\nVerify this task is complete. Reply WORKING or BROKEN."

        raw = await self.think(
            prompt,
            images=[screenshot] if screenshot else None,
            json_schema=_VERDICT_SCHEMA,
        )
        judgement = parse_verdict(raw)
        log.debug("%s judged %s", task.id, "WORKING" if judgement.working else "BROKEN")
        return judgement
