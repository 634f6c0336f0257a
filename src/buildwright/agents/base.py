"""Base agent class — the generator and the judge inherit from this."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

from buildwright.config import AgentConfig
from buildwright.models.ollama import OllamaClient
from buildwright.utils import estimate_tokens

log = logging.getLogger(__name__)


class BaseAgent(ABC):
    """Abstract base for the model-backed roles."""

    def __init__(self, name: str, config: AgentConfig, client: OllamaClient) -> None:
        self.name = name
        self.config = config
        self.client = client
        # Executor can override temperature per-call (ramp on retry)
        self._temperature_override: float | None = None

    @property
    @abstractmethod
    def system_prompt(self) -> str:
        """Define the agent's role and behaviour."""
        ...

    def _check_budget(self, system_text: str, prompt_text: str) -> int:
        """Estimate the input size and warn when it crowds the context window."""
        ctx_limit = self.config.num_ctx or 4096
        predict_budget = self.config.num_predict or 2048
        used = estimate_tokens(system_text) + estimate_tokens(prompt_text)
        remaining = ctx_limit - predict_budget - used
        if remaining < 0:
            log.warning(
                "%s: prompt (~%d tokens) overflows the %d-token window; "
                "the model will only see the tail.",
                self.name, used, ctx_limit,
            )
        return remaining

    def _messages(self, prompt: str) -> list[dict]:
        system_text = self.system_prompt
        self._check_budget(system_text, prompt)
        return [
            {"role": "system", "content": system_text},
            {"role": "user", "content": prompt},
        ]

    @property
    def temperature(self) -> float:
        return self._temperature_override or self.config.temperature

    async def think(
        self,
        prompt: str,
        images: list[bytes] | None = None,
        json_mode: bool = False,
        json_schema: dict | None = None,
    ) -> str:
        """Send the prompt under this agent's system prompt, return response text."""
        # json_schema takes precedence over json_mode
        fmt: str | dict | None = None
        if json_schema:
            fmt = json_schema
        elif json_mode:
            fmt = "json"

        response = await self.client.chat(
            model=self.config.model,
            messages=self._messages(prompt),
            images=images,
            format=fmt,
            temperature=self.temperature,
            num_ctx=self.config.num_ctx,
            num_predict=self.config.num_predict,
            timeout=self.config.timeout,
        )
        return response.content

    async def think_stream(self, prompt: str) -> str:
        """Like think(), but streams tokens and shows a live progress indicator.

        Returns the complete accumulated response text.
        """
        from rich.live import Live
        from rich.text import Text as RichText

        accumulated: list[str] = []
        token_count = 0

        with Live(
            RichText("  ✏️  Generating... 0 tokens", style="dim"),
            refresh_per_second=4,
            transient=True,
        ) as live:
            async for token in self.client.chat_stream(
                model=self.config.model,
                messages=self._messages(prompt),
                temperature=self.temperature,
                num_ctx=self.config.num_ctx,
                num_predict=self.config.num_predict,
                timeout=self.config.timeout,
            ):
                accumulated.append(token)
                token_count += 1
                if token_count % 10 == 0:  # update every 10 tokens
                    chars = sum(len(t) for t in accumulated)
                    live.update(RichText(
                        f"  ✏️  Generating... {token_count} tokens ({chars} chars)",
                        style="dim",
                    ))

        return "".join(accumulated)

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name} model={self.config.model}>"
