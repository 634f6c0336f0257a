"""Verifier — restarts the preview and decides WORKING or BROKEN."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from buildwright.agents.judge import VerdictJudge
from buildwright.exceptions import PreviewUnreachableError
from buildwright.project import Task
from buildwright.tools import classifier
from buildwright.tools.classifier import ErrorCategory, ErrorRecord
from buildwright.tools.installer import DependencyInstaller
from buildwright.tools.preview import PreviewController
from buildwright.tools.screenshot import ScreenshotService

log = logging.getLogger(__name__)


@dataclass
class Verdict:
    working: bool
    errors: list[ErrorRecord] = field(default_factory=list)
    diagnosis: str = ""
    screenshot_taken: bool = False
    console: str = ""


class Verifier:
    """One verification pass per call; the judge's verdict is final."""

    def __init__(
        self,
        preview: PreviewController,
        screenshots: ScreenshotService,
        judge: VerdictJudge,
        installer: DependencyInstaller | None = None,
    ) -> None:
        self.preview = preview
        self.screenshots = screenshots
        self.judge = judge
        self.installer = installer

    async def _restart(self) -> None:
        try:
            await self.preview.restart()
        except PreviewUnreachableError as e:
            # Cold starts (dependency install, first compile) get one more go
            log.info("Preview unreachable (%s), retrying once", e)
            await self.preview.restart()

    async def verify(self, task: Task) -> Verdict:
        if self.installer is not None:
            installed = await self.installer.ensure()
            if not installed.ok:
                # No point starting a dev server without its packages
                return Verdict(
                    working=False,
                    errors=classifier.install_failure(installed.output),
                    diagnosis="Dependency install failed",
                    console=installed.output,
                )

        try:
            await self._restart()
        except PreviewUnreachableError as e:
            output = e.output or self.preview.console_snapshot()
            errors = classifier.preview_unreachable(output)
            return Verdict(
                working=False,
                errors=errors,
                diagnosis=str(e),
                console=output,
            )

        screenshot = await self.screenshots.capture(self.preview.url)
        console = self.preview.console_snapshot()
        if self.screenshots.console_errors:
            console += "\n" + "\n".join(self.screenshots.console_errors)

        judgement = await self.judge.judge(task, screenshot, console)
        if judgement.working:
            return Verdict(
                working=True,
                diagnosis=judgement.diagnosis,
                screenshot_taken=screenshot is not None,
                console=console,
            )

        errors = classifier.classify(f"{console}\n{judgement.diagnosis}")
        if not errors or all(r.kind == "unrecognized" for r in errors):
            errors = [ErrorRecord(
                category=ErrorCategory.UNKNOWN,
                kind="judged_broken",
                message=judgement.diagnosis or "Judge reported the result as broken",
                auto_fixable=ErrorCategory.UNKNOWN.auto_fixable,
                raw=console[-500:],
            )]
        return Verdict(
            working=False,
            errors=errors,
            diagnosis=judgement.diagnosis,
            screenshot_taken=screenshot is not None,
            console=console,
        )
