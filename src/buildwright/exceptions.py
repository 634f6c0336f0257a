"""Exception hierarchy for the build orchestrator."""

from __future__ import annotations


class BuildwrightError(Exception):
    """Base class for every error raised on purpose by buildwright."""


class PlanningError(BuildwrightError):
    """The product spec cannot be turned into modules. Fatal, never retried."""


class ResourceError(BuildwrightError):
    """A filesystem write failed. Fatal to the current task."""

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"Failed to write {path}: {reason}")
        self.path = path
        self.reason = reason


class PreviewUnreachableError(BuildwrightError):
    """The dev server never answered on its port."""

    def __init__(self, message: str, output: str = "") -> None:
        super().__init__(message)
        self.output = output


class BuildInProgressError(BuildwrightError):
    """A second build was requested for a project that is already building."""


class PromotionBlockedError(BuildwrightError):
    """The project cannot move to the next deploy stage."""
