"""Error taxonomy for prompt execution.

Every ``StepExecutionError`` aborts the current run; none is retried. The
driver attaches the offending step before re-raising so the message names
the step without replaying the run.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from promptqa.engine.prompt_parser import Step


class PromptQAError(Exception):
    """Base class for all promptqa errors."""

    pass


class PromptFileError(PromptQAError):
    """Raised when a prompt file cannot be found or read."""

    pass


class StepExecutionError(PromptQAError):
    """A failure that aborts the run at the current step."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message
        self.step: Step | None = None

    def attach_step(self, step: Step) -> None:
        self.step = step

    def __str__(self) -> str:
        if self.step is None:
            return self.message
        return (
            f"[Step {self.step.ordinal}: {self.step.description} "
            f"({self.step.action.value})] {self.message}"
        )


class MissingEndpointError(StepExecutionError):
    """An API step has no endpoint."""


class MissingTargetError(StepExecutionError):
    """A UI step has nothing to navigate to or click."""


class MissingCredentialsError(StepExecutionError):
    """A UI login step lacks a username or password."""


class UIDriverUnavailableError(StepExecutionError):
    """A UI step was reached but the run has no browser page."""


class AssertionFailedError(StepExecutionError):
    """Expected text or value was not found on the page."""


class UndefinedVariableError(StepExecutionError):
    """A ``{{name}}`` placeholder or a verified variable is not in the store."""

    def __init__(self, name: str, message: str | None = None) -> None:
        super().__init__(message or f"Variable {name} not found in test context")
        self.name = name


class ResolutionExhaustedError(StepExecutionError):
    """The primary locator and every fallback strategy failed."""

    def __init__(self, description: str, reference: str) -> None:
        super().__init__(
            f'Failed to locate element: "{description}" using selector: '
            f'"{reference}" and all fallback strategies'
        )
        self.description = description
        self.reference = reference
