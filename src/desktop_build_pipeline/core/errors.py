from __future__ import annotations

import traceback
from dataclasses import dataclass


class BuildPipelineError(RuntimeError):
    """Base error"""


@dataclass(frozen=True, slots=True)
class StepError:
    """
    A normalized error record for step failures.
    """

    exc_type: str
    message: str
    traceback: str


def step_error_from_exc(exc: BaseException) -> StepError:
    return StepError(
        exc_type=type(exc).__name__,
        message=str(exc),
        traceback=traceback.format_exc(),
    )


class ConfigurationError(BuildPipelineError):
    """
    Malformed pipeline definition or step list. Raised before any step runs
    """


class StepExecutionError(BuildPipelineError):
    """
    A step command exited non-zero, timed out, or could not be launched
    """

    def __init__(
        self,
        *,
        step: str,
        exit_code: int | None,
        reason: str | None = None,
    ) -> None:
        msg = f"Step {step!r} failed"
        if exit_code is not None:
            msg += f" with exit code {exit_code}"
        if reason:
            msg += f" ({reason})"
        super().__init__(msg)
        self.step = step
        self.exit_code = exit_code
        self.reason = reason


class ArtifactMissingError(BuildPipelineError):
    """Required artifact absent after the pipeline finished"""

    def __init__(self, errors: list[str]) -> None:
        super().__init__("; ".join(errors) if errors else "required artifact missing")
        self.errors = list(errors)


class InternalError(BuildPipelineError):
    """Bugs or invariant violation in our code"""
