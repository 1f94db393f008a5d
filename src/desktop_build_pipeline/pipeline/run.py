from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Optional

from desktop_build_pipeline.core import InternalError

from .types import RunStatus, Step, StepResult, StepStatus

if TYPE_CHECKING:
    from desktop_build_pipeline.artifacts import ValidationReport

_TRANSITIONS: dict[RunStatus, frozenset[RunStatus]] = {
    RunStatus.PENDING: frozenset({RunStatus.RUNNING}),
    RunStatus.RUNNING: frozenset({RunStatus.COMPLETED, RunStatus.FAILED_FATAL}),
    RunStatus.COMPLETED: frozenset(),
    RunStatus.FAILED_FATAL: frozenset(),
}


@dataclass(slots=True)
class PipelineRun:
    """
    The planned steps of one run and the results accumulated so far.

    `results` is always a prefix of `steps` (same order, no gaps) and is only
    grown through `append`.
    """

    run_id: str
    steps: tuple[Step, ...]
    results: list[StepResult] = field(default_factory=list)
    status: RunStatus = RunStatus.PENDING

    started_at_utc: Optional[str] = None
    finished_at_utc: Optional[str] = None
    duration_ms: int = 0
    report_path: Optional[str] = None
    events_path: Optional[str] = None
    # set when the run validated artifacts
    validation: Optional["ValidationReport"] = None

    def transition(self, new: RunStatus) -> None:
        if new not in _TRANSITIONS[self.status]:
            raise InternalError(
                f"Illegal run status transition {self.status.value} -> {new.value}"
            )
        self.status = new

    def append(self, result: StepResult) -> None:
        if self.status is not RunStatus.RUNNING:
            raise InternalError(f"Cannot record results while {self.status.value}")
        if len(self.results) >= len(self.steps):
            raise InternalError("More results than planned steps")

        expected = self.steps[len(self.results)].name
        if result.step_name != expected:
            raise InternalError(
                f"Out-of-order result: got {result.step_name!r}, expected {expected!r}"
            )
        self.results.append(result)

    def counts(self) -> dict[str, int]:
        out = {s.value: 0 for s in StepStatus}
        for r in self.results:
            out[r.status.value] += 1
        return out

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "status": self.status.value,
            "started_at_utc": self.started_at_utc,
            "finished_at_utc": self.finished_at_utc,
            "duration_ms": self.duration_ms,
            "events_jsonl": self.events_path,
            "steps": [
                {
                    "name": s.name,
                    "command": s.display_command(),
                    "on_failure": s.on_failure.value,
                }
                for s in self.steps
            ],
            "results": [r.to_dict() for r in self.results],
        }
