from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import StrEnum
from types import MappingProxyType
from typing import Any, Iterable, Mapping, Optional, Sequence

from desktop_build_pipeline.core import ConfigurationError, StepError

Command = str | tuple[str, ...]


class FailurePolicy(StrEnum):
    FATAL = "fatal"
    WARN = "warn-only"


class StepStatus(StrEnum):
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


class RunStatus(StrEnum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED_FATAL = "failed_fatal"


@dataclass(frozen=True, slots=True)
class Step:
    """
    One named unit of work wrapping a single external command.

    A string `command` runs through the host shell; a sequence is executed
    directly. `env_overrides` is frozen into a read-only mapping.
    """

    name: str
    command: Command
    env_overrides: Mapping[str, str] = field(default_factory=dict)
    on_failure: FailurePolicy = FailurePolicy.FATAL
    timeout_s: Optional[float] = None
    produces: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if not isinstance(self.name, str):
            raise ConfigurationError(
                f"Step name must be a string, got {type(self.name).__name__}"
            )
        where = f"Step {self.name!r}"

        if not isinstance(self.command, str):
            if not isinstance(self.command, Iterable):
                raise ConfigurationError(
                    f"{where}: command must be a string or a list of arguments, "
                    f"got {type(self.command).__name__}"
                )
            object.__setattr__(self, "command", tuple(self.command))

        if not isinstance(self.env_overrides, Mapping):
            raise ConfigurationError(
                f"{where}: env_overrides must be a mapping, "
                f"got {type(self.env_overrides).__name__}"
            )
        object.__setattr__(
            self, "env_overrides", MappingProxyType(dict(self.env_overrides))
        )

        try:
            policy = FailurePolicy(self.on_failure)
        except ValueError as e:
            raise ConfigurationError(
                f"{where}: unknown on_failure policy {self.on_failure!r}"
            ) from e
        object.__setattr__(self, "on_failure", policy)

        if isinstance(self.produces, str) or not isinstance(self.produces, Iterable):
            raise ConfigurationError(f"{where}: produces must be a list of glob patterns")
        object.__setattr__(self, "produces", tuple(self.produces))

    @property
    def uses_shell(self) -> bool:
        return isinstance(self.command, str)

    def display_command(self) -> str:
        if isinstance(self.command, str):
            return self.command
        return " ".join(self.command)


@dataclass(frozen=True, slots=True)
class StepResult:
    step_name: str
    status: StepStatus
    exit_code: Optional[int] = None
    duration_ms: int = 0
    produced_paths: tuple[str, ...] = ()
    started_at_utc: Optional[str] = None
    finished_at_utc: Optional[str] = None
    log_path: Optional[str] = None
    error: Optional[StepError] = None

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d["status"] = self.status.value
        d["produced_paths"] = list(self.produced_paths)
        return d


@dataclass(frozen=True, slots=True)
class ArtifactExpectation:
    glob_pattern: str
    required: bool = True


@dataclass(frozen=True, slots=True)
class ArtifactRef:
    """
    A file matched by an artifact expectation, with its digest.
    """

    path: str
    bytes: int
    sha256: str


@dataclass(frozen=True, slots=True)
class Event:
    """
    Structured event emitted by the pipeline.
    """

    type: str
    ts_utc: str
    run_id: str
    step: Optional[str] = None
    data: dict[str, Any] = field(default_factory=dict)


def check_env(where: str, env: Mapping[str, str]) -> None:
    for k, v in env.items():
        if not isinstance(k, str) or not k or "=" in k:
            raise ConfigurationError(f"{where}: invalid environment key {k!r}")
        if not isinstance(v, str):
            raise ConfigurationError(
                f"{where}: environment value for {k!r} must be a string, got {type(v).__name__}"
            )


def validate_steps(steps: Sequence[Step]) -> None:
    """
    Reject a malformed step list before anything runs.
    """
    if not steps:
        raise ConfigurationError("Pipeline has no steps")

    seen: set[str] = set()
    for idx, st in enumerate(steps, start=1):
        if not isinstance(st, Step):
            raise ConfigurationError(
                f"Step #{idx} is {type(st).__name__}, expected Step"
            )

        if not isinstance(st.name, str) or not st.name.strip():
            raise ConfigurationError(f"Step #{idx} has an empty name")
        if st.name in seen:
            raise ConfigurationError(f"Duplicate step name: {st.name!r}")
        seen.add(st.name)

        where = f"Step {st.name!r}"
        if isinstance(st.command, str):
            if not st.command.strip():
                raise ConfigurationError(f"{where} has an empty command")
        else:
            if any(not isinstance(a, str) for a in st.command):
                raise ConfigurationError(f"{where} command arguments must be strings")
            if not st.command or not st.command[0].strip():
                raise ConfigurationError(f"{where} has an empty command")

        check_env(where, st.env_overrides)

        if st.timeout_s is not None and (
            isinstance(st.timeout_s, bool)
            or not isinstance(st.timeout_s, (int, float))
            or st.timeout_s <= 0
        ):
            raise ConfigurationError(f"{where} timeout_s must be a positive number")

        for pattern in st.produces:
            check_glob_pattern(where, pattern)


def check_glob_pattern(where: str, pattern: str) -> None:
    if not isinstance(pattern, str) or not pattern.strip():
        raise ConfigurationError(f"{where}: empty glob pattern")
    if pattern.startswith(("/", "\\")) or (len(pattern) > 1 and pattern[1] == ":"):
        raise ConfigurationError(
            f"{where}: glob pattern must be relative to the working directory: {pattern!r}"
        )
