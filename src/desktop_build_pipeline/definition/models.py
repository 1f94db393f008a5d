from __future__ import annotations

from typing import Annotated, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StringConstraints,
    field_validator,
    model_validator,
)

from desktop_build_pipeline.pipeline.types import (
    ArtifactExpectation,
    FailurePolicy,
    Step,
)

StepName = Annotated[
    str,
    StringConstraints(
        min_length=1, max_length=120, pattern=r"^[A-Za-z0-9][A-Za-z0-9_\-\. ]*$"
    ),
]
NonBlank = Annotated[str, StringConstraints(min_length=1, pattern=r"\S")]
EnvKey = Annotated[str, StringConstraints(min_length=1, pattern=r"^[^=]+$")]


def _is_relative_glob(pattern: str) -> bool:
    return not (
        pattern.startswith(("/", "\\")) or (len(pattern) > 1 and pattern[1] == ":")
    )


class StepSpec(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    name: StepName
    command: Union[NonBlank, list[str]] = Field(
        ..., examples=["npm ci", ["npx", "electron-builder", "--win"]]
    )
    description: Optional[str] = None
    env_overrides: dict[EnvKey, str] = Field(default_factory=dict)
    on_failure: FailurePolicy = FailurePolicy.FATAL
    timeout_s: Optional[float] = Field(default=None, gt=0)
    produces: list[NonBlank] = Field(default_factory=list)

    @field_validator("command")
    @classmethod
    def _non_empty_argv(cls, v: str | list[str]) -> str | list[str]:
        if isinstance(v, list):
            if not v or not v[0].strip():
                raise ValueError("command argument list must start with a program")
        return v

    @field_validator("produces")
    @classmethod
    def _relative_produces(cls, v: list[str]) -> list[str]:
        for p in v:
            if not _is_relative_glob(p):
                raise ValueError(f"produces pattern must be relative: {p!r}")
        return v

    def to_step(self) -> Step:
        return Step(
            name=self.name,
            command=self.command if isinstance(self.command, str) else tuple(self.command),
            env_overrides=dict(self.env_overrides),
            on_failure=self.on_failure,
            timeout_s=self.timeout_s,
            produces=tuple(self.produces),
        )


class ArtifactSpec(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    glob_pattern: NonBlank = Field(..., examples=["dist/*.exe"])
    required: bool = True
    description: Optional[str] = None

    @field_validator("glob_pattern")
    @classmethod
    def _relative(cls, v: str) -> str:
        if not _is_relative_glob(v):
            raise ValueError(f"glob_pattern must be relative: {v!r}")
        return v

    def to_expectation(self) -> ArtifactExpectation:
        return ArtifactExpectation(glob_pattern=self.glob_pattern, required=self.required)


class PipelineFile(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    spec_version: int = Field(..., ge=1, le=1)
    name: str = Field(..., min_length=1, examples=["windows-desktop"])
    description: Optional[str] = None
    env: dict[EnvKey, str] = Field(default_factory=dict)
    steps: list[StepSpec] = Field(..., min_length=1)
    artifacts: list[ArtifactSpec] = Field(default_factory=list)

    @model_validator(mode="after")
    def _validate(self) -> "PipelineFile":
        names = [s.name for s in self.steps]
        if len(names) != len(set(names)):
            dupes = sorted({n for n in names if names.count(n) > 1})
            raise ValueError(f"Duplicate step name(s): {dupes}")

        required: dict[str, bool] = {}
        for a in self.artifacts:
            if a.glob_pattern in required and required[a.glob_pattern] != a.required:
                raise ValueError(
                    f"Artifact pattern {a.glob_pattern!r} listed as both required and optional"
                )
            required[a.glob_pattern] = a.required

        return self

    def to_steps(self) -> list[Step]:
        return [s.to_step() for s in self.steps]

    def to_expectations(self) -> list[ArtifactExpectation]:
        return [a.to_expectation() for a in self.artifacts]
