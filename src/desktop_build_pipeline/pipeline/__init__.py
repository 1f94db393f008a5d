from .env import EnvironmentLayers
from .launcher import CommandLauncher, LaunchResult, SubprocessLauncher
from .report import RunReport
from .run import PipelineRun
from .runner import PipelineRunner, RunnerConfig, overall_exit_code
from .types import (
    ArtifactExpectation,
    ArtifactRef,
    FailurePolicy,
    RunStatus,
    Step,
    StepResult,
    StepStatus,
    validate_steps,
)

__all__ = [
    "ArtifactExpectation",
    "ArtifactRef",
    "CommandLauncher",
    "EnvironmentLayers",
    "FailurePolicy",
    "LaunchResult",
    "PipelineRun",
    "PipelineRunner",
    "RunReport",
    "RunStatus",
    "RunnerConfig",
    "Step",
    "StepResult",
    "StepStatus",
    "SubprocessLauncher",
    "overall_exit_code",
    "validate_steps",
]
