from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Iterable, Mapping, Optional, Sequence

from desktop_build_pipeline.core import (
    ConfigurationError,
    ILogger,
    RunProvenance,
    configure_logging,
    format_duration_ms,
    get_logger,
    monotonic_ms,
    new_run_id,
    utc_now_iso,
)

from .context import RunContext
from .env import EnvironmentLayers
from .events import EventSink, EventType, NullEventSink
from .launcher import CommandLauncher, SubprocessLauncher
from .report import RunReport
from .run import PipelineRun
from .step import run_step, skipped_result
from .types import (
    ArtifactExpectation,
    FailurePolicy,
    RunStatus,
    Step,
    StepStatus,
    check_env,
    check_glob_pattern,
    validate_steps,
)

if TYPE_CHECKING:
    from desktop_build_pipeline.artifacts import ValidationReport


@dataclass(slots=True)
class RunnerConfig:
    working_dir: Path = field(default_factory=lambda: Path("."))
    # None: no run directory; step output goes to the console
    run_root: Optional[Path] = None
    default_timeout_s: Optional[float] = None
    pipeline_env: Mapping[str, str] = field(default_factory=dict)


def default_logger() -> ILogger:
    """
    Provide a structlog BoundLogger that satisfies ILogger.
    """
    configure_logging()
    return get_logger("pipeline")


def overall_exit_code(
    run: PipelineRun, validation: "ValidationReport | None" = None
) -> int:
    if run.status is not RunStatus.COMPLETED:
        return 1
    if validation is not None and validation.errors:
        return 1
    return 0


class PipelineRunner:
    """
    Executes steps one after another against a single working directory.

    A FATAL step failure halts the run and marks every later step SKIPPED;
    a WARN-only failure is recorded and the run continues.
    """

    def __init__(
        self,
        *,
        cfg: RunnerConfig | None = None,
        launcher: CommandLauncher | None = None,
        logger: ILogger | None = None,
        base_env: Mapping[str, str] | None = None,
    ) -> None:
        self.cfg = cfg or RunnerConfig()
        self.launcher: CommandLauncher = launcher or SubprocessLauncher()
        self.logger: ILogger = logger or default_logger()
        if base_env is None:
            self.env = EnvironmentLayers.inherit(self.cfg.pipeline_env)
        else:
            self.env = EnvironmentLayers(base=base_env, pipeline=self.cfg.pipeline_env)

    def run(
        self,
        steps: Iterable[Step],
        *,
        expectations: Iterable[ArtifactExpectation] | None = None,
        run_id: str | None = None,
        meta: dict[str, Any] | None = None,
    ) -> PipelineRun:
        """
        Run `steps` in order and, when `expectations` is given, validate the
        artifacts they left in the working directory.

        Without `expectations` no validation happens and the run report's
        `exit_code` stays None; the caller owns the final verdict.
        """
        try:
            planned = tuple(steps)
        except TypeError as e:
            raise ConfigurationError(
                f"Steps must be a sequence of Step, got {type(steps).__name__}"
            ) from e
        validate_steps(planned)
        check_env("Pipeline env", self.env.pipeline)

        expected: tuple[ArtifactExpectation, ...] | None = None
        if expectations is not None:
            expected = tuple(expectations)
            for exp in expected:
                if not isinstance(exp, ArtifactExpectation):
                    raise ConfigurationError(
                        f"Artifact expectation is {type(exp).__name__}, "
                        "expected ArtifactExpectation"
                    )
                check_glob_pattern("Artifact expectation", exp.glob_pattern)

        meta = meta or {}
        rid = run_id or new_run_id()
        working_dir = Path(self.cfg.working_dir).resolve()

        run = PipelineRun(run_id=rid, steps=planned)

        run_dir: Path | None = None
        sink: EventSink | NullEventSink = NullEventSink()
        if self.cfg.run_root is not None:
            run_dir = Path(self.cfg.run_root) / rid
            run_dir.mkdir(parents=True, exist_ok=True)
            sink = EventSink(run_dir / "events.jsonl")
            run.events_path = str(sink.path)

        ctx = RunContext(
            run_id=rid,
            working_dir=working_dir,
            env=self.env,
            launcher=self.launcher,
            logger=self.logger,
            events=sink,
            run_dir=run_dir,
            default_timeout_s=self.cfg.default_timeout_s,
            meta=meta,
        )

        run.started_at_utc = utc_now_iso()
        t0 = monotonic_ms()
        run.transition(RunStatus.RUNNING)

        self.logger.info(
            "Pipeline starting",
            run_id=rid,
            steps=[s.name for s in run.steps],
            working_dir=str(working_dir),
            run_dir=str(run_dir) if run_dir else None,
        )
        ctx.emit(EventType.RUN_START, steps=[s.name for s in run.steps], meta=meta)

        total = len(run.steps)
        halted = False
        for idx, st in enumerate(run.steps, start=1):
            if halted:
                run.append(skipped_result(st))
                ctx.emit(EventType.STEP_SKIPPED, step=st.name)
                continue

            res = run_step(ctx=ctx, step=st, index=idx, total=total)
            run.append(res)

            if res.status is StepStatus.FAILED:
                if st.on_failure is FailurePolicy.FATAL:
                    self.logger.error("Stopping on fatal failure", step=st.name)
                    halted = True
                else:
                    ctx.emit(EventType.STEP_TOLERATED, step=st.name)
                    self.logger.warning(
                        "Continuing past warn-only failure", step=st.name
                    )

        run.finished_at_utc = utc_now_iso()
        run.duration_ms = monotonic_ms() - t0
        run.transition(RunStatus.FAILED_FATAL if halted else RunStatus.COMPLETED)

        exit_code: int | None = None
        if expected is not None:
            # also after a fatal halt
            run.validation = validate_artifacts(ctx, expected)
            exit_code = overall_exit_code(run, run.validation)

        if run_dir is not None:
            report_path = run_dir / "run_report.json"
            RunReport(
                run=run,
                validation=run.validation,
                exit_code=exit_code,
                provenance=RunProvenance(
                    run_id=rid, started_at_utc=run.started_at_utc
                ).to_dict(),
                meta=meta,
            ).write_json(report_path)
            run.report_path = str(report_path)

        ctx.emit(
            EventType.RUN_FINISH,
            status=run.status.value,
            duration_ms=run.duration_ms,
            exit_code=exit_code,
            report_json=run.report_path,
        )
        sink.close()

        self.logger.info(
            "Run complete",
            status=run.status.value,
            exit_code=exit_code,
            duration_ms=run.duration_ms,
            duration=format_duration_ms(run.duration_ms),
            report=run.report_path,
            **run.counts(),
        )
        return run


def validate_artifacts(
    ctx: RunContext, expectations: Sequence[ArtifactExpectation]
) -> "ValidationReport":
    """
    Validate `expectations` against the run's working directory, recording
    one event per pattern and, with a run directory, `sha256sums.txt`.
    """
    from desktop_build_pipeline.artifacts import (
        artifact_refs,
        validate,
        write_checksums,
    )

    report = validate(expectations, ctx.working_dir, logger=ctx.logger)
    for exp in expectations:
        paths = report.matched.get(exp.glob_pattern)
        if paths:
            ctx.emit(
                EventType.ARTIFACT_MATCHED, pattern=exp.glob_pattern, files=list(paths)
            )
        else:
            ctx.emit(
                EventType.ARTIFACT_MISSING,
                pattern=exp.glob_pattern,
                required=exp.required,
            )

    checksums: str | None = None
    if ctx.run_dir is not None:
        sums_path = ctx.run_dir / "sha256sums.txt"
        write_checksums(sums_path, artifact_refs(report, ctx.working_dir))
        checksums = str(sums_path)

    ctx.emit(
        EventType.VALIDATE_FINISH,
        ok=report.ok,
        errors=len(report.errors),
        warnings=len(report.warnings),
        sha256sums=checksums,
    )
    return report
