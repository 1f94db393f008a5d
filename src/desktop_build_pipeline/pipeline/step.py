from __future__ import annotations

from pathlib import Path

from desktop_build_pipeline.core import (
    StepError,
    StepExecutionError,
    Timer,
    format_duration_ms,
    relpath_posix,
    step_error_from_exc,
    utc_now_iso,
)

from .context import RunContext
from .events import EventType
from .launcher import LaunchResult, tail_lines
from .types import Step, StepResult, StepStatus


def resolve_globs(working_dir: Path, patterns: tuple[str, ...] | list[str]) -> tuple[str, ...]:
    """
    Files under `working_dir` matching any of `patterns`, as sorted,
    de-duplicated POSIX paths relative to `working_dir`.
    """
    root = Path(working_dir)
    found: set[str] = set()
    for pattern in patterns:
        for p in root.glob(pattern):
            if p.is_file():
                found.add(relpath_posix(p, root))
    return tuple(sorted(found))


def skipped_result(step: Step) -> StepResult:
    return StepResult(step_name=step.name, status=StepStatus.SKIPPED)


def run_step(
    *,
    ctx: RunContext,
    step: Step,
    index: int,
    total: int,
) -> StepResult:
    """
    Execute one step and convert its outcome into a StepResult.

    Command failures never raise: a non-zero exit, a timeout or a launch
    failure yields a FAILED result carrying the StepExecutionError record.
    """
    log = ctx.step_logger(step.name)
    position = f"{index}/{total}"
    started_at = utc_now_iso()
    log_path = ctx.step_log_path(index, step.name)
    timeout_s = step.timeout_s if step.timeout_s is not None else ctx.default_timeout_s

    ctx.emit(EventType.STEP_START, step=step.name, command=step.display_command())
    log.info(
        "Step starting",
        position=position,
        command=step.display_command(),
        shell=step.uses_shell,
        env_overrides=ctx.env.override_keys(step.env_overrides),
        timeout_s=timeout_s,
    )

    env = ctx.env.for_step(step.env_overrides)

    launch_err: StepError | None = None
    with Timer() as t:
        try:
            launched = ctx.launcher.launch(
                step.command,
                cwd=ctx.working_dir,
                env=env,
                timeout_s=timeout_s,
                log_path=log_path,
            )
        except Exception as e:
            launch_err = step_error_from_exc(e)
            launched = LaunchResult(exit_code=None, error=f"{type(e).__name__}: {e}")

    duration = t.duration_ms or 0
    finished_at = utc_now_iso()
    log_file = str(log_path) if log_path is not None else None

    if launched.exit_code == 0 and not launched.timed_out:
        produced = resolve_globs(ctx.working_dir, step.produces)
        ctx.emit(
            EventType.STEP_SUCCESS,
            step=step.name,
            duration_ms=duration,
            produced=list(produced),
        )
        log.info(
            "Step succeeded",
            position=position,
            duration_ms=duration,
            duration=format_duration_ms(duration),
            produced=len(produced),
        )
        return StepResult(
            step_name=step.name,
            status=StepStatus.SUCCESS,
            exit_code=0,
            duration_ms=duration,
            produced_paths=produced,
            started_at_utc=started_at,
            finished_at_utc=finished_at,
            log_path=log_file,
        )

    exc = StepExecutionError(
        step=step.name, exit_code=launched.exit_code, reason=launched.error
    )
    err = StepError(
        exc_type=type(exc).__name__,
        message=str(exc),
        traceback=launch_err.traceback if launch_err is not None else "",
    )

    ctx.emit(
        EventType.STEP_FAILED,
        step=step.name,
        duration_ms=duration,
        exit_code=launched.exit_code,
        timed_out=launched.timed_out,
        on_failure=step.on_failure.value,
        message=err.message,
    )
    log.error(
        "Step failed",
        position=position,
        exit_code=launched.exit_code,
        timed_out=launched.timed_out,
        on_failure=step.on_failure.value,
        duration_ms=duration,
        duration=format_duration_ms(duration),
        error=err.message,
    )
    if log_path is not None:
        for line in tail_lines(log_path):
            log.error(line)

    return StepResult(
        step_name=step.name,
        status=StepStatus.FAILED,
        exit_code=launched.exit_code,
        duration_ms=duration,
        started_at_utc=started_at,
        finished_at_utc=finished_at,
        log_path=log_file,
        error=err,
    )
