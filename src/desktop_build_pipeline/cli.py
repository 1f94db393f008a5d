from __future__ import annotations

import argparse
from pathlib import Path
from typing import Mapping

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from desktop_build_pipeline.artifacts import ValidationReport, validate
from desktop_build_pipeline.core import (
    ArtifactMissingError,
    ConfigurationError,
    bind,
    clear_bindings,
    configure_logging,
    get_logger,
    load_settings,
    new_run_id,
)
from desktop_build_pipeline.definition import PipelineFile, get_pipeline
from desktop_build_pipeline.pipeline import (
    LaunchResult,
    PipelineRun,
    PipelineRunner,
    RunnerConfig,
    StepStatus,
    SubprocessLauncher,
    overall_exit_code,
)
from desktop_build_pipeline.pipeline.types import Command
from desktop_build_pipeline.retry import run_with_retries

console = Console()

_STATUS_STYLE = {
    StepStatus.SUCCESS: "[green]success[/green]",
    StepStatus.FAILED: "[red]failed[/red]",
    StepStatus.SKIPPED: "[dim]skipped[/dim]",
}


class _StatusLauncher(SubprocessLauncher):
    """
    Shows a spinner while a step runs with its output captured to a log file.
    """

    def launch(
        self,
        command: Command,
        *,
        cwd: Path,
        env: Mapping[str, str],
        timeout_s: float | None,
        log_path: Path | None,
    ) -> LaunchResult:
        if log_path is None:
            return super().launch(
                command, cwd=cwd, env=env, timeout_s=timeout_s, log_path=log_path
            )
        with console.status(f"[bold]{log_path.stem}[/]", spinner="dots"):
            return super().launch(
                command, cwd=cwd, env=env, timeout_s=timeout_s, log_path=log_path
            )


def _add_pipeline_arg(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "--pipeline",
        default=None,
        help=(
            "Pipeline definition (JSON). "
            "If omitted: uses DESKTOP_BUILD_PIPELINE_FILE, ./pipeline.json or ./config/pipeline.json."
        ),
    )


def _add_working_dir_arg(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "--working-dir",
        default=None,
        help="Directory the steps run in and artifacts are resolved against.",
    )


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="desktop-build")
    sub = p.add_subparsers(dest="cmd", required=True)

    sp = sub.add_parser("run", help="Run the pipeline and validate artifacts")
    _add_pipeline_arg(sp)
    _add_working_dir_arg(sp)
    sp.add_argument("--run-root", default=None, help="Where run directories are written")
    sp.add_argument(
        "--no-run-dir",
        action="store_true",
        help="Write no run directory; step output streams to the console.",
    )

    sp = sub.add_parser("check", help="Validate the pipeline definition and show the plan")
    _add_pipeline_arg(sp)

    sp = sub.add_parser("artifacts", help="Validate expected artifacts only")
    _add_pipeline_arg(sp)
    _add_working_dir_arg(sp)

    sp = sub.add_parser(
        "retry", help="Run a command, retrying with exponential backoff while it fails"
    )
    sp.add_argument("--attempts", type=int, default=3)
    sp.add_argument("--backoff", type=float, default=1.0, help="Initial backoff (s)")
    sp.add_argument("--backoff-cap", type=float, default=30.0, help="Maximum backoff (s)")
    sp.add_argument("command", nargs=argparse.REMAINDER, help="-- COMMAND [ARGS...]")

    return p


def _print_plan(path: Path, definition: PipelineFile) -> None:
    tbl = Table(title=f"Plan: {definition.name}", show_header=True)
    tbl.add_column("#", justify="right")
    tbl.add_column("step")
    tbl.add_column("command")
    tbl.add_column("on failure")
    tbl.add_column("timeout")
    tbl.add_column("env")
    for i, st in enumerate(definition.to_steps(), start=1):
        tbl.add_row(
            str(i),
            Text(st.name),
            Text(st.display_command()),
            st.on_failure.value,
            f"{st.timeout_s:g} s" if st.timeout_s else "-",
            ", ".join(sorted(st.env_overrides)) or "-",
        )
    console.print(tbl)

    if definition.artifacts:
        art = Table(title="Artifacts", show_header=True)
        art.add_column("pattern")
        art.add_column("required")
        for a in definition.artifacts:
            art.add_row(Text(a.glob_pattern), "yes" if a.required else "no")
        console.print(art)
    console.print(Text(f"definition: {path}"))


def _print_results(run: PipelineRun) -> None:
    tbl = Table(title="Steps", show_header=True, box=None)
    tbl.add_column("step")
    tbl.add_column("status")
    tbl.add_column("exit")
    tbl.add_column("duration")
    tbl.add_column("produced")
    for r in run.results:
        tbl.add_row(
            Text(r.step_name),
            _STATUS_STYLE[r.status],
            "-" if r.exit_code is None else str(r.exit_code),
            "-" if r.status is StepStatus.SKIPPED else f"{r.duration_ms} ms",
            str(len(r.produced_paths)),
        )
    console.print(tbl)


def _print_validation(report: ValidationReport) -> None:
    tbl = Table(title="Artifacts", show_header=True, box=None)
    tbl.add_column("pattern")
    tbl.add_column("files")
    for pattern, paths in report.matched.items():
        tbl.add_row(Text(pattern), Text("\n".join(paths)))
    for w in report.warnings:
        tbl.add_row(Text(w, style="yellow"), "")
    for e in report.errors:
        tbl.add_row(Text(e, style="red"), "")
    console.print(tbl)


def _cmd_run(args: argparse.Namespace) -> int:
    s = load_settings()
    log = get_logger("desktop_build_pipeline")

    run_id = new_run_id()
    bind(run_id=run_id, command="run")

    path, definition = get_pipeline(Path(args.pipeline) if args.pipeline else None)
    working_dir = Path(args.working_dir) if args.working_dir else Path(s.working_dir)
    run_root: Path | None = None
    if not args.no_run_dir:
        run_root = Path(args.run_root) if args.run_root else Path(s.run_root)

    console.print(
        Panel.fit(
            Text(
                f"desktop-build - {definition.name}\nrun_id={run_id}\nworking_dir={working_dir}",
                style="bold",
            ),
            title="Run",
        )
    )

    runner = PipelineRunner(
        cfg=RunnerConfig(
            working_dir=working_dir,
            run_root=run_root,
            default_timeout_s=s.step_timeout_s,
            pipeline_env=definition.env,
        ),
        launcher=_StatusLauncher(),
        logger=log,
    )
    meta: dict[str, object] = {"pipeline": definition.name, "definition": str(path)}
    run = runner.run(
        definition.to_steps(),
        expectations=definition.to_expectations(),
        run_id=run_id,
        meta=meta,
    )
    report = run.validation or ValidationReport()
    exit_code = overall_exit_code(run, report)

    _print_results(run)
    _print_validation(report)

    tbl = Table(title="Result", show_header=True, box=None)
    tbl.add_row("status", "[green]ok[/green]" if exit_code == 0 else "[red]failed[/red]")
    tbl.add_row("run", run.status.value)
    if run.report_path:
        tbl.add_row("report", Text(run.report_path))
    console.print(tbl)

    return exit_code


def _cmd_check(args: argparse.Namespace) -> int:
    path, definition = get_pipeline(Path(args.pipeline) if args.pipeline else None)
    _print_plan(path, definition)
    return 0


def _cmd_artifacts(args: argparse.Namespace) -> int:
    s = load_settings()
    log = get_logger("desktop_build_pipeline")
    _, definition = get_pipeline(Path(args.pipeline) if args.pipeline else None)
    working_dir = Path(args.working_dir) if args.working_dir else Path(s.working_dir)

    report = validate(definition.to_expectations(), working_dir, logger=log)
    _print_validation(report)
    report.raise_for_errors()
    return 0


def _cmd_retry(args: argparse.Namespace) -> int:
    command = list(args.command)
    if command and command[0] == "--":
        command = command[1:]
    return run_with_retries(
        command,
        attempts=args.attempts,
        backoff_base=args.backoff,
        backoff_cap=args.backoff_cap,
    )


_COMMANDS = {
    "run": _cmd_run,
    "check": _cmd_check,
    "artifacts": _cmd_artifacts,
    "retry": _cmd_retry,
}


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)

    s = load_settings()
    configure_logging(level=s.log_level, fmt=s.log_format)

    try:
        return int(_COMMANDS[args.cmd](args))
    except ConfigurationError as e:
        console.print(Text.assemble(("configuration error: ", "red"), str(e)))
        return 1
    except ArtifactMissingError as e:
        console.print(Text.assemble(("artifacts: ", "red"), str(e)))
        return 1
    finally:
        clear_bindings()


if __name__ == "__main__":
    raise SystemExit(main())
