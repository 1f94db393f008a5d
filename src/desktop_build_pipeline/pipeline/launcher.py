from __future__ import annotations

import os
import signal
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional, Protocol

from .types import Command


@dataclass(frozen=True, slots=True)
class LaunchResult:
    exit_code: Optional[int]
    timed_out: bool = False
    error: Optional[str] = None


class CommandLauncher(Protocol):
    def launch(
        self,
        command: Command,
        *,
        cwd: Path,
        env: Mapping[str, str],
        timeout_s: float | None,
        log_path: Path | None,
    ) -> LaunchResult: ...


class SubprocessLauncher:
    """
    Runs each command in its own process group and blocks until it exits.

    String commands go through the host shell, argument tuples are exec'd
    directly. With a `log_path`, stdout and stderr are combined into that
    file; otherwise the child inherits the console.
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
        args: str | list[str] = (
            command if isinstance(command, str) else list(command)
        )
        shell = isinstance(command, str)

        if log_path is None:
            return self._run(args, shell=shell, cwd=cwd, env=env, timeout_s=timeout_s)

        log_path.parent.mkdir(parents=True, exist_ok=True)
        with log_path.open("wb") as out:
            return self._run(
                args,
                shell=shell,
                cwd=cwd,
                env=env,
                timeout_s=timeout_s,
                stdout=out,
                stderr=subprocess.STDOUT,
            )

    @staticmethod
    def _run(
        args: str | list[str],
        *,
        shell: bool,
        cwd: Path,
        env: Mapping[str, str],
        timeout_s: float | None,
        stdout=None,
        stderr=None,
    ) -> LaunchResult:
        try:
            proc = subprocess.Popen(
                args,
                shell=shell,
                cwd=str(cwd),
                env=dict(env),
                stdout=stdout,
                stderr=stderr,
                **_new_group_kwargs(),
            )
        except OSError as e:
            return LaunchResult(exit_code=None, error=f"could not launch: {e}")

        try:
            returncode = proc.wait(timeout=timeout_s)
        except subprocess.TimeoutExpired:
            _kill_tree(proc)
            return LaunchResult(
                exit_code=None,
                timed_out=True,
                error=f"timed out after {timeout_s:g} s",
            )
        except BaseException:
            # e.g. KeyboardInterrupt: leave nothing running in the working dir
            _kill_tree(proc)
            raise

        return LaunchResult(exit_code=returncode)


def _new_group_kwargs() -> dict[str, object]:
    # Own process group: on timeout the whole tree the step started is
    # killed, not just the shell.
    if os.name == "nt":
        return {"creationflags": subprocess.CREATE_NEW_PROCESS_GROUP}
    return {"start_new_session": True}


def _kill_tree(proc: subprocess.Popen) -> None:
    if os.name == "nt":
        subprocess.run(
            ["taskkill", "/F", "/T", "/PID", str(proc.pid)],
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            check=False,
        )
    else:
        try:
            os.killpg(proc.pid, signal.SIGKILL)
        except ProcessLookupError:
            pass
    proc.kill()
    proc.wait()


def tail_lines(path: Path, n: int = 20) -> list[str]:
    """Last `n` lines of a step log, decoded leniently."""
    try:
        data = path.read_bytes()
    except OSError:
        return []
    lines = data.decode("utf-8", errors="replace").splitlines()
    return lines[-n:]
