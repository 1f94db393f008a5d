from __future__ import annotations

import subprocess
import time
from pathlib import Path
from typing import Callable, Mapping, Sequence

import structlog
from tenacity import RetryError, Retrying, retry_if_result, stop_after_attempt
from tenacity.wait import wait_base

from desktop_build_pipeline.core import ConfigurationError

# Conventional "command not found" status, used when the command never launched.
EXIT_NOT_LAUNCHED = 127

log = structlog.get_logger(__name__)


class DeterministicExponentialBackoff(wait_base):
    """
    No wait before the first attempt, then base, 2*base, 4*base ... capped.
    """

    def __init__(self, *, base: float = 1.0, cap: float = 30.0) -> None:
        self._base = float(base)
        self._cap = float(cap)

    def __call__(self, retry_state) -> float:
        # attempt_number counts attempts already made
        n = retry_state.attempt_number
        return min(self._cap, self._base * (2 ** (n - 1)))


def _run_once(
    command: Sequence[str],
    *,
    env: Mapping[str, str] | None,
    cwd: Path | None,
) -> int:
    try:
        proc = subprocess.run(
            list(command),
            env=dict(env) if env is not None else None,
            cwd=str(cwd) if cwd is not None else None,
            check=False,
        )
    except OSError as e:
        log.error("retry.launch_failed", command=list(command), error=str(e))
        return EXIT_NOT_LAUNCHED
    return proc.returncode


def run_with_retries(
    command: Sequence[str],
    *,
    attempts: int = 3,
    backoff_base: float = 1.0,
    backoff_cap: float = 30.0,
    env: Mapping[str, str] | None = None,
    cwd: Path | None = None,
    sleep: Callable[[float], None] = time.sleep,
    runner: Callable[[Sequence[str]], int] | None = None,
) -> int:
    """
    Run `command` until it exits 0 or `attempts` runs have failed.

    Returns the exit code of the last attempt. `runner` replaces the
    subprocess call (tests).
    """
    if not command or not str(command[0]).strip():
        raise ConfigurationError("retry: no command given")
    if attempts < 1:
        raise ConfigurationError("retry: attempts must be >= 1")
    if backoff_base < 0 or backoff_cap < 0:
        raise ConfigurationError("retry: backoff must be >= 0")

    def _once() -> int:
        if runner is not None:
            return runner(command)
        return _run_once(command, env=env, cwd=cwd)

    def _before_sleep(retry_state) -> None:
        rc = retry_state.outcome.result() if retry_state.outcome else None
        wait_s = retry_state.next_action.sleep if retry_state.next_action else None
        log.warning(
            "retry.attempt_failed",
            command=list(command),
            attempt=retry_state.attempt_number,
            of=attempts,
            exit_code=rc,
            sleep_s=wait_s,
        )

    retrying = Retrying(
        stop=stop_after_attempt(attempts),
        wait=DeterministicExponentialBackoff(base=backoff_base, cap=backoff_cap),
        retry=retry_if_result(lambda rc: rc != 0),
        reraise=False,
        before_sleep=_before_sleep,
        sleep=sleep,
    )

    try:
        return int(retrying(_once))
    except RetryError as e:
        rc = int(e.last_attempt.result())
        log.error(
            "retry.exhausted", command=list(command), attempts=attempts, exit_code=rc
        )
        return rc
