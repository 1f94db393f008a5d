from __future__ import annotations

import pytest
from desktop_build_pipeline.core import ConfigurationError
from desktop_build_pipeline.retry import EXIT_NOT_LAUNCHED, run_with_retries


class Scripted:
    def __init__(self, codes: list[int]) -> None:
        self.codes = list(codes)
        self.calls = 0

    def __call__(self, command) -> int:
        self.calls += 1
        return self.codes.pop(0)


def test_stops_at_first_success() -> None:
    sleeps: list[float] = []
    runner = Scripted([1, 0, 0])

    rc = run_with_retries(["download"], attempts=5, sleep=sleeps.append, runner=runner)

    assert rc == 0
    assert runner.calls == 2
    assert sleeps == [1.0]


def test_exhausted_returns_last_exit_code_with_backoff() -> None:
    sleeps: list[float] = []
    runner = Scripted([1, 2, 3, 4])

    rc = run_with_retries(
        ["download"],
        attempts=4,
        backoff_base=2.0,
        backoff_cap=5.0,
        sleep=sleeps.append,
        runner=runner,
    )

    assert rc == 4
    assert runner.calls == 4
    assert sleeps == [2.0, 4.0, 5.0]


def test_single_attempt_never_sleeps() -> None:
    sleeps: list[float] = []
    rc = run_with_retries(["x"], attempts=1, sleep=sleeps.append, runner=Scripted([9]))
    assert rc == 9
    assert sleeps == []


def test_real_subprocess(py) -> None:
    assert run_with_retries(py("pass"), attempts=2, sleep=lambda s: None) == 0
    assert (
        run_with_retries(py("raise SystemExit(5)"), attempts=2, sleep=lambda s: None)
        == 5
    )


def test_unlaunchable_command() -> None:
    rc = run_with_retries(
        ["definitely-not-a-real-program-4711"], attempts=2, sleep=lambda s: None
    )
    assert rc == EXIT_NOT_LAUNCHED


@pytest.mark.parametrize(
    "command, kw",
    [([], {}), (["x"], {"attempts": 0}), (["x"], {"backoff_base": -1})],
)
def test_invalid_arguments(command, kw) -> None:
    with pytest.raises(ConfigurationError):
        run_with_retries(command, **kw)
