from __future__ import annotations

import json
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Mapping

import pytest
import structlog
from desktop_build_pipeline.core import load_settings
from desktop_build_pipeline.pipeline import LaunchResult
from desktop_build_pipeline.pipeline.types import Command


@dataclass
class LaunchCall:
    command: Command
    cwd: Path
    env: dict[str, str]
    timeout_s: float | None
    log_path: Path | None


@dataclass
class RecordingLauncher:
    """
    Launcher double: returns scripted exit codes per command and records
    every invocation.
    """

    exit_codes: dict[str, int] = field(default_factory=dict)
    on_launch: Callable[[LaunchCall], None] | None = None
    calls: list[LaunchCall] = field(default_factory=list)

    def launch(
        self,
        command: Command,
        *,
        cwd: Path,
        env: Mapping[str, str],
        timeout_s: float | None,
        log_path: Path | None,
    ) -> LaunchResult:
        call = LaunchCall(
            command=command,
            cwd=cwd,
            env=dict(env),
            timeout_s=timeout_s,
            log_path=log_path,
        )
        self.calls.append(call)
        if self.on_launch is not None:
            self.on_launch(call)
        key = command if isinstance(command, str) else " ".join(command)
        return LaunchResult(exit_code=self.exit_codes.get(key, 0))

    @property
    def invoked(self) -> list[str]:
        return [
            c.command if isinstance(c.command, str) else " ".join(c.command)
            for c in self.calls
        ]


@pytest.fixture
def launcher() -> RecordingLauncher:
    return RecordingLauncher()


@pytest.fixture
def logger() -> Any:
    return structlog.get_logger("tests")


@pytest.fixture(autouse=True)
def _fresh_settings(monkeypatch: pytest.MonkeyPatch):
    for key in (
        "DESKTOP_BUILD_WORKING_DIR",
        "DESKTOP_BUILD_RUN_ROOT",
        "DESKTOP_BUILD_PIPELINE_FILE",
        "DESKTOP_BUILD_STEP_TIMEOUT_S",
    ):
        monkeypatch.delenv(key, raising=False)
    load_settings.cache_clear()
    yield
    load_settings.cache_clear()


def _py(code: str) -> list[str]:
    return [sys.executable, "-c", code]


def _write_pipeline(path: Path, obj: dict[str, Any]) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(obj, indent=2), encoding="utf-8")
    return path


@pytest.fixture
def py() -> Callable[[str], list[str]]:
    """Builds an argument list running `code` with the current interpreter."""
    return _py


@pytest.fixture
def write_pipeline() -> Callable[[Path, dict[str, Any]], Path]:
    return _write_pipeline
