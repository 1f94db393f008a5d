from __future__ import annotations

import json
import os
import socket
import threading
from dataclasses import asdict
from enum import Enum
from pathlib import Path
from typing import Any, Mapping, Optional

from desktop_build_pipeline.core import utc_now_iso

from .types import Event


class EventType(str, Enum):
    RUN_ENV = "run.env"
    RUN_START = "run.start"
    RUN_FINISH = "run.finish"

    STEP_START = "step.start"
    STEP_SUCCESS = "step.success"
    STEP_FAILED = "step.failed"
    STEP_TOLERATED = "step.tolerated"
    STEP_SKIPPED = "step.skipped"

    ARTIFACT_MATCHED = "artifact.matched"
    ARTIFACT_MISSING = "artifact.missing"
    VALIDATE_FINISH = "validate.finish"


class EventSink:
    """
    Append-only JSONL event log.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

        self.emit(
            Event(
                type=EventType.RUN_ENV.value,
                ts_utc=utc_now_iso(),
                run_id="__init__",
                data={
                    "hostname": socket.gethostname(),
                    "pid": os.getpid(),
                    "cwd": str(Path.cwd()),
                },
            )
        )

    def emit(self, event: Event) -> None:
        line = json.dumps(asdict(event), ensure_ascii=False, default=str)
        with self._lock:
            with self.path.open("a", encoding="utf-8") as f:
                f.write(line)
                f.write("\n")

    def close(self) -> None:
        return


class NullEventSink:
    """Sink used when the run has no run directory."""

    path: Optional[Path] = None

    def emit(self, event: Event) -> None:
        return

    def close(self) -> None:
        return


def make_event(
    event_type: EventType | str,
    run_id: str,
    *,
    step: Optional[str] = None,
    data: Mapping[str, Any] | None = None,
) -> Event:
    type_value = (
        event_type.value if isinstance(event_type, EventType) else str(event_type)
    )
    return Event(
        type=type_value,
        ts_utc=utc_now_iso(),
        run_id=run_id,
        step=step,
        data=dict(data or {}),
    )


def read_events(path: Path) -> list[dict[str, Any]]:
    with Path(path).open("r", encoding="utf-8") as f:
        return [json.loads(line) for line in f if line.strip()]
