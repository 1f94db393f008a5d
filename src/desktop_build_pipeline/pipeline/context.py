from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from desktop_build_pipeline.core import ILogger

from .env import EnvironmentLayers
from .events import EventSink, EventType, NullEventSink, make_event
from .launcher import CommandLauncher


@dataclass(slots=True)
class RunContext:
    """
    Context shared across steps for a single pipeline run.
    """

    run_id: str
    working_dir: Path
    env: EnvironmentLayers
    launcher: CommandLauncher
    logger: ILogger
    events: EventSink | NullEventSink

    # None when the run keeps no run directory
    run_dir: Optional[Path] = None
    default_timeout_s: Optional[float] = None

    meta: dict[str, Any] = field(default_factory=dict)

    def step_logger(self, step: str) -> ILogger:
        return self.logger.bind(step=step)

    def step_log_path(self, index: int, step: str) -> Optional[Path]:
        if self.run_dir is None:
            return None
        safe = "".join(c if c.isalnum() or c in "-_." else "_" for c in step)
        return self.run_dir / "logs" / f"{index:02d}-{safe}.log"

    def emit(
        self, event: EventType | str, /, *, step: str | None = None, **data: object
    ) -> None:
        # Keep event chatter at debug level to leave console logs readable.
        ev = make_event(event, self.run_id, step=step, data=data)
        self.events.emit(ev)
        self.logger.debug(ev.type, step=step, data=ev.data)
