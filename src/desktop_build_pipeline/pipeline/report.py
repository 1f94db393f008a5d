from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Optional

from desktop_build_pipeline.core import atomic_write_json

from .run import PipelineRun

if TYPE_CHECKING:
    from desktop_build_pipeline.artifacts import ValidationReport

REPORT_VERSION = "1.0"


@dataclass(slots=True)
class RunReport:
    run: PipelineRun
    validation: Optional["ValidationReport"] = None
    exit_code: Optional[int] = None
    provenance: dict[str, Any] = field(default_factory=dict)
    meta: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"report_version": REPORT_VERSION}
        d.update(self.run.to_dict())
        d["counts"] = self.run.counts()
        d["validation"] = (
            self.validation.to_dict() if self.validation is not None else None
        )
        d["exit_code"] = self.exit_code
        d["provenance"] = dict(self.provenance)
        d["meta"] = dict(self.meta)
        return d

    def write_json(self, path: Path) -> None:
        atomic_write_json(Path(path), self.to_dict())
