from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping, Sequence

from desktop_build_pipeline.core import (
    ArtifactMissingError,
    ILogger,
    sha256_file,
    write_sha256_sum_txt,
)
from desktop_build_pipeline.pipeline.step import resolve_globs
from desktop_build_pipeline.pipeline.types import (
    ArtifactExpectation,
    ArtifactRef,
    check_glob_pattern,
)


@dataclass(frozen=True, slots=True)
class ValidationReport:
    errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()
    matched: Mapping[str, tuple[str, ...]] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "errors", tuple(self.errors))
        object.__setattr__(self, "warnings", tuple(self.warnings))
        object.__setattr__(
            self,
            "matched",
            MappingProxyType({k: tuple(v) for k, v in self.matched.items()}),
        )

    @property
    def ok(self) -> bool:
        return not self.errors

    def matched_paths(self) -> list[str]:
        """All matched paths, de-duplicated across patterns, sorted."""
        return sorted({p for paths in self.matched.values() for p in paths})

    def raise_for_errors(self) -> None:
        if self.errors:
            raise ArtifactMissingError(list(self.errors))

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "matched": {k: list(v) for k, v in self.matched.items()},
        }


def validate(
    expectations: Sequence[ArtifactExpectation],
    working_dir: Path,
    *,
    logger: ILogger | None = None,
) -> ValidationReport:
    """
    Check that the files each expectation names exist under `working_dir`.

    Missing required artifacts become errors, missing optional ones become
    warnings. Reads the filesystem only, so repeated calls against an
    unchanged directory return equal reports.
    """
    root = Path(working_dir)
    errors: list[str] = []
    warnings: list[str] = []
    matched: dict[str, tuple[str, ...]] = {}

    for exp in expectations:
        check_glob_pattern("Artifact expectation", exp.glob_pattern)
        paths = resolve_globs(root, (exp.glob_pattern,))

        if paths:
            matched[exp.glob_pattern] = paths
            if logger is not None:
                logger.info(
                    "Artifact matched", pattern=exp.glob_pattern, files=list(paths)
                )
            continue

        if exp.required:
            msg = f"required artifact missing: {exp.glob_pattern}"
            errors.append(msg)
            if logger is not None:
                logger.error(msg, pattern=exp.glob_pattern)
        else:
            msg = f"optional artifact missing: {exp.glob_pattern}"
            warnings.append(msg)
            if logger is not None:
                logger.warning(msg, pattern=exp.glob_pattern)

    return ValidationReport(errors=errors, warnings=warnings, matched=matched)


def artifact_refs(report: ValidationReport, working_dir: Path) -> list[ArtifactRef]:
    root = Path(working_dir)
    refs: list[ArtifactRef] = []
    for rel in report.matched_paths():
        digest = sha256_file(root / rel)
        refs.append(ArtifactRef(path=rel, bytes=digest.bytes, sha256=digest.sha256))
    return refs


def write_checksums(path: Path, refs: Sequence[ArtifactRef]) -> None:
    write_sha256_sum_txt(Path(path), {r.path: r.sha256 for r in refs})
