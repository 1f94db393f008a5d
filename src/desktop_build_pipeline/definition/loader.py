from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path
from typing import Any

import jsonschema
from pydantic import TypeAdapter, ValidationError

from desktop_build_pipeline.core import ConfigurationError, load_settings, read_json

from .models import PipelineFile

DEFAULT_FILENAMES = ("pipeline.json", "config/pipeline.json")


@lru_cache(maxsize=1)
def schema_for_pipeline_file() -> dict[str, Any]:
    return TypeAdapter(PipelineFile).json_schema()


def resolve_pipeline_file(explicit: Path | None = None) -> Path:
    """
    Resolve the pipeline definition file.

    Priority:
      1) explicit argument
      2) DESKTOP_BUILD_PIPELINE_FILE
      3) ./pipeline.json
      4) ./config/pipeline.json
    """
    if explicit is not None:
        p = Path(explicit).expanduser().resolve()
        if p.is_file():
            return p
        raise ConfigurationError(f"--pipeline does not point to a file: {p}")

    configured = load_settings().pipeline_file
    if configured is not None:
        p = Path(configured).expanduser().resolve()
        if p.is_file():
            return p
        raise ConfigurationError(
            f"DESKTOP_BUILD_PIPELINE_FILE does not point to a file: {p}"
        )

    for rel in DEFAULT_FILENAMES:
        cand = Path.cwd() / rel
        if cand.is_file():
            return cand.resolve()

    raise ConfigurationError(
        "Could not find a pipeline definition. "
        "Pass --pipeline or set DESKTOP_BUILD_PIPELINE_FILE."
    )


def parse_pipeline(raw: Any, *, source: str = "<memory>") -> PipelineFile:
    """
    Validate a decoded definition against the JSON schema, then the models.
    """
    try:
        jsonschema.validate(instance=raw, schema=schema_for_pipeline_file())
    except jsonschema.ValidationError as e:
        where = "/".join(str(p) for p in e.absolute_path) or "<root>"
        raise ConfigurationError(f"{source}: {where}: {e.message}") from e

    try:
        return PipelineFile.model_validate(raw)
    except ValidationError as e:
        raise ConfigurationError(f"{source}: {e}") from e


def load_pipeline(path: Path) -> PipelineFile:
    path = Path(path)
    try:
        raw = read_json(path)
    except OSError as e:
        raise ConfigurationError(f"Cannot read pipeline definition {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"{path}: invalid JSON: {e}") from e

    return parse_pipeline(raw, source=str(path))


def get_pipeline(explicit: Path | None = None) -> tuple[Path, PipelineFile]:
    path = resolve_pipeline_file(explicit)
    return path, load_pipeline(path)
