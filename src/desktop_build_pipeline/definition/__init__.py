from .loader import (
    get_pipeline,
    load_pipeline,
    parse_pipeline,
    resolve_pipeline_file,
    schema_for_pipeline_file,
)
from .models import ArtifactSpec, PipelineFile, StepSpec

__all__ = [
    "ArtifactSpec",
    "PipelineFile",
    "StepSpec",
    "get_pipeline",
    "load_pipeline",
    "parse_pipeline",
    "resolve_pipeline_file",
    "schema_for_pipeline_file",
]
