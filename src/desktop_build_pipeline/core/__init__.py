from .config import Settings, load_settings
from .errors import (
    ArtifactMissingError,
    BuildPipelineError,
    ConfigurationError,
    InternalError,
    StepError,
    StepExecutionError,
    step_error_from_exc,
)
from .fs import atomic_write_text, relpath_posix, safe_unlink
from .hashing import FileDigest, sha256_file, write_sha256_sum_txt
from .json import atomic_write_json, read_json
from .logging import ILogger, bind, clear_bindings, configure_logging, get_logger
from .provenance import RunProvenance, Timer, new_run_id
from .time import format_duration_ms, monotonic_ms, utc_now_iso

__all__ = [
    "Settings",
    "load_settings",
    "ArtifactMissingError",
    "BuildPipelineError",
    "ConfigurationError",
    "InternalError",
    "StepError",
    "StepExecutionError",
    "step_error_from_exc",
    "atomic_write_text",
    "relpath_posix",
    "safe_unlink",
    "FileDigest",
    "sha256_file",
    "write_sha256_sum_txt",
    "atomic_write_json",
    "read_json",
    "ILogger",
    "bind",
    "clear_bindings",
    "configure_logging",
    "get_logger",
    "RunProvenance",
    "Timer",
    "new_run_id",
    "format_duration_ms",
    "monotonic_ms",
    "utc_now_iso",
]
