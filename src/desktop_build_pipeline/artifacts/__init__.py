from .validator import ValidationReport, artifact_refs, validate, write_checksums

__all__ = [
    "ValidationReport",
    "artifact_refs",
    "validate",
    "write_checksums",
]
