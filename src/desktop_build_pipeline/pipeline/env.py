from __future__ import annotations

import os
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping


@dataclass(frozen=True, slots=True)
class EnvironmentLayers:
    """
    Immutable base environment plus pipeline-wide overrides.

    `for_step` builds a fresh dict per invocation; neither the layers nor
    `os.environ` are ever mutated, so step overrides cannot leak.
    """

    base: Mapping[str, str] = field(default_factory=dict)
    pipeline: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "base", MappingProxyType(dict(self.base)))
        object.__setattr__(self, "pipeline", MappingProxyType(dict(self.pipeline)))

    @classmethod
    def inherit(cls, pipeline: Mapping[str, str] | None = None) -> "EnvironmentLayers":
        return cls(base=dict(os.environ), pipeline=pipeline or {})

    def for_step(self, overrides: Mapping[str, str]) -> dict[str, str]:
        merged = dict(self.base)
        merged.update(self.pipeline)
        merged.update(overrides)
        return merged

    def override_keys(self, overrides: Mapping[str, str]) -> list[str]:
        """Keys set on top of the inherited environment, for logging."""
        return sorted(set(self.pipeline) | set(overrides))
