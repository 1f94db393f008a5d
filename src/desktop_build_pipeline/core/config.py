from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

LogFormat = Literal["json", "console"]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="DESKTOP_BUILD_",
        env_file=".env",
        extra="ignore",
    )

    working_dir: Path = Field(default=Path("."))
    run_root: Path = Field(default=Path("_runs"))
    pipeline_file: Optional[Path] = Field(default=None)
    log_level: str = Field(default="INFO")
    log_format: LogFormat = Field(default="console")
    step_timeout_s: Optional[float] = Field(default=None, gt=0)


@lru_cache(maxsize=1)
def load_settings() -> Settings:
    return Settings()
