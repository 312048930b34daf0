import os
from typing import Mapping, Optional

from pydantic import BaseModel

from .errors import ConfigError

LOG_LEVELS = ("TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL")


class Settings(BaseModel):
    """Process-wide defaults, normally read from ``WFCONVERT_*`` variables."""

    log_level: str = "WARNING"
    output_format: str = "cwl"
    cache_dir: Optional[str] = None
    max_workers: int = 4

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ

        level = env.get("WFCONVERT_LOG_LEVEL", "WARNING").strip().upper()
        if level not in LOG_LEVELS:
            raise ConfigError(f"WFCONVERT_LOG_LEVEL: unknown level '{level}'")

        from .formats import available_formats
        fmt = env.get("WFCONVERT_OUTPUT_FORMAT", "cwl").strip()
        if fmt not in available_formats():
            raise ConfigError(f"WFCONVERT_OUTPUT_FORMAT: unknown format '{fmt}'")

        raw_workers = env.get("WFCONVERT_MAX_WORKERS", "4").strip()
        try:
            workers = int(raw_workers)
        except ValueError:
            raise ConfigError(f"WFCONVERT_MAX_WORKERS: '{raw_workers}' is not an integer") from None
        if workers < 1:
            raise ConfigError(f"WFCONVERT_MAX_WORKERS: must be positive, got {workers}")

        cache_dir = env.get("WFCONVERT_CACHE_DIR") or None
        return cls(log_level=level, output_format=fmt, cache_dir=cache_dir, max_workers=workers)
