"""
Runtime configuration.

Values come from environment variables prefixed with CHESS_ (ex. CHESS_DATABASE_URL), falling back to the defaults below.
"""

import os
from typing import Mapping, Optional, Self

from pydantic import BaseModel, field_validator

ENV_PREFIX = "CHESS_"
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class Settings(BaseModel):
    database_url: str = "sqlite:///chess_sessions.db"
    echo_sql: bool = False
    log_level: str = "INFO"
    log_format: str = "simple"
    # zlib level used by the history codec
    compression_level: int = 9
    # persist a live session every N moves (0: only persist on termination / eviction)
    checkpoint_interval: int = 0

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"Unknown log level {value!r}. Pick one from {', '.join(LOG_LEVELS)}")
        return level

    @field_validator("compression_level")
    @classmethod
    def validate_compression_level(cls, value: int) -> int:
        if not 0 <= value <= 9:
            raise ValueError(f"compression_level must lie in 0..9, got {value}")
        return value

    @field_validator("checkpoint_interval")
    @classmethod
    def validate_checkpoint_interval(cls, value: int) -> int:
        if value < 0:
            raise ValueError(f"checkpoint_interval cannot be negative, got {value}")
        return value

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> Self:
        """Collect all CHESS_* variables. pydantic takes care of converting the strings into the field types."""
        environ = os.environ if environ is None else environ
        values = {
            name: environ[ENV_PREFIX + name.upper()]
            for name in cls.model_fields
            if ENV_PREFIX + name.upper() in environ
        }
        return cls(**values)
