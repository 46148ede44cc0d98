"""
Logging Configuration.
"""

from functools import lru_cache
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .sinks import SinkMode


class LoggingSettings(BaseSettings):
    """Sink and middleware configuration, read from ``TRACELOG_*`` variables."""

    model_config = SettingsConfigDict(
        env_prefix="TRACELOG_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    mode: Optional[SinkMode] = Field(default=None, description="Sink mode (console, file, both)")
    file_path: Optional[str] = Field(default=None, description="Path for the file sink")
    buffer_size: int = Field(default=0, ge=0, description="Queue size per sink; 0 writes synchronously")
    service_name: str = Field(default="", description="Service name used by the tracing middleware")
    skip_paths: List[str] = Field(default_factory=list, description="Exact paths the middleware does not trace")

    @field_validator("mode", mode="before")
    @classmethod
    def _parse_mode(cls, value: object) -> Optional[SinkMode]:
        if value is None or value == "":
            return None
        return SinkMode.parse(value)


@lru_cache(maxsize=1)
def get_settings() -> LoggingSettings:
    return LoggingSettings()
