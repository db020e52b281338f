"""Pydantic models for upload channel settings."""

from pathlib import Path

from pydantic import BaseModel, Field, field_validator

from upload_channel.config_manager.helpers import parse_bytes
from upload_channel.const import (
    CONFIG_DIR,
    DEFAULT_CHUNK_SIZE,
    HTTP_TIMEOUT_SECONDS,
    STATE_DIR_NAME,
)


class UploadSettings(BaseModel):
    """Settings used by the command line and long-running uploaders.

    Attributes:
        chunk_size: requested chunk size in bytes; channels round it down to a
            multiple of 256 KiB.
        state_dir: directory where captured upload states are stored.
        http_timeout: per-request timeout for the HTTP adapter, in seconds.
        log_level: name of the logging level used by the command line.
    """

    chunk_size: int = Field(default=DEFAULT_CHUNK_SIZE, gt=0)
    state_dir: Path = CONFIG_DIR / STATE_DIR_NAME
    http_timeout: float = Field(default=HTTP_TIMEOUT_SECONDS, gt=0)
    log_level: str = "INFO"

    @field_validator("chunk_size", mode="before")
    @classmethod
    def _parse_chunk_size(cls, value: int | str) -> int:
        return parse_bytes(value)

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        return value.upper()
