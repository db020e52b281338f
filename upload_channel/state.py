"""Captured state of a resumable write channel.

A ``ChunkedUploadState`` is a pure value object: it holds everything needed to
rebuild a channel that continues the same upload session, and it serializes to
JSON so that an upload can be resumed by another process.
"""

from __future__ import annotations

import base64
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

from upload_channel.configuration import UploadConfiguration
from upload_channel.const import MIN_CHUNK_SIZE
from upload_channel.exceptions import RestoreError

if TYPE_CHECKING:
    from collections.abc import Callable

    from upload_channel.rpc.upload_rpc import UploadRpc
    from upload_channel.write_channel import ResumableWriteChannel


class ChunkedUploadState(BaseModel):
    """Snapshot of a ``ResumableWriteChannel``.

    Attributes:
        configuration: Upload target the session was opened for.
        session_id: Identifier returned by the endpoint when the session opened.
        buffer: Bytes accepted but not yet flushed, or None when nothing is
            buffered.
        chunk_size: Size of interior chunks, a multiple of ``MIN_CHUNK_SIZE``.
        position: Number of bytes already committed to the endpoint.
        is_open: Whether the channel still accepts writes.
    """

    model_config = ConfigDict(frozen=True)

    configuration: UploadConfiguration
    session_id: str
    buffer: bytes | None = None
    chunk_size: int = Field(gt=0)
    position: int = Field(default=0, ge=0)
    is_open: bool = True

    @field_validator("buffer", mode="before")
    @classmethod
    def _decode_buffer(cls, value: Any) -> Any:
        if isinstance(value, str):
            return base64.b64decode(value)
        if isinstance(value, (bytearray, memoryview)):
            return bytes(value)
        return value

    @field_serializer("buffer", when_used="json")
    def _encode_buffer(self, value: bytes | None) -> str | None:
        if value is None:
            return None
        return base64.b64encode(value).decode("ascii")

    def __hash__(self) -> int:
        return hash(
            (
                self.configuration,
                self.session_id,
                self.buffer,
                self.chunk_size,
                self.position,
                self.is_open,
            )
        )

    def __repr__(self) -> str:
        buffered = len(self.buffer) if self.buffer is not None else 0
        return (
            f"ChunkedUploadState(destination={self.configuration.destination!r}, "
            f"session_id={self.session_id!r}, buffered={buffered}, "
            f"chunk_size={self.chunk_size}, position={self.position}, "
            f"is_open={self.is_open})"
        )

    __str__ = __repr__

    @property
    def buffered_bytes(self) -> int:
        """Number of bytes waiting in the captured buffer."""
        return len(self.buffer) if self.buffer is not None else 0

    def check_consistency(self) -> None:
        """Verify that a channel can be rebuilt from this state.

        Raises:
            RestoreError: If chunk size, position and buffer do not describe a
                state a channel could have been in.
        """
        if self.chunk_size % MIN_CHUNK_SIZE != 0:
            raise RestoreError(
                f"Chunk size {self.chunk_size} is not a multiple of {MIN_CHUNK_SIZE}"
            )
        if self.position % self.chunk_size != 0:
            raise RestoreError(
                f"Position {self.position} is not a multiple of chunk size "
                f"{self.chunk_size}"
            )
        if not self.is_open and self.buffered_bytes:
            raise RestoreError(
                f"Closed state still holds {self.buffered_bytes} buffered bytes"
            )
        if self.buffered_bytes > self.chunk_size:
            raise RestoreError(
                f"Buffer of {self.buffered_bytes} bytes exceeds chunk size "
                f"{self.chunk_size}"
            )

    def restore(
        self,
        rpc: UploadRpc,
        progress_callback: Callable[[int], None] | None = None,
    ) -> ResumableWriteChannel:
        """Rebuild a channel from this state without contacting the endpoint.

        Args:
            rpc: Adapter used for the restored channel's future flushes.
            progress_callback: Called with the byte count of each later flush.

        Returns:
            A channel continuing the captured upload session.
        """
        from upload_channel.write_channel import ResumableWriteChannel

        return ResumableWriteChannel.restore(self, rpc, progress_callback)

    def to_json(self) -> str:
        """Serialize the state, base64-encoding any buffered bytes."""
        return self.model_dump_json()

    @classmethod
    def from_json(cls, data: str | bytes) -> ChunkedUploadState:
        """Parse a state produced by ``to_json``."""
        return cls.model_validate_json(data)
