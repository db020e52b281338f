"""Abstract transport used by ``ResumableWriteChannel``."""

from __future__ import annotations

from abc import ABC, abstractmethod

from upload_channel.configuration import UploadConfiguration


class UploadRpc(ABC):
    """Strategy interface for a resumable upload endpoint.

    Implementations must:
      - Return an opaque session identifier from ``open``.
      - Treat ``last=True`` on ``write`` as the end of the stream and
        finalize the session, even when ``length`` is zero.
      - Raise on any failure. Channels never retry; they surface the error
        unchanged and keep their own state untouched.
    """

    @abstractmethod
    def open(self, configuration: UploadConfiguration) -> str:
        """Start an upload session for ``configuration`` and return its id."""
        ...

    @abstractmethod
    def write(
        self,
        session_id: str,
        buffer: bytes,
        offset: int,
        position: int,
        length: int,
        last: bool,
    ) -> None:
        """Send ``buffer[offset:offset + length]`` at stream ``position``.

        Args:
            session_id: Identifier returned by ``open``.
            buffer: Holds at least ``offset + length`` bytes.
            offset: Index of the first byte to send within ``buffer``.
            position: Number of bytes of the stream already committed.
            length: Number of bytes to send.
            last: Whether this chunk terminates the stream.
        """
        ...
