"""Resumable write channel for chunked uploads.

This module provides ``ResumableWriteChannel``, which buffers caller data and
sends it to a resumable upload session in fixed-size chunks. The channel's
state can be captured at any time and restored later, even in another process,
to continue the same upload session.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from types import TracebackType

from upload_channel.chunk_buffer import ChunkBuffer
from upload_channel.configuration import UploadConfiguration
from upload_channel.const import DEFAULT_CHUNK_SIZE, MIN_CHUNK_SIZE
from upload_channel.exceptions import (
    ChannelClosedError,
    ChunkSizeLockedError,
    TransportError,
)
from upload_channel.rpc.upload_rpc import UploadRpc
from upload_channel.state import ChunkedUploadState

logger = logging.getLogger(__name__)


def align_chunk_size(chunk_size: int) -> int:
    """Round a chunk size down to a multiple of ``MIN_CHUNK_SIZE``.

    The result is never smaller than one ``MIN_CHUNK_SIZE`` granule.
    """
    return max(MIN_CHUNK_SIZE, (chunk_size // MIN_CHUNK_SIZE) * MIN_CHUNK_SIZE)


class ResumableWriteChannel:
    """Writes a byte stream to a resumable upload session in chunks.

    Bytes passed to ``write`` accumulate in an internal buffer of
    ``chunk_size`` bytes. Each time the buffer fills it is sent as an interior
    chunk and the stream position advances. ``close`` sends whatever remains
    (possibly nothing) as the final chunk, which finalizes the upload.

    A failed flush raises the adapter's exception and leaves the buffer and
    position exactly as they were, so the same data can be written again.
    The channel is not meant to be shared between writers; a lock serializes
    each public operation if it is.
    """

    def __init__(
        self,
        rpc: UploadRpc,
        configuration: UploadConfiguration,
        session_id: str,
        *,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        position: int = 0,
        is_open: bool = True,
        buffer: bytes | None = None,
        progress_callback: Callable[[int], None] | None = None,
    ):
        """Initialize a channel for an already opened session.

        Use ``create`` to open a new session or ``restore`` to continue a
        captured one; neither this constructor nor ``restore`` contact the
        endpoint.

        Args:
            rpc: Adapter used to send chunks.
            configuration: Upload target the session was opened for.
            session_id: Identifier returned by ``rpc.open``.
            chunk_size: Size of interior chunks in bytes.
            position: Number of bytes already committed to the endpoint.
            is_open: Whether the channel accepts writes.
            buffer: Bytes accepted earlier but not yet flushed.
            progress_callback: Called with the byte count of each flush.
        """
        self._rpc = rpc
        self._configuration = configuration
        self._session_id = session_id
        self._chunk_size = chunk_size
        self._position = position
        self._is_open = is_open
        self._buffer = ChunkBuffer(chunk_size)
        if buffer:
            self._buffer.append(buffer)
        self.progress_callback = progress_callback
        self._lock = threading.Lock()

    @classmethod
    def create(
        cls,
        rpc: UploadRpc,
        configuration: UploadConfiguration,
        progress_callback: Callable[[int], None] | None = None,
    ) -> ResumableWriteChannel:
        """Open a new upload session and return a channel writing to it.

        Args:
            rpc: Adapter for the remote endpoint.
            configuration: Upload target, passed unchanged to ``rpc.open``.
            progress_callback: Called with the byte count of each flush.

        Returns:
            An open channel at position 0 with the default chunk size.

        Raises:
            Exception: Whatever ``rpc.open`` raises; no channel is created.
        """
        try:
            session_id = rpc.open(configuration)
        except Exception:
            logger.error(
                "Failed to open upload session for %s", configuration.destination
            )
            raise
        logger.info(
            "Opened upload session for %s (chunk size %d)",
            configuration.destination,
            DEFAULT_CHUNK_SIZE,
        )
        return cls(rpc, configuration, session_id, progress_callback=progress_callback)

    @classmethod
    def restore(
        cls,
        state: ChunkedUploadState,
        rpc: UploadRpc,
        progress_callback: Callable[[int], None] | None = None,
    ) -> ResumableWriteChannel:
        """Rebuild a channel from a captured state.

        The endpoint is not contacted. The restored channel continues flushing
        from the captured position.

        Raises:
            RestoreError: If the state is internally inconsistent.
        """
        state.check_consistency()
        logger.info(
            "Restoring upload session for %s at position %d (%d bytes buffered)",
            state.configuration.destination,
            state.position,
            state.buffered_bytes,
        )
        return cls(
            rpc,
            state.configuration,
            state.session_id,
            chunk_size=state.chunk_size,
            position=state.position,
            is_open=state.is_open,
            buffer=state.buffer,
            progress_callback=progress_callback,
        )

    @property
    def configuration(self) -> UploadConfiguration:
        """Upload target of this channel."""
        return self._configuration

    @property
    def session_id(self) -> str:
        """Identifier of the remote upload session."""
        return self._session_id

    @property
    def position(self) -> int:
        """Number of bytes committed to the endpoint so far."""
        return self._position

    @property
    def buffered(self) -> int:
        """Number of bytes accepted but not yet flushed."""
        return len(self._buffer)

    @property
    def is_open(self) -> bool:
        """Whether the channel still accepts writes."""
        return self._is_open

    @property
    def chunk_size(self) -> int:
        """Size in bytes of each interior chunk."""
        return self._chunk_size

    @chunk_size.setter
    def chunk_size(self, chunk_size: int) -> None:
        with self._lock:
            if not self._is_open:
                raise ChannelClosedError(
                    "Cannot change chunk size of a closed channel"
                )
            if self._position > 0 or not self._buffer.is_empty():
                raise ChunkSizeLockedError(
                    "Chunk size can only change before any data is written"
                )
            aligned = align_chunk_size(chunk_size)
            if aligned != chunk_size:
                logger.debug(
                    "Adjusted chunk size from %d to %d bytes to be a multiple of %d",
                    chunk_size,
                    aligned,
                    MIN_CHUNK_SIZE,
                )
            self._chunk_size = aligned
            self._buffer = ChunkBuffer(aligned)

    def write(self, data: bytes) -> int:
        """Accept bytes for upload, flushing every chunk that fills up.

        Args:
            data: Any bytes-like object.

        Returns:
            The number of bytes accepted, always ``len(data)``.

        Raises:
            ChannelClosedError: If the channel is closed.
            TransportError: If a flush fails. ``bytes_written`` on the error
                tells how much of ``data`` the channel kept.
        """
        view = memoryview(data).cast("B")
        with self._lock:
            if not self._is_open:
                raise ChannelClosedError("Cannot write to a closed channel")

            accepted = 0
            try:
                while True:
                    if self._buffer.is_full():
                        self._flush(last=False)
                    if accepted == len(view):
                        break
                    accepted += self._buffer.append(view, accepted)
            except TransportError as e:
                e.bytes_written = accepted
                raise
            return accepted

    def close(self) -> None:
        """Send the remaining bytes as the final chunk and close the channel.

        Closing an already closed channel does nothing.

        Raises:
            TransportError: If the final flush fails; the channel stays open.
        """
        with self._lock:
            if not self._is_open:
                logger.debug(
                    "Channel for %s already closed", self._configuration.destination
                )
                return
            if self._buffer.is_full():
                self._flush(last=False)
            final_length = len(self._buffer)
            self._flush(last=True)
            self._is_open = False
            logger.info(
                "Closed upload session for %s (%d bytes committed)",
                self._configuration.destination,
                self._position + final_length,
            )

    def capture(self) -> ChunkedUploadState:
        """Return a snapshot from which an equivalent channel can be restored."""
        with self._lock:
            buffered = self._buffer.getvalue() if not self._buffer.is_empty() else None
            return ChunkedUploadState(
                configuration=self._configuration,
                session_id=self._session_id,
                buffer=buffered,
                chunk_size=self._chunk_size,
                position=self._position,
                is_open=self._is_open,
            )

    def _flush(self, last: bool) -> None:
        """Send the buffer contents at the current position.

        Interior flushes advance the position; the final flush does not. The
        buffer is only cleared once the write returns, so any exception
        (including ``KeyboardInterrupt``) leaves buffer and position as they
        were.
        """
        chunk = self._buffer.getvalue()
        length = len(chunk)
        try:
            self._rpc.write(self._session_id, chunk, 0, self._position, length, last)
        except Exception:
            logger.warning(
                "Flush of %d bytes at position %d failed (final=%s)",
                length,
                self._position,
                last,
                exc_info=True,
            )
            raise

        self._buffer.clear()
        logger.debug(
            "Flushed %d bytes at position %d (final=%s)", length, self._position, last
        )
        if not last:
            self._position += length
        if self.progress_callback:
            try:
                self.progress_callback(length)
            except Exception:
                logger.warning(
                    "Progress callback failed after flushing %d bytes",
                    length,
                    exc_info=True,
                )

    def __enter__(self) -> ResumableWriteChannel:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        # Leave the session open on error so it can be captured and resumed.
        if exc_type is None:
            self.close()

    def __repr__(self) -> str:
        return (
            f"ResumableWriteChannel(destination={self._configuration.destination!r}, "
            f"position={self._position}, buffered={len(self._buffer)}, "
            f"chunk_size={self._chunk_size}, is_open={self._is_open})"
        )
