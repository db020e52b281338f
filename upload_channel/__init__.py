"""Resumable chunked uploads to object and table stores."""

from .chunk_buffer import ChunkBuffer
from .configuration import UploadConfiguration
from .const import DEFAULT_CHUNK_SIZE, MIN_CHUNK_SIZE
from .exceptions import (
    ChannelClosedError,
    ChannelStateError,
    ChunkSizeLockedError,
    RestoreError,
    StateNotFoundError,
    TransportError,
    UploadChannelError,
)
from .rpc import HttpUploadRpc, UploadRpc
from .state import ChunkedUploadState
from .state_store import StateStore
from .write_channel import ResumableWriteChannel

__version__ = "0.1.0"

__all__ = [
    "ChannelClosedError",
    "ChannelStateError",
    "ChunkBuffer",
    "ChunkSizeLockedError",
    "ChunkedUploadState",
    "DEFAULT_CHUNK_SIZE",
    "HttpUploadRpc",
    "MIN_CHUNK_SIZE",
    "RestoreError",
    "ResumableWriteChannel",
    "StateNotFoundError",
    "StateStore",
    "TransportError",
    "UploadChannelError",
    "UploadConfiguration",
    "UploadRpc",
]
