"""Exception classes for the upload channel."""


class UploadChannelError(Exception):
    """Base error for upload channel operations."""


class TransportError(UploadChannelError):
    """Raised when the remote upload endpoint cannot complete a request.

    Attributes:
        status_code: HTTP status returned by the endpoint, if any.
        bytes_written: Number of bytes from the interrupted ``write`` call the
            channel took ownership of before the failure. Resend the rest.
    """

    def __init__(self, message: str, status_code: int | None = None):
        """Initialize TransportError.

        Args:
            message: Human readable description of the failure.
            status_code: HTTP status code returned by the endpoint.
        """
        super().__init__(message)
        self.status_code = status_code
        self.bytes_written = 0


class ChannelStateError(UploadChannelError):
    """Raised when an operation is not allowed in the channel's current state."""


class ChannelClosedError(ChannelStateError):
    """Raised when writing to or resizing a closed channel."""


class ChunkSizeLockedError(ChannelStateError):
    """Raised when the chunk size is changed after the upload has started."""


class RestoreError(UploadChannelError, ValueError):
    """Raised when a captured state cannot be restored into a channel."""


class StateNotFoundError(UploadChannelError):
    """Raised when no stored upload state exists for a key."""
