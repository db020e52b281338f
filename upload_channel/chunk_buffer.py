"""Fixed-capacity byte accumulator used to assemble upload chunks."""

from __future__ import annotations


class ChunkBuffer:
    """Accumulates bytes until exactly one chunk is available.

    The buffer owns a ``bytearray`` of ``capacity`` bytes and a cursor counting
    the valid bytes written so far. Data is always copied in and copied out, so
    the buffer never aliases memory owned by the caller.
    """

    def __init__(self, capacity: int):
        """Initialize an empty buffer.

        Args:
            capacity: Number of bytes the buffer holds when full.

        Raises:
            ValueError: If capacity is not positive.
        """
        if capacity <= 0:
            raise ValueError(f"Buffer capacity must be positive, got {capacity}")
        self._data = bytearray(capacity)
        self._cursor = 0

    @property
    def capacity(self) -> int:
        """Total number of bytes the buffer can hold."""
        return len(self._data)

    @property
    def remaining(self) -> int:
        """Number of bytes that can still be appended before the buffer is full."""
        return len(self._data) - self._cursor

    def __len__(self) -> int:
        return self._cursor

    def is_full(self) -> bool:
        """Return True when the buffer holds a complete chunk."""
        return self._cursor == len(self._data)

    def is_empty(self) -> bool:
        """Return True when no bytes are buffered."""
        return self._cursor == 0

    def append(self, source: bytes, offset: int = 0, length: int | None = None) -> int:
        """Copy bytes from ``source`` into the buffer.

        Only as many bytes as fit in the remaining capacity are copied. The
        caller must flush the buffer and append the rest afterwards.

        Args:
            source: Any bytes-like object.
            offset: Index of the first byte of ``source`` to copy.
            length: Number of bytes to copy. Defaults to the rest of ``source``.

        Returns:
            Number of bytes actually copied.

        Raises:
            ValueError: If ``offset``/``length`` fall outside ``source``.
        """
        view = memoryview(source).cast("B")
        if length is None:
            length = len(view) - offset
        if offset < 0 or length < 0 or offset + length > len(view):
            raise ValueError(
                f"Range offset={offset} length={length} outside source "
                f"of {len(view)} bytes"
            )

        accepted = min(length, self.remaining)
        if accepted:
            self._data[self._cursor : self._cursor + accepted] = view[
                offset : offset + accepted
            ]
            self._cursor += accepted
        return accepted

    def getvalue(self) -> bytes:
        """Return a copy of the buffered bytes without consuming them."""
        return bytes(self._data[: self._cursor])

    def drain(self) -> bytes:
        """Return a copy of the buffered bytes and reset the buffer.

        The returned object is sized to the cursor: a full chunk for interior
        flushes, possibly fewer bytes (or none) for the final flush.
        """
        chunk = self.getvalue()
        self._cursor = 0
        return chunk

    def clear(self) -> None:
        """Discard all buffered bytes."""
        self._cursor = 0
