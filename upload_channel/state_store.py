"""On-disk persistence for captured upload states."""

from __future__ import annotations

import logging
import os
import re
import tempfile
from pathlib import Path

from pydantic import ValidationError

from upload_channel.const import CONFIG_ENCODING
from upload_channel.exceptions import RestoreError, StateNotFoundError
from upload_channel.state import ChunkedUploadState

logger = logging.getLogger(__name__)

_KEY_PATTERN = re.compile(r"^[A-Za-z0-9._-]+$")


class StateStore:
    """Store ``ChunkedUploadState`` snapshots as JSON files in a directory.

    Each key maps to ``<directory>/<key>.json``. Saves are written to a
    temporary file first and moved into place, so a snapshot on disk is
    always complete.
    """

    def __init__(self, directory: Path | str):
        """Initialise StateStore.

        Args:
            directory: Directory holding the snapshot files. Created on first save.
        """
        self._directory = Path(directory)

    @property
    def directory(self) -> Path:
        """Return the directory the snapshots live in."""
        return self._directory

    def _path(self, key: str) -> Path:
        if not _KEY_PATTERN.match(key):
            raise ValueError(f"Invalid state key: {key!r}")
        return self._directory / f"{key}.json"

    def save(self, key: str, state: ChunkedUploadState) -> Path:
        """Persist a snapshot under ``key``, replacing any previous one.

        Returns:
            Path of the snapshot file.
        """
        path = self._path(key)
        self._directory.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self._directory, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding=CONFIG_ENCODING) as f:
                f.write(state.to_json())
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        logger.debug("Saved upload state %s at position %d", key, state.position)
        return path

    def load(self, key: str) -> ChunkedUploadState:
        """Load the snapshot stored under ``key``.

        Raises:
            StateNotFoundError: If no snapshot exists for ``key``.
            RestoreError: If the snapshot file cannot be parsed.
        """
        path = self._path(key)
        if not path.exists():
            raise StateNotFoundError(f"No upload state stored for {key!r}")
        try:
            return ChunkedUploadState.from_json(
                path.read_text(encoding=CONFIG_ENCODING)
            )
        except ValidationError as e:
            raise RestoreError(f"Upload state {key!r} is corrupt: {e}") from e

    def exists(self, key: str) -> bool:
        """Return True if a snapshot is stored under ``key``."""
        return self._path(key).exists()

    def delete(self, key: str) -> None:
        """Remove the snapshot for ``key``.

        Raises:
            StateNotFoundError: If no snapshot exists for ``key``.
        """
        path = self._path(key)
        if not path.exists():
            raise StateNotFoundError(f"No upload state stored for {key!r}")
        path.unlink()
        logger.debug("Deleted upload state %s", key)

    def list_keys(self) -> list[str]:
        """List stored snapshot keys in sorted order."""
        if not self._directory.exists():
            return []
        return sorted(
            path.stem
            for path in self._directory.iterdir()
            if path.is_file() and path.suffix == ".json"
        )
