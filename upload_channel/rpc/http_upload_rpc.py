"""Resumable upload adapter for GCS-style HTTP endpoints.

Sessions are started with a ``POST`` to the endpoint's upload URL; the
``Location`` header of the response is the session URI and doubles as the
session identifier. Chunks are sent with ``PUT`` requests carrying a
``Content-Range`` header. The final chunk states the total size, which tells
the server to finalize the object.
"""

from __future__ import annotations

import logging
from typing import Any

import requests

from upload_channel.configuration import UploadConfiguration
from upload_channel.const import (
    FINAL_SUCCESS_CODES,
    HTTP_TIMEOUT_SECONDS,
    RESUME_INCOMPLETE_CODE,
)
from upload_channel.exceptions import TransportError
from upload_channel.rpc.upload_rpc import UploadRpc

logger = logging.getLogger(__name__)


def extract_error_detail(response: requests.Response) -> str | None:
    """Extract error detail from an HTTP error response."""
    try:
        payload: Any = response.json()
    except ValueError:
        return response.text

    if not isinstance(payload, dict):
        return str(payload)

    error_payload = payload.get("error", payload)
    if not isinstance(error_payload, dict):
        return str(error_payload)

    return error_payload.get("message") or str(error_payload)


def content_range(position: int, length: int, last: bool) -> str:
    """Build the ``Content-Range`` header for a chunk.

    Args:
        position: Offset of the chunk's first byte in the stream.
        length: Number of bytes in the chunk.
        last: Whether the chunk ends the stream.

    Returns:
        ``bytes a-b/*`` for interior chunks, ``bytes a-b/total`` for a final
        chunk and ``bytes */total`` for an empty final chunk.
    """
    total = str(position + length) if last else "*"
    if length == 0:
        return f"bytes */{total}"
    return f"bytes {position}-{position + length - 1}/{total}"


class HttpUploadRpc(UploadRpc):
    """Talks to a resumable upload endpoint over HTTP.

    No request is retried here. Every failure is raised as a
    ``TransportError`` and retry policy is left to the caller.
    """

    def __init__(
        self,
        upload_url: str | None = None,
        session: requests.Session | None = None,
        timeout: float = HTTP_TIMEOUT_SECONDS,
        headers: dict[str, str] | None = None,
    ):
        """Initialize the adapter.

        Args:
            upload_url: Endpoint accepting resumable session requests. Only
                needed to open new sessions; restored channels write straight
                to their session URI.
            session: Optional ``requests.Session`` for connection reuse.
            timeout: Per-request timeout in seconds.
            headers: Extra headers sent with every request.
        """
        self.upload_url = upload_url
        self.timeout = timeout
        self._session = session or requests.Session()
        self._headers = dict(headers or {})

    def open(self, configuration: UploadConfiguration) -> str:
        """Start a resumable session and return its session URI.

        Raises:
            TransportError: If the request fails or no session URI is returned.
        """
        if not self.upload_url:
            raise TransportError("No upload URL configured to open a session")

        headers = {
            **self._headers,
            "X-Upload-Content-Type": configuration.content_type,
        }
        body = {
            "name": configuration.destination,
            "contentType": configuration.content_type,
            "metadata": configuration.metadata,
        }
        logger.info(
            "POST resumable session: destination=%s content_type=%s",
            configuration.destination,
            configuration.content_type,
        )
        try:
            response = self._session.post(
                self.upload_url,
                params={"uploadType": "resumable"},
                json=body,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise TransportError(f"Failed to open upload session: {e}") from e

        if response.status_code not in FINAL_SUCCESS_CODES:
            raise TransportError(
                f"Failed to open upload session: HTTP {response.status_code} "
                f"{extract_error_detail(response)}",
                status_code=response.status_code,
            )

        session_uri = response.headers.get("Location")
        if not session_uri:
            raise TransportError(
                "Upload endpoint did not return a session URI",
                status_code=response.status_code,
            )
        logger.info(
            "Resumable session opened: destination=%s session_uri=%s",
            configuration.destination,
            session_uri[:80] + "..." if len(session_uri) > 80 else session_uri,
        )
        return session_uri

    def write(
        self,
        session_id: str,
        buffer: bytes,
        offset: int,
        position: int,
        length: int,
        last: bool,
    ) -> None:
        """PUT one chunk to the session URI.

        Raises:
            TransportError: If the request fails or the status is unexpected.
        """
        data = bytes(memoryview(buffer)[offset : offset + length])
        headers = {
            **self._headers,
            "Content-Length": str(length),
            "Content-Range": content_range(position, length, last),
        }
        logger.debug(
            "PUT chunk: bytes=%d range=%s final=%s",
            length,
            headers["Content-Range"],
            last,
        )
        try:
            response = self._session.put(
                session_id, headers=headers, data=data, timeout=self.timeout
            )
        except requests.exceptions.RequestException as e:
            raise TransportError(f"Chunk upload failed: {e}") from e

        status_code = response.status_code
        if status_code in FINAL_SUCCESS_CODES:
            if last:
                logger.info("Upload finalized: total_bytes=%d", position + length)
            return
        if status_code == RESUME_INCOMPLETE_CODE and not last:
            return

        raise TransportError(
            f"Chunk upload failed: HTTP {status_code} {extract_error_detail(response)}",
            status_code=status_code,
        )
